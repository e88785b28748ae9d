import pytest
from fastapi.testclient import TestClient

from support_spark.config import Settings
from support_spark.container import ServiceContainer
from support_spark.main import create_app

DEFAULT_SECRET = "correct-horse-battery"


def make_settings(**overrides) -> Settings:
    values = dict(
        BCRYPT_ROUNDS=4,
        METRICS_ENABLED=False,
        STORAGE_BACKEND="memory",
        SESSION_BACKEND="memory",
        RATE_LIMIT_BACKEND="memory",
        REGISTER_RATE_LIMIT=100,
        LOGIN_IP_RATE_LIMIT=100,
        DEMO_MODE=False,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def test_settings(tmp_path):
    return make_settings(UPLOAD_DIR=str(tmp_path / "uploads"))


@pytest.fixture
def services(test_settings):
    return ServiceContainer(test_settings)


@pytest.fixture
def register_member(services):
    async def _register(email, display_name="Member", secret=DEFAULT_SECRET):
        return await services.credentials.register(email, secret, display_name)

    return _register


@pytest.fixture
def client(test_settings, services):
    app = create_app(test_settings, services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def signup(client):
    """Register over HTTP and return `(member_id, auth headers)`."""

    def _signup(email, display_name="Member", secret=DEFAULT_SECRET):
        response = client.post(
            "/api/auth/register",
            json={"email": email, "secret": secret, "display_name": display_name},
        )
        assert response.status_code == 201, response.text
        # Each test identity authenticates with its bearer token only.
        client.cookies.clear()
        body = response.json()
        return body["member"]["member_id"], {"Authorization": f"Bearer {body['token']}"}

    return _signup


@pytest.fixture
def network(services, register_member):
    """Build owner + active supporter + outsider and return them with a conversation."""

    async def _build():
        owner = await register_member("maya@example.com", "Maya")
        supporter = await register_member("sam@example.com", "Sam")
        outsider = await register_member("lee@example.com", "Lee")
        relationship = await services.relationships.invite(owner.member_id, "sam@example.com")
        await services.relationships.accept(relationship.relationship_id, supporter.member_id)
        conversation = await services.conversations.create_conversation(owner.member_id)
        return owner, supporter, outsider, relationship, conversation

    return _build
