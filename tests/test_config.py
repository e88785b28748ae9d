import pytest
from pydantic import SecretStr, ValidationError

from support_spark.config import Settings


def build(**values):
    return Settings(_env_file=None, **values)


def test_defaults():
    settings = build()
    assert settings.STORAGE_BACKEND == "memory"
    assert settings.SESSION_TTL_SECONDS == 86400
    assert settings.LOGIN_RATE_LIMIT == 5
    assert settings.LOGIN_RATE_PERIOD_SECONDS == 900
    assert settings.INVITE_RATE_LIMIT == 10
    assert settings.INVITATION_EXPIRE_DAYS == 14
    assert settings.DEFAULT_CONVERSATION_TITLE == "My journey"
    assert settings.DEMO_MODE is False


@pytest.mark.parametrize("field", ["LOGIN_RATE_LIMIT", "SESSION_TTL_SECONDS", "INVITATION_EXPIRE_DAYS"])
def test_non_positive_limits_are_rejected(field):
    with pytest.raises(ValidationError):
        build(**{field: 0})


def test_bcrypt_rounds_bounds():
    with pytest.raises(ValidationError):
        build(BCRYPT_ROUNDS=3)
    assert build(BCRYPT_ROUNDS=4).BCRYPT_ROUNDS == 4


def test_mongodb_backend_requires_url():
    with pytest.raises(ValidationError):
        build(STORAGE_BACKEND="mongodb", MONGODB_URL="  ")
    settings = build(STORAGE_BACKEND="mongodb", MONGODB_URL="mongodb://localhost:27017")
    assert settings.MONGODB_URL == "mongodb://localhost:27017"


def test_cors_origins_list_skips_blanks():
    settings = build(CORS_ORIGINS="http://a.example, ,http://b.example")
    assert settings.cors_origins_list == ["http://a.example", "http://b.example"]


def test_effective_redis_url():
    assert build(REDIS_URL="redis://cache:6379/2").effective_redis_url == "redis://cache:6379/2"
    settings = build(REDIS_HOST="cache", REDIS_PORT=6380, REDIS_DB=1, REDIS_PASSWORD=SecretStr("pw"))
    assert settings.effective_redis_url == "redis://:pw@cache:6380/1"
