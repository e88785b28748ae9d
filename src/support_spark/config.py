"""
# Configuration Management Module

This module provides the configuration system for the SupportSpark service. It is built on
**Pydantic Settings** and offers hierarchical configuration loading with validation at startup.

## Configuration Loading Hierarchy

Higher layers override lower layers:

1. **Environment variables** (highest priority)
2. **`SUPPORT_SPARK_CONFIG_PATH`**: custom config file path from an environment variable
3. **`.spark` file** in the project root (preferred for development, gitignored)
4. **`.env` file** in the project root (docker-compose compatible)
5. **Default values** declared on the `Settings` class (lowest priority)

If no configuration file is found, the service runs in environment-only mode.

## Configuration Groups

| Group | Purpose |
|-------|---------|
| **Server** | Host, port, debug mode, CORS origins |
| **Storage** | Backend selection (`memory` or `mongodb`) and MongoDB connection |
| **Sessions** | Session backend (`memory` or `redis`), lifetime and cookie settings |
| **Credentials** | bcrypt cost factor and password policy |
| **Rate Limiting** | Login, registration and invitation windows |
| **Relationships** | Invitation expiry |
| **Messages** | Body and title length limits, image upload directory and limits |
| **Demo** | Demo accounts and demo login endpoints |

## Usage

```python
from support_spark.config import settings

if settings.STORAGE_BACKEND == "mongodb":
    print(f"Using MongoDB database {settings.MONGODB_DATABASE}")
```

Attributes:
    SPARK_FILENAME (str): Primary configuration filename (`.spark`).
    DEFAULT_ENV_FILENAME (str): Fallback configuration filename (`.env`).
    CONFIG_ENV_VAR (str): Environment variable naming a custom config file.
    PROJECT_ROOT (Path): Project root used to locate config files.
    CONFIG_PATH (Optional[str]): The resolved config file, or `None` in environment-only mode.
    settings (Settings): The process-wide settings instance.
"""

import os
from pathlib import Path
from typing import Any, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
SPARK_FILENAME: str = ".spark"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "SUPPORT_SPARK_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determine the configuration file path based on a predefined precedence order.

    1.  **Environment Variable**: `SUPPORT_SPARK_CONFIG_PATH` (if set and the file exists).
    2.  **Spark Config**: `.spark` file in the project root directory.
    3.  **Dotenv Config**: `.env` file in the project root directory.
    4.  **Fallback**: `None`, triggering environment-variable-only mode.

    Returns:
        Optional[str]: The path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    spark_path: Path = PROJECT_ROOT / SPARK_FILENAME
    if spark_path.exists():
        return str(spark_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    Values are loaded from environment variables or the discovered configuration file.
    Validators reject non-positive limits and an empty MongoDB URL when the `mongodb`
    storage backend is selected, so misconfiguration fails at startup instead of at
    the first request.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    APP_NAME: str = "SupportSpark API"
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = True
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5000"
    METRICS_ENABLED: bool = True

    # Storage configuration
    STORAGE_BACKEND: Literal["memory", "mongodb"] = "memory"
    MONGODB_URL: str = ""
    MONGODB_DATABASE: str = "support_spark"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Session configuration
    SESSION_BACKEND: Literal["memory", "redis"] = "memory"
    SESSION_TTL_SECONDS: int = 24 * 60 * 60  # Absolute session lifetime
    SESSION_COOKIE_NAME: str = "spark_session"
    SESSION_COOKIE_SECURE: bool = False
    SESSION_KEY_PREFIX: str = "spark:session:"

    # Redis configuration (sessions and rate limiting)
    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "127.0.0.1"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[SecretStr] = None

    # Credential configuration
    BCRYPT_ROUNDS: int = 12
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_MAX_LENGTH: int = 72  # bcrypt ignores bytes past 72

    # Rate limiting configuration
    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"
    RATE_LIMIT_KEY_PREFIX: str = "spark:ratelimit:"
    LOGIN_RATE_LIMIT: int = 5  # Attempts per identifier per window
    LOGIN_RATE_PERIOD_SECONDS: int = 15 * 60
    LOGIN_IP_RATE_LIMIT: int = 20  # Attempts per source address per window
    REGISTER_RATE_LIMIT: int = 5
    REGISTER_RATE_PERIOD_SECONDS: int = 15 * 60
    INVITE_RATE_LIMIT: int = 10  # Invitations per owner per window
    INVITE_RATE_PERIOD_SECONDS: int = 60 * 60
    DEMO_LOGIN_RATE_LIMIT: int = 10
    DEMO_LOGIN_RATE_PERIOD_SECONDS: int = 15 * 60

    # Relationship configuration
    INVITATION_EXPIRE_DAYS: int = 14

    # Message configuration
    MESSAGE_MAX_LENGTH: int = 5000
    TITLE_MAX_LENGTH: int = 200
    DEFAULT_CONVERSATION_TITLE: str = "My journey"

    # Image uploads
    UPLOAD_DIR: str = "data/uploads"  # One sub-directory per conversation
    IMAGE_MAX_BYTES: int = 5 * 1024 * 1024
    IMAGE_MAX_FILES: int = 5  # Per upload request and per message

    # Demo configuration
    DEMO_MODE: bool = False

    @field_validator(
        "SESSION_TTL_SECONDS",
        "BCRYPT_ROUNDS",
        "PASSWORD_MIN_LENGTH",
        "LOGIN_RATE_LIMIT",
        "LOGIN_RATE_PERIOD_SECONDS",
        "LOGIN_IP_RATE_LIMIT",
        "REGISTER_RATE_LIMIT",
        "REGISTER_RATE_PERIOD_SECONDS",
        "INVITE_RATE_LIMIT",
        "INVITE_RATE_PERIOD_SECONDS",
        "DEMO_LOGIN_RATE_LIMIT",
        "DEMO_LOGIN_RATE_PERIOD_SECONDS",
        "INVITATION_EXPIRE_DAYS",
        "MESSAGE_MAX_LENGTH",
        "TITLE_MAX_LENGTH",
        "IMAGE_MAX_BYTES",
        "IMAGE_MAX_FILES",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """
        Validates that numeric settings are positive integers.

        Raises:
            ValueError: If the value is not a positive integer.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @field_validator("BCRYPT_ROUNDS", mode="after")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        """bcrypt accepts cost factors between 4 and 31."""
        if v < 4 or v > 31:
            raise ValueError("BCRYPT_ROUNDS must be between 4 and 31")
        return v

    @model_validator(mode="after")
    def mongodb_url_required(self) -> "Settings":
        """
        Validates that the MongoDB URL is set when the mongodb backend is selected.

        Raises:
            ValueError: If the URL is empty or whitespace.
        """
        if self.STORAGE_BACKEND == "mongodb" and not self.MONGODB_URL.strip():
            raise ValueError("MONGODB_URL must be set via environment or .spark when STORAGE_BACKEND=mongodb")
        return self

    @property
    def is_production(self) -> bool:
        """`True` when running with `DEBUG=False`."""
        return not self.DEBUG

    @property
    def cors_origins_list(self) -> List[str]:
        """The comma-separated `CORS_ORIGINS` setting as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def effective_redis_url(self) -> str:
        """
        The Redis URL used for sessions and rate limiting.

        Precedence: explicit `REDIS_URL`, then a URL constructed from host/port/db and
        the optional password.
        """
        if self.REDIS_URL:
            return self.REDIS_URL
        creds = ""
        if self.REDIS_PASSWORD:
            creds = f":{self.REDIS_PASSWORD.get_secret_value()}@"
        return f"redis://{creds}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Global settings instance
settings: Settings = Settings()
