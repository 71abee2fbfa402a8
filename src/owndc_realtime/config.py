"""Configuration module for the OwnDC realtime coordinator.

Config discovery order:
    1. the file named by the ``OWNDC_REALTIME_CONFIG_PATH`` environment variable,
    2. ``.owndc`` in the project root,
    3. ``.env`` in the project root,
    4. environment variables only.

The ``Settings`` class uses pydantic's ``BaseSettings`` so every field can be
overridden from the environment. Secrets are never hardcoded; validators reject
placeholder values when they are supplied.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
OWNDC_FILENAME: str = ".owndc"
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "OWNDC_REALTIME_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


def get_config_path() -> Optional[str]:
    """Determine the config file path to use, in order of precedence:
    1. Environment variable OWNDC_REALTIME_CONFIG_PATH
    2. .owndc in project root
    3. .env in project root
    4. None (fallback to environment variables only)

    Returns:
        Optional[str]: Path to config file, or None if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    owndc_path: Path = PROJECT_ROOT / OWNDC_FILENAME
    if owndc_path.exists():
        return str(owndc_path)
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=True)


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 3001
    DEBUG: bool = True
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:3001"

    # Session tokens (issued by the auth service, verified here)
    SECRET_KEY: SecretStr = SecretStr("")  # Must be set in .owndc or environment
    ALGORITHM: str = "HS256"

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://127.0.0.1:27017"
    MONGODB_DATABASE: str = "owndc"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Logging
    APP_NAME: str = "owndc-realtime"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOKI_ENABLED: bool = False
    LOKI_URL: str = "http://localhost:3100/loki/api/v1/push"
    LOKI_COMPRESS: bool = True

    # Realtime coordinator
    REALTIME_MAX_MESSAGE_LENGTH: int = 4000
    REALTIME_CLOSE_SUPERSEDED_CONNECTIONS: bool = True
    REALTIME_TOKEN_COOKIE_NAME: str = "access_token"

    @field_validator("SECRET_KEY", mode="before")
    @classmethod
    def no_hardcoded_secrets(cls, v, info):
        if not v or "change" in str(v).lower() or "0000" in str(v) or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .owndc and not hardcoded!")
        return v

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v, info):
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .owndc and not empty!")
        return v

    @field_validator("REALTIME_MAX_MESSAGE_LENGTH", mode="before")
    @classmethod
    def validate_positive_integers(cls, v, info):
        """Validate that numeric limits are positive."""
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return not self.DEBUG

    @property
    def cors_origins_list(self) -> List[str]:
        """Get list of allowed CORS origins."""
        if not self.CORS_ORIGINS:
            return []
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


# Global settings instance
settings: Settings = Settings()
