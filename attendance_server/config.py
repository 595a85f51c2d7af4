"""
Environment configuration for the attendance server.
Uses pydantic-settings so every value can come from the environment
or a local .env file.
"""

import json
import socket
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional, Union

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

env_path = Path(".") / ".env"
load_dotenv(dotenv_path=env_path)


def get_local_ip() -> str:
    """First non-internal IPv4 address of this host, or 0.0.0.0."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # No packet is sent; this only picks the outbound interface.
            sock.connect(("10.255.255.255", 1))
            address = sock.getsockname()[0]
    except OSError:
        return "0.0.0.0"
    if address.startswith("127."):
        return "0.0.0.0"
    return address


def default_cors_origins() -> List[str]:
    return ["http://localhost:3000", f"http://{get_local_ip()}:3000"]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    APP_NAME: str = "University Attendance System"
    ENVIRONMENT: str = Field(
        default="production",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
    )
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 4000
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default_factory=default_cors_origins)

    # Database
    MONGODB_URI: str = Field(
        default="mongodb://localhost:27017",
        validation_alias=AliasChoices("MONGODB_URI", "DATABASE_URL"),
    )
    DATABASE_NAME: str = "attendance_system"
    MONGODB_TIMEOUT_MS: int = 5000

    # Security
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_MINUTES: int = 60 * 24
    BCRYPT_ROUNDS: int = 12
    ALLOW_ADMIN_REGISTRATION: bool = False

    # Attendance
    QR_CODE_TTL_MINUTES: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"
    LOG_DIR: Optional[str] = None

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a JSON list or a comma separated string"""
        if isinstance(v, str):
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        v = v.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"prod", "production"}:
            return "production"
        if v in {"test", "testing"}:
            return "testing"
        # staging, qa and other names are kept as given
        return v

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
