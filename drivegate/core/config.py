from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from drivegate.core.constants import APPS_SCRIPT_ORIGIN_PATTERN
from drivegate.core.errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parents[2]

PLACEHOLDER_PREFIXES = ("YOUR_", "your-", "change-me", "<")


def is_placeholder(value: str) -> bool:
    stripped = value.strip()
    return not stripped or stripped.startswith(PLACEHOLDER_PREFIXES)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: Literal["dev", "staging", "prod"] = "dev"
    app_name: str = "DriveGate Upload Broker"
    api_prefix: str = "/api/v1"
    debug: bool = False

    client_email: str = ""
    private_key: str = ""
    drive_folder_id: str = ""

    token_uri: str = "https://oauth2.googleapis.com/token"
    drive_scope: str = "https://www.googleapis.com/auth/drive"
    drive_upload_url: str = "https://www.googleapis.com/upload/drive/v3/files"
    token_ttl_seconds: int = Field(default=3600, gt=0, le=3600)
    token_cache_enabled: bool = True
    request_timeout_seconds: float = Field(default=60.0, gt=0)

    allowed_origin_pattern: str = APPS_SCRIPT_ORIGIN_PATTERN
    rate_limit_per_minute: int = Field(default=60, ge=0)

    @field_validator("private_key")
    @classmethod
    def _unescape_newlines(cls, value: str) -> str:
        # keys pasted into a single env line carry literal "\n" sequences
        return value.replace("\\n", "\n")

    def missing_broker_settings(self) -> list[str]:
        required = {
            "client_email": self.client_email,
            "private_key": self.private_key,
            "drive_folder_id": self.drive_folder_id,
            "token_uri": self.token_uri,
            "drive_upload_url": self.drive_upload_url,
        }
        return [name for name, value in required.items() if is_placeholder(value)]

    def validate_broker(self) -> None:
        missing = self.missing_broker_settings()
        if missing:
            raise ConfigurationError(f"Missing or placeholder settings: {', '.join(missing)}")


@lru_cache
def get_settings() -> Settings:
    return Settings()
