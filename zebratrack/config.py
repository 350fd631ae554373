from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client runtime configuration, read from ``ZEBRA_*`` variables and ``.env``."""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="ZEBRA_", case_sensitive=False, extra="ignore")

    base_uri: str = ""
    token: Optional[str] = None
    request_timeout: int = 15

    data_dir: Path = Field(default_factory=lambda: Path.home() / ".zebra")
    user_id: Optional[int] = None
    default_role_id: Optional[int] = None

    timezone: str = "Europe/Zurich"

    log_level: str = "INFO"
    log_file: Optional[Path] = None

    @field_validator("data_dir", mode="before")
    @classmethod
    def _expand_data_dir(cls, value):
        if value in (None, ""):
            return Path.home() / ".zebra"
        return Path(value).expanduser()

    @field_validator("log_file", mode="before")
    @classmethod
    def _expand_log_file(cls, value):
        if value in (None, ""):
            return None
        return Path(value).expanduser()

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Optional[str]) -> str:
        return (value or "INFO").strip().upper()

    @property
    def resolved_log_file(self) -> Path:
        return self.log_file or self.data_dir / "logs" / "zebra.log"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


__all__ = ["Settings", "get_settings"]
