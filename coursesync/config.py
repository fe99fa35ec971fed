"""
Installation settings for the sync service.

Settings are read from ``SYNC_*`` environment variables so a node can be
switched between master and client mode without code changes. They are loaded
once when the application is created and handed to every service that needs
them.
"""
from __future__ import annotations

from typing import List, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coursesync.errors import ConfigurationError
from coursesync.models.content import KIND_ORDER, ContentKind

SYNC_INTERVALS = {
    "hourly": 3600,
    "twicedaily": 12 * 3600,
    "daily": 24 * 3600,
}


class SyncSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        extra="ignore",
    )

    mode: Literal["master", "client"] = "client"
    api_key: str = ""
    site_url: str = "http://localhost:8000"
    site_name: str = "Course Sync"

    # Client mode: where to pull from
    master_url: str = ""
    master_api_key: str = ""
    auto_sync_enabled: bool = False
    sync_interval: str = "hourly"

    sync_courses: bool = True
    sync_lessons: bool = True
    sync_topics: bool = True
    sync_quizzes: bool = True
    sync_questions: bool = True

    conflict_resolution: Literal["skip", "overwrite"] = "skip"
    batch_size: int = Field(10, ge=1, le=50)
    request_timeout: float = Field(30.0, gt=0)
    push_timeout: float = Field(45.0, gt=0)
    inactive_after_days: int = Field(7, ge=1)
    log_retention_days: int = Field(30, ge=1)

    @field_validator("sync_interval")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        value = value.strip().lower()
        if value in SYNC_INTERVALS or (value.isdigit() and int(value) > 0):
            return value
        raise ValueError(
            "sync_interval must be hourly, twicedaily, daily or seconds"
        )

    @field_validator("master_url", "site_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @property
    def interval_seconds(self) -> int:
        if self.sync_interval in SYNC_INTERVALS:
            return SYNC_INTERVALS[self.sync_interval]
        return int(self.sync_interval)

    @property
    def enabled_kinds(self) -> List[ContentKind]:
        return [
            kind for kind in KIND_ORDER
            if getattr(self, f"sync_{kind.plural}")
        ]

    def require_master(self) -> None:
        """Raise before any network call if the pull target is incomplete."""
        if not self.master_url or not self.master_api_key:
            raise ConfigurationError(
                "Master site URL or API key is not configured."
            )

    @classmethod
    def from_env(cls) -> "SyncSettings":
        """Load from the environment, reporting bad values as configuration errors."""
        try:
            return cls()
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid sync settings: {exc}") from exc
