"""Crawler configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class StorageConfig(BaseSettings):
    """Where records, attachments and quarantined messages are written."""

    model_config = {"env_prefix": "STORAGE_"}

    data_dir: Path = Field(
        default=Path("./data"),
        description="Directory for .cmsg records and normalized attachments",
    )
    max_image_width: int = Field(default=1920, gt=0, description="Attachment width bound in pixels")
    max_image_height: int = Field(default=1080, gt=0, description="Attachment height bound in pixels")
    attachment_extension: str = Field(
        default="rgba",
        description="File extension of normalized attachment files",
    )
    background_color: str | None = Field(
        default=None,
        description="Flatten transparent images onto this colour (e.g. 'orange'); keep alpha if unset",
    )
    dead_letter_after: int | None = Field(
        default=None,
        gt=0,
        description="Quarantine a message after this many parse failures; never if unset",
    )
    quarantine_dir: Path | None = Field(
        default=None,
        description="Directory for quarantined raw messages (default: <data_dir>/quarantine)",
    )

    @property
    def resolved_quarantine_dir(self) -> Path:
        return self.quarantine_dir or self.data_dir / "quarantine"


class CrawlerConfig(BaseSettings):
    """Root configuration for a crawler instance.

    Backoff and re-login timings are fixed delays, not exponential.
    """

    model_config = {"env_prefix": "CRAWLER_"}

    name: str = Field(default="crawler", description="Crawler name used in logs and health")
    poll_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Seconds between the starts of two poll cycles",
    )
    login_backoff_seconds: float = Field(
        default=300.0,
        ge=0,
        description="Wait after a failed login before trying again",
    )
    cycle_backoff_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Wait after a failed fetch/parse/delete/save cycle",
    )
    relogin_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Force a fresh login after this long",
    )
    relogin_pause_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Pause between QUIT and the next login",
    )
    health_port: int = Field(default=8080, description="Port for the health endpoints")
    log_json: bool = Field(default=True, description="Render logs as JSON lines")
    log_level: str = Field(default="INFO", description="Root log level")

    storage: StorageConfig = Field(default_factory=StorageConfig)
