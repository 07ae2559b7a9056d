"""Runtime state models for crawlers and their runner."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class CrawlerStatus(str, Enum):
    """Lifecycle of the crawler process as seen by the health endpoints."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class CrawlerState(str, Enum):
    """Position of a crawler in its poll state machine."""

    DISCONNECTED = "disconnected"
    AUTHENTICATING = "authenticating"
    POLLING = "polling"
    WAITING = "waiting"
    STOPPED = "stopped"


class HealthStatus(BaseModel):
    """Response model for the /health endpoint."""

    crawler_name: str = Field(description="Name of the crawler")
    status: CrawlerStatus = Field(description="Current process status")
    uptime_seconds: float = Field(description="Seconds since the runner started")
    records_received: int = Field(default=0, description="Records taken off the channel")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Crawler-specific details (state, last poll time, ...)",
    )
