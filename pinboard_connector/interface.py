"""Crawler — the capability every message source implements."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from .channel import RecordChannel


@runtime_checkable
class Crawler(Protocol):
    """A source of Records.

    Implementations (mailbox, social feed, ...) satisfy this protocol
    structurally; they do not share a base class.
    """

    async def crawl(
        self,
        output: RecordChannel,
        cancel: asyncio.Event,
        poll_interval: float | None = None,
    ) -> None:
        """Poll the source until *cancel* is set or a fatal error occurs.

        Every completed Record is sent on *output*; *output* is closed
        before returning, whatever the reason for stopping.
        """
        ...

    async def health_check(self) -> dict[str, object]:
        """Return crawler-specific health details for ``/health``."""
        ...
