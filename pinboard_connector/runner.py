"""CrawlerRunner — runs a crawler, its consumer and the health server."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog
import uvicorn

from pinboard_schema import Record

from .channel import RecordChannel
from .config import CrawlerConfig
from .health import create_health_app
from .interface import Crawler
from .logging import setup_logging
from .models import CrawlerStatus
from .shutdown import install_signal_handlers

logger = structlog.get_logger()

RecordHandler = Callable[[Record], Awaitable[None]]


async def log_record(record: Record) -> None:
    """Default consumer: log each record as it arrives."""
    logger.info(
        "record_received",
        sender=record.sender_name,
        short_text=record.short_text,
        timestamp=record.timestamp.isoformat(),
        images=record.image_names,
    )


class CrawlerRunner:
    """Owns the cancellation event and the record channel of one crawler.

    ``run()`` starts the following concurrently via
    :class:`asyncio.TaskGroup`:

    * the crawler's ``crawl()`` loop
    * the consumer draining the channel into *on_record*
    * the FastAPI health server (unless *serve_health* is false)

    SIGTERM / SIGINT set the cancellation event; the crawler then quits
    its session and closes the channel, which ends the consumer.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        crawler: Crawler,
        *,
        on_record: RecordHandler = log_record,
        serve_health: bool = True,
    ) -> None:
        self.config = config
        self.crawler = crawler
        self.status: CrawlerStatus = CrawlerStatus.STARTING
        self.start_time: float = time.monotonic()
        self.records_received: int = 0

        self._on_record = on_record
        self._serve_health = serve_health
        self._cancel = asyncio.Event()
        self._channel = RecordChannel()

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def _run_crawler(self) -> None:
        self.status = CrawlerStatus.RUNNING
        try:
            await self.crawler.crawl(
                self._channel,
                self._cancel,
                self.config.poll_interval_seconds,
            )
            self.status = CrawlerStatus.STOPPING
        except Exception:
            self.status = CrawlerStatus.DEGRADED
            logger.exception("crawler_error", crawler=self.config.name)
            raise
        finally:
            # crawl() closes the channel itself; this covers crashes
            self._channel.close()
            # stop the health server as well
            self._cancel.set()

    async def _consume(self) -> None:
        async for record in self._channel:
            self.records_received += 1
            await self._on_record(record)
        logger.info("record_stream_ended", received=self.records_received)

    async def _run_health_server(self) -> None:
        app = create_health_app(self)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        serve_task = asyncio.create_task(server.serve())
        await self._cancel.wait()
        server.should_exit = True
        await serve_task

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run until the crawler stops.  Call via ``asyncio.run(runner.run())``."""
        setup_logging(
            json=self.config.log_json,
            level=self.config.log_level,
            crawler=self.config.name,
        )
        install_signal_handlers(self._cancel)
        self.start_time = time.monotonic()
        logger.info("runner_starting", crawler=self.config.name)

        try:
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_crawler())
                tg.create_task(self._consume())
                if self._serve_health:
                    tg.create_task(self._run_health_server())
        except* Exception:
            logger.exception("runner_task_group_error", crawler=self.config.name)
        finally:
            self.status = CrawlerStatus.STOPPED
            logger.info("runner_stopped", crawler=self.config.name)
