"""MailCrawler — polls a POP3 mailbox and emits one Record per message.

State machine::

    DISCONNECTED → AUTHENTICATING → POLLING ⇄ WAITING → STOPPED

Each cycle takes the lowest-numbered message only: fetch, parse, delete
on the server, save locally, then hand the Record to the consumer.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime

import structlog

from pinboard_connector import (
    CrawlerState,
    DeadLetterHandler,
    RecordChannel,
    RecordStore,
    fixed_backoff,
    wait_for_cancel,
)
from pinboard_connector.errors import ParseError, ProtocolError
from pinboard_schema import Record

from .attachments import AttachmentStore
from .config import MailCrawlerConfig
from .parser import MessageParser
from .pop3_client import ListEntry
from .session import MailSession

logger = structlog.get_logger()


class ListingError(Exception):
    """The server refused to list the mailbox; the crawl cannot go on."""


class MailCrawler:
    """Mailbox implementation of :class:`pinboard_connector.Crawler`.

    Failure handling:

    * login fails → wait ``login_backoff_seconds``, try again (forever)
    * ``LIST`` is refused → stop crawling
    * fetch / parse / delete / save fails → wait ``cycle_backoff_seconds``
      and force a fresh login; the message stays on the server (a DELE
      followed by a failed save is taken back with RSET) and the
      attachment files of the unsaved record are removed
    """

    def __init__(self, config: MailCrawlerConfig) -> None:
        self.config = config
        storage = config.storage

        self._session = MailSession(
            config.pop3,
            relogin_interval=config.relogin_interval_seconds,
        )
        self._attachments = AttachmentStore(
            storage.data_dir,
            max_width=storage.max_image_width,
            max_height=storage.max_image_height,
            extension=storage.attachment_extension,
            background_color=storage.background_color,
        )
        self._parser = MessageParser(self._attachments)
        self._store = RecordStore(storage.data_dir)
        self._dead_letter: DeadLetterHandler | None = None
        if storage.dead_letter_after is not None:
            self._dead_letter = DeadLetterHandler(
                storage.resolved_quarantine_dir,
                storage.dead_letter_after,
            )

        self.state: CrawlerState = CrawlerState.DISCONNECTED
        self._last_poll_time: datetime | None = None
        self._records_ingested: int = 0

    # ------------------------------------------------------------------
    # Crawl loop
    # ------------------------------------------------------------------

    async def crawl(
        self,
        output: RecordChannel,
        cancel: asyncio.Event,
        poll_interval: float | None = None,
    ) -> None:
        """Run until *cancel* is set or listing fails; always closes *output*."""
        interval = poll_interval if poll_interval is not None else self.config.poll_interval_seconds
        logger.info(
            "crawl_started",
            host=self.config.pop3.host,
            poll_interval_seconds=interval,
        )

        try:
            if not await self._authenticate(cancel):
                return

            while not cancel.is_set():
                started = time.monotonic()
                self.state = CrawlerState.POLLING
                try:
                    await self._poll_once(output, cancel)
                except ListingError as exc:
                    logger.error("crawl_aborted", error=str(exc))
                    return

                self.state = CrawlerState.WAITING
                remaining = interval - (time.monotonic() - started)
                if await wait_for_cancel(cancel, remaining):
                    break

                if self._session.needs_relogin():
                    logger.info("pop3_relogin", pending=self._session.pending_reconnect)
                    self.state = CrawlerState.DISCONNECTED
                    await self._session.logout()
                    if await wait_for_cancel(cancel, self.config.relogin_pause_seconds):
                        break
                    if not await self._authenticate(cancel):
                        break
        finally:
            self.state = CrawlerState.STOPPED
            await self._session.logout()
            output.close()
            logger.info(
                "crawl_stopped",
                host=self.config.pop3.host,
                records_ingested=self._records_ingested,
            )

    async def _authenticate(self, cancel: asyncio.Event) -> bool:
        """Log in, retrying with a fixed backoff.  False if cancelled first."""
        self.state = CrawlerState.AUTHENTICATING
        retrying = fixed_backoff(
            self.config.login_backoff_seconds,
            cancel=cancel,
            retryable_exceptions=(OSError, ProtocolError),
            operation="pop3_login",
        )
        try:
            async for attempt in retrying:
                with attempt:
                    if cancel.is_set():
                        return False
                    await self._session.login()
        except (OSError, ProtocolError):
            # retrying only gives up once cancel is set
            return False
        return True

    async def _poll_once(self, output: RecordChannel, cancel: asyncio.Event) -> None:
        """One POLLING step.  Raises :class:`ListingError` if LIST fails."""
        try:
            entries = await self._session.list_all()
        except ProtocolError as exc:
            raise ListingError(f"LIST failed: {exc}") from exc
        except OSError as exc:
            await self._recover(cancel, "list", exc)
            return
        self._last_poll_time = datetime.now(UTC)
        await self._log_mailbox_stats(entries)

        if not entries or cancel.is_set():
            return

        entry = min(entries, key=lambda e: e.message_id)
        raw_text: str | None = None
        record: Record | None = None
        stage = "fetch"
        try:
            raw_text = await self._session.fetch(entry.message_id)
            stage = "parse"
            record = await asyncio.to_thread(self._parser.parse, raw_text)
            stage = "delete"
            await self._session.delete(entry.message_id)
            stage = "save"
            await asyncio.to_thread(self._store.save, record)
        except ParseError as exc:
            assert raw_text is not None
            if await self._dead_letter_message(entry, raw_text, exc):
                return
            await self._recover(cancel, stage, exc, message_id=entry.message_id)
            return
        except Exception as exc:
            # one bad message must not end the crawl
            if record is not None:
                self._attachments.discard(record.image_names)
            if stage == "save":
                await self._undelete(entry)
            await self._recover(cancel, stage, exc, message_id=entry.message_id)
            return

        if self._dead_letter is not None:
            self._dead_letter.clear(raw_text)
        await self._emit(output, record)

    async def _emit(self, output: RecordChannel, record: Record) -> None:
        # blocks until the consumer has taken the record
        await output.send(record)
        self._records_ingested += 1
        logger.info(
            "record_emitted",
            sender=record.sender_name,
            short_text=record.short_text,
            images=len(record.image_names),
        )

    async def _undelete(self, entry: ListEntry) -> None:
        """Take back a DELE whose record could not be saved.

        If RSET fails the connection is dropped without QUIT, which also
        leaves the message on the server.
        """
        try:
            await self._session.reset()
        except (ProtocolError, OSError) as exc:
            logger.warning("pop3_rset_failed", message_id=entry.message_id, error=str(exc))
            await self._session.drop()
            return
        logger.info("pop3_delete_reverted", message_id=entry.message_id)

    async def _recover(
        self,
        cancel: asyncio.Event,
        stage: str,
        exc: Exception,
        **context: object,
    ) -> None:
        logger.warning(
            "crawl_cycle_failed",
            stage=stage,
            error=str(exc),
            error_type=type(exc).__name__,
            backoff_seconds=self.config.cycle_backoff_seconds,
            **context,
        )
        self._session.schedule_reconnect()
        await wait_for_cancel(cancel, self.config.cycle_backoff_seconds)

    async def _dead_letter_message(
        self,
        entry: ListEntry,
        raw_text: str,
        exc: ParseError,
    ) -> bool:
        """Quarantine a repeatedly failing message and delete it from the server.

        Returns True if the message was quarantined and deleted.
        """
        if self._dead_letter is None:
            return False
        path = await asyncio.to_thread(self._dead_letter.record_failure, raw_text, error=str(exc))
        if path is None:
            return False
        try:
            await self._session.delete(entry.message_id)
        except (ProtocolError, OSError) as delete_exc:
            logger.warning(
                "dead_letter_delete_failed",
                message_id=entry.message_id,
                error=str(delete_exc),
            )
            return False
        logger.warning("message_quarantined", message_id=entry.message_id, path=str(path))
        return True

    async def _log_mailbox_stats(self, entries: list[ListEntry]) -> None:
        try:
            count, size = await self._session.stat()
        except (ProtocolError, OSError) as exc:
            logger.warning("pop3_stat_failed", error=str(exc))
            return
        logger.info(
            "mailbox_polled",
            messages=count,
            size_bytes=size,
            message_ids=[e.message_id for e in entries],
        )

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> dict[str, object]:
        relogin_in = None
        if self._session.connected:
            relogin_in = max(0.0, self._session.authenticated_until - time.monotonic())
        return {
            "state": self.state.value,
            "pop3_connected": self._session.connected,
            "pop3_host": self.config.pop3.host,
            "last_poll_time": (
                self._last_poll_time.isoformat() if self._last_poll_time else None
            ),
            "records_ingested": self._records_ingested,
            "relogin_in_seconds": relogin_in,
        }
