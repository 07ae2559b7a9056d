"""MailSession — one authenticated POP3 connection and its lifetime."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from .config import Pop3Config
from .pop3_client import ListEntry, Pop3Client

logger = structlog.get_logger()

ClientFactory = Callable[[Pop3Config], Pop3Client]


def connect_client(config: Pop3Config) -> Pop3Client:
    return Pop3Client.connect(
        config.host,
        config.port,
        use_ssl=config.use_ssl,
        timeout=config.timeout_seconds,
    )


class MailSession:
    """Async-friendly wrapper around a :class:`Pop3Client`.

    All blocking client calls are wrapped with ``asyncio.to_thread()``.
    The session tracks when it must log in again: after
    *relogin_interval* seconds, or as soon as :meth:`schedule_reconnect`
    has been called.  It is owned by exactly one crawler; nothing else
    may issue commands on its connection.
    """

    def __init__(
        self,
        config: Pop3Config,
        *,
        relogin_interval: float,
        client_factory: ClientFactory = connect_client,
    ) -> None:
        self._config = config
        self._relogin_interval = relogin_interval
        self._client_factory = client_factory
        self._client: Pop3Client | None = None
        self.authenticated_until: float = 0.0
        self.pending_reconnect: bool = False

    @property
    def connected(self) -> bool:
        return self._client is not None and self._client.is_open

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def login(self) -> None:
        """Connect, read the greeting and authenticate."""
        await self.logout()
        try:
            self._client = await asyncio.to_thread(self._login_sync)
        except Exception as exc:
            logger.warning(
                "pop3_login_failed",
                host=self._config.host,
                port=self._config.port,
                error=str(exc),
            )
            raise
        self.authenticated_until = time.monotonic() + self._relogin_interval
        self.pending_reconnect = False
        logger.info("pop3_login_succeeded", host=self._config.host, port=self._config.port)

    def _login_sync(self) -> Pop3Client:
        client = self._client_factory(self._config)
        try:
            client.authenticate(
                self._config.username,
                self._config.password.get_secret_value(),
            )
        except BaseException:
            client.close()
            raise
        return client

    async def logout(self) -> None:
        """Send QUIT and drop the connection.  Safe to call when not connected."""
        client, self._client = self._client, None
        if client is not None:
            await asyncio.to_thread(client.quit)
            logger.info("pop3_logged_out", host=self._config.host)

    async def drop(self) -> None:
        """Close the connection without QUIT.

        The server then never enters its update state, so messages marked
        with DELE in this session stay in the mailbox.
        """
        client, self._client = self._client, None
        if client is not None:
            await asyncio.to_thread(client.close)
            logger.warning("pop3_connection_dropped", host=self._config.host)

    def schedule_reconnect(self) -> None:
        self.pending_reconnect = True

    def needs_relogin(self) -> bool:
        return self.pending_reconnect or time.monotonic() >= self.authenticated_until

    # ------------------------------------------------------------------
    # Mailbox operations
    # ------------------------------------------------------------------

    async def stat(self) -> tuple[int, int]:
        return await asyncio.to_thread(self._require_client().stat)

    async def list_all(self) -> list[ListEntry]:
        return await asyncio.to_thread(self._require_client().list_all)

    async def fetch(self, message_id: int) -> str:
        return await asyncio.to_thread(self._require_client().retr, message_id)

    async def delete(self, message_id: int) -> None:
        await asyncio.to_thread(self._require_client().dele, message_id)

    async def reset(self) -> None:
        """Unmark every message deleted in this session (RSET)."""
        await asyncio.to_thread(self._require_client().rset)

    def _require_client(self) -> Pop3Client:
        if self._client is None:
            raise ConnectionError("POP3 session is not logged in")
        return self._client
