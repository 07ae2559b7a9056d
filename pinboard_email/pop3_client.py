"""Synchronous POP3 client over an already-connected stream.

Only the commands a crawl cycle needs are implemented.  Every call blocks
on network I/O and none is retried here; retry policy belongs to the
crawler.
"""

from __future__ import annotations

import socket
import ssl
from typing import BinaryIO, NamedTuple, Protocol

import structlog

from pinboard_connector.errors import ProtocolError

logger = structlog.get_logger()

SUCCESS_MARKER = "+OK"
ERROR_MARKER = "-ERR"
TERMINATOR = "."
CRLF = b"\r\n"

# RFC 1939 allows 512 octets per response line; message lines can be far
# longer in practice, so only pathological lines are rejected.
MAX_LINE_BYTES = 64 * 1024

# Lines are decoded with surrogateescape so non-UTF-8 message bytes survive
# and can be recovered with .encode(WIRE_ENCODING, WIRE_ERRORS).
WIRE_ENCODING = "utf-8"
WIRE_ERRORS = "surrogateescape"


class Stream(Protocol):
    """The parts of a socket the client uses."""

    def makefile(self, mode: str) -> BinaryIO: ...

    def sendall(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class ListEntry(NamedTuple):
    """One line of a ``LIST`` response."""

    message_id: int
    size: int


class Pop3Client:
    """Line-oriented POP3 driver.

    Usage::

        client = Pop3Client.connect("pop.example.com", 995)
        client.authenticate("user", "secret")
        for entry in client.list_all():
            text = client.retr(entry.message_id)
        client.quit()
    """

    def __init__(self) -> None:
        self._stream: Stream | None = None
        self._reader: BinaryIO | None = None
        self.greeting: str = ""

    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        *,
        use_ssl: bool = True,
        timeout: float | None = None,
        ssl_context: ssl.SSLContext | None = None,
    ) -> Pop3Client:
        """Open a TCP connection (TLS-wrapped unless *use_ssl* is false)
        and consume the server greeting.
        """
        sock: socket.socket = socket.create_connection((host, port), timeout=timeout)
        try:
            if use_ssl:
                context = ssl_context or ssl.create_default_context()
                sock = context.wrap_socket(sock, server_hostname=host)
            client = cls()
            client.open(sock)
        except BaseException:
            sock.close()
            raise
        return client

    # ------------------------------------------------------------------
    # Line handling
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def open(self, stream: Stream) -> None:
        """Attach to *stream* and read the greeting line.

        Raises :class:`ProtocolError` if the greeting is not positive.
        """
        self._stream = stream
        self._reader = stream.makefile("rb")
        line = self._read_line()
        logger.debug("pop3_receive", line=line)
        self.greeting = self._check_response(line)

    def command(self, request: str) -> str:
        """Send one command line and return the payload of a ``+OK`` reply.

        Any other reply raises :class:`ProtocolError` carrying the server
        text.  Follow-up lines of a multi-line reply must be read with
        :meth:`read_multiline`.
        """
        stream = self._require_stream()
        logger.debug("pop3_send", line=_mask(request))
        stream.sendall(request.encode(WIRE_ENCODING, WIRE_ERRORS) + CRLF)
        line = self._read_line()
        logger.debug("pop3_receive", line=line)
        return self._check_response(line)

    def read_multiline(self) -> list[str]:
        """Read lines up to the lone ``.`` terminator, dot-unstuffed."""
        lines: list[str] = []
        while True:
            line = self._read_line()
            if line == TERMINATOR:
                return lines
            if line.startswith(TERMINATOR):
                line = line[1:]
            lines.append(line)

    def _read_line(self) -> str:
        if self._reader is None:
            raise ConnectionError("POP3 client is not open")
        raw = self._reader.readline(MAX_LINE_BYTES + 1)
        if not raw:
            raise ConnectionError("connection closed by server")
        if len(raw) > MAX_LINE_BYTES:
            raise ProtocolError(f"response line longer than {MAX_LINE_BYTES} bytes")
        if raw.endswith(CRLF):
            raw = raw[:-2]
        elif raw.endswith(b"\n"):
            raw = raw[:-1]
        return raw.decode(WIRE_ENCODING, WIRE_ERRORS)

    @staticmethod
    def _check_response(line: str) -> str:
        if line.startswith(SUCCESS_MARKER):
            payload = line[len(SUCCESS_MARKER):]
            return payload[1:] if payload.startswith(" ") else payload
        if line.startswith(ERROR_MARKER):
            raise ProtocolError(line[len(ERROR_MARKER):].strip() or line)
        raise ProtocolError(line or "empty response")

    def _require_stream(self) -> Stream:
        if self._stream is None:
            raise ConnectionError("POP3 client is not open")
        return self._stream

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def user(self, username: str) -> None:
        self.command(f"USER {username}")

    def pass_(self, password: str) -> None:
        # The password travels in clear text unless the stream is TLS.
        self.command(f"PASS {password}")

    def authenticate(self, username: str, password: str) -> None:
        """USER then PASS; PASS is not sent if USER is rejected."""
        self.user(username)
        self.pass_(password)

    def stat(self) -> tuple[int, int]:
        """Return ``(message_count, mailbox_size_bytes)``.

        Anything after the two numbers is ignored.
        """
        payload = self.command("STAT")
        try:
            count, size = (int(part) for part in payload.split()[:2])
        except ValueError as exc:
            raise ProtocolError(f"invalid STAT response {payload!r}: {exc}") from exc
        return count, size

    def list(self, message_id: int) -> int:
        """Return the size in bytes of one message."""
        payload = self.command(f"LIST {message_id}")
        try:
            return int(payload.split()[1])
        except (IndexError, ValueError) as exc:
            raise ProtocolError(f"invalid LIST response {payload!r}: {exc}") from exc

    def list_all(self) -> list[ListEntry]:
        """Return one entry per pending message, in server order."""
        self.command("LIST")
        entries: list[ListEntry] = []
        for line in self.read_multiline():
            try:
                message_id, size = (int(part) for part in line.split()[:2])
            except ValueError as exc:
                raise ProtocolError(f"invalid LIST line {line!r}: {exc}") from exc
            entries.append(ListEntry(message_id, size))
        return entries

    def retr(self, message_id: int) -> str:
        """Return the full message, lines joined with ``\\n``."""
        self.command(f"RETR {message_id}")
        return "\n".join(self.read_multiline())

    fetch = retr

    def dele(self, message_id: int) -> None:
        """Mark a message for deletion.  Only a ``+OK`` reply means it is marked."""
        self.command(f"DELE {message_id}")

    def noop(self) -> None:
        self.command("NOOP")

    def rset(self) -> None:
        """Unmark all messages marked for deletion in this session."""
        self.command("RSET")

    def quit(self) -> None:
        """Send QUIT (best effort) and close the stream regardless."""
        if self._stream is None:
            return
        try:
            self.command("QUIT")
        except (ProtocolError, OSError) as exc:
            logger.warning("pop3_quit_failed", error=str(exc))
        finally:
            self.close()

    def close(self) -> None:
        """Close the stream without sending QUIT."""
        reader, stream = self._reader, self._stream
        self._reader = None
        self._stream = None
        try:
            if reader is not None:
                reader.close()
        finally:
            if stream is not None:
                stream.close()


def _mask(request: str) -> str:
    if request.upper().startswith("PASS "):
        return "PASS ****"
    return request
