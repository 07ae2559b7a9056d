"""Exception taxonomy shared by all crawlers.

Filesystem and network failures are not wrapped: they surface as the
builtin :class:`OSError` family.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for all ingest errors."""


class ProtocolError(IngestError):
    """The server answered with a negative or malformed response."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ParseError(IngestError):
    """A fetched message could not be turned into a Record."""


class NameExhaustedError(IngestError):
    """No free file name was found within the collision bound."""


class DecodeError(IngestError):
    """A persisted file is not a complete, well-formed encoding."""


class ChannelClosedError(IngestError):
    """The record channel has been closed."""
