"""Dead-letter handler — quarantines messages that keep failing to parse."""

from __future__ import annotations

import hashlib
from collections import Counter
from pathlib import Path

import structlog

logger = structlog.get_logger()


class DeadLetterHandler:
    """Counts parse failures per message content and, once a message has
    failed *max_failures* times, writes its raw text to the quarantine
    directory so the crawler can drop it from the source.

    Failure counts live in memory only; a restart starts from zero.
    """

    def __init__(self, directory: Path | str, max_failures: int) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be at least 1")
        self._directory = Path(directory)
        self._max_failures = max_failures
        self._failures: Counter[str] = Counter()

    @property
    def directory(self) -> Path:
        return self._directory

    def failures(self, raw_text: str) -> int:
        return self._failures[_digest(raw_text)]

    def record_failure(self, raw_text: str, *, error: str) -> Path | None:
        """Count one failure; quarantine and return the file path once the
        limit is reached, otherwise return *None*.
        """
        digest = _digest(raw_text)
        self._failures[digest] += 1
        attempts = self._failures[digest]
        if attempts < self._max_failures:
            logger.info("message_failure_counted", digest=digest[:16], attempts=attempts)
            return None

        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / f"{digest[:16]}.eml"
        path.write_bytes(raw_text.encode("utf-8", "surrogateescape"))
        del self._failures[digest]

        logger.error(
            "message_dead_lettered",
            path=str(path),
            error=error,
            attempts=attempts,
        )
        return path

    def clear(self, raw_text: str) -> None:
        """Forget earlier failures of a message that finally succeeded."""
        self._failures.pop(_digest(raw_text), None)


def _digest(raw_text: str) -> str:
    return hashlib.sha256(raw_text.encode("utf-8", "surrogateescape")).hexdigest()
