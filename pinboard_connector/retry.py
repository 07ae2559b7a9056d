"""Tenacity retry wrapper for fixed, cancellable backoff."""

from __future__ import annotations

import asyncio

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    wait_fixed,
)

from .shutdown import wait_for_cancel

logger = structlog.get_logger()


def fixed_backoff(
    wait_seconds: float,
    *,
    cancel: asyncio.Event,
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    operation: str = "operation",
) -> AsyncRetrying:
    """Return an :class:`AsyncRetrying` that retries forever with a fixed
    wait, stopping once *cancel* is set.

    The wait itself returns as soon as *cancel* fires, so callers should
    check *cancel* at the top of each attempt.  When retries stop because
    of cancellation the last exception is re-raised.

    Usage::

        async for attempt in fixed_backoff(300, cancel=cancel):
            with attempt:
                if cancel.is_set():
                    return
                await session.login()
    """

    async def _sleep(seconds: float) -> None:
        await wait_for_cancel(cancel, seconds)

    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "retry_scheduled",
            operation=operation,
            attempt=state.attempt_number,
            wait_seconds=wait_seconds,
            error=str(exc),
        )

    return AsyncRetrying(
        wait=wait_fixed(wait_seconds),
        stop=lambda _state: cancel.is_set(),
        retry=retry_if_exception_type(retryable_exceptions),
        sleep=_sleep,
        before_sleep=_before_sleep,
        reraise=True,
    )
