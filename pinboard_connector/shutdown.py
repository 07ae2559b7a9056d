"""Cooperative cancellation: signal handlers and cancellable waits."""

from __future__ import annotations

import asyncio
import signal

import structlog

logger = structlog.get_logger()


def install_signal_handlers(cancel: asyncio.Event) -> None:
    """Register SIGTERM and SIGINT handlers that set *cancel*.

    Call this once from the running event loop.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        if not cancel.is_set():
            logger.info("shutdown_signal_received", signal=sig.name)
        cancel.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle, sig)


async def wait_for_cancel(cancel: asyncio.Event, timeout: float) -> bool:
    """Sleep up to *timeout* seconds, waking early when *cancel* is set.

    Returns *True* if cancellation was observed.  A cancellation that
    happened before the call is never missed.
    """
    if cancel.is_set():
        return True
    if timeout <= 0:
        return False
    try:
        await asyncio.wait_for(cancel.wait(), timeout)
    except TimeoutError:
        return False
    return True
