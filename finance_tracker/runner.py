"""
Background Event Loop

Streamlit runs every session on its own thread. The services are async
and share per-user asyncio locks, which only work on the loop they were
created on, so all coroutines go through one long-lived loop running on
a daemon thread.

Usage:
    runner = BackgroundLoop()
    balance = runner.run(reconciler.get_aggregate_balance(user_id))
"""

import asyncio
import threading
from typing import Any, Coroutine, Optional, TypeVar

import structlog


T = TypeVar("T")

logger = structlog.get_logger()


class BackgroundLoop:
    """An event loop on a daemon thread that any thread can submit work to."""

    def __init__(self, name: str = "finance-tracker-loop"):
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name=name,
            daemon=True,
        )
        self._thread.start()
        logger.info("background_loop_started", thread=name)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive() and not self._loop.is_closed()

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """
        Run a coroutine on the loop and block until it finishes.

        Exceptions raised by the coroutine are re-raised in the caller.

        Raises:
            RuntimeError: Called from the loop's own thread (would deadlock)
                or after close()
        """
        if threading.current_thread() is self._thread:
            coro.close()
            raise RuntimeError("BackgroundLoop.run() called from its own loop thread")
        if not self.is_running:
            coro.close()
            raise RuntimeError("BackgroundLoop is closed")

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    def close(self) -> None:
        """Stop the loop and wait for its thread to exit."""
        if self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()
        self._loop.close()
        logger.info("background_loop_stopped", thread=self._thread.name)
