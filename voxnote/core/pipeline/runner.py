"""Background asyncio loop used for network calls."""

from __future__ import annotations

import asyncio
import concurrent.futures
import threading
from typing import Any, Coroutine, Optional, TypeVar

from ...logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """Run coroutines on an event loop owned by a daemon thread.

    ``submit`` returns a ``concurrent.futures.Future``; cancelling it cancels
    the underlying task.
    """

    def __init__(self, name: str = "SummaryLoopThread") -> None:
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _ensure_running(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                ready = threading.Event()

                def _run() -> None:
                    asyncio.set_event_loop(loop)
                    loop.call_soon(ready.set)
                    loop.run_forever()

                self._thread = threading.Thread(target=_run, name=self._name, daemon=True)
                self._thread.start()
                ready.wait()
                self._loop = loop
            return self._loop

    def submit(self, coro: Coroutine[Any, Any, T]) -> "concurrent.futures.Future[T]":
        loop = self._ensure_running()
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def close(self, timeout: float = 5.0) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None:
            return

        async def _cancel_pending() -> None:
            current = asyncio.current_task()
            tasks = [task for task in asyncio.all_tasks() if task is not current]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        try:
            asyncio.run_coroutine_threadsafe(_cancel_pending(), loop).result(timeout)
        except (concurrent.futures.TimeoutError, RuntimeError):
            LOGGER.warning("Pending background tasks did not cancel within %s s", timeout)
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout)
        if not loop.is_running():
            loop.close()


__all__ = ["BackgroundLoop"]
