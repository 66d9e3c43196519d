from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class BackgroundLoop:
    """
    Runs one asyncio event loop in a daemon thread so synchronous Flask
    handlers can hand work to it. All run-table access goes through `call`,
    which keeps the loop thread the only writer.
    """

    def __init__(self, name: str = "pricing-pdf-loop") -> None:
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise RuntimeError("Background loop is not started.")
        return self._loop

    def start(self) -> "BackgroundLoop":
        if self._thread is not None:
            return self
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.info("Background event loop started (%s)", self._name)
        return self

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = 30, **kwargs: Any) -> Any:
        """Run a plain callable on the loop thread and return its result."""

        async def _invoke() -> Any:
            return fn(*args, **kwargs)

        future = asyncio.run_coroutine_threadsafe(_invoke(), self.loop)
        return future.result(timeout=timeout)

    def stop(self) -> None:
        if self._loop is None or self._thread is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)
        self._thread = None
        self._loop = None
        self._ready.clear()
