"""Worker context for classifier operations.

Architecture:
    caller (async) -> InferencePool.run -> ThreadPoolExecutor(max_workers) -> ONNX work

With the default single worker, units of work execute strictly in
submission order, so a classify submitted after a load observes the loaded
model. An optional timeout bounds how long the caller waits; the unit of
work itself is not cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from imclassify.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Runs synchronous pipeline steps on a dedicated worker thread."""

    def __init__(self, settings: Settings) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_workers,
            thread_name_prefix="imclassify-worker",
        )
        self._timeout = settings.operation_timeout
        self._active_count: int = 0
        self._queue_depth: int = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Submit a synchronous function to the worker and await its result.

        Raises:
            TimeoutError: If an operation timeout is configured and exceeded.
        """
        with self._counter_lock:
            self._queue_depth += 1

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._tracked, func, *args)
        if self._timeout is None:
            return await future
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Operation %s exceeded %.1fs timeout", getattr(func, "__name__", func), self._timeout)
            raise

    def _tracked(self, func: Callable[..., T], *args: object) -> T:
        with self._counter_lock:
            self._queue_depth -= 1
            self._active_count += 1
        try:
            return func(*args)
        finally:
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of currently running units of work."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of submitted units waiting for the worker."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self, wait: bool = True) -> None:
        """Shut down the worker after already-submitted work finishes."""
        self._executor.shutdown(wait=wait)
