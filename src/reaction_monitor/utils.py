"""Miscellaneous helpers."""

from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import Any, Coroutine, Iterator

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Readers/writer lock that lets waiting writers go first.

    Not re-entrant: a holder must not acquire the lock again in either mode.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._pending_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._pending_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._pending_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._pending_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class BackgroundTasks:
    """Run coroutines detached from the caller and keep them referenced."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Remember the loop used for submissions from other threads."""

        self._loop = loop

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        bound = self._loop
        if running is not None and (bound is None or bound is running or bound.is_closed()):
            self._track(running.create_task(coro, name=name))
            return

        if bound is None or bound.is_closed():
            coro.close()
            raise RuntimeError("BackgroundTasks is not bound to an event loop")
        bound.call_soon_threadsafe(lambda: self._track(bound.create_task(coro, name=name)))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for running tasks, including ones spawned while waiting.

        Returns False when ``timeout`` expired with tasks still running.
        """

        deadline = None if timeout is None else asyncio.get_running_loop().time() + timeout
        while self._tasks:
            remaining = None
            if deadline is not None:
                remaining = deadline - asyncio.get_running_loop().time()
                if remaining <= 0:
                    return False
            _, still_pending = await asyncio.wait(set(self._tasks), timeout=remaining)
            if still_pending and deadline is not None:
                return False
        return True

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Фоновая задача %s завершилась с ошибкой",
                task.get_name(),
                exc_info=exc,
            )
