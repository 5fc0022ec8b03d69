"""Timer and background-task helpers built on asyncio.

Components that flush or sweep periodically own a PeriodicTask. The task only
runs while an event loop is running and never keeps the interpreter alive by
itself; stop() cancels it synchronously.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

logger = logging.getLogger(__name__)

# Strong references to fire-and-forget tasks until they finish.
_background_tasks: set[asyncio.Task[Any]] = set()


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _log_task_failure(description: str) -> Callable[[asyncio.Task[Any]], None]:
    def _done(task: asyncio.Task[Any]) -> None:
        _background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("%s failed: %s", description, exc)

    return _done


def fire_and_forget(
    coro: Coroutine[Any, Any, Any], description: str
) -> asyncio.Task[Any] | None:
    """Run a coroutine without awaiting its result.

    On a running loop the coroutine becomes a background task whose failure is
    logged. Without a loop it is run to completion on a fresh one, with any
    failure logged.

    Returns:
        The scheduled task, or None when the coroutine ran synchronously.
    """
    loop = _running_loop()
    if loop is None:
        try:
            asyncio.run(coro)
        except Exception as exc:
            logger.warning("%s failed: %s", description, exc)
        return None

    return _spawn(loop, coro, description)


def schedule_background(
    coro: Coroutine[Any, Any, Any], description: str
) -> asyncio.Task[Any] | None:
    """Run a coroutine as a background task on the running loop, if any.

    Unlike fire_and_forget this never blocks the caller. Without a running
    loop the coroutine is closed unstarted.

    Returns:
        The scheduled task, or None when no loop was running.
    """
    loop = _running_loop()
    if loop is None:
        coro.close()
        return None
    return _spawn(loop, coro, description)


def _spawn(
    loop: asyncio.AbstractEventLoop,
    coro: Coroutine[Any, Any, Any],
    description: str,
) -> asyncio.Task[Any]:
    task = loop.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_log_task_failure(description))
    return task


class PeriodicTask:
    """Invoke an async callback every `interval` seconds.

    Args:
        callback: Coroutine function to invoke on every tick.
        interval: Seconds between ticks.
        name: Used in log messages and as the asyncio task name.
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval: float,
        name: str,
    ) -> None:
        self._callback = callback
        self._interval = interval
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start ticking on the running loop.

        Returns:
            True if the task is running after the call, False when there is
            no running event loop to schedule it on.
        """
        if self.running:
            return True
        loop = _running_loop()
        if loop is None:
            return False
        self._task = loop.create_task(self._run(), name=self._name)
        return True

    def stop(self) -> None:
        """Cancel the task. Safe to call when not running."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self._callback()
            except Exception as exc:
                logger.warning("%s tick failed: %s", self._name, exc)
