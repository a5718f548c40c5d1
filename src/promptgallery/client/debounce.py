"""Cancellable, debounced calls on the asyncio event loop.

:class:`Debouncer` runs a callback only after input has been quiet for
``delay`` seconds.  Each new :meth:`Debouncer.call` cancels the pending one,
and :meth:`Debouncer.close` cancels whatever is left when the owner is torn
down.  The pending call is an ``asyncio.TimerHandle`` held by the debouncer
itself, so there is never a timer that outlives its owner.

Example::

    async with Debouncer(0.5) as debounce:
        debounce.call(apply_search, "cat")
        debounce.call(apply_search, "cats")   # cancels "cat"
        await debounce.wait()                 # runs apply_search("cats")
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Run only the most recent of rapidly repeated calls.

    Args:
        delay: Quiet period in seconds before the callback fires.
    """

    def __init__(self, delay: float = 0.5) -> None:
        if delay < 0:
            raise ValueError(f"delay must be >= 0, got {delay}")
        self.delay = delay
        self._handle: asyncio.TimerHandle | None = None
        self._task: asyncio.Task | None = None
        self._fired: asyncio.Event | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        """True while a call is scheduled but has not fired yet."""
        return self._handle is not None

    def call(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule ``callback(*args)`` after the quiet period.

        Any call scheduled earlier and not yet fired is cancelled.  Coroutine
        functions are run as tasks.

        Raises:
            RuntimeError: If the debouncer was closed.
        """
        if self._closed:
            raise RuntimeError("Debouncer is closed")
        self.cancel()
        loop = asyncio.get_running_loop()
        self._fired = asyncio.Event()
        self._handle = loop.call_later(self.delay, self._fire, callback, args)

    def cancel(self) -> None:
        """Cancel the pending call, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._fired is not None:
            # Release anyone waiting on a call that will never run.
            self._fired.set()
            self._fired = None

    async def wait(self) -> None:
        """Wait until the pending call (if any) has fired and finished."""
        fired = self._fired
        if fired is not None:
            await fired.wait()
        if self._task is not None:
            await asyncio.shield(self._task)

    def close(self) -> None:
        """Cancel pending work and refuse further calls."""
        self.cancel()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._closed = True

    async def __aenter__(self) -> "Debouncer":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _fire(self, callback: Callable[..., Any], args: tuple) -> None:
        self._handle = None
        fired, self._fired = self._fired, None
        try:
            if inspect.iscoroutinefunction(callback):
                self._task = asyncio.get_running_loop().create_task(callback(*args))
                self._task.add_done_callback(_log_task_failure)
            else:
                callback(*args)
        finally:
            if fired is not None:
                fired.set()


def _log_task_failure(task: asyncio.Task) -> None:
    """Log the exception of a finished callback task, marking it retrieved."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Debounced callback failed: {exc}", exc_info=exc)
