"""Request-scoped cancellation.

One ``CancellationToken`` is created per top-level request and shared by
every provider call and by the stream reader. Cancelling it (explicitly
or through its deadline) cancels all registered in-flight tasks.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from possibilities.model_providers.exceptions import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation handle with an optional deadline.

    ``cancel()`` is idempotent: a second call, or a call after all work has
    finished, does nothing. A deadline behaves exactly like an explicit
    ``cancel()``.
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self.reason: Optional[str] = None
        self._cancelled = False
        self._tasks: set[asyncio.Task] = set()
        self._callbacks: list[Callable[[], None]] = []
        self._deadline: Optional[asyncio.TimerHandle] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel all registered work. Returns False if already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self.reason = reason

        pending = [t for t in self._tasks if not t.done()]
        if pending:
            logger.info("Cancelling %d in-flight task(s): %s", len(pending), reason)
        for task in pending:
            task.cancel()
        self._tasks.clear()
        self._clear_deadline()

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.warning("Cancellation callback failed", exc_info=True)
        return True

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def register(self, task: asyncio.Task) -> asyncio.Task:
        """Track a task so ``cancel()`` reaches it."""
        self._arm_deadline()
        if self._cancelled:
            task.cancel()
            return task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def raise_if_cancelled(self) -> None:
        self._arm_deadline()
        if self._cancelled:
            raise GenerationCancelled(f"Generation cancelled: {self.reason}")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Run an awaitable as a registered task.

        Raises:
            GenerationCancelled: The token fired before or during the call.
        """
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        task = self.register(asyncio.ensure_future(awaitable))
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise GenerationCancelled(f"Generation cancelled: {self.reason}") from None
            raise

    def close(self) -> None:
        """Disarm the deadline once the request has finished."""
        self._clear_deadline()

    def _arm_deadline(self) -> None:
        if self.timeout is None or self._deadline is not None or self._cancelled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # Armed on first use inside the event loop
        self._deadline = loop.call_later(self.timeout, self.cancel, "deadline exceeded")

    def _clear_deadline(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
