"""Race an awaitable against a timeout without cancelling the loser."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class RaceOutcome(Generic[T]):
    """Result of racing an operation against a timer.

    When ``timed_out`` is True the operation is still running in ``task``; the
    caller either awaits it later or abandons it.
    """

    task: asyncio.Future[T]
    timed_out: bool

    def result(self) -> T:
        """Return the operation result, re-raising its exception."""
        if self.timed_out:
            raise TimeoutError("operation did not complete before the timeout")
        return self.task.result()

    def abandon(self, on_late_result: Callable[[T], object] | None = None) -> None:
        """Discard the operation's eventual outcome.

        ``on_late_result`` receives a result that arrives after the timeout so
        resources it holds can be released. Late exceptions are retrieved and
        logged at debug level.
        """

        def _discard(task: asyncio.Future[T]) -> None:
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.debug("Abandoned operation failed late: %s", exc)
                return
            if on_late_result is not None:
                try:
                    on_late_result(task.result())
                except Exception as cleanup_exc:
                    logger.warning(
                        "Cleanup of late result failed: %s", cleanup_exc, exc_info=cleanup_exc
                    )

        self.task.add_done_callback(_discard)


async def race_with_timeout(operation: Awaitable[T], timeout_s: float) -> RaceOutcome[T]:
    """Run ``operation`` with a timer; whichever finishes first decides.

    Unlike ``asyncio.wait_for`` the operation is never cancelled on timeout.
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=timeout_s)
    return RaceOutcome(task=task, timed_out=task not in done)


__all__ = ["RaceOutcome", "race_with_timeout"]
