"""
Per-session repeating tick scheduling.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict

logger = logging.getLogger(__name__)

TickCallback = Callable[[], None]


class TickScheduler(ABC):
    """Cancellable repeating timers keyed by session id."""

    @abstractmethod
    def schedule(self, session_id: str, callback: TickCallback, interval_s: float) -> None:
        pass

    @abstractmethod
    def cancel(self, session_id: str) -> None:
        pass

    @abstractmethod
    def is_scheduled(self, session_id: str) -> bool:
        pass

    def cancel_all(self) -> None:
        pass


class AsyncioTickScheduler(TickScheduler):
    """
    One asyncio task per session, calling the tick callback every interval.

    A failing tick is logged and skipped; the loop carries on with the next
    interval and never tries to catch up.
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, session_id: str, callback: TickCallback, interval_s: float) -> None:
        if self.is_scheduled(session_id):
            logger.warning(f"Session {session_id} already has a running tick loop")
            return
        loop = asyncio.get_running_loop()
        self._tasks[session_id] = loop.create_task(
            self._run(session_id, callback, interval_s),
            name=f"tick-{session_id}",
        )
        logger.debug(f"Scheduled ticks for session {session_id} every {interval_s}s")

    async def _run(self, session_id: str, callback: TickCallback, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            try:
                callback()
            except Exception as e:
                logger.error(f"Tick failed for session {session_id}: {e}", exc_info=True)

    def cancel(self, session_id: str) -> None:
        task = self._tasks.pop(session_id, None)
        if task is not None:
            task.cancel()
            logger.debug(f"Cancelled ticks for session {session_id}")

    def is_scheduled(self, session_id: str) -> bool:
        task = self._tasks.get(session_id)
        return task is not None and not task.done()

    def cancel_all(self) -> None:
        for session_id in list(self._tasks):
            self.cancel(session_id)
