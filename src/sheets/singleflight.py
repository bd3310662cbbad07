import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable
from typing import Dict, Generic, TypeVar


logger = logging.getLogger(__name__)

ResultType = TypeVar("ResultType")


class SingleFlight(Generic[ResultType]):
    """Collapse concurrent calls for the same key into one awaited task.

    The first caller for a key starts ``fn()`` as a task; callers arriving
    while it runs await that same task. The key is released once the task
    finishes, whether it succeeded or raised, so the next call starts over.
    """

    def __init__(self) -> None:
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    async def do(self, key: Hashable, fn: Callable[[], Awaitable[ResultType]]) -> ResultType:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._tasks[key] = task
            task.add_done_callback(lambda done, key=key: self._release(key, done))
        else:
            logger.debug("Joining in-flight call", extra={"flight_key": str(key)})
        return await asyncio.shield(task)

    def forget(self, predicate: Callable[[Hashable], bool]) -> int:
        """Detach matching in-flight keys; callers already waiting keep their task."""

        keys = [key for key in self._tasks if predicate(key)]
        for key in keys:
            del self._tasks[key]
        return len(keys)

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    def owns(self, key: Hashable) -> bool:
        """True when the running task is still the registered flight for ``key``."""

        return self._tasks.get(key) is asyncio.current_task()

    def __len__(self) -> int:
        return len(self._tasks)

    def _release(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Retrieve the exception so an unawaited failure is not reported as lost.
        if not task.cancelled():
            task.exception()
