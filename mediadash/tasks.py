import asyncio
from typing import Any, Awaitable, Callable, Optional, Set

from .utils import get_logger


class TaskRunner:
    def __init__(self, name: str = "mediadash.tasks") -> None:
        self.logger = get_logger(name)
        self._tasks: Set[asyncio.Task] = set()

    def run(
        self,
        coro: Awaitable[Any],
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        on_finished: Optional[Callable[[], None]] = None,
    ) -> asyncio.Task:
        task = asyncio.ensure_future(self._work(coro, on_result, on_error, on_finished))
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        self.logger.debug("Task start %s", task.get_name())
        return task

    async def _work(
        self,
        coro: Awaitable[Any],
        on_result: Optional[Callable[[Any], None]],
        on_error: Optional[Callable[[Exception], None]],
        on_finished: Optional[Callable[[], None]],
    ) -> Any:
        try:
            result = await coro
        except Exception as exc:
            self.logger.debug("Task error exc=%s", exc)
            # Without an error callback the exception stays on the task.
            if on_error is None:
                raise
            on_error(exc)
            return None
        else:
            if on_result is not None:
                on_result(result)
            return result
        finally:
            if on_finished is not None:
                on_finished()

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.debug("Task cancelled %s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error("Task %s failed: %r", task.get_name(), exc)
        else:
            self.logger.debug("Task finished %s", task.get_name())

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
