from __future__ import annotations

import logging
import types
import typing as tp

import anyio
from anyio.abc import TaskGroup

if tp.TYPE_CHECKING:  # pragma: no cover
    from typing_extensions import Self

logger = logging.getLogger("edgecache.background")

__all__ = ("BackgroundTasks",)


class BackgroundTasks:
    """
    Tracks work that must outlive the request that started it.

    Spawned coroutines run on a task group owned by the application, not by
    the request, so a client disconnect never cancels them. Leaving the
    context waits until every spawned task has finished.

    Example:
        ```python
        async with BackgroundTasks() as tasks:
            tasks.spawn(store.put, key, envelope)
        # every write has completed here
        ```
    """

    def __init__(self) -> None:
        self._task_group: tp.Optional[TaskGroup] = None
        self.pending = 0

    @property
    def running(self) -> bool:
        return self._task_group is not None

    def spawn(self, func: tp.Callable[..., tp.Awaitable[tp.Any]], *args: tp.Any, name: str | None = None) -> None:
        if self._task_group is None:
            raise RuntimeError("BackgroundTasks must be entered before spawning tasks")
        self.pending += 1
        self._task_group.start_soon(self._run, func, args, name=name)

    async def _run(self, func: tp.Callable[..., tp.Awaitable[tp.Any]], args: tp.Tuple[tp.Any, ...]) -> None:
        try:
            await func(*args)
        except Exception:
            # One failed task must not cancel its siblings in the group.
            logger.error("Background task %r failed", getattr(func, "__qualname__", func), exc_info=True)
        finally:
            self.pending -= 1

    async def __aenter__(self) -> "Self":
        if self._task_group is not None:
            raise RuntimeError("BackgroundTasks is already running")
        task_group = anyio.create_task_group()
        await task_group.__aenter__()
        self._task_group = task_group
        return self

    async def __aexit__(
        self,
        exc_type: tp.Optional[tp.Type[BaseException]] = None,
        exc_value: tp.Optional[BaseException] = None,
        traceback: tp.Optional[types.TracebackType] = None,
    ) -> None:
        task_group, self._task_group = self._task_group, None
        if task_group is None:
            return
        if self.pending:
            logger.info("Waiting for %d background task(s) to complete", self.pending)
        # Spawned writes are drained even when the body failed, they do not depend on it.
        await task_group.__aexit__(None, None, None)
