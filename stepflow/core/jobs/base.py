# stepflow/core/jobs/base.py
from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

if TYPE_CHECKING:
    from stepflow.core.jobs.context import JobContext
    from stepflow.core.models.records import Task


JobFunction = Callable[['Task', 'JobContext'], Union[Any, Awaitable[Any]]]


class Job(ABC):
    """
    Unit of work bound to a task type.

    `run` returns the task's output; the runner serializes it as JSON and
    stores it as the task's result. Raising marks the task as failed and
    the exception message becomes the stored error.
    """

    @abstractmethod
    async def run(self, task: Task, context: JobContext) -> Any: ...


class FunctionJob(Job):
    """Adapts a plain `(task, context)` callable, sync or async, into a Job."""

    def __init__(self, fn: JobFunction, name: str | None = None) -> None:
        self.fn = fn
        self.name = name or getattr(fn, '__name__', type(fn).__name__)

    async def run(self, task: Task, context: JobContext) -> Any:
        outcome = self.fn(task, context)
        if inspect.isawaitable(outcome):
            return await outcome
        return outcome

    def __repr__(self) -> str:
        return f'FunctionJob({self.name})'
