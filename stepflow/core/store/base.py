# stepflow/core/store/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence

from stepflow.core.models.records import Result, Task, Workflow


class WorkflowStore(ABC):
    """
    Repository for workflows, tasks and results.

    The engine assumes a single writer: one scheduler per store. Every read
    returns fresh records; mutating a returned record has no effect until it
    is passed back to a `save_*` method.

    Tasks returned by any read carry their `result` and their
    `dependency_ids` (ordered by step number).
    """

    async def ensure_schema_initialized(self) -> None:
        """Create tables or other storage structures if needed. Idempotent."""
        return None

    @abstractmethod
    async def add_workflow(self, workflow: Workflow) -> Workflow:
        """Insert a new workflow (without its tasks) and return the stored record."""

    @abstractmethod
    async def add_tasks(self, tasks: Sequence[Task]) -> None:
        """Insert tasks of one workflow together."""

    @abstractmethod
    async def set_dependencies(self, consumer: Task, producers: Sequence[Task]) -> None:
        """
        Make `producers` the dependency set of `consumer`.

        Sets every producer's `consumer_id` to the consumer, overwriting any
        previous consumer of that producer, and unlinks former producers that
        are not in the new set. Updates the passed records in place.
        """

    @abstractmethod
    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Return the workflow with its tasks (step order), or None."""

    @abstractmethod
    async def get_task(self, task_id: str) -> Optional[Task]:
        """Return one task, or None."""

    @abstractmethod
    async def get_dependencies(self, task_id: str) -> list[Task]:
        """Return the upstream tasks of `task_id` ordered by step number."""

    @abstractmethod
    async def save_task(self, task: Task) -> None:
        """Persist a task's status and progress note."""

    @abstractmethod
    async def save_result(self, result: Result) -> None:
        """Persist a result, replacing any earlier result of the same task."""

    @abstractmethod
    async def save_workflow(self, workflow: Workflow) -> None:
        """Persist a workflow's status and final report."""

    @abstractmethod
    async def claim_next_task(self) -> Optional[Task]:
        """
        Return the next QUEUED task, or None when nothing is queued.

        Ordering: workflow creation time, then workflow id, then step number.
        Upstream steps have smaller step numbers, so within a workflow they
        are always returned first.
        """

    async def close(self) -> None:
        """Release connections held by the store."""
        return None
