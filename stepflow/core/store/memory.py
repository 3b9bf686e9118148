# stepflow/core/store/memory.py
from __future__ import annotations

import copy
from datetime import datetime, timezone
from itertools import count
from typing import Optional, Sequence

from stepflow.core.errors import PersistenceError
from stepflow.core.logging import get_logger
from stepflow.core.models.records import Result, Task, Workflow
from stepflow.core.store.base import WorkflowStore
from stepflow.core.types.status import TaskStatus

logger = get_logger('store')


class MemoryStore(WorkflowStore):
    """
    In-process store keeping records in dictionaries.

    Records are deep-copied on the way in and on the way out, so callers
    observe the same persistence semantics as with PostgresStore: a record
    only changes in the store when it is saved, and every read is fresh.
    """

    def __init__(self) -> None:
        self._workflows: dict[str, Workflow] = {}
        self._tasks: dict[str, Task] = {}
        self._results: dict[str, Result] = {}  # task_id -> result
        # Insertion order stands in for the creation timestamp tiebreak
        self._creation_seq: dict[str, int] = {}
        self._seq = count()

    # ----------------- writes -----------------

    async def add_workflow(self, workflow: Workflow) -> Workflow:
        if workflow.id in self._workflows:
            raise PersistenceError(message=f'workflow {workflow.id} already exists')
        stored = copy.deepcopy(workflow)
        stored.tasks = []
        if stored.created_at is None:
            stored.created_at = datetime.now(timezone.utc)
        self._workflows[stored.id] = stored
        self._creation_seq[stored.id] = next(self._seq)
        return self._hydrate_workflow(stored)

    async def add_tasks(self, tasks: Sequence[Task]) -> None:
        for task in tasks:
            if task.workflow_id not in self._workflows:
                raise PersistenceError(
                    message=f'workflow {task.workflow_id} does not exist',
                )
            if task.id in self._tasks:
                raise PersistenceError(message=f'task {task.id} already exists')
        for task in tasks:
            stored = copy.deepcopy(task)
            stored.result = None
            stored.dependency_ids = []
            self._tasks[stored.id] = stored

    async def set_dependencies(self, consumer: Task, producers: Sequence[Task]) -> None:
        producer_ids = {producer.id for producer in producers}
        for stored in self._tasks.values():
            if stored.consumer_id == consumer.id and stored.id not in producer_ids:
                stored.consumer_id = None
        for producer in producers:
            self._require_task(producer.id).consumer_id = consumer.id
            producer.consumer_id = consumer.id
        consumer.dependency_ids = [
            task.id for task in sorted(producers, key=lambda t: t.step_number)
        ]

    async def save_task(self, task: Task) -> None:
        stored = self._require_task(task.id)
        stored.status = task.status
        stored.progress = task.progress

    async def save_result(self, result: Result) -> None:
        self._require_task(result.task_id)
        self._results[result.task_id] = copy.deepcopy(result)

    async def save_workflow(self, workflow: Workflow) -> None:
        stored = self._workflows.get(workflow.id)
        if stored is None:
            raise PersistenceError(message=f'workflow {workflow.id} does not exist')
        stored.status = workflow.status
        stored.final_result = workflow.final_result

    # ----------------- reads -----------------

    async def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        stored = self._workflows.get(workflow_id)
        if stored is None:
            return None
        return self._hydrate_workflow(stored)

    async def get_task(self, task_id: str) -> Optional[Task]:
        stored = self._tasks.get(task_id)
        return self._hydrate_task(stored) if stored is not None else None

    async def get_dependencies(self, task_id: str) -> list[Task]:
        rows = [t for t in self._tasks.values() if t.consumer_id == task_id]
        return [self._hydrate_task(t) for t in sorted(rows, key=lambda t: t.step_number)]

    async def claim_next_task(self) -> Optional[Task]:
        queued = [t for t in self._tasks.values() if t.status == TaskStatus.QUEUED]
        if not queued:
            return None

        def sort_key(task: Task) -> tuple[datetime, int, str, int]:
            workflow = self._workflows[task.workflow_id]
            assert workflow.created_at is not None
            return (
                workflow.created_at,
                self._creation_seq[workflow.id],
                workflow.id,
                task.step_number,
            )

        task = min(queued, key=sort_key)
        logger.debug(f'Next queued task: {task.id} (step {task.step_number})')
        return self._hydrate_task(task)

    # ----------------- helpers -----------------

    def _require_task(self, task_id: str) -> Task:
        stored = self._tasks.get(task_id)
        if stored is None:
            raise PersistenceError(message=f'task {task_id} does not exist')
        return stored

    def _hydrate_task(self, stored: Task) -> Task:
        task = copy.deepcopy(stored)
        result = self._results.get(stored.id)
        task.result = copy.deepcopy(result) if result is not None else None
        dependencies = sorted(
            (t for t in self._tasks.values() if t.consumer_id == stored.id),
            key=lambda t: t.step_number,
        )
        task.dependency_ids = [t.id for t in dependencies]
        return task

    def _hydrate_workflow(self, stored: Workflow) -> Workflow:
        workflow = copy.deepcopy(stored)
        rows = [t for t in self._tasks.values() if t.workflow_id == stored.id]
        workflow.tasks = [
            self._hydrate_task(t) for t in sorted(rows, key=lambda t: t.step_number)
        ]
        return workflow
