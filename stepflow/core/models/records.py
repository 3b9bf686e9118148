# stepflow/core/models/records.py
"""
Plain records exchanged between the store and the engine.

The store maps its rows into these records and back, so the graph builder,
the task runner and the jobs never hold ORM instances or sessions.
"""

from __future__ import annotations

import datetime
import uuid
from dataclasses import dataclass, field
from typing import Optional

from stepflow.core.types.status import TaskStatus, WorkflowStatus


def new_id() -> str:
    """uuid4 as string, matching the String(36) primary keys."""
    return str(uuid.uuid4())


@dataclass
class Result:
    """Outcome of one execution attempt of a task.

    Exactly one of `data` (success payload) and `error` (failure message)
    is set by the runner.
    """

    task_id: str
    data: Optional[str] = None
    error: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Task:
    """One executable step of a workflow."""

    client_id: str
    workflow_id: str
    task_type: str
    step_number: int
    status: TaskStatus = TaskStatus.QUEUED
    progress: Optional[str] = None
    result: Optional[Result] = None
    # Single downstream task depending on this one (fan-out is capped at one)
    consumer_id: Optional[str] = None
    # Upstream tasks, i.e. tasks whose consumer_id is this task's id
    dependency_ids: list[str] = field(default_factory=lambda: [])
    id: str = field(default_factory=new_id)

    @property
    def is_completed(self) -> bool:
        """True once the task reached a terminal status."""
        return self.status.is_terminal


@dataclass
class Workflow:
    """Aggregate root: a client's run of one workflow definition."""

    client_id: str
    input: Optional[str]
    name: Optional[str] = None
    status: WorkflowStatus = WorkflowStatus.INITIAL
    final_result: Optional[str] = None
    tasks: list[Task] = field(default_factory=lambda: [])
    created_at: Optional[datetime.datetime] = None
    id: str = field(default_factory=new_id)

    @property
    def is_completed(self) -> bool:
        return self.status.is_terminal
