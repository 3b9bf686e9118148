# stepflow/core/workflows/status.py
from __future__ import annotations

from typing import Iterable

from stepflow.core.types.status import TaskStatus, WorkflowStatus


def derive_workflow_status(statuses: Iterable[TaskStatus]) -> WorkflowStatus:
    """
    Derive a workflow's aggregate status from the statuses of its tasks.

    - any task FAILED -> FAILED
    - every task COMPLETED -> COMPLETED
    - otherwise -> IN_PROGRESS

    SKIPPED tasks satisfy neither branch. A skip is always caused by a failed
    producer in the same workflow, so a workflow holding skipped tasks is
    already FAILED.
    """
    statuses = list(statuses)
    if any(status == TaskStatus.FAILED for status in statuses):
        return WorkflowStatus.FAILED
    if all(status == TaskStatus.COMPLETED for status in statuses):
        return WorkflowStatus.COMPLETED
    return WorkflowStatus.IN_PROGRESS
