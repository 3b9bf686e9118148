# core/types/status.py
"""
Status enums shared by the data model, the runner and the boundary operations.
This module should not import from other application modules.
"""

from enum import Enum


class TaskStatus(Enum):
    """Task execution status"""

    QUEUED = 'queued'  # Created by the graph builder, awaiting execution.

    IN_PROGRESS = 'in_progress'  # Picked by the scheduler, job running.

    COMPLETED = 'completed'  # Job returned a value.

    FAILED = 'failed'  # Job raised, or its type could not be resolved.

    SKIPPED = 'skipped'  # Upstream producer failed; job never invoked.

    @property
    def is_terminal(self) -> bool:
        """Whether this status represents a final state (no further transitions)."""
        return self in TASK_TERMINAL_STATES


class WorkflowStatus(Enum):
    """Aggregate workflow status, derived from the statuses of its tasks"""

    INITIAL = 'initial'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in WORKFLOW_TERMINAL_STATES


TASK_TERMINAL_STATES: frozenset[TaskStatus] = frozenset({
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.SKIPPED,
})

WORKFLOW_TERMINAL_STATES: frozenset[WorkflowStatus] = frozenset({
    WorkflowStatus.COMPLETED,
    WorkflowStatus.FAILED,
})
