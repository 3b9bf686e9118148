# stepflow/core/workflows/report.py
from __future__ import annotations

from typing import Sequence

from stepflow.core.models.records import Task, Workflow


def generate_aggregated_report(workflow: Workflow, tasks: Sequence[Task]) -> str:
    """
    Render the human-readable report stored as the workflow's final result.

    Args:
        workflow: Workflow whose id and (already recomputed) status are shown.
        tasks: The workflow's tasks, with their results loaded.

    Returns:
        A multi-line report with one tab-indented line per task, in step order.
    """
    lines = [
        'Workflow report:',
        f'Workflow ID: {workflow.id}.',
        f'Status: {workflow.status.value}.',
        'Tasks:',
    ]
    ordered = sorted(tasks, key=lambda t: t.step_number)
    report = '\n'.join(lines) + '\n'
    return report + '\n'.join(f'\t{_stringify_task(task)}' for task in ordered)


def _stringify_task(task: Task) -> str:
    data = task.result.data if task.result is not None else None
    error = task.result.error if task.result is not None else None
    return (
        f'Task ID: {task.id}, '
        f'Type: {task.task_type}, '
        f'Status: {task.status.value}, '
        f'Result: {data or "none"}, '
        f'Error: {error or "none"}'
    )
