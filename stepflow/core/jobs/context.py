# stepflow/core/jobs/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from stepflow.core.codec.serde import loads_json
from stepflow.core.errors import WorkflowNotFoundError
from stepflow.core.models.records import Task, Workflow
from stepflow.core.store.base import WorkflowStore


@dataclass
class JobContext:
    """
    What a job sees while it runs.

    Attributes:
        workflow: the owning workflow as stored before this run
        dependency_outputs: decoded success payloads of the task's upstream
            tasks, ordered by ascending step number. An entry is None when
            that upstream task has no result or no success payload.
    """

    workflow: Workflow
    dependency_outputs: list[Any] = field(default_factory=lambda: [])

    @property
    def input(self) -> Any:
        """The workflow's input document, decoded from JSON (None if absent)."""
        return loads_json(self.workflow.input)


def _decoded_output(task: Task) -> Any:
    if task.result is None:
        return None
    return loads_json(task.result.data)


async def build_job_context(task: Task, store: WorkflowStore) -> JobContext:
    """Read the owning workflow and upstream outputs of `task` from the store."""
    workflow = await store.get_workflow(task.workflow_id)
    if workflow is None:
        raise WorkflowNotFoundError(
            message=f'workflow {task.workflow_id} not found',
            workflow_id=task.workflow_id,
            notes=[f'task {task.id} (step {task.step_number}) references it'],
        )
    dependencies = await store.get_dependencies(task.id)
    return JobContext(
        workflow=workflow,
        dependency_outputs=[_decoded_output(dep) for dep in dependencies],
    )
