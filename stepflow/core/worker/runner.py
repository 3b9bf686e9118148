# stepflow/core/worker/runner.py
from __future__ import annotations

from typing import Any, Optional

from stepflow.core.codec.serde import dumps_json
from stepflow.core.errors import StepflowError
from stepflow.core.jobs.base import Job
from stepflow.core.jobs.context import build_job_context
from stepflow.core.logging import get_logger
from stepflow.core.models.records import Result, Task
from stepflow.core.registry.jobs import JobRegistry
from stepflow.core.store.base import WorkflowStore
from stepflow.core.types.status import TaskStatus
from stepflow.core.workflows.report import generate_aggregated_report
from stepflow.core.workflows.status import derive_workflow_status

STARTING_PROGRESS = 'starting job...'


def error_message(exc: BaseException) -> str:
    """Text stored as a failed task's error."""
    if isinstance(exc, StepflowError):
        return exc.message or type(exc).__name__
    return str(exc) or type(exc).__name__


class TaskRunner:
    """
    Executes a single task and folds the outcome back into its workflow.

    A run always ends with the task COMPLETED or FAILED, a fresh Result
    stored for it, and the workflow's status and report recomputed. When the
    job fails, the exception is re-raised after all of that is persisted.

    The Result and the task are saved before the consumer is read, so a
    store error while skipping the consumer never leaves the task
    IN_PROGRESS.
    """

    def __init__(self, store: WorkflowStore, registry: JobRegistry[Job]) -> None:
        self.store = store
        self.registry = registry
        self.logger = get_logger('runner')

    async def run(self, task: Task) -> Result:
        task.status = TaskStatus.IN_PROGRESS
        task.progress = STARTING_PROGRESS
        await self.store.save_task(task)

        result = Result(task_id=task.id)
        failure: Optional[Exception] = None

        try:
            self.logger.info(f'Starting job {task.task_type} for task {task.id}')
            job = self.registry[task.task_type]
            context = await build_job_context(task, self.store)
            output: Any = await job.run(task, context)
            result.data = dumps_json(output if output is not None else {})
            task.status = TaskStatus.COMPLETED
            task.progress = None
            self.logger.info(f'Job {task.task_type} for task {task.id} completed')
        except Exception as exc:
            self.logger.error(
                f'Job {task.task_type} for task {task.id} failed: {error_message(exc)}'
            )
            failure = exc
            result.error = error_message(exc)
            task.status = TaskStatus.FAILED
            task.progress = None

        # The outcome is stored before anything else is read
        task.result = result
        await self.store.save_result(result)
        await self.store.save_task(task)
        if failure is not None:
            await self._skip_consumer(task)

        await self._refresh_workflow(task.workflow_id)

        if failure is not None:
            raise failure
        return result

    async def _skip_consumer(self, task: Task) -> None:
        """Mark the direct consumer of a failed task SKIPPED if it has not started."""
        if task.consumer_id is None:
            return
        consumer = await self.store.get_task(task.consumer_id)
        if consumer is None or consumer.status != TaskStatus.QUEUED:
            return
        consumer.status = TaskStatus.SKIPPED
        self.logger.info(
            f'Skipping task {consumer.id} (step {consumer.step_number}): '
            f'dependency {task.id} failed'
        )
        await self.store.save_task(consumer)

    async def _refresh_workflow(self, workflow_id: str) -> None:
        """Recompute the aggregate status and report from a fresh read."""
        workflow = await self.store.get_workflow(workflow_id)
        if workflow is None:
            self.logger.warning(f'Workflow {workflow_id} disappeared during task run')
            return
        previous = workflow.status
        workflow.status = derive_workflow_status(t.status for t in workflow.tasks)
        workflow.final_result = generate_aggregated_report(workflow, workflow.tasks)
        await self.store.save_workflow(workflow)
        if workflow.status != previous:
            self.logger.info(
                f'Workflow {workflow.id}: {previous.value} -> {workflow.status.value}'
            )
