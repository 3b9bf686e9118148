from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar, Union, overload

from stepflow.core.errors import (
    StepflowError,
    WorkflowNotCompletedError,
    WorkflowNotFoundError,
)
from stepflow.core.jobs.base import FunctionJob, Job
from stepflow.core.jobs.builtin import register_builtin_jobs
from stepflow.core.logging import get_logger
from stepflow.core.models.app import AppConfig
from stepflow.core.models.definition import DefinitionCatalog, WorkflowDefinition
from stepflow.core.models.records import Workflow
from stepflow.core.registry.jobs import JobRegistry, UnknownJobType
from stepflow.core.scheduler.service import Scheduler
from stepflow.core.store.base import WorkflowStore
from stepflow.core.store.memory import MemoryStore
from stepflow.core.store.postgres import PostgresStore
from stepflow.core.types.status import WorkflowStatus
from stepflow.core.worker.runner import TaskRunner
from stepflow.core.workflows.builder import WorkflowBuilder
from stepflow.core.workflows.validation import validate_definition

_F = TypeVar('_F', bound=Callable[..., Any])


@dataclass(frozen=True)
class WorkflowStatusView:
    """Progress of a workflow: how many of its tasks reached a terminal status."""

    workflow_id: str
    status: WorkflowStatus
    completed_tasks: int
    total_tasks: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'workflowId': self.workflow_id,
            'status': self.status.value,
            'completedTasks': self.completed_tasks,
            'totalTasks': self.total_tasks,
        }


@dataclass(frozen=True)
class WorkflowResultsView:
    """Final report of a workflow that reached COMPLETED or FAILED."""

    workflow_id: str
    status: WorkflowStatus
    final_result: Optional[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            'workflowId': self.workflow_id,
            'status': self.status.value,
            'finalResult': self.final_result,
        }


def _source_of(fn: Callable[..., Any]) -> Optional[str]:
    """`file:line` of a function, used to tell re-imports from duplicates."""
    code = getattr(fn, '__code__', None)
    if code is None:
        return None
    return f'{os.path.realpath(code.co_filename)}:{code.co_firstlineno}'


class Stepflow:
    """
    Entry point tying configuration, storage, job registry and scheduler together.

    ```python
    app = Stepflow(AppConfig.from_env())

    @app.job('thumbnail')
    async def make_thumbnail(task, context):
        ...

    workflow = await app.create_workflow('example_workflow', 'client-1', {...})
    ```
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        store: Optional[WorkflowStore] = None,
        registry: Optional[JobRegistry[Job]] = None,
        builtin_jobs: bool = True,
    ):
        self.config = config or AppConfig()
        self._store = store
        self._store_injected = store is not None
        self.jobs: JobRegistry[Job] = registry if registry is not None else JobRegistry()
        self.definitions = DefinitionCatalog(self.config.definitions_dir)
        self.logger = get_logger('app')
        self._builtin_jobs = builtin_jobs
        self._builtins_registered = False

        backend = 'postgres' if self.config.database is not None else 'memory'
        if store is not None:
            backend = type(store).__name__
        self.logger.info(f'stepflow initialized with {backend} store')

    # ----------------- wiring -----------------

    def get_store(self) -> WorkflowStore:
        """Get the configured store, creating it on first use."""
        if self._store is None:
            if self.config.database is not None:
                self._store = PostgresStore(self.config.database)
            else:
                self._store = MemoryStore()
        return self._store

    @property
    def has_shared_store(self) -> bool:
        """False when workflows would live in a MemoryStore private to this app."""
        return self.config.database is not None or self._store_injected

    def register_builtin_jobs(self) -> list[str]:
        """Register the built-in jobs for task types that have no job yet."""
        registered = register_builtin_jobs(
            self.jobs, self.get_store(), regions_file=self.config.regions_file
        )
        self._builtins_registered = True
        if registered:
            self.logger.debug(f'Registered built-in jobs: {registered}')
        return registered

    def _ensure_builtin_jobs(self) -> None:
        if self._builtin_jobs and not self._builtins_registered:
            self.register_builtin_jobs()

    def create_runner(self) -> TaskRunner:
        self._ensure_builtin_jobs()
        return TaskRunner(self.get_store(), self.jobs)

    def create_scheduler(self) -> Scheduler:
        return Scheduler(
            self.get_store(),
            self.create_runner(),
            poll_interval_seconds=self.config.worker.poll_interval_seconds,
        )

    @overload
    def job(self, task_type: str, func: _F) -> _F: ...

    @overload
    def job(self, task_type: str) -> Callable[[_F], _F]: ...

    def job(
        self,
        task_type: str,
        func: Optional[_F] = None,
    ) -> Union[_F, Callable[[_F], _F]]:
        """
        Decorator registering a `(task, context)` function, sync or async, as
        the job for `task_type`. The function itself is returned unchanged.
        """

        def decorator(fn: _F) -> _F:
            self.jobs.register(
                FunctionJob(fn, name=task_type),
                name=task_type,
                source=_source_of(fn),
            )
            return fn

        if func is None:
            return decorator
        return decorator(func)

    def list_jobs(self) -> list[str]:
        """Task types with a registered job."""
        self._ensure_builtin_jobs()
        return self.jobs.types()

    # ----------------- boundary operations -----------------

    async def create_workflow(
        self,
        definition: Union[WorkflowDefinition, str],
        client_id: str,
        input: Any = None,
    ) -> Workflow:
        """
        Create a workflow from a definition (or the name of a catalog definition).

        Returns:
            The stored workflow, status INITIAL, with one QUEUED task per step.

        Raises:
            ValidationError: for unknown definition names or invalid definitions.
        """
        if isinstance(definition, str):
            definition = self.definitions.get(definition)
        builder = WorkflowBuilder(self.get_store())
        return await builder.build(definition, client_id, input)

    async def _require_workflow(self, workflow_id: str) -> Workflow:
        workflow = await self.get_store().get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(
                message=f'workflow {workflow_id} not found',
                workflow_id=workflow_id,
            )
        return workflow

    async def get_status(self, workflow_id: str) -> WorkflowStatusView:
        """
        Raises:
            WorkflowNotFoundError: if no workflow has this id.
        """
        workflow = await self._require_workflow(workflow_id)
        return WorkflowStatusView(
            workflow_id=workflow.id,
            status=workflow.status,
            completed_tasks=sum(1 for t in workflow.tasks if t.is_completed),
            total_tasks=len(workflow.tasks),
        )

    async def get_results(self, workflow_id: str) -> WorkflowResultsView:
        """
        Raises:
            WorkflowNotFoundError: if no workflow has this id.
            WorkflowNotCompletedError: while the workflow is INITIAL or IN_PROGRESS.
        """
        workflow = await self._require_workflow(workflow_id)
        if not workflow.is_completed:
            raise WorkflowNotCompletedError(
                message='workflow is not completed yet',
                workflow_id=workflow.id,
                notes=[f'current status: {workflow.status.value}'],
                help_text='poll the workflow status until it is completed or failed',
            )
        return WorkflowResultsView(
            workflow_id=workflow.id,
            status=workflow.status,
            final_result=workflow.final_result,
        )

    # ----------------- validation -----------------

    def check(self) -> list[StepflowError]:
        """Validate every catalog definition and check each task type has a job.

        Storage is not touched.

        Returns:
            All errors found; empty when everything is valid.
        """
        self._ensure_builtin_jobs()
        errors: list[StepflowError] = []
        for name in self.definitions.names():
            try:
                definition = self.definitions.get(name)
                validate_definition(definition)
            except StepflowError as exc:
                errors.append(exc.with_note(f"in workflow definition '{name}'"))
                continue
            for step in definition.steps:
                if step.task_type is not None and step.task_type not in self.jobs:
                    errors.append(
                        UnknownJobType(step.task_type).with_note(
                            f"used by step {step.step_number} of '{name}'"
                        )
                    )
        return errors
