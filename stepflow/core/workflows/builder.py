# stepflow/core/workflows/builder.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from stepflow.core.codec.serde import dumps_json
from stepflow.core.errors import PersistenceError
from stepflow.core.logging import get_logger
from stepflow.core.models.definition import WorkflowDefinition
from stepflow.core.models.records import Task, Workflow
from stepflow.core.store.base import WorkflowStore
from stepflow.core.types.status import TaskStatus, WorkflowStatus
from stepflow.core.workflows.report import generate_aggregated_report
from stepflow.core.workflows.status import derive_workflow_status
from stepflow.core.workflows.validation import validate_definition

logger = get_logger('builder')


class WorkflowBuilder:
    """
    Turns a workflow definition into a persisted workflow and its task graph.

    Nothing is written when the definition fails validation.
    """

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    async def build(
        self,
        definition: WorkflowDefinition,
        client_id: str,
        input: Any = None,
    ) -> Workflow:
        """
        Validate `definition` and persist a workflow with one queued task per step.

        Args:
            definition: Parsed workflow definition.
            client_id: Caller identifier, copied onto every task.
            input: JSON-serializable input document (None for no input).

        Returns:
            The stored workflow with its tasks, in step order. A definition
            without steps yields a workflow that is already COMPLETED.

        Raises:
            ValidationError: if the definition violates a structural rule.
            SerializationError: if `input` is not JSON-serializable.
        """
        validate_definition(definition)

        workflow = await self.store.add_workflow(
            Workflow(
                client_id=client_id,
                input=dumps_json(input) if input is not None else None,
                name=definition.name,
                status=WorkflowStatus.INITIAL,
                created_at=datetime.now(timezone.utc),
            )
        )

        tasks: dict[int, Task] = {}
        for step in definition.steps:
            assert step.task_type is not None and step.step_number is not None
            tasks[step.step_number] = Task(
                client_id=client_id,
                workflow_id=workflow.id,
                task_type=step.task_type,
                step_number=step.step_number,
                status=TaskStatus.QUEUED,
            )
        await self.store.add_tasks(list(tasks.values()))

        # producer task id -> step number of the consumer it was wired to
        wired: dict[str, int] = {}
        for step in definition.steps:
            if not step.depends_on:
                continue
            assert step.step_number is not None
            consumer = tasks[step.step_number]

            missing = [n for n in step.depends_on if n not in tasks]
            if missing:
                logger.warning(
                    f"Workflow '{definition.name}': step {step.step_number} depends on "
                    f'unknown steps {missing}, ignoring them'
                )

            producers = [tasks[n] for n in sorted(set(step.depends_on)) if n in tasks]
            for producer in producers:
                previous = wired.get(producer.id)
                if previous is not None and previous != step.step_number:
                    logger.warning(
                        f"Workflow '{definition.name}': step {producer.step_number} "
                        f'already feeds step {previous}, rewiring it to step '
                        f'{step.step_number}'
                    )
                wired[producer.id] = step.step_number
            await self.store.set_dependencies(consumer, producers)

        if not tasks:
            # Nothing will ever be claimed, so the status is settled now
            workflow.status = derive_workflow_status([])
            workflow.final_result = generate_aggregated_report(workflow, [])
            await self.store.save_workflow(workflow)

        stored = await self.store.get_workflow(workflow.id)
        if stored is None:
            raise PersistenceError(
                message=f'workflow {workflow.id} vanished right after creation',
            )
        logger.info(
            f"Created workflow {stored.id} ('{definition.name}') with "
            f'{len(stored.tasks)} tasks for client {client_id}'
        )
        return stored
