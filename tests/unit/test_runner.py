"""Unit tests for TaskRunner: outcomes, skip propagation and aggregation."""

from __future__ import annotations

from typing import Any

import pytest

from stepflow.core.codec.serde import loads_json
from stepflow.core.errors import JobExecutionError, PersistenceError
from stepflow.core.jobs.context import JobContext
from stepflow.core.models.records import Result, Task, Workflow
from stepflow.core.registry.jobs import UnknownJobType
from stepflow.core.store.memory import MemoryStore
from stepflow.core.types.status import TaskStatus, WorkflowStatus
from stepflow.core.worker.runner import TaskRunner, error_message
from stepflow.core.workflows.builder import WorkflowBuilder

from tests.unit.helpers import make_definition, registry_of


async def _build(store: MemoryStore, *steps: tuple[Any, ...], input: Any = None) -> Workflow:
    return await WorkflowBuilder(store).build(make_definition(*steps), 'c', input)


async def _task(store: MemoryStore, task_id: str) -> Task:
    task = await store.get_task(task_id)
    assert task is not None
    return task


async def _workflow(store: MemoryStore, workflow_id: str) -> Workflow:
    workflow = await store.get_workflow(workflow_id)
    assert workflow is not None
    return workflow


def _ok(value: Any = None) -> Any:
    async def job(task: Task, context: JobContext) -> Any:
        return value

    return job


def _boom(message: str = 'boom') -> Any:
    def job(task: Task, context: JobContext) -> Any:
        raise RuntimeError(message)

    return job


@pytest.mark.unit
class TestErrorMessage:
    def test_stepflow_error_uses_message(self) -> None:
        assert error_message(JobExecutionError(message='Failed to send email')) == (
            'Failed to send email'
        )

    def test_plain_exception_uses_str(self) -> None:
        assert error_message(ValueError('bad value')) == 'bad value'

    def test_empty_message_falls_back_to_class_name(self) -> None:
        assert error_message(ValueError()) == 'ValueError'


@pytest.mark.unit
class TestTaskRunnerSuccess:
    @pytest.mark.asyncio
    async def test_success_stores_json_output(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1))
        runner = TaskRunner(store, registry_of(a=_ok({'area': 12.5})))

        task = await store.claim_next_task()
        assert task is not None
        result = await runner.run(task)

        assert loads_json(result.data) == {'area': 12.5}
        assert result.error is None

        stored = await _task(store, task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.progress is None
        assert stored.result is not None
        assert stored.result.data == result.data

        refreshed = await _workflow(store, workflow.id)
        assert refreshed.status == WorkflowStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_none_output_stored_as_empty_object(self, store: MemoryStore) -> None:
        await _build(store, ('a', 1))
        runner = TaskRunner(store, registry_of(a=_ok(None)))

        task = await store.claim_next_task()
        assert task is not None
        result = await runner.run(task)

        assert result.data == '{}'

    @pytest.mark.asyncio
    async def test_sync_job_functions_are_supported(self, store: MemoryStore) -> None:
        await _build(store, ('a', 1))
        runner = TaskRunner(store, registry_of(a=lambda task, context: 'done'))

        task = await store.claim_next_task()
        assert task is not None
        result = await runner.run(task)

        assert loads_json(result.data) == 'done'

    @pytest.mark.asyncio
    async def test_workflow_in_progress_until_all_done(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1), ('a', 2))
        runner = TaskRunner(store, registry_of(a=_ok(1)))

        task = await store.claim_next_task()
        assert task is not None
        await runner.run(task)

        refreshed = await _workflow(store, workflow.id)
        assert refreshed.status == WorkflowStatus.IN_PROGRESS
        assert refreshed.final_result is not None
        assert f'Workflow ID: {workflow.id}.' in refreshed.final_result
        assert 'Status: in_progress.' in refreshed.final_result

    @pytest.mark.asyncio
    async def test_job_sees_running_status_and_progress(
        self, store: MemoryStore
    ) -> None:
        await _build(store, ('a', 1))
        seen: dict[str, Any] = {}

        async def job(task: Task, context: JobContext) -> None:
            stored = await store.get_task(task.id)
            assert stored is not None
            seen['status'] = stored.status
            seen['progress'] = stored.progress

        task = await store.claim_next_task()
        assert task is not None
        await TaskRunner(store, registry_of(a=job)).run(task)

        assert seen == {'status': TaskStatus.IN_PROGRESS, 'progress': 'starting job...'}


@pytest.mark.unit
class TestTaskRunnerContext:
    @pytest.mark.asyncio
    async def test_context_carries_input_and_dependency_outputs(
        self, store: MemoryStore
    ) -> None:
        await _build(
            store,
            ('first', 1),
            ('second', 2),
            ('join', 3, [2, 1]),
            input={'geoJson': {'type': 'Point'}},
        )
        seen: dict[str, Any] = {}

        def join(task: Task, context: JobContext) -> None:
            seen['input'] = context.input
            seen['outputs'] = context.dependency_outputs

        runner = TaskRunner(
            store,
            registry_of(first=_ok('one'), second=_ok({'n': 2}), join=join),
        )
        for _ in range(3):
            task = await store.claim_next_task()
            assert task is not None
            await runner.run(task)

        assert seen['input'] == {'geoJson': {'type': 'Point'}}
        assert seen['outputs'] == ['one', {'n': 2}]

    @pytest.mark.asyncio
    async def test_unfinished_dependency_output_is_none(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1), ('b', 2, [1]))
        seen: dict[str, Any] = {}

        def b(task: Task, context: JobContext) -> None:
            seen['outputs'] = context.dependency_outputs

        runner = TaskRunner(store, registry_of(a=_ok(), b=b))
        consumer = await _task(store, workflow.tasks[1].id)
        await runner.run(consumer)

        assert seen['outputs'] == [None]


@pytest.mark.unit
class TestTaskRunnerFailure:
    @pytest.mark.asyncio
    async def test_failure_records_error_and_reraises(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1))
        runner = TaskRunner(store, registry_of(a=_boom('disk full')))

        task = await store.claim_next_task()
        assert task is not None
        with pytest.raises(RuntimeError, match='disk full'):
            await runner.run(task)

        stored = await _task(store, task.id)
        assert stored.status == TaskStatus.FAILED
        assert stored.progress is None
        assert stored.result is not None
        assert stored.result.error == 'disk full'
        assert stored.result.data is None

        refreshed = await _workflow(store, workflow.id)
        assert refreshed.status == WorkflowStatus.FAILED
        assert refreshed.final_result is not None
        assert 'Error: disk full' in refreshed.final_result

    @pytest.mark.asyncio
    async def test_failure_skips_queued_consumer(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1), ('b', 2, [1]), ('c', 3))
        runner = TaskRunner(store, registry_of(a=_boom(), b=_ok(), c=_ok()))

        task = await store.claim_next_task()
        assert task is not None
        with pytest.raises(RuntimeError):
            await runner.run(task)

        t1, t2, t3 = (await _workflow(store, workflow.id)).tasks
        assert t1.status == TaskStatus.FAILED
        assert t2.status == TaskStatus.SKIPPED
        assert t3.status == TaskStatus.QUEUED

        # The skipped consumer is never claimed
        next_task = await store.claim_next_task()
        assert next_task is not None
        assert next_task.id == t3.id

    @pytest.mark.asyncio
    async def test_skip_is_single_level(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1), ('b', 2, [1]), ('c', 3, [2]))
        runner = TaskRunner(store, registry_of(a=_boom(), b=_ok(), c=_ok()))

        task = await store.claim_next_task()
        assert task is not None
        with pytest.raises(RuntimeError):
            await runner.run(task)

        _, t2, t3 = (await _workflow(store, workflow.id)).tasks
        assert t2.status == TaskStatus.SKIPPED
        assert t3.status == TaskStatus.QUEUED

    @pytest.mark.asyncio
    async def test_consumer_not_queued_is_left_alone(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('a', 1), ('b', 2, [1]))
        consumer = await _task(store, workflow.tasks[1].id)
        consumer.status = TaskStatus.COMPLETED
        await store.save_task(consumer)

        runner = TaskRunner(store, registry_of(a=_boom()))
        producer = await _task(store, workflow.tasks[0].id)
        with pytest.raises(RuntimeError):
            await runner.run(producer)

        assert (await _task(store, consumer.id)).status == TaskStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_unknown_job_type_fails_the_task(self, store: MemoryStore) -> None:
        workflow = await _build(store, ('missing', 1))
        runner = TaskRunner(store, registry_of())

        task = await store.claim_next_task()
        assert task is not None
        with pytest.raises(UnknownJobType):
            await runner.run(task)

        stored = await _task(store, task.id)
        assert stored.status == TaskStatus.FAILED
        assert stored.result is not None
        assert stored.result.error == "no job registered for task type 'missing'"
        assert (await _workflow(store, workflow.id)).status == WorkflowStatus.FAILED

    @pytest.mark.asyncio
    async def test_rerun_replaces_result(self, store: MemoryStore) -> None:
        await _build(store, ('a', 1))
        task = await store.claim_next_task()
        assert task is not None

        with pytest.raises(RuntimeError):
            await TaskRunner(store, registry_of(a=_boom())).run(task)
        await TaskRunner(store, registry_of(a=_ok('fine'))).run(task)

        stored = await _task(store, task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.result is not None
        assert stored.result.error is None
        assert loads_json(stored.result.data) == 'fine'


class _ConsumerReadFails(MemoryStore):
    """MemoryStore whose single-task reads fail, as when the database drops."""

    async def get_task(self, task_id: str) -> Task | None:
        raise PersistenceError(message='down', retryable=True)


class _RecordingStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    async def save_result(self, result: Result) -> None:
        self.calls.append('result')
        await super().save_result(result)

    async def save_task(self, task: Task) -> None:
        self.calls.append(f'task:{task.status.value}')
        await super().save_task(task)

    async def get_task(self, task_id: str) -> Task | None:
        self.calls.append('read')
        return await super().get_task(task_id)

    async def save_workflow(self, workflow: Workflow) -> None:
        self.calls.append('workflow')
        await super().save_workflow(workflow)


@pytest.mark.unit
class TestTaskRunnerWriteOrder:
    @pytest.mark.asyncio
    async def test_failure_is_recorded_before_consumer_is_read(self) -> None:
        store = _RecordingStore()
        await _build(store, ('a', 1), ('b', 2, [1]))
        task = await store.claim_next_task()
        assert task is not None
        store.calls.clear()

        with pytest.raises(RuntimeError):
            await TaskRunner(store, registry_of(a=_boom(), b=_ok())).run(task)

        assert store.calls == [
            'task:in_progress',
            'result',
            'task:failed',
            'read',
            'task:skipped',
            'workflow',
        ]

    @pytest.mark.asyncio
    async def test_consumer_read_error_keeps_failure_recorded(self) -> None:
        store = _ConsumerReadFails()
        workflow = await _build(store, ('a', 1), ('b', 2, [1]))
        task = await store.claim_next_task()
        assert task is not None

        with pytest.raises(PersistenceError):
            await TaskRunner(store, registry_of(a=_boom(), b=_ok())).run(task)

        t1, t2 = (await _workflow(store, workflow.id)).tasks
        assert t1.status == TaskStatus.FAILED
        assert t1.result is not None
        assert t1.result.error == 'boom'
        assert t2.status == TaskStatus.QUEUED
