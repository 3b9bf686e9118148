"""End-to-end workflow runs against PostgresStore."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from stepflow.core.app import Stepflow
from stepflow.core.jobs.context import JobContext
from stepflow.core.models.definition import WorkflowDefinition
from stepflow.core.models.records import Result, Task, Workflow
from stepflow.core.store.postgres import PostgresStore
from stepflow.core.types.status import TaskStatus, WorkflowStatus

pytestmark = pytest.mark.integration

POLYGON = {
    'type': 'Feature',
    'properties': {},
    'geometry': {
        'type': 'Polygon',
        'coordinates': [[[10.0, 50.0], [11.0, 50.0], [11.0, 51.0], [10.0, 51.0], [10.0, 50.0]]],
    },
}


async def _drain(app: Stepflow) -> int:
    scheduler = app.create_scheduler()
    await scheduler.start()
    runs = 0
    while await scheduler.run_once():
        runs += 1
    return runs


class TestStoreRoundTrip:
    @pytest.mark.asyncio
    async def test_dependencies_and_results(self, store: PostgresStore) -> None:
        workflow = await store.add_workflow(Workflow(client_id='c', input='{"a":1}'))
        t1, t2, t3 = (
            Task(client_id='c', workflow_id=workflow.id, task_type='a', step_number=n)
            for n in (1, 2, 3)
        )
        await store.add_tasks([t1, t2, t3])
        await store.set_dependencies(t3, [t2, t1])
        await store.save_result(Result(task_id=t1.id, data='"first"'))
        await store.save_result(Result(task_id=t1.id, data='"second"'))

        stored = await store.get_workflow(workflow.id)
        assert stored is not None
        assert stored.input == '{"a":1}'
        assert [t.id for t in stored.tasks] == [t1.id, t2.id, t3.id]
        assert stored.tasks[2].dependency_ids == [t1.id, t2.id]
        assert stored.tasks[0].result is not None
        assert stored.tasks[0].result.data == '"second"'

        deps = await store.get_dependencies(t3.id)
        assert [d.step_number for d in deps] == [1, 2]

    @pytest.mark.asyncio
    async def test_claim_order_across_workflows(self, store: PostgresStore) -> None:
        now = datetime.now(timezone.utc)
        newer = await store.add_workflow(Workflow(client_id='c', input=None, created_at=now))
        older = await store.add_workflow(
            Workflow(client_id='c', input=None, created_at=now - timedelta(minutes=1))
        )
        await store.add_tasks(
            [Task(client_id='c', workflow_id=newer.id, task_type='a', step_number=1)]
        )
        await store.add_tasks(
            [
                Task(client_id='c', workflow_id=older.id, task_type='a', step_number=2),
                Task(client_id='c', workflow_id=older.id, task_type='a', step_number=1),
            ]
        )

        task = await store.claim_next_task()
        assert task is not None
        assert (task.workflow_id, task.step_number) == (older.id, 1)


class TestWorkflowRuns:
    @pytest.mark.asyncio
    async def test_example_workflow(self, app: Stepflow) -> None:
        @app.job('notification')
        def notify(task: Task, context: JobContext) -> dict[str, str]:
            return {'region': context.dependency_outputs[0]}

        workflow = await app.create_workflow('example_workflow', 'client-1', {'geoJson': POLYGON})
        assert await _drain(app) == 4

        status = await app.get_status(workflow.id)
        assert status.status == WorkflowStatus.COMPLETED
        assert status.completed_tasks == 4

        results = await app.get_results(workflow.id)
        assert results.final_result is not None
        assert f'Workflow ID: {workflow.id}.' in results.final_result

        stored = await app.get_store().get_workflow(workflow.id)
        assert stored is not None
        report_result = stored.tasks[3].result
        assert report_result is not None and report_result.data is not None
        assert json.loads(report_result.data)['workflowId'] == workflow.id

    @pytest.mark.asyncio
    async def test_failure_skips_consumer(self, app: Stepflow) -> None:
        @app.job('notification')
        def notify(task: Task, context: JobContext) -> None:
            raise RuntimeError('smtp down')

        workflow = await app.create_workflow('example_workflow', 'client-1', {'geoJson': POLYGON})
        await _drain(app)

        stored = await app.get_store().get_workflow(workflow.id)
        assert stored is not None
        assert stored.status == WorkflowStatus.FAILED
        assert [t.status for t in stored.tasks] == [
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
            TaskStatus.COMPLETED,
            TaskStatus.SKIPPED,
        ]
        assert stored.tasks[1].result is not None
        assert stored.tasks[1].result.error == 'smtp down'

    @pytest.mark.asyncio
    async def test_run_forever_processes_queue(self, app: Stepflow) -> None:
        definition = WorkflowDefinition.from_mapping(
            {'name': 'area_only', 'steps': [{'taskType': 'polygonArea', 'stepNumber': 1}]}
        )
        workflow = await app.create_workflow(definition, 'client-1', {'geoJson': POLYGON})

        scheduler = app.create_scheduler()
        loop_task = asyncio.create_task(scheduler.run_forever())
        for _ in range(100):
            status = await app.get_status(workflow.id)
            if status.status == WorkflowStatus.COMPLETED:
                break
            await asyncio.sleep(0.05)
        scheduler.request_stop()
        await asyncio.wait_for(loop_task, timeout=5)

        assert status.status == WorkflowStatus.COMPLETED
