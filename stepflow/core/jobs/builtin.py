# stepflow/core/jobs/builtin.py
"""
Jobs shipped with stepflow, registered under these task types:

- `analysis`: name of the region that contains the input polygon
- `notification`: simulated e-mail notification that sometimes fails
- `polygonArea`: area of the input polygon in square metres
- `reportGeneration`: structured report of the whole workflow

The geometry jobs read `input['geoJson']`, a GeoJSON Polygon Feature (or a
bare Polygon geometry).
"""

from __future__ import annotations

import asyncio
import json
import random
from importlib.resources import files
from typing import Any, Awaitable, Callable, Mapping, Optional

from stepflow.core.errors import JobExecutionError
from stepflow.core.jobs.base import Job
from stepflow.core.jobs.context import JobContext
from stepflow.core.jobs.geometry import (
    as_geometry,
    geometry_area,
    is_valid_polygon,
    polygon_within,
    polygons_of,
)
from stepflow.core.logging import get_logger
from stepflow.core.models.records import Task
from stepflow.core.registry.jobs import JobRegistry
from stepflow.core.store.base import WorkflowStore
from stepflow.core.workflows.report import generate_aggregated_report

NO_INPUT_GEOMETRY = 'No input geometry provided in context'


def _input_geometry(context: JobContext) -> Mapping[str, Any]:
    data = context.input
    geo = data.get('geoJson') if isinstance(data, Mapping) else None
    geometry = as_geometry(geo)
    if not geometry:
        raise JobExecutionError(message=NO_INPUT_GEOMETRY)
    return geometry


def load_regions(path: Optional[str] = None) -> dict[str, Any]:
    """Load a GeoJSON FeatureCollection of named regions.

    With no path, the coarse sample outlines bundled with stepflow are used.
    """
    if path is None:
        content = files('stepflow').joinpath('data', 'regions.geojson').read_text(
            encoding='utf-8'
        )
    else:
        with open(path, encoding='utf-8') as fh:
            content = fh.read()
    return json.loads(content)


class RegionContainmentJob(Job):
    """Finds the first region (by file order) that fully contains the input polygon."""

    logger = get_logger('jobs.analysis')

    def __init__(
        self,
        regions: Optional[Mapping[str, Any]] = None,
        regions_file: Optional[str] = None,
    ) -> None:
        self._regions = regions
        self._regions_file = regions_file

    @property
    def regions(self) -> Mapping[str, Any]:
        if self._regions is None:
            self._regions = load_regions(self._regions_file)
        return self._regions

    async def run(self, task: Task, context: JobContext) -> str:
        self.logger.info(f'Running region analysis for task {task.id}')
        geometry = _input_geometry(context)
        inner = polygons_of(geometry)
        if not inner:
            raise JobExecutionError(
                message='Input geometry must be a Polygon',
                notes=[f"got type {geometry.get('type')!r}"],
            )

        for feature in self.regions.get('features', []):
            region = feature.get('geometry') or {}
            if region.get('type') not in ('Polygon', 'MultiPolygon'):
                continue
            if polygon_within(inner[0], region):
                name = (feature.get('properties') or {}).get('name')
                self.logger.info(f'The polygon is within {name}')
                return name

        raise JobExecutionError(message='No region found')


class NotificationJob(Job):
    """Simulated e-mail notification: waits, then fails with `failure_rate` probability."""

    logger = get_logger('jobs.notification')

    def __init__(
        self,
        *,
        delay_seconds: float = 0.5,
        failure_rate: float = 0.2,
        rng: Callable[[], float] = random.random,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.delay_seconds = delay_seconds
        self.failure_rate = failure_rate
        self.rng = rng
        self.sleep = sleep

    async def run(self, task: Task, context: JobContext) -> None:
        self.logger.info(f'Sending email notification for task {task.id}')
        await self.sleep(self.delay_seconds)
        if self.rng() < self.failure_rate:
            self.logger.error('Failed to send email!')
            raise JobExecutionError(message='Failed to send email')
        self.logger.info('Email sent!')


class PolygonAreaJob(Job):
    """Spherical area of the input polygon, in square metres."""

    logger = get_logger('jobs.polygon_area')

    async def run(self, task: Task, context: JobContext) -> float:
        self.logger.info(f'Running polygon area for task {task.id}')
        geometry = _input_geometry(context)
        if not is_valid_polygon(geometry):
            raise JobExecutionError(
                message='Cannot calculate area: Invalid geometry',
                help_text='expected a Polygon whose rings are closed and have at least 4 positions',
            )
        return geometry_area(geometry)


class ReportGenerationJob(Job):
    """Collects every task of the workflow, with its result, into one report."""

    logger = get_logger('jobs.report_generation')

    def __init__(self, store: WorkflowStore) -> None:
        self.store = store

    async def run(self, task: Task, context: JobContext) -> dict[str, Any]:
        self.logger.info(f'Running report generation for workflow {task.workflow_id}')
        workflow = await self.store.get_workflow(task.workflow_id)
        if workflow is None:
            raise JobExecutionError(
                message=f'Workflow with ID {task.workflow_id} not found',
            )

        final_report = generate_aggregated_report(workflow, workflow.tasks)
        self.logger.debug(final_report)
        return {
            'workflowId': workflow.id,
            'tasks': [
                {
                    'taskId': t.id,
                    'type': t.task_type,
                    'status': t.status.value,
                    'result': t.result.data if t.result is not None else None,
                    'error': t.result.error if t.result is not None else None,
                }
                for t in workflow.tasks
            ],
            'finalReport': final_report,
        }


def register_builtin_jobs(
    registry: JobRegistry[Job],
    store: WorkflowStore,
    *,
    regions_file: Optional[str] = None,
) -> list[str]:
    """Register the built-in jobs under their task types.

    Task types that already have a job are left alone, so user jobs
    registered first take precedence.

    Returns:
        The task types that were registered by this call.
    """
    builtins: dict[str, Job] = {
        'analysis': RegionContainmentJob(regions_file=regions_file),
        'notification': NotificationJob(),
        'polygonArea': PolygonAreaJob(),
        'reportGeneration': ReportGenerationJob(store),
    }
    registered: list[str] = []
    for task_type, job in builtins.items():
        if task_type in registry:
            continue
        registry.register(job, name=task_type)
        registered.append(task_type)
    return registered
