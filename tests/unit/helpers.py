"""Builders shared by stepflow unit tests."""

from __future__ import annotations

from typing import Any

from stepflow.core.jobs.base import FunctionJob, Job
from stepflow.core.models.definition import WorkflowDefinition
from stepflow.core.registry.jobs import JobRegistry


def make_definition(*steps: tuple[Any, ...], name: str = 'wf') -> WorkflowDefinition:
    """Build a definition from (task_type, step_number[, depends_on]) tuples."""
    raw: list[dict[str, Any]] = []
    for step in steps:
        entry: dict[str, Any] = {'taskType': step[0], 'stepNumber': step[1]}
        if len(step) > 2:
            entry['dependsOn'] = step[2]
        raw.append(entry)
    return WorkflowDefinition.from_mapping({'name': name, 'steps': raw})


def registry_of(**jobs: Any) -> JobRegistry[Job]:
    """Registry mapping each keyword to a FunctionJob wrapping its value."""
    registry: JobRegistry[Job] = JobRegistry()
    for name, fn in jobs.items():
        registry.register(FunctionJob(fn, name=name), name=name)
    return registry
