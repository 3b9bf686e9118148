# stepflow/core/workflows/validation.py
from __future__ import annotations

from collections import Counter

from stepflow.core.errors import ErrorCode, ValidationError
from stepflow.core.models.definition import WorkflowDefinition


def validate_definition(definition: WorkflowDefinition) -> None:
    """
    Validate the structure of a workflow definition before anything is persisted.

    Steps are scanned in order and the first violation raises:
    - E001: step without a task type
    - E002: step without a positive step number
    - E003: step depending on itself or on a later step
    Then, over the whole definition:
    - E004: step number used more than once

    Dependencies can only point backwards, so a valid definition is acyclic
    by construction.

    Raises:
        ValidationError: on the first violated rule.
    """
    for position, step in enumerate(definition.steps):
        if not step.task_type:
            raise ValidationError(
                message='task type is required',
                code=ErrorCode.STEP_MISSING_TASK_TYPE,
                notes=[f"step #{position + 1} of workflow '{definition.name}'"],
                help_text='set `taskType` to a registered job type',
            )

        if step.step_number is None or step.step_number <= 0:
            raise ValidationError(
                message='step number is required',
                code=ErrorCode.STEP_INVALID_STEP_NUMBER,
                notes=[
                    f"step #{position + 1} ({step.task_type}) of workflow '{definition.name}'",
                    f'got stepNumber={step.step_number!r}',
                ],
                help_text='set `stepNumber` to a positive integer',
            )

        if step.depends_on and any(dep >= step.step_number for dep in step.depends_on):
            raise ValidationError(
                message='step can not depend on other steps that come after it',
                code=ErrorCode.STEP_FORWARD_DEPENDENCY,
                notes=[
                    f'step {step.step_number} ({step.task_type}) depends on {step.depends_on}',
                ],
                help_text='`dependsOn` may only reference smaller step numbers',
            )

    counts = Counter(step.step_number for step in definition.steps)
    duplicates = sorted(number for number, count in counts.items() if count > 1)
    if duplicates:
        raise ValidationError(
            message='step numbers must be unique',
            code=ErrorCode.STEP_DUPLICATE_STEP_NUMBER,
            notes=[f'duplicated step numbers: {duplicates}'],
        )
