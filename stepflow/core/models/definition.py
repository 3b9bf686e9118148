# stepflow/core/models/definition.py
"""
Declarative workflow definitions.

A definition is a name plus an ordered list of steps:

```yaml
name: example_workflow
steps:
  - taskType: analysis
    stepNumber: 1
  - taskType: notification
    stepNumber: 2
    dependsOn: 1          # a single step number ...
  - taskType: reportGeneration
    stepNumber: 3
    dependsOn: [1, 2]     # ... or a list of step numbers
```

Parsing only checks the document's shape. Structural rules (unique step
numbers, backward-only dependencies) are enforced by
`stepflow.core.workflows.validation.validate_definition`.
"""

from __future__ import annotations

import os
from importlib.resources import files
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from stepflow.core.errors import ErrorCode, ValidationError

_DEFINITION_SUFFIXES = ('.yml', '.yaml')


class WorkflowStep(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    task_type: Optional[str] = Field(default=None, alias='taskType')
    step_number: Optional[int] = Field(default=None, alias='stepNumber')
    depends_on: Optional[list[int]] = Field(default=None, alias='dependsOn')

    @field_validator('depends_on', mode='before')
    @classmethod
    def normalize_depends_on(cls, v: Any) -> Any:
        """Accept a single step number as shorthand for a one-element list."""
        if v is None or isinstance(v, list):
            return v
        if isinstance(v, tuple):
            return list(v)
        return [v]


class WorkflowDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    steps: list[WorkflowStep] = Field(default_factory=lambda: [])

    @classmethod
    def from_mapping(cls, data: Any) -> WorkflowDefinition:
        """Build a definition from parsed YAML/JSON data.

        Raises:
            ValidationError: E005 if the document does not have the expected shape.
        """
        if not isinstance(data, dict):
            raise ValidationError(
                message='workflow definition must be a mapping',
                code=ErrorCode.DEFINITION_MALFORMED,
                notes=[f'got {type(data).__name__}'],
                help_text='a definition has a `name` and a list of `steps`',
            )
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(
                message='malformed workflow definition',
                code=ErrorCode.DEFINITION_MALFORMED,
                notes=[
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                    for err in e.errors()
                ],
                help_text='each step needs taskType, stepNumber and an optional dependsOn',
            ) from e


def parse_definition(content: str) -> WorkflowDefinition:
    """Parse a YAML (or JSON) workflow definition document."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValidationError(
            message='workflow definition is not valid YAML',
            code=ErrorCode.DEFINITION_MALFORMED,
            notes=[str(e)],
        ) from e
    return WorkflowDefinition.from_mapping(data)


def load_definition(path: str) -> WorkflowDefinition:
    """Read and parse a workflow definition file."""
    with open(path, encoding='utf-8') as fh:
        return parse_definition(fh.read())


class DefinitionCatalog:
    """Resolves workflow names to definitions stored as `<name>.yml` files.

    With no directory, the definitions bundled with stepflow are used.
    """

    def __init__(self, directory: Optional[str] = None) -> None:
        self.directory = directory

    def _bundled(self) -> Any:
        return files('stepflow').joinpath('definitions')

    def names(self) -> list[str]:
        """List the workflow names available in the catalog, sorted."""
        if self.directory is not None:
            entries = os.listdir(self.directory)
        else:
            entries = [entry.name for entry in self._bundled().iterdir()]
        return sorted(
            os.path.splitext(entry)[0]
            for entry in entries
            if entry.endswith(_DEFINITION_SUFFIXES)
        )

    def get(self, name: str) -> WorkflowDefinition:
        """Load the definition registered under `name`.

        Raises:
            ValidationError: E006 if no such definition exists.
        """
        if not name or os.path.basename(name) != name or name.startswith('.'):
            raise self._not_found(name)

        for suffix in _DEFINITION_SUFFIXES:
            if self.directory is not None:
                path = os.path.join(self.directory, name + suffix)
                if os.path.isfile(path):
                    return load_definition(path)
            else:
                resource = self._bundled().joinpath(name + suffix)
                if resource.is_file():
                    return parse_definition(resource.read_text(encoding='utf-8'))

        raise self._not_found(name)

    def _not_found(self, name: str) -> ValidationError:
        return ValidationError(
            message=f"workflow definition '{name}' not found",
            code=ErrorCode.DEFINITION_NOT_FOUND,
            notes=[f"available: {', '.join(self.names()) or '<none>'}"],
            help_text='add a <name>.yml file to the definitions directory',
        )
