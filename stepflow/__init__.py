"""Stepflow - declarative multi-step workflows executed by a polling worker"""

# Install Rust-style error handler on import
from .core.errors import install_error_handler as _install_error_handler

_install_error_handler()

from .core.app import Stepflow, WorkflowStatusView, WorkflowResultsView
from .core.models.app import AppConfig, WorkerConfig
from .core.models.database import PostgresConfig
from .core.models.definition import (
    WorkflowDefinition,
    WorkflowStep,
    DefinitionCatalog,
    parse_definition,
    load_definition,
)
from .core.models.records import Workflow, Task, Result
from .core.types.status import (
    TaskStatus,
    WorkflowStatus,
    TASK_TERMINAL_STATES,
    WORKFLOW_TERMINAL_STATES,
)
from .core.jobs.base import Job, FunctionJob
from .core.jobs.context import JobContext
from .core.registry.jobs import JobRegistry, UnknownJobType, DuplicateJobTypeError
from .core.store import WorkflowStore, MemoryStore, PostgresStore
from .core.worker.runner import TaskRunner
from .core.scheduler import Scheduler
from .core.workflows.builder import WorkflowBuilder
from .core.workflows.validation import validate_definition
from .core.workflows.status import derive_workflow_status
from .core.workflows.report import generate_aggregated_report
from .core.errors import (
    ErrorCode,
    StepflowError,
    ValidationError,
    ConfigurationError,
    RegistryError,
    JobExecutionError,
    WorkflowNotFoundError,
    WorkflowNotCompletedError,
    PersistenceError,
    ValidationReport,
    MultipleValidationErrors,
)

__all__ = [
    # Core
    'Stepflow',
    'AppConfig',
    'WorkerConfig',
    'PostgresConfig',
    'WorkflowStatusView',
    'WorkflowResultsView',
    # Definitions
    'WorkflowDefinition',
    'WorkflowStep',
    'DefinitionCatalog',
    'parse_definition',
    'load_definition',
    'validate_definition',
    # Records and statuses
    'Workflow',
    'Task',
    'Result',
    'TaskStatus',
    'WorkflowStatus',
    'TASK_TERMINAL_STATES',
    'WORKFLOW_TERMINAL_STATES',
    # Jobs
    'Job',
    'FunctionJob',
    'JobContext',
    'JobRegistry',
    'UnknownJobType',
    'DuplicateJobTypeError',
    # Engine
    'WorkflowStore',
    'MemoryStore',
    'PostgresStore',
    'WorkflowBuilder',
    'TaskRunner',
    'Scheduler',
    'derive_workflow_status',
    'generate_aggregated_report',
    # Errors
    'ErrorCode',
    'StepflowError',
    'ValidationError',
    'ConfigurationError',
    'RegistryError',
    'JobExecutionError',
    'WorkflowNotFoundError',
    'WorkflowNotCompletedError',
    'PersistenceError',
    'ValidationReport',
    'MultipleValidationErrors',
]
