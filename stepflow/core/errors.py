"""Rust-style error display for stepflow validation and runtime errors."""

from __future__ import annotations

import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for stepflow errors.

    Organized by category:
    - E001-E099: Workflow definition errors
    - E100-E199: Job execution errors
    - E200-E299: Config/CLI errors
    - E300-E399: Job registry errors
    - E400-E499: Workflow lookup errors
    - E500-E599: Persistence errors
    """

    # Workflow definition (E001-E099)
    STEP_MISSING_TASK_TYPE = 'E001'
    STEP_INVALID_STEP_NUMBER = 'E002'
    STEP_FORWARD_DEPENDENCY = 'E003'
    STEP_DUPLICATE_STEP_NUMBER = 'E004'
    DEFINITION_MALFORMED = 'E005'
    DEFINITION_NOT_FOUND = 'E006'

    # Job execution (E100-E199)
    JOB_EXECUTION_FAILED = 'E100'

    # Config/CLI (E200-E299)
    CONFIG_INVALID_POLL_INTERVAL = 'E201'
    CONFIG_MISSING_DATABASE = 'E202'
    DATABASE_INVALID_URL = 'E203'
    CONFIG_INVALID_PATH = 'E204'
    CLI_INVALID_ARGS = 'E206'

    # Registry (E300-E399)
    JOB_TYPE_NOT_REGISTERED = 'E300'
    JOB_TYPE_DUPLICATE = 'E301'

    # Workflow lookup (E400-E499)
    WORKFLOW_NOT_FOUND = 'E400'
    WORKFLOW_NOT_COMPLETED = 'E401'

    # Persistence (E500-E599)
    PERSISTENCE_FAILED = 'E500'


# ANSI color codes
class _Colors:
    """ANSI escape codes for terminal colors."""

    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    GREEN = '\033[92m'
    DIM = '\033[2m'


class _NoColors:
    """No-op color codes for non-TTY output."""

    RESET = ''
    BOLD = ''
    RED = ''
    BLUE = ''
    GREEN = ''
    DIM = ''


def _should_use_colors() -> bool:
    """Determine if colors should be used in output."""
    if os.environ.get('STEPFLOW_FORCE_COLOR', '').lower() in ('1', 'true', 'yes'):
        return True

    # Check NO_COLOR standard (https://no-color.org/)
    if os.environ.get('NO_COLOR') is not None:
        return False

    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


def _should_show_verbose() -> bool:
    """Determine if verbose output (full traceback) should be shown."""
    return os.environ.get('STEPFLOW_VERBOSE', '').lower() in ('1', 'true', 'yes')


def _should_use_plain_errors() -> bool:
    """Determine if plain Python errors should be used instead of Rust-style."""
    return os.environ.get('STEPFLOW_PLAIN_ERRORS', '').lower() in ('1', 'true', 'yes')


@dataclass
class StepflowError(Exception):
    """Base exception for stepflow errors.

    Provides Rust-style error formatting with:
    - Error code and category
    - Notes and help text
    """

    message: str
    code: ErrorCode | None = None
    notes: list[str] = field(default_factory=lambda: [])
    help_text: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_note(self, note: str) -> StepflowError:
        """Add a note to the error (fluent API)."""
        self.notes.append(note)
        return self

    def with_help(self, help_text: str) -> StepflowError:
        """Set help text (fluent API)."""
        self.help_text = help_text
        return self

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Format the error in Rust style."""
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        lines: list[str] = ['']

        # Error header: error[E001]: message
        code_part = f'[{self.code.value}]' if self.code else ''
        lines.append(f'{c.BOLD}{c.RED}error{code_part}:{c.RESET} {self.message}')

        # Notes (support multi-line notes with continuation indentation)
        for note in self.notes:
            note_lines = note.split('\n')
            lines.append(
                f'   {c.BLUE}={c.RESET} {c.BOLD}{c.BLUE}note{c.RESET}: {note_lines[0]}'
            )
            for note_line in note_lines[1:]:
                lines.append(f'          {note_line}')

        if self.help_text:
            lines.append('')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.GREEN}help{c.RESET}:')
            for help_line in self.help_text.split('\n'):
                lines.append(f'        {help_line}')

        return '\n'.join(lines)

    def __str__(self) -> str:
        """String representation uses plain text (no ANSI colors).

        Colors are only used when printing directly to a terminal via the
        custom exception hook, so the string is safe for logs and for the
        error payload stored on a task result.
        """
        return self.format_rust_style(use_colors=False)


_original_excepthook = sys.excepthook


def _stepflow_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    """Custom exception hook for StepflowError exceptions."""
    if _should_use_plain_errors():
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    if isinstance(exc_value, StepflowError):
        print(exc_value.format_rust_style(), file=sys.stderr)

        if _should_show_verbose():
            print(file=sys.stderr)
            c = _Colors if _should_use_colors() else _NoColors
            print(
                f'{c.DIM}Full traceback (STEPFLOW_VERBOSE=1):{c.RESET}',
                file=sys.stderr,
            )
            traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)
    else:
        _original_excepthook(exc_type, exc_value, exc_tb)


def install_error_handler() -> None:
    """Install the custom exception hook for Rust-style error display."""
    sys.excepthook = _stepflow_excepthook


def uninstall_error_handler() -> None:
    """Restore the original exception hook."""
    sys.excepthook = _original_excepthook


# =============================================================================
# Specific Error Classes
# =============================================================================


@dataclass
class ValidationError(StepflowError):
    """Raised when a workflow definition is structurally invalid."""

    pass


@dataclass
class ConfigurationError(StepflowError):
    """Raised when app/database configuration is invalid."""

    pass


@dataclass
class RegistryError(StepflowError):
    """Raised when a job registry operation fails."""

    pass


@dataclass
class JobExecutionError(StepflowError):
    """Raised by jobs for domain-specific failures.

    Jobs may raise any exception; this class exists so job authors have a
    coded error to raise for expected failure conditions.
    """

    code: ErrorCode | None = ErrorCode.JOB_EXECUTION_FAILED


@dataclass
class WorkflowNotFoundError(StepflowError):
    """Raised when a workflow id does not exist in the store."""

    code: ErrorCode | None = ErrorCode.WORKFLOW_NOT_FOUND
    workflow_id: str = ''


@dataclass
class WorkflowNotCompletedError(StepflowError):
    """Raised when results are requested for a non-terminal workflow."""

    code: ErrorCode | None = ErrorCode.WORKFLOW_NOT_COMPLETED
    workflow_id: str = ''


@dataclass
class PersistenceError(StepflowError):
    """Raised when the storage collaborator fails.

    `retryable` marks transient connection failures; the core never retries
    on its own.
    """

    code: ErrorCode | None = ErrorCode.PERSISTENCE_FAILED
    retryable: bool = False


# =============================================================================
# Phase-Gated Error Collection
# =============================================================================


class ValidationReport:
    """Collects multiple StepflowError instances within a validation phase."""

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[StepflowError] = []

    def add(self, error: StepflowError) -> None:
        """Append an error to the report."""
        self.errors.append(error)

    def has_errors(self) -> bool:
        """Return True if any errors were collected."""
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Format all collected errors, then append an aborting summary."""
        if use_colors is None:
            use_colors = _should_use_colors()

        c = _Colors if use_colors else _NoColors
        parts = [error.format_rust_style(use_colors=use_colors) for error in self.errors]
        count = len(self.errors)
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting due to {count} previous errors'
        )
        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(StepflowError):
    """Wraps a ValidationReport containing 2+ errors."""

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'aborting due to {len(self.report.errors)} previous errors'
        super().__post_init__()

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Delegate formatting to the underlying report."""
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise collected errors.

    - 0 errors: no-op (returns normally)
    - 1 error: raises the original error (preserves except clauses)
    - 2+ errors: raises MultipleValidationErrors wrapping the report
    """
    count = len(report.errors)
    if count == 0:
        return
    if count == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(
        message=f'aborting due to {count} previous errors',
        report=report,
    )
