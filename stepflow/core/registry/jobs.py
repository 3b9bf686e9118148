# stepflow/core/registry/jobs.py
from __future__ import annotations
from typing import Dict, Iterator, MutableMapping, Generic, TypeVar
from stepflow.core.errors import RegistryError, ErrorCode

T = TypeVar('T')


class UnknownJobType(RegistryError, KeyError):
    """Raised when no job is registered for a task type.

    Inherits from KeyError so MutableMapping.__contains__ works correctly
    (it catches KeyError to implement the ``in`` operator).
    """

    def __init__(self, task_type: str) -> None:
        RegistryError.__init__(
            self,
            message=f"no job registered for task type '{task_type}'",
            code=ErrorCode.JOB_TYPE_NOT_REGISTERED,
            notes=[f"requested task type: '{task_type}'"],
            help_text='register the job with @app.job() or app.jobs.register()\nbefore running workflows that use this task type',
        )
        self.task_type = task_type


class DuplicateJobTypeError(RegistryError):
    """Raised when a task type is registered more than once within the same app."""

    def __init__(self, task_type: str, context: str = '') -> None:
        super().__init__(
            message=f"duplicate job type '{task_type}'",
            code=ErrorCode.JOB_TYPE_DUPLICATE,
            notes=[context] if context else [],
            help_text='each task type maps to exactly one job',
        )
        self.task_type = task_type


class JobRegistry(MutableMapping[str, T], Generic[T]):
    """Registry mapping task type -> job.

    Tracks source locations to detect duplicate registrations:
    - Same type + same source: silently skip (re-import scenario)
    - Same type + different source: raise DuplicateJobTypeError
    """

    def __init__(self, initial: Dict[str, T] | None = None) -> None:
        self._data: Dict[str, T] = dict(initial or {})
        self._sources: Dict[str, str] = {}  # task_type -> "file:lineno"

    def __getitem__(self, key: str) -> T:
        try:
            return self._data[key]
        except KeyError:
            raise UnknownJobType(key)

    def __setitem__(self, key: str, value: T) -> None:
        """Discourage direct assignment; enforce uniqueness like register()."""
        if key in self._data:
            raise DuplicateJobTypeError(key, 'detected via direct assignment')
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._sources.pop(key, None)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def register(self, job: T, *, name: str, source: str | None = None) -> T:
        """Bind `job` to the task type `name`.

        Returns:
            The registered job (the existing one on re-import).

        Raises:
            DuplicateJobTypeError: If the type is already bound from a different source.
        """
        if name in self._data:
            existing_source = self._sources.get(name)
            if existing_source and source and existing_source == source:
                return self._data[name]
            raise DuplicateJobTypeError(name, 'a job for this task type already exists')
        self._data[name] = job
        if source:
            self._sources[name] = source
        return job

    def unregister(self, task_type: str) -> None:
        self._data.pop(task_type, None)
        self._sources.pop(task_type, None)

    def types(self) -> list[str]:
        return sorted(self._data)
