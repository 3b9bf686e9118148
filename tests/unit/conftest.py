"""Shared fixtures for stepflow unit tests."""

from __future__ import annotations

import pytest

from stepflow.core.jobs.base import Job
from stepflow.core.registry.jobs import JobRegistry
from stepflow.core.store.memory import MemoryStore


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def registry() -> JobRegistry[Job]:
    return JobRegistry()
