"""Unit tests for stepflow logging module."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator

import pytest

from stepflow.core.logging import ColoredFormatter, get_logger, set_default_level

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _restore_default_level() -> Iterator[None]:
    """Save and restore the module-level _default_level after each test."""
    from stepflow.core import logging as stepflow_logging

    original = stepflow_logging._default_level
    yield
    set_default_level(original)


def _unique_name() -> str:
    return f'test_{uuid.uuid4().hex[:8]}'


class TestSetDefaultLevel:
    """Tests for set_default_level()."""

    def test_changes_module_variable(self) -> None:
        from stepflow.core import logging as stepflow_logging

        set_default_level(logging.DEBUG)
        assert stepflow_logging._default_level == logging.DEBUG

        set_default_level(logging.WARNING)
        assert stepflow_logging._default_level == logging.WARNING

    def test_new_logger_uses_default_level(self) -> None:
        set_default_level(logging.WARNING)
        logger = get_logger(_unique_name())
        assert logger.level == logging.WARNING

    def test_logger_handler_respects_default_level(self) -> None:
        set_default_level(logging.ERROR)
        logger = get_logger(_unique_name())

        assert len(logger.handlers) > 0
        for handler in logger.handlers:
            assert handler.level == logging.ERROR


class TestGetLogger:
    """Tests for get_logger()."""

    def test_namespaced_under_stepflow(self) -> None:
        name = _unique_name()
        assert get_logger(name).name == f'stepflow.{name}'

    def test_does_not_propagate(self) -> None:
        assert get_logger(_unique_name()).propagate is False

    def test_handler_added_once(self) -> None:
        name = _unique_name()
        first = get_logger(name)
        second = get_logger(name)
        assert first is second
        assert len(second.handlers) == 1


class TestColoredFormatter:
    """Tests for ColoredFormatter output."""

    def test_includes_component_level_and_message(self) -> None:
        record = logging.LogRecord(
            name='stepflow.runner',
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg='task %s failed',
            args=('t-1',),
            exc_info=None,
        )
        formatted = ColoredFormatter().format(record)

        assert '[runner]' in formatted
        assert '[WARNING]' in formatted
        assert 'task t-1 failed' in formatted
        assert ColoredFormatter.LEVEL_COLORS['WARNING'] in formatted

    def test_appends_traceback(self) -> None:
        try:
            raise ValueError('bad input')
        except ValueError:
            import sys

            exc_info = sys.exc_info()
        record = logging.LogRecord(
            name='stepflow.scheduler',
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg='poll failed',
            args=(),
            exc_info=exc_info,
        )
        formatted = ColoredFormatter().format(record)

        assert 'Traceback' in formatted
        assert 'ValueError: bad input' in formatted
