"""Locate and import the module holding a Stepflow app."""

from __future__ import annotations

import hashlib
import importlib.util
import os
import sys
from types import ModuleType

from stepflow.core.logging import get_logger

logger = get_logger('imports')

_PROJECT_MARKERS = ('pyproject.toml', 'setup.cfg', 'setup.py')


def setup_sys_path_from_cwd() -> str | None:
    """
    Put cwd on sys.path when it is a project root (parents are not searched).

    Returns cwd if it was added, None otherwise.
    """
    cwd = os.getcwd()
    if cwd in sys.path:
        return None
    if not any(os.path.exists(os.path.join(cwd, m)) for m in _PROJECT_MARKERS):
        return None
    sys.path.insert(0, cwd)
    logger.debug(f'Added cwd to sys.path: {cwd}')
    return cwd


def import_file_path(file_path: str) -> ModuleType:
    """
    Import a module from a file path, once per real path.

    The file's directory goes on sys.path so the module can import its
    siblings. The module is registered under a name derived from its real
    path, so later calls for the same file return the loaded module.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ImportError: If the module can't be loaded
    """
    file_path = os.path.realpath(file_path)
    if not os.path.exists(file_path):
        raise FileNotFoundError(f'Module file not found: {file_path}')

    digest = hashlib.sha256(file_path.encode()).hexdigest()[:12]
    module_name = f'stepflow._apps.{digest}'
    if module_name in sys.modules:
        return sys.modules[module_name]

    parent_dir = os.path.dirname(file_path)
    if parent_dir not in sys.path:
        sys.path.insert(0, parent_dir)

    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise ImportError(f'Could not load module from path: {file_path}')

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module
