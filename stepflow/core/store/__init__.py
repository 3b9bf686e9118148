from stepflow.core.store.base import WorkflowStore
from stepflow.core.store.memory import MemoryStore
from stepflow.core.store.postgres import PostgresStore

__all__ = [
    'WorkflowStore',
    'MemoryStore',
    'PostgresStore',
]
