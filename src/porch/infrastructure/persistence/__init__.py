"""
Persistence adapters for project state.
"""

from porch.infrastructure.persistence.filesystem import FilesystemStateStore
from porch.infrastructure.persistence.memory import InMemoryStateStore

__all__ = [
    "InMemoryStateStore",
    "FilesystemStateStore",
]
