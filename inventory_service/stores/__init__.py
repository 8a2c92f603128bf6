from .base import Store
from .memory import MemoryStore
from .relational import RelationalStore

__all__ = [
    "Store",
    "MemoryStore",
    "RelationalStore",
]
