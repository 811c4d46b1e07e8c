"""
Persistence seam.

Engine components receive a ``Store``; pick the implementation at the edge.
"""

from affiliate.store.base import Store
from affiliate.store.memory_store import InMemoryStore
from affiliate.store.sqlalchemy_store import SqlAlchemyStore


__all__ = ["InMemoryStore", "SqlAlchemyStore", "Store"]
