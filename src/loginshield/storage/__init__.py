"""Storage - document store boundary."""

from loginshield.storage.base import DocumentStore
from loginshield.storage.memory import InMemoryDocumentStore
from loginshield.storage.query import QueryError
from loginshield.storage.timeout import TimeoutDocumentStore

__all__ = [
    "DocumentStore",
    "InMemoryDocumentStore",
    "QueryError",
    "TimeoutDocumentStore",
]
