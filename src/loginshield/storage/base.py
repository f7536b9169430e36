"""Document Store - Abstraction for record persistence.

This module provides the interface the repositories talk to, decoupling
the engine from any specific database.

Design principles:
- Documents are plain dicts keyed by a string "id"
- Every operation is async
- Read-then-write logic goes through atomic primitives
  (find_one_and_update with $inc/$set/$push/$setOnInsert, upsert)
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from loginshield.storage.query import SortSpec


class DocumentStore(ABC):
    """Abstract base class for document store backends.

    Implementations must apply each single-document update atomically.
    """

    @abstractmethod
    async def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return documents matching the query.

        Args:
            collection: Collection name
            query: Filter document, None matches everything
            sort: Sequence of (path, direction) pairs, 1 ascending, -1 descending
            limit: Maximum number of documents

        Returns:
            Copies of the matching documents
        """

    @abstractmethod
    async def find_one(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        """Return the first matching document or None."""

    @abstractmethod
    async def insert_one(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a document. An "id" is generated when absent."""

    @abstractmethod
    async def find_one_and_update(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_new: bool = True,
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        """Atomically update the first matching document.

        Args:
            collection: Collection name
            query: Filter selecting the document
            update: Update operators
            upsert: Insert a document built from the filter's equality
                clauses and the update when nothing matches
            return_new: Return the document after the update instead of before
            sort: Ordering used to pick the first match

        Returns:
            The document (before or after), or None when nothing matched
            and no upsert happened
        """

    @abstractmethod
    async def update_many(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
    ) -> int:
        """Apply an update to every matching document. Returns the count modified."""

    @abstractmethod
    async def delete_many(self, collection: str, query: Dict[str, Any]) -> int:
        """Delete every matching document. Returns the count deleted."""

    @abstractmethod
    async def count_documents(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        """Count matching documents."""

    @abstractmethod
    async def group_count(
        self,
        collection: str,
        key: str,
        query: Optional[Dict[str, Any]] = None,
    ) -> Dict[Any, int]:
        """Count matching documents grouped by the value at ``key``.

        Documents without the key are grouped under None.
        """

    async def increment(
        self,
        collection: str,
        query: Dict[str, Any],
        fields: Dict[str, float],
        set_fields: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Atomically add to numeric fields of the first matching document.

        Args:
            collection: Collection name
            query: Filter selecting the document
            fields: Path -> amount to add
            set_fields: Extra fields to set in the same update

        Returns:
            The updated document, or None when nothing matched
        """
        update: Dict[str, Any] = {"$inc": dict(fields)}
        if set_fields:
            update["$set"] = dict(set_fields)
        return await self.find_one_and_update(collection, query, update)
