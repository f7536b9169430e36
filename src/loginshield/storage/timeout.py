"""Request-scoped timeouts around every store call."""

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from loginshield.common.exceptions import StorageError, StoreTimeoutError
from loginshield.storage.base import DocumentStore
from loginshield.storage.query import SortSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TimeoutDocumentStore(DocumentStore):
    """Wraps another store and bounds each call with ``asyncio.wait_for``.

    Timeouts raise StoreTimeoutError. Any other backend failure that is not
    already a StorageError is wrapped in one, so callers handle a single
    exception family.
    """

    def __init__(self, inner: DocumentStore, timeout_seconds: float):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._inner = inner
        self._timeout = timeout_seconds

    @property
    def inner(self) -> DocumentStore:
        return self._inner

    async def _call(self, collection: str, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning(
                "Store call timed out",
                extra={"collection": collection, "operation": operation, "timeout": self._timeout},
            )
            raise StoreTimeoutError(collection, operation, self._timeout) from e
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(
                f"Store call {collection}.{operation} failed: {e}",
                collection=collection,
                operation=operation,
                details={"error_type": type(e).__name__},
            ) from e

    async def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return await self._call(collection, "find", self._inner.find(collection, query, sort, limit))

    async def find_one(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        return await self._call(collection, "find_one", self._inner.find_one(collection, query, sort))

    async def insert_one(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        return await self._call(collection, "insert_one", self._inner.insert_one(collection, document))

    async def find_one_and_update(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_new: bool = True,
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        return await self._call(
            collection,
            "find_one_and_update",
            self._inner.find_one_and_update(collection, query, update, upsert, return_new, sort),
        )

    async def update_many(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
    ) -> int:
        return await self._call(collection, "update_many", self._inner.update_many(collection, query, update))

    async def delete_many(self, collection: str, query: Dict[str, Any]) -> int:
        return await self._call(collection, "delete_many", self._inner.delete_many(collection, query))

    async def count_documents(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        return await self._call(collection, "count_documents", self._inner.count_documents(collection, query))

    async def group_count(
        self,
        collection: str,
        key: str,
        query: Optional[Dict[str, Any]] = None,
    ) -> Dict[Any, int]:
        return await self._call(collection, "group_count", self._inner.group_count(collection, key, query))
