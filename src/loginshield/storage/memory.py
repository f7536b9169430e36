"""In-memory document store.

Collections are insertion-ordered lists of dicts guarded by a single
asyncio lock, so every operation is atomic with respect to other tasks
on the same event loop. Documents are deep-copied on the way in and out.
"""

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional
from uuid import uuid4

from loginshield.storage.base import DocumentStore
from loginshield.storage.query import (
    SortSpec,
    apply_update,
    get_path,
    is_missing,
    matches,
    seed_from_filter,
    sort_documents,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """DocumentStore backed by process memory.

    Used by the test suite and for local development. Not shared across
    processes.
    """

    def __init__(self):
        self._collections: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def _select(
        self,
        collection: str,
        query: Optional[Dict[str, Any]],
        sort: Optional[SortSpec] = None,
    ) -> List[Dict[str, Any]]:
        docs = [doc for doc in self._collections[collection] if matches(doc, query)]
        return sort_documents(docs, sort)

    async def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        async with self._lock:
            docs = self._select(collection, query, sort)
            if limit is not None:
                docs = docs[:limit]
            return copy.deepcopy(docs)

    async def find_one(
        self,
        collection: str,
        query: Dict[str, Any],
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            docs = self._select(collection, query, sort)
            return copy.deepcopy(docs[0]) if docs else None

    async def insert_one(self, collection: str, document: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(document)
        stored.setdefault("id", uuid4().hex)
        async with self._lock:
            self._collections[collection].append(stored)
        logger.debug("Inserted document", extra={"collection": collection, "id": stored["id"]})
        return copy.deepcopy(stored)

    async def find_one_and_update(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
        upsert: bool = False,
        return_new: bool = True,
        sort: Optional[SortSpec] = None,
    ) -> Optional[Dict[str, Any]]:
        async with self._lock:
            docs = self._select(collection, query, sort)
            if docs:
                target = docs[0]
                before = copy.deepcopy(target)
                apply_update(target, update)
                return copy.deepcopy(target) if return_new else before

            if not upsert:
                return None

            created = seed_from_filter(query)
            apply_update(created, update, is_insert=True)
            created.setdefault("id", uuid4().hex)
            self._collections[collection].append(created)
            return copy.deepcopy(created) if return_new else None

    async def update_many(
        self,
        collection: str,
        query: Dict[str, Any],
        update: Dict[str, Any],
    ) -> int:
        async with self._lock:
            docs = self._select(collection, query)
            for doc in docs:
                apply_update(doc, update)
            return len(docs)

    async def delete_many(self, collection: str, query: Dict[str, Any]) -> int:
        async with self._lock:
            kept = []
            deleted = 0
            for doc in self._collections[collection]:
                if matches(doc, query):
                    deleted += 1
                else:
                    kept.append(doc)
            self._collections[collection] = kept
            return deleted

    async def count_documents(self, collection: str, query: Optional[Dict[str, Any]] = None) -> int:
        async with self._lock:
            return len(self._select(collection, query))

    async def group_count(
        self,
        collection: str,
        key: str,
        query: Optional[Dict[str, Any]] = None,
    ) -> Dict[Any, int]:
        async with self._lock:
            counts: Dict[Any, int] = {}
            for doc in self._select(collection, query):
                value = get_path(doc, key)
                group = None if is_missing(value) else getattr(value, "value", value)
                counts[group] = counts.get(group, 0) + 1
            return counts
