"""Repository base - typed access to one store collection."""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from loginshield.common.exceptions import RecordNotFoundError
from loginshield.data.schemas.common import utc_now
from loginshield.storage.base import DocumentStore

M = TypeVar("M")


def to_document(model: BaseModel) -> Dict[str, Any]:
    """Serialize a record for the store, keeping datetimes native."""
    return model.model_dump(mode="python")


class Repository(Generic[M]):
    """Maps one collection to one pydantic record type.

    Subclasses set ``collection`` and ``model`` and add their domain
    operations on top of the store primitives.
    """

    collection: str = ""
    model: Type[BaseModel]

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    def _validate(self, document: Dict[str, Any]) -> M:
        return self.model.model_validate(document)

    def _parse(self, document: Optional[Dict[str, Any]]) -> Optional[M]:
        if document is None:
            return None
        return self._validate(document)

    def _parse_many(self, documents: List[Dict[str, Any]]) -> List[M]:
        return [self._validate(doc) for doc in documents]

    async def get(self, record_id: str) -> Optional[M]:
        return self._parse(await self._store.find_one(self.collection, {"id": record_id}))

    async def require(self, record_id: str) -> M:
        """Like get() but raises RecordNotFoundError."""
        record = await self.get(record_id)
        if record is None:
            raise RecordNotFoundError(self.collection, record_id)
        return record

    async def _update_by_id(self, record_id: str, update: Dict[str, Any]) -> M:
        update = dict(update)
        update["$set"] = {**update.get("$set", {}), "updated_at": utc_now()}
        document = await self._store.find_one_and_update(self.collection, {"id": record_id}, update)
        if document is None:
            raise RecordNotFoundError(self.collection, record_id)
        return self._validate(document)
