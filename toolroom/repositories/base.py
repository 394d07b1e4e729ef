from typing import Generic, TypeVar, Any, Dict, List, Optional, Sequence
from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING
from toolroom.models.base import MongoModel

T = TypeVar("T", bound=MongoModel)

def to_object_id(id: str) -> Optional[ObjectId]:
    """ObjectId for an id string, or None when the string can't be one."""
    try:
        return ObjectId(id)
    except (InvalidId, TypeError):
        return None

class BaseRepository(Generic[T]):
    # List views show the most recently touched documents first
    default_sort = [("updated_at", DESCENDING)]

    def __init__(self, collection: AsyncIOMotorCollection, model_cls: type[T]):
        self.collection = collection
        self.model_cls = model_cls

    async def get(self, id: str, session: AsyncIOMotorClientSession = None) -> Optional[T]:
        """Get a document by ID."""
        oid = to_object_id(id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid}, session=session)
        return self.model_cls.from_mongo(doc) if doc else None

    async def get_many(self, ids: Sequence[str], session: AsyncIOMotorClientSession = None) -> Dict[str, T]:
        """Fetch several documents at once, keyed by id. Missing ids are absent."""
        oids = [oid for oid in (to_object_id(i) for i in ids) if oid is not None]
        if not oids:
            return {}
        cursor = self.collection.find({"_id": {"$in": oids}}, session=session)
        docs = await cursor.to_list(length=len(oids))
        models = [self.model_cls.from_mongo(doc) for doc in docs]
        return {m.id: m for m in models}
    async def list(self, filter: Optional[Dict[str, Any]] = None, skip: int = 0, limit: int = 100,
                   sort: Optional[List] = None) -> List[T]:
        """List documents with optional filter and pagination."""
        cursor = self.collection.find(filter or {}).sort(sort or self.default_sort).skip(skip).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [self.model_cls.from_mongo(doc) for doc in docs]

    async def create(self, model: T, session: AsyncIOMotorClientSession = None) -> T:
        """Create a new document. A preassigned model.id is kept."""
        data = model.to_mongo()
        result = await self.collection.insert_one(data, session=session)
        model.id = str(result.inserted_id)
        return model
