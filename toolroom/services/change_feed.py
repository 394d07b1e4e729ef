import logging
from typing import Any, AsyncIterator, Dict

from bson import ObjectId

from toolroom.database import db, REQUISITIONS, PURCHASE_ORDERS
from toolroom.models.requisition import Requisition
from toolroom.models.purchase_order import PurchaseOrder
from toolroom.services.base import store_errors

logger = logging.getLogger(__name__)

WATCHED_COLLECTIONS = {
    REQUISITIONS: Requisition,
    PURCHASE_ORDERS: PurchaseOrder,
}

WATCHED_OPERATIONS = ["insert", "update", "replace"]

def to_event(collection: str, change: Dict[str, Any]) -> Dict[str, Any]:
    """Shape a raw change-stream document for subscribers."""
    model_cls = WATCHED_COLLECTIONS[collection]
    document = change.get("fullDocument")
    key = change.get("documentKey", {}).get("_id")
    return {
        "type": change.get("operationType"),
        "collection": collection,
        "id": str(key) if isinstance(key, ObjectId) else key,
        "document": model_cls.from_mongo(document).model_dump(mode="json") if document else None,
    }

async def snapshot(collection: str, limit: int = 200) -> Dict[str, Any]:
    """Current state of a collection, most recently updated first."""
    repository = db.requisitions if collection == REQUISITIONS else db.purchase_orders
    with store_errors(f"Snapshot {collection}"):
        models = await repository.list(limit=limit)
    return {
        "type": "snapshot",
        "collection": collection,
        "documents": [m.model_dump(mode="json") for m in models],
    }

async def watch(collection: str) -> AsyncIterator[Dict[str, Any]]:
    """
    Yield one snapshot, then every insert/update in `collection` as it is
    committed. The stream is opened before the snapshot is read.
    """
    if collection not in WATCHED_COLLECTIONS:
        raise ValueError(f"Collection not watchable: {collection}")

    pipeline = [{"$match": {"operationType": {"$in": WATCHED_OPERATIONS}}}]
    with store_errors(f"Watch {collection}"):
        async with db.collection(collection).watch(pipeline, full_document="updateLookup") as stream:
            yield await snapshot(collection)
            async for change in stream:
                event = to_event(collection, change)
                logger.debug(f"Change on {collection}: {event['type']} {event['id']}")
                yield event
