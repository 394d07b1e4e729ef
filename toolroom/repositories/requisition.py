from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from motor.motor_asyncio import AsyncIOMotorClientSession
from pymongo import DESCENDING, ReturnDocument
from toolroom.repositories.base import BaseRepository, to_object_id
from toolroom.models.requisition import (
    Requisition, RequisitionStatus, ApprovalLevel, BUNDLEABLE_STATUSES
)

# Statuses each approval level works from
APPROVAL_QUEUES = {
    ApprovalLevel.MANAGER: [RequisitionStatus.SUBMITTED.value],
    ApprovalLevel.CFO: [RequisitionStatus.SUBMITTED.value, RequisitionStatus.APPROVED_MANAGER.value],
}

class RequisitionRepository(BaseRepository[Requisition]):

    async def compare_and_set(self, requisition_id: str, expected_status: str,
                              changes: Dict[str, Any]) -> Optional[Requisition]:
        """
        Apply `changes` only if the stored status still equals `expected_status`.
        Returns the updated requisition, or None when the status moved (or the
        document vanished) since it was read.
        """
        oid = to_object_id(requisition_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid, "status": expected_status},
            {"$set": changes},
            return_document=ReturnDocument.AFTER
        )
        return self.model_cls.from_mongo(doc) if doc else None

    async def mark_po_created(self, requisition_ids: Sequence[str], po_id: str, timestamp: datetime,
                              session: AsyncIOMotorClientSession = None) -> int:
        """
        Flip approved requisitions to po_created and link the PO.
        Returns how many were flipped; callers compare against the selection size.
        """
        oids = [to_object_id(i) for i in requisition_ids]
        result = await self.collection.update_many(
            {"_id": {"$in": oids}, "status": {"$in": list(BUNDLEABLE_STATUSES)}},
            {
                "$set": {"status": RequisitionStatus.PO_CREATED.value, "updated_at": timestamp},
                "$addToSet": {"linked_po_ids": po_id}
            },
            session=session
        )
        return result.modified_count

    async def list_by_status(self, statuses: Sequence[str], skip: int = 0, limit: int = 100) -> List[Requisition]:
        return await self.list({"status": {"$in": list(statuses)}}, skip=skip, limit=limit)

    async def approval_queue(self, level: ApprovalLevel, limit: int = 100) -> List[Requisition]:
        """Requisitions awaiting `level`, machine-down requests first."""
        return await self.list(
            {"status": {"$in": APPROVAL_QUEUES[ApprovalLevel(level)]}},
            limit=limit,
            sort=[("machine_down", DESCENDING), ("updated_at", DESCENDING)]
        )

    async def status_counts(self) -> Dict[str, int]:
        pipeline = [
            {"$group": {"_id": "$status", "count": {"$sum": 1}}}
        ]
        cursor = self.collection.aggregate(pipeline)
        return {doc["_id"]: doc["count"] for doc in await cursor.to_list(length=None)}
