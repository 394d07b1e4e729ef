from fastapi import APIRouter, Depends

from toolroom.api.auth import get_current_actor
from toolroom.database import db
from toolroom.models.actor import Actor
from toolroom.models.requisition import RequisitionStatus
from toolroom.services.base import store_errors

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])

@router.get("/requisitions/stats")
async def get_requisition_stats(actor: Actor = Depends(get_current_actor)):
    """Counts by status."""
    with store_errors("Requisition stats"):
        stats = await db.requisitions.status_counts()

    # Fill zeros
    final_stats = {status.value: 0 for status in RequisitionStatus}
    final_stats.update(stats)
    return final_stats
