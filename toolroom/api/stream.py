import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from toolroom.api.auth import get_current_actor
from toolroom.models.actor import Actor
from toolroom.services.change_feed import WATCHED_COLLECTIONS, watch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stream", tags=["Live Updates"])

async def sse_events(collection: str):
    async for event in watch(collection):
        yield f"event: {event['type']}\ndata: {json.dumps(event, default=str)}\n\n"

@router.get("/{collection}")
async def stream_collection(collection: str, actor: Actor = Depends(get_current_actor)):
    """Server-sent events: a snapshot, then inserts and updates as they commit."""
    if collection not in WATCHED_COLLECTIONS:
        raise HTTPException(status_code=404, detail="Unknown collection")
    logger.info(f"{actor.id} subscribed to {collection}")
    return StreamingResponse(sse_events(collection), media_type="text/event-stream")
