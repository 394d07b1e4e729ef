from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from toolroom.api.auth import get_current_actor
from toolroom.database import db
from toolroom.models.actor import Actor
from toolroom.models.catalog import Tool
from toolroom.services.base import store_errors

router = APIRouter(prefix="/api/catalog", tags=["Tool Catalog"])

@router.get("/tools", response_model=List[Tool])
async def search_tools(
    name: str = Query("", max_length=100),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor)
):
    """Lookup used to prefill requisition lines."""
    with store_errors("Tool catalog search"):
        if not name:
            return await db.tools.list(limit=limit, sort=[("name", 1)])
        return await db.tools.search(name, limit=limit)

@router.get("/tools/{tool_id}", response_model=Tool)
async def get_tool(tool_id: str, actor: Actor = Depends(get_current_actor)):
    with store_errors("Tool catalog lookup"):
        tool = await db.tools.get_tool(tool_id)
    if not tool:
        raise HTTPException(status_code=404, detail="Tool not found")
    return tool
