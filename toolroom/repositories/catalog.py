import re
from typing import List, Optional
from toolroom.repositories.base import BaseRepository
from toolroom.models.catalog import Tool

class ToolCatalogRepository(BaseRepository[Tool]):
    """Read-only view of the tool catalog."""

    async def get_tool(self, tool_id: str) -> Optional[Tool]:
        return await self.get(tool_id)

    async def search(self, name: str, limit: int = 20) -> List[Tool]:
        query = {"name": {"$regex": re.escape(name), "$options": "i"}}
        return await self.list(query, limit=limit, sort=[("name", 1)])
