from typing import List
from toolroom.repositories.base import BaseRepository
from toolroom.models.purchase_order import PurchaseOrder

class PurchaseOrderRepository(BaseRepository[PurchaseOrder]):

    async def list_for_requisition(self, requisition_id: str) -> List[PurchaseOrder]:
        """POs a requisition has been bundled into."""
        return await self.list({"requisition_ids": requisition_id})

    async def get_by_po_number(self, po_number: str) -> List[PurchaseOrder]:
        # PO numbers are caller supplied and not guaranteed unique
        return await self.list({"po_number": po_number})
