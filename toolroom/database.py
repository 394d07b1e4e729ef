import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorCollection
from toolroom.config import settings
from toolroom.repositories.requisition import RequisitionRepository
from toolroom.repositories.purchase_order import PurchaseOrderRepository
from toolroom.repositories.catalog import ToolCatalogRepository
from toolroom.models.requisition import Requisition
from toolroom.models.purchase_order import PurchaseOrder
from toolroom.models.catalog import Tool

logger = logging.getLogger(__name__)

REQUISITIONS = "requisitions"
PURCHASE_ORDERS = "purchase_orders"
TOOLS = "tools"

class Database:
    client: AsyncIOMotorClient = None

    # Repositories
    requisitions: RequisitionRepository = None
    purchase_orders: PurchaseOrderRepository = None
    tools: ToolCatalogRepository = None

    def connect(self):
        """Initialize database connection and repositories."""
        self.client = AsyncIOMotorClient(settings.MONGODB_URL, tz_aware=False)
        self._db = self.client[settings.DB_NAME]

        self.requisitions = RequisitionRepository(self._db[REQUISITIONS], Requisition)
        self.purchase_orders = PurchaseOrderRepository(self._db[PURCHASE_ORDERS], PurchaseOrder)
        self.tools = ToolCatalogRepository(self._db[TOOLS], Tool)

        logger.info(f"Connected to MongoDB database {settings.DB_NAME}")

    def close(self):
        """Close database connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    def collection(self, name: str) -> AsyncIOMotorCollection:
        return self._db[name]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncIOMotorClientSession]:
        """
        Multi-document transaction. Writes made with the yielded session commit
        together on clean exit; any exception aborts all of them.
        Requires MongoDB running as a replica set.
        """
        async with await self.client.start_session() as session:
            async with session.start_transaction():
                yield session

db = Database()
