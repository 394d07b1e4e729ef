import copy
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, patch

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure

from toolroom.models.actor import Actor
from toolroom.models.catalog import Tool
from toolroom.models.purchase_order import PurchaseOrder
from toolroom.models.requisition import BUNDLEABLE_STATUSES, Requisition, RequisitionStatus
from toolroom.repositories.requisition import APPROVAL_QUEUES


class InMemoryRepository:
    """Dict-backed stand-in for a BaseRepository, keyed by string id."""

    def __init__(self, model_cls):
        self.model_cls = model_cls
        self.docs: Dict[str, Any] = {}

    def _copy(self, model):
        return model.model_copy(deep=True) if model is not None else None

    async def get(self, id: str, session=None):
        return self._copy(self.docs.get(id))

    async def get_many(self, ids, session=None):
        return {i: self._copy(self.docs[i]) for i in ids if i in self.docs}

    async def list(self, filter=None, skip: int = 0, limit: int = 100, sort=None):
        models = sorted(self.docs.values(), key=lambda m: m.updated_at, reverse=True)
        return [self._copy(m) for m in models[skip:skip + limit]]

    async def create(self, model, session=None):
        if model.id is None:
            model.id = str(ObjectId())
        self.docs[model.id] = self._copy(model)
        return model


class InMemoryRequisitions(InMemoryRepository):

    def __init__(self):
        super().__init__(Requisition)
        # Runs once, just before the next compare_and_set, to simulate a racing writer
        self.before_compare_and_set: Optional[Callable[[], None]] = None

    async def compare_and_set(self, requisition_id: str, expected_status: str, changes: Dict[str, Any]):
        if self.before_compare_and_set:
            hook, self.before_compare_and_set = self.before_compare_and_set, None
            hook()
        current = self.docs.get(requisition_id)
        if current is None or current.status != expected_status:
            return None
        data = current.model_dump()
        for key, value in changes.items():
            target = data
            *parents, leaf = key.split(".")
            for part in parents:
                target = target.setdefault(part, {})
            target[leaf] = copy.deepcopy(value)
        updated = Requisition.model_validate(data)
        self.docs[requisition_id] = updated
        return self._copy(updated)

    async def mark_po_created(self, requisition_ids, po_id, timestamp, session=None) -> int:
        flipped = 0
        for rid in requisition_ids:
            req = self.docs.get(rid)
            if req is None or req.status not in BUNDLEABLE_STATUSES:
                continue
            req.status = RequisitionStatus.PO_CREATED.value
            req.updated_at = timestamp
            if po_id not in req.linked_po_ids:
                req.linked_po_ids.append(po_id)
            flipped += 1
        return flipped

    async def list_by_status(self, statuses, skip: int = 0, limit: int = 100):
        return [r for r in await self.list(limit=10_000) if r.status in statuses][skip:skip + limit]

    async def approval_queue(self, level, limit: int = 100):
        wanted = APPROVAL_QUEUES[level]
        queue = [r for r in await self.list(limit=10_000) if r.status in wanted]
        # stable sort keeps updated_at desc inside each group
        return sorted(queue, key=lambda r: not r.machine_down)[:limit]

    async def status_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for r in self.docs.values():
            counts[r.status] = counts.get(r.status, 0) + 1
        return counts


class InMemoryPurchaseOrders(InMemoryRepository):

    def __init__(self):
        super().__init__(PurchaseOrder)

    async def list_for_requisition(self, requisition_id: str):
        return [po for po in await self.list(limit=10_000) if requisition_id in po.requisition_ids]

    async def get_by_po_number(self, po_number: str):
        return [po for po in await self.list(limit=10_000) if po.po_number == po_number]


class InMemoryTools(InMemoryRepository):

    def __init__(self):
        super().__init__(Tool)

    async def list(self, filter=None, skip: int = 0, limit: int = 100, sort=None):
        tools = sorted(self.docs.values(), key=lambda t: t.name)
        return [self._copy(t) for t in tools[skip:skip + limit]]

    async def get_tool(self, tool_id: str):
        return await self.get(tool_id)

    async def search(self, name: str, limit: int = 20):
        return [self._copy(t) for t in self.docs.values() if name.lower() in t.name.lower()][:limit]


class InMemoryStore:
    """
    Stand-in for toolroom.database.db. transaction() snapshots every
    collection and restores it if the block raises, or if fail_next_commit
    is set, which mimics an aborted MongoDB transaction.
    """

    def __init__(self):
        self.requisitions = InMemoryRequisitions()
        self.purchase_orders = InMemoryPurchaseOrders()
        self.tools = InMemoryTools()
        self.fail_next_commit = False
        self.commits = 0

    def _repositories(self) -> List[InMemoryRepository]:
        return [self.requisitions, self.purchase_orders, self.tools]

    @asynccontextmanager
    async def transaction(self):
        saved = [copy.deepcopy(repo.docs) for repo in self._repositories()]
        try:
            yield object()
            if self.fail_next_commit:
                self.fail_next_commit = False
                raise OperationFailure("Transaction aborted: WriteConflict")
            self.commits += 1
        except BaseException:
            for repo, docs in zip(self._repositories(), saved):
                repo.docs = docs
            raise


@pytest.fixture
def store():
    """In-memory store patched into every module that talks to the database."""
    fake = InMemoryStore()
    with patch("toolroom.services.ledger.db", fake), \
         patch("toolroom.services.bundler.db", fake), \
         patch("toolroom.api.catalog.db", fake), \
         patch("toolroom.api.dashboard.db", fake):
        yield fake


@pytest.fixture
def mock_notify():
    with patch("toolroom.services.ledger.notification_tool") as ledger_notify, \
         patch("toolroom.services.bundler.notification_tool") as bundler_notify:
        ledger_notify.send_notification = AsyncMock()
        bundler_notify.send_notification = AsyncMock()
        yield ledger_notify, bundler_notify


@pytest.fixture
def operator():
    return Actor(id="op-1", name="Floor Operator", role="operator")


@pytest.fixture
def manager():
    return Actor(id="mgr-1", name="Shop Manager", role="manager")


@pytest.fixture
def cfo():
    return Actor(id="cfo-1", name="Finance Chief", role="cfo")


@pytest.fixture
def purchasing():
    return Actor(id="pur-1", name="Purchasing Desk", role="purchasing")


@pytest.fixture
def admin():
    return Actor(id="adm-1", name="Admin", role="admin")


@pytest.fixture
def endmill_form():
    return {
        "department": "Machining",
        "type": "Disposable Tooling",
        "project_job": "Job-1",
        "customer": "Acme Aero",
        "machine_down": "No",
        "items": [
            {"description": "Endmill", "qty": 2, "unit_cost": 15}
        ]
    }


@pytest.fixture
def insert_form():
    return {
        "department": "Turning",
        "type": "Disposable Tooling",
        "project_job": "Job-1",
        "items": [
            {"manufacturer": "Sandvik", "part_number": "CNMG432", "description": "Insert", "qty": 4, "unit_cost": 5}
        ]
    }
