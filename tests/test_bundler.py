import pytest
from unittest.mock import AsyncMock

from toolroom.exceptions import (
    InvalidSelectionError, NotFoundError, PermissionDeniedError, StoreError, ValidationError
)
from toolroom.models.requisition import RequisitionStatus
from toolroom.services.bundler import POBundler, bundle_items, unique_ids
from toolroom.services.ledger import RequisitionLedger


PO_FORM = {
    "po_number": "PO-100",
    "vendor": "MSC Industrial",
    "project_job": "Job-1",
    "shipping_type": "Standard",
    "shipping_cost": "5",
}


async def approved_pair(ledger, operator, approver, endmill_form, insert_form):
    first = await ledger.create_requisition(endmill_form, operator)
    second = await ledger.create_requisition(insert_form, operator)
    await ledger.approve(first, approver)
    await ledger.approve(second, approver)
    return first, second


@pytest.mark.asyncio
async def test_create_po_bundles_approved_requisitions(store, operator, manager, purchasing,
                                                       endmill_form, insert_form, mock_notify):
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)

    po_id = await POBundler().create_po(PO_FORM, [first, second], purchasing)

    po = store.purchase_orders.docs[po_id]
    assert po.po_number == "PO-100"
    assert po.requisition_ids == [first, second]
    assert [item.description for item in po.items] == ["Endmill", "Insert"]
    assert po.items[0].source_requisition_ids == [first]
    assert po.items[1].source_requisition_ids == [second]
    assert po.items[1].subtotal == 20.0
    assert po.subtotal == 50.0
    assert po.shipping_cost == 5.0
    assert po.total == 55.0
    assert po.status == "pending"
    assert po.created_by.identity == "pur-1"

    for rid in (first, second):
        req = store.requisitions.docs[rid]
        assert req.status == RequisitionStatus.PO_CREATED
        assert req.linked_po_ids == [po_id]
        assert req.updated_at == po.created_at
    assert store.commits == 1

    _, bundler_notify = mock_notify
    bundler_notify.send_notification.assert_awaited_once()
    assert bundler_notify.send_notification.call_args[0][0] == ["op-1"]

@pytest.mark.asyncio
async def test_mixed_approval_levels_bundle_together(store, operator, manager, cfo, purchasing,
                                                     endmill_form, insert_form):
    ledger = RequisitionLedger()
    first = await ledger.create_requisition(endmill_form, operator)
    second = await ledger.create_requisition(insert_form, operator)
    await ledger.approve(first, manager)
    await ledger.approve(second, cfo)

    po_id = await POBundler().create_po(PO_FORM, [first, second], purchasing)
    assert store.purchase_orders.docs[po_id].total == 55.0

@pytest.mark.asyncio
async def test_unapproved_requisition_blocks_whole_batch(store, operator, manager, purchasing,
                                                         endmill_form, insert_form):
    ledger = RequisitionLedger()
    approved = await ledger.create_requisition(endmill_form, operator)
    pending = await ledger.create_requisition(insert_form, operator)
    await ledger.approve(approved, manager)

    with pytest.raises(InvalidSelectionError) as exc:
        await POBundler().create_po(PO_FORM, [approved, pending], purchasing)

    assert exc.value.offending == [pending]
    assert store.purchase_orders.docs == {}
    assert store.requisitions.docs[approved].status == RequisitionStatus.APPROVED_MANAGER
    assert store.requisitions.docs[approved].linked_po_ids == []
    assert store.requisitions.docs[pending].status == RequisitionStatus.SUBMITTED

@pytest.mark.asyncio
async def test_requisition_cannot_join_two_pos(store, operator, manager, purchasing,
                                               endmill_form, insert_form):
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)
    bundler = POBundler()
    po_id = await bundler.create_po(PO_FORM, [first], purchasing)

    with pytest.raises(InvalidSelectionError) as exc:
        await bundler.create_po({**PO_FORM, "po_number": "PO-101"}, [first, second], purchasing)

    assert exc.value.offending == [first]
    assert list(store.purchase_orders.docs) == [po_id]
    assert store.requisitions.docs[second].status == RequisitionStatus.APPROVED_MANAGER

@pytest.mark.asyncio
async def test_missing_requisition_is_not_found(store, operator, manager, purchasing, endmill_form):
    ledger = RequisitionLedger()
    rid = await ledger.create_requisition(endmill_form, operator)
    await ledger.approve(rid, manager)

    with pytest.raises(NotFoundError):
        await POBundler().create_po(PO_FORM, [rid, "64b0000000000000000000ff"], purchasing)
    assert store.purchase_orders.docs == {}
    assert store.requisitions.docs[rid].status == RequisitionStatus.APPROVED_MANAGER

@pytest.mark.asyncio
@pytest.mark.parametrize("form,ids,field", [
    ({**PO_FORM, "po_number": "  "}, ["x"], "po_number"),
    ({**PO_FORM, "project_job": ""}, ["x"], "project_job"),
    (PO_FORM, [], "requisition_ids"),
    (PO_FORM, ["", "  "], "requisition_ids"),
])
async def test_form_validation(store, purchasing, form, ids, field):
    with pytest.raises(ValidationError) as exc:
        await POBundler().create_po(form, ids, purchasing)
    assert exc.value.field == field
    assert store.purchase_orders.docs == {}

@pytest.mark.asyncio
async def test_po_number_checked_before_project_job(store, purchasing):
    with pytest.raises(ValidationError) as exc:
        await POBundler().create_po({"po_number": "", "project_job": ""}, [], purchasing)
    assert exc.value.field == "po_number"

@pytest.mark.asyncio
async def test_only_po_roles_can_bundle(store, operator, manager, endmill_form):
    from toolroom.models.actor import Actor
    buyer = Actor(id="buy-1", name="Buyer", role="buyer")
    ledger = RequisitionLedger()
    rid = await ledger.create_requisition(endmill_form, operator)
    await ledger.approve(rid, manager)

    for actor in (operator, buyer):
        with pytest.raises(PermissionDeniedError):
            await POBundler().create_po(PO_FORM, [rid], actor)
    assert store.purchase_orders.docs == {}

@pytest.mark.asyncio
async def test_duplicate_ids_are_collapsed(store, operator, manager, purchasing, endmill_form):
    ledger = RequisitionLedger()
    rid = await ledger.create_requisition(endmill_form, operator)
    await ledger.approve(rid, manager)

    po_id = await POBundler().create_po(PO_FORM, [rid, rid], purchasing)

    po = store.purchase_orders.docs[po_id]
    assert po.requisition_ids == [rid]
    assert len(po.items) == 1
    assert po.subtotal == 30.0

@pytest.mark.asyncio
async def test_unselected_requisitions_untouched(store, operator, manager, purchasing,
                                                 endmill_form, insert_form):
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)
    before = store.requisitions.docs[second].model_copy(deep=True)

    await POBundler().create_po(PO_FORM, [first], purchasing)

    assert store.requisitions.docs[second] == before

@pytest.mark.asyncio
async def test_failed_commit_leaves_nothing_behind(store, operator, manager, purchasing,
                                                   endmill_form, insert_form, mock_notify):
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)
    store.fail_next_commit = True

    with pytest.raises(StoreError):
        await POBundler().create_po(PO_FORM, [first, second], purchasing)

    assert store.purchase_orders.docs == {}
    for rid in (first, second):
        assert store.requisitions.docs[rid].status == RequisitionStatus.APPROVED_MANAGER
        assert store.requisitions.docs[rid].linked_po_ids == []
    _, bundler_notify = mock_notify
    bundler_notify.send_notification.assert_not_awaited()

@pytest.mark.asyncio
async def test_selection_changed_mid_transaction_rolls_back(store, operator, manager, purchasing,
                                                            endmill_form, insert_form):
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)
    # A concurrent rejection lands between the read and the conditional update
    store.requisitions.mark_po_created = AsyncMock(return_value=1)

    with pytest.raises(InvalidSelectionError):
        await POBundler().create_po(PO_FORM, [first, second], purchasing)

    assert store.purchase_orders.docs == {}
    assert store.commits == 0

@pytest.mark.asyncio
async def test_negative_shipping_clamped(store, operator, manager, purchasing, endmill_form):
    ledger = RequisitionLedger()
    rid = await ledger.create_requisition(endmill_form, operator)
    await ledger.approve(rid, manager)

    po_id = await POBundler().create_po({**PO_FORM, "shipping_cost": "-12"}, [rid], purchasing)

    po = store.purchase_orders.docs[po_id]
    assert po.shipping_cost == 0
    assert po.total == po.subtotal == 30.0

@pytest.mark.asyncio
async def test_preview_reports_selection(store, operator, manager, endmill_form, insert_form):
    ledger = RequisitionLedger()
    approved = await ledger.create_requisition(endmill_form, operator)
    pending = await ledger.create_requisition(insert_form, operator)
    await ledger.approve(approved, manager)

    preview = await POBundler().preview([approved, pending, "gone", approved])

    assert preview["requisition_ids"] == [approved, pending]
    assert preview["missing"] == ["gone"]
    assert preview["not_approved"] == [pending]
    assert preview["item_count"] == 2
    assert preview["subtotal"] == 50.0
    assert preview["project_job"] == "Job-1"
    assert store.purchase_orders.docs == {}

@pytest.mark.asyncio
async def test_get_missing_po(store):
    with pytest.raises(NotFoundError):
        await POBundler().get("nope")


def test_unique_ids_keeps_order():
    assert unique_ids(["b", " a ", "b", "", None, "c"]) == ["b", "a", "c"]

def test_bundle_items_keeps_identical_lines_apart():
    from toolroom.models.requisition import LineItem, Requisition
    one = Requisition(id="r1", project_job="Job-1", items=[LineItem(description="Endmill", qty=2, unit_cost=15)])
    two = Requisition(id="r2", project_job="Job-1", items=[LineItem(description="Endmill", qty=2, unit_cost=15)])

    items = bundle_items([one, two])

    assert len(items) == 2
    assert [i.source_requisition_ids for i in items] == [["r1"], ["r2"]]
    assert all(i.subtotal == 30.0 for i in items)

@pytest.mark.asyncio
async def test_po_lookups(store, operator, manager, purchasing, endmill_form, insert_form):
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)
    bundler = POBundler()
    po_id = await bundler.create_po(PO_FORM, [first], purchasing)

    assert [po.id for po in await bundler.purchase_orders_for(first)] == [po_id]
    assert await bundler.purchase_orders_for(second) == []
    assert [po.id for po in await bundler.list_purchase_orders(po_number=" PO-100 ")] == [po_id]
    assert len(await bundler.list_purchase_orders()) == 1

@pytest.mark.asyncio
async def test_po_created_never_moves_updated_at_backwards(store, operator, manager, purchasing, endmill_form):
    from datetime import timedelta
    ledger = RequisitionLedger()
    rid = await ledger.create_requisition(endmill_form, operator)
    await ledger.approve(rid, manager)
    # Last write stamped by a clock running ahead of ours
    ahead = store.requisitions.docs[rid].updated_at + timedelta(seconds=5)
    store.requisitions.docs[rid].updated_at = ahead

    po_id = await POBundler().create_po(PO_FORM, [rid], purchasing)

    req = store.requisitions.docs[rid]
    assert req.status == RequisitionStatus.PO_CREATED
    assert req.updated_at > ahead
    assert store.purchase_orders.docs[po_id].created_at == req.updated_at

@pytest.mark.asyncio
async def test_rejected_requisition_can_never_be_bundled(store, operator, manager, purchasing,
                                                         endmill_form, insert_form):
    ledger = RequisitionLedger()
    approved = await ledger.create_requisition(endmill_form, operator)
    rejected = await ledger.create_requisition(insert_form, operator)
    await ledger.approve(approved, manager)
    await ledger.approve(rejected, manager)
    await ledger.reject(rejected, manager, reason="Duplicate")
    before = {rid: store.requisitions.docs[rid].model_copy(deep=True) for rid in (approved, rejected)}
    bundler = POBundler()

    for selection in ([rejected], [approved, rejected], [rejected, approved]):
        with pytest.raises(InvalidSelectionError) as exc:
            await bundler.create_po(PO_FORM, selection, purchasing)
        assert exc.value.offending == [rejected]

    assert store.purchase_orders.docs == {}
    assert store.commits == 0
    for rid, snapshot in before.items():
        assert store.requisitions.docs[rid] == snapshot

@pytest.mark.asyncio
async def test_list_uses_configured_page_size(store, operator, manager, purchasing, endmill_form, insert_form):
    from unittest.mock import patch
    ledger = RequisitionLedger()
    first, second = await approved_pair(ledger, operator, manager, endmill_form, insert_form)
    bundler = POBundler()
    await bundler.create_po(PO_FORM, [first], purchasing)
    await bundler.create_po({**PO_FORM, "po_number": "PO-101"}, [second], purchasing)

    with patch("toolroom.services.bundler.settings") as mock_settings:
        mock_settings.DEFAULT_PAGE_SIZE = 1
        assert len(await bundler.list_purchase_orders()) == 1
    assert len(await bundler.list_purchase_orders(limit=10)) == 2
