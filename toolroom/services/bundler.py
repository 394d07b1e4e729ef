import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError

from toolroom.config import settings
from toolroom.database import db
from toolroom.exceptions import InvalidSelectionError, NotFoundError, ValidationError
from toolroom.guardrails.permissions import Permission, permission_checker
from toolroom.models.actor import Actor
from toolroom.models.base import next_timestamp
from toolroom.models.purchase_order import POForm, POLineItem, POStatus, PurchaseOrder
from toolroom.models.requisition import BUNDLEABLE_STATUSES, CreatedBy, Requisition
from toolroom.services.base import store_errors
from toolroom.services.totals import line_subtotal, po_totals, selection_total
from toolroom.tools.notification_tool import notification_tool

logger = logging.getLogger(__name__)

def unique_ids(requisition_ids: Sequence[str]) -> List[str]:
    """Selection order kept, blanks and repeats dropped."""
    seen = []
    for rid in requisition_ids or []:
        rid = (rid or "").strip()
        if rid and rid not in seen:
            seen.append(rid)
    return seen

def bundle_items(requisitions: Sequence[Requisition]) -> List[POLineItem]:
    """
    Concatenate the requisitions' items in selection order. Identical lines
    from different requisitions stay separate so each traces to one source.
    """
    items = []
    for requisition in requisitions:
        for item in requisition.items:
            items.append(POLineItem(
                manufacturer=item.manufacturer,
                part_number=item.part_number,
                description=item.description,
                qty=item.qty,
                unit_cost=item.unit_cost,
                tool_id=item.tool_id,
                source_requisition_ids=[requisition.id],
                subtotal=line_subtotal(item),
            ))
    return items

class POBundler:
    """
    Turns approved requisitions into a single purchase order.

    The PO insert and the po_created flip of every source requisition happen
    in one transaction: either the PO exists and all of its requisitions point
    at it, or nothing changed.
    """
    def __init__(self):
        pass

    async def create_po(self, po_form: Union[POForm, Dict[str, Any]], requisition_ids: Sequence[str],
                        actor: Actor) -> str:
        permission_checker.require(actor, Permission.CREATE_PO)
        form = self._parse_form(po_form)
        selected = unique_ids(requisition_ids)

        po_number = (form.po_number or "").strip()
        project_job = (form.project_job or "").strip()
        if not po_number:
            raise ValidationError("PO Number is required", field="po_number")
        if not project_job:
            raise ValidationError("Project / Job is required", field="project_job")
        if not selected:
            raise ValidationError("Select requisitions", field="requisition_ids")

        po_id = str(ObjectId())

        with store_errors(f"Create PO {po_number}"):
            async with db.transaction() as session:
                found = await db.requisitions.get_many(selected, session=session)
                missing = [rid for rid in selected if rid not in found]
                if missing:
                    raise NotFoundError("Requisition", ", ".join(missing))

                requisitions = [found[rid] for rid in selected]
                self._check_selection(requisitions)
                # Strictly after every source requisition's last write
                timestamp = next_timestamp(max(r.updated_at for r in requisitions))

                items = bundle_items(requisitions)
                subtotal, shipping, total = po_totals(items, form.shipping_cost)

                po = PurchaseOrder(
                    id=po_id,
                    po_number=po_number,
                    vendor=(form.vendor or "").strip(),
                    project_job=project_job,
                    shipping_type=form.shipping_type,
                    shipping_cost=shipping,
                    notes=form.notes or "",
                    requisition_ids=selected,
                    items=items,
                    subtotal=subtotal,
                    total=total,
                    status=POStatus.PENDING,
                    created_by=CreatedBy(identity=actor.id, display_name=actor.name),
                    created_at=timestamp,
                    updated_at=timestamp,
                )
                await db.purchase_orders.create(po, session=session)

                flipped = await db.requisitions.mark_po_created(selected, po_id, timestamp, session=session)
                if flipped != len(selected):
                    # Someone moved a requisition between our read and write
                    raise InvalidSelectionError(
                        selected, "Selection changed while creating the PO; nothing was saved"
                    )

        logger.info(
            f"PO {po_number} ({po_id}) created by {actor.id} from {len(selected)} requisition(s): "
            f"{len(items)} items, subtotal {subtotal:.2f}, shipping {shipping:.2f}, total {total:.2f}"
        )
        requesters = sorted({r.created_by.identity for r in requisitions if r.created_by})
        if requesters:
            await notification_tool.send_notification(
                requesters,
                f"PO {po_number} created",
                f"Your requisition(s) for {project_job} were ordered on PO {po_number}"
            )
        return po_id

    async def preview(self, requisition_ids: Sequence[str]) -> Dict[str, Any]:
        """Running total of a prospective PO. No side effects."""
        selected = unique_ids(requisition_ids)
        with store_errors("Preview PO"):
            found = await db.requisitions.get_many(selected)
        requisitions = [found[rid] for rid in selected if rid in found]
        return {
            "requisition_ids": [r.id for r in requisitions],
            "missing": [rid for rid in selected if rid not in found],
            "not_approved": [r.id for r in requisitions if r.status not in BUNDLEABLE_STATUSES],
            "item_count": sum(len(r.items) for r in requisitions),
            "subtotal": selection_total(requisitions),
            "project_job": requisitions[0].project_job if requisitions else "",
        }

    async def get(self, po_id: str) -> PurchaseOrder:
        with store_errors("Load PO"):
            po = await db.purchase_orders.get(po_id)
        if po is None:
            raise NotFoundError("Purchase order", po_id)
        return po

    async def list_purchase_orders(self, skip: int = 0, limit: Optional[int] = None,
                                   po_number: Optional[str] = None) -> List[PurchaseOrder]:
        limit = limit or settings.DEFAULT_PAGE_SIZE
        with store_errors("List POs"):
            if po_number:
                return await db.purchase_orders.get_by_po_number(po_number.strip())
            return await db.purchase_orders.list(skip=skip, limit=limit)

    async def purchase_orders_for(self, requisition_id: str) -> List[PurchaseOrder]:
        """POs a requisition was bundled into."""
        with store_errors("List POs for requisition"):
            return await db.purchase_orders.list_for_requisition(requisition_id)

    def _check_selection(self, requisitions: Sequence[Requisition]) -> None:
        # All-or-nothing: one unapproved requisition disqualifies the batch
        offending = [r.id for r in requisitions if r.status not in BUNDLEABLE_STATUSES]
        if offending:
            logger.warning(f"PO creation blocked; not approved: {offending}")
            raise InvalidSelectionError(offending)

    def _parse_form(self, form) -> POForm:
        if isinstance(form, POForm):
            return form
        try:
            return POForm.model_validate(form)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"Invalid PO form: {field}: {first.get('msg')}", field=field)

po_bundler = POBundler()
