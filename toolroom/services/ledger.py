import logging
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from toolroom.config import settings
from toolroom.database import db
from toolroom.exceptions import InvalidTransitionError, NotFoundError, StoreError, ValidationError
from toolroom.guardrails.permissions import Permission, Role, permission_checker
from toolroom.models.actor import Actor
from toolroom.models.base import next_timestamp
from toolroom.models.requisition import (
    ApprovalEntry, ApprovalLevel, CreatedBy, LineItem, LineItemInput, RejectionEntry,
    Requisition, RequisitionForm, RequisitionStatus, RequisitionType
)
from toolroom.services.base import store_errors
from toolroom.services.totals import requisition_subtotal, to_amount
from toolroom.tools.notification_tool import notification_tool

logger = logging.getLogger(__name__)

S = RequisitionStatus

# Approval edges per level: current status -> new status.
# Re-approval by the same level keeps the status it already produced.
APPROVAL_TRANSITIONS = {
    ApprovalLevel.MANAGER: {
        S.SUBMITTED: S.APPROVED_MANAGER,
        S.APPROVED_MANAGER: S.APPROVED_MANAGER,
    },
    ApprovalLevel.CFO: {
        S.SUBMITTED: S.APPROVED_CFO,
        S.APPROVED_MANAGER: S.APPROVED_CFO,
        S.APPROVED_CFO: S.APPROVED_CFO,
    },
}

REJECTABLE_STATUSES = (S.SUBMITTED, S.APPROVED_MANAGER)

APPROVAL_PERMISSIONS = {
    ApprovalLevel.MANAGER: Permission.MANAGER_APPROVE,
    ApprovalLevel.CFO: Permission.CFO_APPROVE,
}

# Who hears about a requisition once it reaches a status
NEXT_APPROVERS = {
    S.SUBMITTED: "role:manager",
    S.APPROVED_MANAGER: "role:cfo",
    S.APPROVED_CFO: "role:purchasing",
}

def default_approval_level(role: str) -> ApprovalLevel:
    """Level an approval is recorded at when the caller doesn't say."""
    if role in (Role.CFO.value, Role.ADMIN.value):
        return ApprovalLevel.CFO
    return ApprovalLevel.MANAGER

def next_approval_status(requisition_id: str, status: str, level: ApprovalLevel) -> str:
    target = APPROVAL_TRANSITIONS[level].get(status)
    if target is None:
        raise InvalidTransitionError(requisition_id, status, f"{level.value}-approve")
    return target.value

def rejection_status(requisition_id: str, status: str) -> str:
    if status not in REJECTABLE_STATUSES:
        raise InvalidTransitionError(requisition_id, status, "reject")
    return S.REJECTED.value

class RequisitionLedger:
    """
    Owns the requisition lifecycle: creation, approvals and rejection.

    Status changes are compare-and-set against the status read just before
    the write, so a requisition that was rejected or bundled concurrently
    is never moved again.
    """
    def __init__(self):
        pass

    async def create_requisition(self, form: Union[RequisitionForm, Dict[str, Any]], actor: Actor) -> str:
        """
        Validate and persist a new requisition in `submitted` status.
        Returns its id. Raises ValidationError without persisting anything.
        """
        permission_checker.require(actor, Permission.SUBMIT_REQUISITION)
        form = self._parse_form(form)

        project_job = (form.project_job or "").strip()
        if not project_job:
            raise ValidationError("Project / Job is required", field="project_job")

        items = [await self._clean_item(item) for item in form.items]
        items = [item for item in items if not item.is_blank()]
        if not items:
            raise ValidationError("Add at least one line item", field="items")

        requisition = Requisition(
            department=(form.department or "").strip(),
            type=form.type,
            other_type=(form.other_type or "").strip() if form.type == RequisitionType.OTHER else "",
            project_job=project_job,
            customer=(form.customer or "").strip(),
            machine_down=form.machine_down,
            date_required_by=form.date_required_by,
            notes=form.notes or "",
            items=items,
            status=S.SUBMITTED,
            approvals={},
            linked_po_ids=[],
            created_by=CreatedBy(identity=actor.id, display_name=actor.name),
        )

        with store_errors("Create requisition"):
            await db.requisitions.create(requisition)

        logger.info(
            f"Requisition {requisition.id} submitted by {actor.id} for {project_job} "
            f"({len(items)} items, {requisition_subtotal(requisition):.2f})"
        )
        await notification_tool.send_notification(
            [NEXT_APPROVERS[S.SUBMITTED]],
            f"Requisition awaiting approval: {project_job}",
            f"{actor.name or actor.id} requested {len(items)} item(s) totalling {requisition_subtotal(requisition):.2f}"
            + (" - MACHINE DOWN" if requisition.machine_down else "")
        )
        return requisition.id

    async def approve(self, requisition_id: str, actor: Actor,
                      level: Optional[Union[ApprovalLevel, str]] = None) -> Requisition:
        """
        Record a manager or CFO approval and advance the status.
        Re-approving at the same level overwrites that level's entry.
        """
        level = self._resolve_level(actor, level)
        permission_checker.require(actor, APPROVAL_PERMISSIONS[level])

        def approval_changes(timestamp):
            entry = ApprovalEntry(identity=actor.id, display_name=actor.name, timestamp=timestamp)
            return {f"approvals.{level.value}": entry.model_dump()}

        previous, updated = await self._transition(
            requisition_id,
            f"{level.value}-approve",
            lambda status: next_approval_status(requisition_id, status, level),
            approval_changes,
        )
        logger.info(f"Requisition {requisition_id} {level.value}-approved by {actor.id}: {previous} -> {updated.status}")

        if previous != updated.status:
            await notification_tool.send_notification(
                [NEXT_APPROVERS[updated.status]],
                f"Requisition {updated.status.replace('_', ' ')}: {updated.project_job}",
                f"{actor.name or actor.id} approved requisition {requisition_id} ({updated.subtotal:.2f})"
            )
        return updated

    async def reject(self, requisition_id: str, actor: Actor, reason: str = "") -> Requisition:
        """Reject a submitted or manager-approved requisition. Terminal."""
        permission_checker.require(actor, Permission.REJECT_REQUISITION)

        def rejection_changes(timestamp):
            entry = RejectionEntry(
                identity=actor.id, display_name=actor.name, timestamp=timestamp, reason=(reason or "").strip()
            )
            return {"rejection": entry.model_dump()}

        previous, updated = await self._transition(
            requisition_id,
            "reject",
            lambda status: rejection_status(requisition_id, status),
            rejection_changes,
        )
        logger.info(f"Requisition {requisition_id} rejected by {actor.id} (was {previous})")

        if updated.created_by:
            await notification_tool.send_notification(
                [updated.created_by.identity],
                f"Requisition rejected: {updated.project_job}",
                f"{actor.name or actor.id} rejected requisition {requisition_id}. {updated.rejection.reason}"
            )
        return updated

    def subtotal(self, requisition: Requisition) -> float:
        return requisition_subtotal(requisition)

    async def get(self, requisition_id: str) -> Requisition:
        with store_errors("Load requisition"):
            requisition = await db.requisitions.get(requisition_id)
        if requisition is None:
            raise NotFoundError("Requisition", requisition_id)
        return requisition

    async def list_requisitions(self, status: Optional[str] = None, skip: int = 0,
                                limit: Optional[int] = None) -> List[Requisition]:
        """Most recently updated first."""
        limit = limit or settings.DEFAULT_PAGE_SIZE
        with store_errors("List requisitions"):
            if status:
                return await db.requisitions.list_by_status([status], skip=skip, limit=limit)
            return await db.requisitions.list(skip=skip, limit=limit)

    async def approval_queue(self, level: Union[ApprovalLevel, str]) -> List[Requisition]:
        try:
            level = ApprovalLevel(level)
        except ValueError:
            raise ValidationError(f"Unknown approval level: {level}", field="level")
        with store_errors("Load approval queue"):
            return await db.requisitions.approval_queue(level)

    async def _transition(self, requisition_id: str, action: str,
                          resolve_target: Callable[[str], str],
                          build_changes: Callable[[Any], Dict[str, Any]]):
        """
        Read, validate, compare-and-set. A lost race re-reads and re-validates
        against the fresh status. Returns (previous status, updated requisition).
        """
        for attempt in range(1, settings.CAS_MAX_ATTEMPTS + 1):
            with store_errors(f"Load requisition {requisition_id}"):
                requisition = await db.requisitions.get(requisition_id)
            if requisition is None:
                raise NotFoundError("Requisition", requisition_id)

            target = resolve_target(requisition.status)
            timestamp = next_timestamp(requisition.updated_at)
            changes = {"status": target, "updated_at": timestamp}
            changes.update(build_changes(timestamp))

            with store_errors(f"Update requisition {requisition_id}"):
                updated = await db.requisitions.compare_and_set(requisition_id, requisition.status, changes)
            if updated is not None:
                return requisition.status, updated

            logger.warning(
                f"Requisition {requisition_id} changed during {action} "
                f"(attempt {attempt}/{settings.CAS_MAX_ATTEMPTS})"
            )

        raise StoreError(f"Requisition {requisition_id} kept changing during {action}; giving up")

    def _resolve_level(self, actor: Actor, level) -> ApprovalLevel:
        if level is None:
            return default_approval_level(actor.role)
        try:
            return ApprovalLevel(level)
        except ValueError:
            raise ValidationError(f"Unknown approval level: {level}", field="level")

    def _parse_form(self, form) -> RequisitionForm:
        if isinstance(form, RequisitionForm):
            return form
        try:
            return RequisitionForm.model_validate(form)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"Invalid requisition form: {field}: {first.get('msg')}", field=field)

    async def _clean_item(self, item: LineItemInput) -> LineItem:
        manufacturer = (item.manufacturer or "").strip()
        part_number = (item.part_number or "").strip()
        description = (item.description or "").strip()
        tool_id = (item.tool_id or "").strip() or None

        if tool_id and not (manufacturer and part_number and description):
            with store_errors("Tool catalog lookup"):
                tool = await db.tools.get_tool(tool_id)
            if tool:
                manufacturer = manufacturer or tool.manufacturer
                part_number = part_number or tool.part_number
                description = description or tool.name
            else:
                logger.warning(f"Tool {tool_id} not in catalog; line kept as entered")

        return LineItem(
            manufacturer=manufacturer,
            part_number=part_number,
            description=description,
            qty=to_amount(item.qty, minimum=1),
            unit_cost=to_amount(item.unit_cost),
            tool_id=tool_id,
        )

requisition_ledger = RequisitionLedger()
