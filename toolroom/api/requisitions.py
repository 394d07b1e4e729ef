from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel

from toolroom.api.auth import get_current_actor
from toolroom.guardrails.decorators import require_permission
from toolroom.guardrails.permissions import Permission
from toolroom.models.actor import Actor
from toolroom.models.purchase_order import PurchaseOrder
from toolroom.models.requisition import ApprovalLevel, Requisition, RequisitionForm, RequisitionStatus
from toolroom.services.bundler import po_bundler
from toolroom.services.ledger import requisition_ledger

router = APIRouter(prefix="/api/requisitions", tags=["Requisitions"])

class CreatedResponse(BaseModel):
    id: str

class ApproveRequest(BaseModel):
    level: Optional[ApprovalLevel] = None

class RejectRequest(BaseModel):
    reason: Optional[str] = None

@router.post("", response_model=CreatedResponse, status_code=201)
async def create_requisition(
    form: RequisitionForm,
    actor: Actor = Depends(require_permission(Permission.SUBMIT_REQUISITION))
):
    requisition_id = await requisition_ledger.create_requisition(form, actor)
    return {"id": requisition_id}

@router.get("", response_model=List[Requisition])
async def list_requisitions(
    status: Optional[RequisitionStatus] = None,
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=500),
    actor: Actor = Depends(get_current_actor)
):
    return await requisition_ledger.list_requisitions(
        status=status.value if status else None, skip=skip, limit=limit
    )

@router.get("/queue/{level}", response_model=List[Requisition])
async def approval_queue(level: ApprovalLevel, actor: Actor = Depends(get_current_actor)):
    return await requisition_ledger.approval_queue(level)

@router.get("/{requisition_id}", response_model=Requisition)
async def get_requisition(requisition_id: str, actor: Actor = Depends(get_current_actor)):
    return await requisition_ledger.get(requisition_id)

@router.get("/{requisition_id}/purchase-orders", response_model=List[PurchaseOrder])
async def requisition_purchase_orders(requisition_id: str, actor: Actor = Depends(get_current_actor)):
    await requisition_ledger.get(requisition_id)
    return await po_bundler.purchase_orders_for(requisition_id)

@router.post("/{requisition_id}/approve", response_model=Requisition)
async def approve_requisition(
    requisition_id: str,
    request: Optional[ApproveRequest] = Body(None),
    actor: Actor = Depends(get_current_actor)
):
    # Permission depends on the level; checked by the ledger
    return await requisition_ledger.approve(requisition_id, actor, level=request.level if request else None)

@router.post("/{requisition_id}/reject", response_model=Requisition)
async def reject_requisition(
    requisition_id: str,
    request: Optional[RejectRequest] = Body(None),
    actor: Actor = Depends(require_permission(Permission.REJECT_REQUISITION))
):
    return await requisition_ledger.reject(requisition_id, actor, reason=(request.reason if request else None) or "")
