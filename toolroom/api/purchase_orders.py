from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from toolroom.api.auth import get_current_actor
from toolroom.guardrails.decorators import require_permission
from toolroom.guardrails.permissions import Permission
from toolroom.models.actor import Actor
from toolroom.models.purchase_order import POForm, PurchaseOrder
from toolroom.reports.po_document import render_po_pdf
from toolroom.services.bundler import po_bundler

router = APIRouter(prefix="/api/purchase-orders", tags=["Purchase Orders"])

class CreatePORequest(BaseModel):
    po: POForm
    requisition_ids: List[str] = []

class PreviewRequest(BaseModel):
    requisition_ids: List[str] = []

class CreatedResponse(BaseModel):
    id: str

@router.post("", response_model=CreatedResponse, status_code=201)
async def create_purchase_order(
    request: CreatePORequest,
    actor: Actor = Depends(require_permission(Permission.CREATE_PO))
):
    po_id = await po_bundler.create_po(request.po, request.requisition_ids, actor)
    return {"id": po_id}

@router.post("/preview")
async def preview_purchase_order(request: PreviewRequest, actor: Actor = Depends(get_current_actor)):
    return await po_bundler.preview(request.requisition_ids)

@router.get("", response_model=List[PurchaseOrder])
async def list_purchase_orders(
    skip: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=500),
    po_number: Optional[str] = None,
    actor: Actor = Depends(get_current_actor)
):
    return await po_bundler.list_purchase_orders(skip=skip, limit=limit, po_number=po_number)

@router.get("/{po_id}", response_model=PurchaseOrder)
async def get_purchase_order(po_id: str, actor: Actor = Depends(get_current_actor)):
    return await po_bundler.get(po_id)

@router.get("/{po_id}/pdf")
async def get_purchase_order_pdf(po_id: str, actor: Actor = Depends(get_current_actor)):
    po = await po_bundler.get(po_id)
    return Response(
        content=render_po_pdf(po),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="PO-{po.po_number}.pdf"'}
    )
