from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from toolroom.models.base import MongoModel, utcnow
from toolroom.models.requisition import CreatedBy

class POStatus(str, Enum):
    PENDING = "pending"
    # Reserved for the receiving workflow
    ORDERED = "ordered"
    RECEIVED = "received"

class ShippingType(str, Enum):
    STANDARD = "Standard"
    EXPEDITE = "Expedite"
    OVERNIGHT = "Overnight"
    PICKUP = "Pickup"

class POLineItem(BaseModel):
    """Requisition line copied onto a PO, tagged with where it came from."""
    manufacturer: str = ""
    part_number: str = ""
    description: str = ""
    qty: float = Field(1, ge=1)
    unit_cost: float = Field(0, ge=0)
    tool_id: Optional[str] = None
    source_requisition_ids: List[str] = []
    subtotal: float = Field(0, ge=0)

class PurchaseOrder(MongoModel):
    """
    Purchase order bundled from one or more approved requisitions.
    requisition_ids and items are fixed at creation.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "po_number": "PO-100",
                "vendor": "MSC Industrial",
                "project_job": "Job-1",
                "shipping_type": "Standard",
                "shipping_cost": 5.0,
                "subtotal": 50.0,
                "total": 55.0,
                "status": "pending"
            }
        }
    )

    po_number: str = Field(..., description="Caller supplied PO number")
    vendor: str = ""
    project_job: str
    shipping_type: ShippingType = ShippingType.STANDARD
    shipping_cost: float = Field(0, ge=0)
    notes: str = ""

    requisition_ids: List[str] = []
    items: List[POLineItem] = []

    subtotal: float = 0.0
    total: float = 0.0

    status: POStatus = Field(default=POStatus.PENDING)

    created_by: Optional[CreatedBy] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

class POForm(BaseModel):
    po_number: Optional[str] = ""
    vendor: Optional[str] = ""
    project_job: Optional[str] = ""
    shipping_type: ShippingType = ShippingType.STANDARD
    shipping_cost: Any = 0
    notes: Optional[str] = ""
