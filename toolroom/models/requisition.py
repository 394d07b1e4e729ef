from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from toolroom.models.base import MongoModel, utcnow
from toolroom.services.totals import requisition_subtotal

class RequisitionStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED_MANAGER = "approved_manager"
    APPROVED_CFO = "approved_cfo"
    PO_CREATED = "po_created"
    REJECTED = "rejected"
    # Reserved, not reachable from the approval workflow
    ORDERED = "ordered"
    RECEIVED = "received"

class RequisitionType(str, Enum):
    DISPOSABLE_TOOLING = "Disposable Tooling"
    RAW_MATERIAL = "Raw Material"
    REPAIRS_MAINTENANCE = "Repairs-Maintenance"
    OTHER = "Other"

class ApprovalLevel(str, Enum):
    MANAGER = "manager"
    CFO = "cfo"

# Statuses a requisition may be bundled from
BUNDLEABLE_STATUSES = (RequisitionStatus.APPROVED_MANAGER.value, RequisitionStatus.APPROVED_CFO.value)

class LineItem(BaseModel):
    """A single requested part. Clamped and stripped before it is stored."""
    manufacturer: str = ""
    part_number: str = ""
    description: str = ""
    qty: float = Field(1, ge=1)
    unit_cost: float = Field(0, ge=0)
    tool_id: Optional[str] = None

    def is_blank(self) -> bool:
        return not (self.description or self.part_number or self.manufacturer)

class ApprovalEntry(BaseModel):
    identity: str
    display_name: str = ""
    timestamp: datetime = Field(default_factory=utcnow)

class RejectionEntry(ApprovalEntry):
    reason: str = ""

class CreatedBy(BaseModel):
    identity: str
    display_name: str = ""

class Requisition(MongoModel):
    """
    Purchase requisition raised from the shop floor.

    Only the ledger mutates status, approvals and rejection; only the PO
    bundler writes linked_po_ids and the po_created status.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "department": "Machining",
                "type": "Disposable Tooling",
                "project_job": "Job-1",
                "machine_down": False,
                "status": "submitted",
                "items": [
                    {"description": "Endmill", "qty": 2, "unit_cost": 15.0}
                ]
            }
        }
    )

    department: str = ""
    type: RequisitionType = RequisitionType.DISPOSABLE_TOOLING
    other_type: str = ""
    project_job: str
    customer: str = ""
    machine_down: bool = False
    date_required_by: Optional[datetime] = None
    notes: str = ""

    items: List[LineItem] = []

    status: RequisitionStatus = Field(default=RequisitionStatus.SUBMITTED)
    approvals: Dict[ApprovalLevel, ApprovalEntry] = Field(default_factory=dict)
    rejection: Optional[RejectionEntry] = None
    linked_po_ids: List[str] = []

    created_by: Optional[CreatedBy] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def subtotal(self) -> float:
        # Stored copy is a cache; items never change after creation
        return requisition_subtotal(self)

class LineItemInput(BaseModel):
    """Raw line item as entered on the requisition form."""
    manufacturer: Optional[str] = ""
    part_number: Optional[str] = ""
    description: Optional[str] = ""
    qty: Any = 1
    unit_cost: Any = 0
    tool_id: Optional[str] = None

class RequisitionForm(BaseModel):
    department: Optional[str] = ""
    type: RequisitionType = RequisitionType.DISPOSABLE_TOOLING
    other_type: Optional[str] = ""
    project_job: Optional[str] = ""
    customer: Optional[str] = ""
    machine_down: bool = False
    date_required_by: Optional[datetime] = None
    notes: Optional[str] = ""
    items: List[LineItemInput] = []

    @field_validator("machine_down", mode="before")
    @classmethod
    def parse_yes_no(cls, v):
        if isinstance(v, str):
            return v.strip().lower() in ("yes", "y", "true", "1")
        return bool(v)

    @field_validator("date_required_by", mode="before")
    @classmethod
    def parse_date(cls, v):
        if v in (None, ""):
            return None
        if isinstance(v, datetime):
            return v
        if isinstance(v, date):
            return datetime(v.year, v.month, v.day)
        if isinstance(v, str):
            return datetime.fromisoformat(v.strip())
        return v
