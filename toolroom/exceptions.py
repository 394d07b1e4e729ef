"""
Typed errors raised by the requisition ledger and the PO bundler.

Every error carries a machine readable `code` so the HTTP layer (and any
other caller) can branch on the type rather than on the message text.

    ProcurementError
    +-- ValidationError
    +-- PermissionDeniedError
    +-- NotFoundError
    +-- InvalidTransitionError
    +-- InvalidSelectionError
    +-- StoreError
"""
from typing import Iterable, List, Optional


class ProcurementError(Exception):
    """Base exception for all requisition / purchase order errors."""

    code: str = "PROCUREMENT_ERROR"


class ValidationError(ProcurementError):
    """Malformed or missing required input. Nothing was persisted."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class PermissionDeniedError(ProcurementError):
    """The acting role lacks the capability for the requested action."""

    code: str = "PERMISSION_DENIED"

    def __init__(self, role: str, permission: str):
        self.role = role
        self.permission = permission
        super().__init__(f"Role '{role}' is not permitted to {permission}")


class NotFoundError(ProcurementError):
    code: str = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidTransitionError(ProcurementError):
    """The action is not legal from the entity's current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, requisition_id: str, current_status: str, action: str):
        self.requisition_id = requisition_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} requisition {requisition_id} while it is {current_status}"
        )


class InvalidSelectionError(ProcurementError):
    """One or more selected requisitions cannot be bundled into a PO."""

    code: str = "INVALID_SELECTION"

    def __init__(self, offending: Iterable[str], message: Optional[str] = None):
        self.offending: List[str] = list(offending)
        super().__init__(
            message or f"Requisitions not approved for PO creation: {', '.join(self.offending)}"
        )


class StoreError(ProcurementError):
    """Persistence or commit failure. No side effects were applied."""

    code: str = "STORE_ERROR"
