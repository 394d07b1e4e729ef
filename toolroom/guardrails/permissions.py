from enum import Enum
import logging
from toolroom.exceptions import PermissionDeniedError
from toolroom.models.actor import Actor

logger = logging.getLogger(__name__)

class Permission(str, Enum):
    SUBMIT_REQUISITION = "SUBMIT_REQUISITION"
    MANAGER_APPROVE = "MANAGER_APPROVE"
    CFO_APPROVE = "CFO_APPROVE"
    REJECT_REQUISITION = "REJECT_REQUISITION"
    CREATE_PO = "CREATE_PO"

class Role(str, Enum):
    OPERATOR = "operator"
    BUYER = "buyer"
    PURCHASING = "purchasing"
    SETUP = "setup"
    MANAGER = "manager"
    CFO = "cfo"
    ADMIN = "admin"

# Role -> Permissions Mapping
ROLE_PERMISSIONS = {
    Role.ADMIN: [p for p in Permission], # All
    Role.CFO: [
        Permission.SUBMIT_REQUISITION, Permission.MANAGER_APPROVE, Permission.CFO_APPROVE,
        Permission.REJECT_REQUISITION, Permission.CREATE_PO
    ],
    Role.MANAGER: [
        Permission.SUBMIT_REQUISITION, Permission.MANAGER_APPROVE,
        Permission.REJECT_REQUISITION, Permission.CREATE_PO
    ],
    Role.PURCHASING: [
        Permission.SUBMIT_REQUISITION, Permission.CREATE_PO
    ],
    Role.BUYER: [Permission.SUBMIT_REQUISITION],
    Role.SETUP: [Permission.SUBMIT_REQUISITION],
    Role.OPERATOR: [Permission.SUBMIT_REQUISITION],
}

def _allowed(role: str, permission: Permission) -> bool:
    try:
        role_enum = Role(role)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role_enum, [])

def can_submit(role: str) -> bool:
    return _allowed(role, Permission.SUBMIT_REQUISITION)

def can_manager_approve(role: str) -> bool:
    return _allowed(role, Permission.MANAGER_APPROVE)

def can_cfo_approve(role: str) -> bool:
    return _allowed(role, Permission.CFO_APPROVE)

def can_reject(role: str) -> bool:
    return _allowed(role, Permission.REJECT_REQUISITION)

def can_create_po(role: str) -> bool:
    return _allowed(role, Permission.CREATE_PO)

class PermissionChecker:
    """
    Single source of truth for role gating. The ledger and the bundler call
    `require` on every mutating operation; the HTTP layer uses
    `check_permission` to gate routes as well.
    """
    def __init__(self):
        pass

    def check_permission(self, role: str, permission: Permission) -> bool:
        """
        Basic Role-Based Check.
        """
        try:
            Role(role)
        except ValueError:
            logger.warning(f"Unknown role {role}")
            return False

        if _allowed(role, permission):
            return True

        logger.warning(f"Role {role} denied permission {permission.value}")
        return False

    def require(self, actor: Actor, permission: Permission) -> None:
        """Raise PermissionDeniedError unless the actor's role grants `permission`."""
        if not self.check_permission(actor.role, permission):
            logger.warning(f"User {actor.id} ({actor.role}) blocked from {permission.value}")
            raise PermissionDeniedError(actor.role, permission.value)

permission_checker = PermissionChecker()
