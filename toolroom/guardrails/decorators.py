from fastapi import Depends

from toolroom.api.auth import get_current_actor
from toolroom.guardrails.permissions import permission_checker, Permission
from toolroom.models.actor import Actor

def require_permission(permission: Permission):
    """
    Dependency to check static permission. The services check again on
    every call; this only turns the request away early. A denial raises
    PermissionDeniedError so it gets the same 403 body as the services.
    """
    def check(actor: Actor = Depends(get_current_actor)):
        permission_checker.require(actor, permission)
        return actor
    return check
