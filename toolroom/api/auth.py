from typing import Optional
from fastapi import Header, HTTPException

from toolroom.models.actor import Actor

async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    """
    Identity of the caller. Sessions are handled by the gateway in front of
    this service, which forwards the user id, role and display name.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return Actor(id=x_user_id, role=(x_user_role or "operator").strip().lower(), name=x_user_name or "")
