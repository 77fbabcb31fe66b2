from typing import Optional

from fastapi import Header

from shotspot.utils.exceptions import PermissionDeniedError


def get_actor_role(x_user_role: Optional[str] = Header(default=None)) -> Optional[str]:
    """Role of the caller, resolved once per request and passed on explicitly"""
    return x_user_role.lower() if x_user_role else None


def require_admin(actor_role: Optional[str], operation: str) -> None:
    if actor_role != 'admin':
        raise PermissionDeniedError(actor_role, operation)
