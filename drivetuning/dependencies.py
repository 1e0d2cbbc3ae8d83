# drivetuning/dependencies.py
"""
FastAPI dependencies for caller identity and admin gating.
The auth gateway in front of this service forwards the authenticated user in
X-User-Id / X-User-Email; requests without it are rejected with 401.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from drivetuning.services.admin_policy import AdminPolicy, AllowListAdminPolicy, Identity
from drivetuning.utils.errors import PermissionDeniedError


def get_current_identity(
    x_user_id: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
) -> Identity:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return Identity(user_id=user_id, email=(x_user_email or "").strip() or None)


def get_admin_policy() -> AdminPolicy:
    return AllowListAdminPolicy.from_settings()


def require_admin(
    identity: Identity = Depends(get_current_identity),
    policy: AdminPolicy = Depends(get_admin_policy),
) -> Identity:
    if not policy.is_admin(identity):
        raise PermissionDeniedError("Access denied")
    return identity
