# drivetuning/services/admin_policy.py
"""
Admin authorization policy.
Admin status comes from configured user-id / email allow-lists, not from a
role column. Routers receive the policy through a dependency so it can be
swapped in tests.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from drivetuning.config import settings


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as forwarded by the auth gateway."""
    user_id: str
    email: Optional[str] = None


class AdminPolicy(Protocol):
    def is_admin(self, identity: Optional[Identity]) -> bool:
        ...


class AllowListAdminPolicy:
    def __init__(self, user_ids: Iterable[str] = (), emails: Iterable[str] = ()):
        self.user_ids = {str(u).strip() for u in user_ids if str(u).strip()}
        self.emails = {str(e).strip().lower() for e in emails if str(e).strip()}

    def is_admin(self, identity: Optional[Identity]) -> bool:
        if identity is None:
            return False
        user_id = str(identity.user_id or "").strip()
        email = str(identity.email or "").strip().lower()
        if user_id and user_id in self.user_ids:
            return True
        if email and email in self.emails:
            return True
        return False

    @classmethod
    def from_settings(cls) -> "AllowListAdminPolicy":
        return cls(settings.ADMIN_USER_ID_SET, settings.ADMIN_EMAIL_SET)
