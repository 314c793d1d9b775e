from __future__ import annotations

from dataclasses import dataclass
from typing import Collection

from backend.errors import ForbiddenError

SUPER_ADMIN = "SUPER_ADMIN"
USER = "USER"
ROLES = {SUPER_ADMIN, USER}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""

    user_id: str
    role: str

    @property
    def is_super_admin(self) -> bool:
        return self.role == SUPER_ADMIN


def can_view_budget_owner(
    principal: Principal, budget_owner_id: str, accessible_ids: Collection[str]
) -> bool:
    if principal.is_super_admin:
        return True
    return budget_owner_id in accessible_ids


def can_modify_transaction(principal: Principal, created_by: str) -> bool:
    if principal.is_super_admin:
        return True
    return created_by == principal.user_id


def require_super_admin(principal: Principal) -> None:
    if not principal.is_super_admin:
        raise ForbiddenError("Super admin role required.")
