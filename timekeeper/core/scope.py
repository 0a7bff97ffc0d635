"""
Request scope: which users an actor may read or act on.

Resolved once per request from the acting user and passed explicitly
into the aggregator and the approval workflow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from timekeeper.core.enums import Role
from timekeeper.core.exceptions import PermissionDeniedError


@dataclass(frozen=True)
class AllScope:
    def allows(self, *, user_id: int, company_id: int | None) -> bool:
        return True


@dataclass(frozen=True)
class CompanyScope:
    company_id: int

    def allows(self, *, user_id: int, company_id: int | None) -> bool:
        return company_id == self.company_id


@dataclass(frozen=True)
class UserScope:
    user_id: int

    def allows(self, *, user_id: int, company_id: int | None) -> bool:
        return user_id == self.user_id


Scope = Union[AllScope, CompanyScope, UserScope]


def scope_for(*, user_id: int, role: Role | str, company_id: int | None) -> Scope:
    role = Role(role)
    if role is Role.ADMIN:
        return AllScope()
    if role in (Role.COMPANY, Role.MANAGER):
        if company_id is None:
            raise PermissionDeniedError("Account is not attached to a company")
        return CompanyScope(company_id)
    return UserScope(user_id)


def require_company(scope: Scope, company_id: int) -> None:
    """Fail fast unless the scope covers the whole company."""
    if isinstance(scope, AllScope):
        return
    if isinstance(scope, CompanyScope) and scope.company_id == company_id:
        return
    raise PermissionDeniedError("Not allowed to access another company's data")


def ensure_allowed(scope: Scope, *, user_id: int, company_id: int | None) -> None:
    if not scope.allows(user_id=user_id, company_id=company_id):
        raise PermissionDeniedError("Not allowed to access this user's attendance")
