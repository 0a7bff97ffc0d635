from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """Roles published by the user directory."""

    ADMIN = "ADMIN"
    COMPANY = "COMPANY"
    MANAGER = "MANAGER"
    MEMBER = "MEMBER"


APPROVER_ROLES = frozenset({Role.ADMIN, Role.COMPANY, Role.MANAGER})
SETTINGS_ADMIN_ROLES = frozenset({Role.ADMIN, Role.COMPANY})


class EntryStatus(str, Enum):
    """Approval state of a time entry."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SettingSource(str, Enum):
    PROJECT = "project"
    PERSONAL = "personal"
    DEFAULT = "default"


class LeaveType(str, Enum):
    PAID_LEAVE = "PAID_LEAVE"
    SICK_LEAVE = "SICK_LEAVE"
    PERSONAL_LEAVE = "PERSONAL_LEAVE"
    MATERNITY = "MATERNITY"
    PATERNITY = "PATERNITY"
    SPECIAL = "SPECIAL"
    UNPAID = "UNPAID"
