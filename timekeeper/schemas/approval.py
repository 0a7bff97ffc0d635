"""Pydantic schemas for the approval workflow and its summaries."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field, field_validator

from timekeeper.schemas.attendance import TimeEntryRead
from timekeeper.services.approval import PendingPage, SummaryReport

_ACTIONS = {"APPROVED", "REJECTED"}
_ACTION_ALIASES = {"APPROVE": "APPROVED", "REJECT": "REJECTED"}


def _clean_reason(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if len(v) > 500:
        raise ValueError("Reason must not exceed 500 characters")
    return v


# ── Requests ────────────────────────────────────────────────────────
class RejectRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str) -> str:
        v = _clean_reason(v) or ""
        if not v:
            raise ValueError("A rejection reason is required")
        return v


class BulkApproveRequest(BaseModel):
    time_entry_ids: list[int] = Field(
        validation_alias=AliasChoices("time_entry_ids", "timeEntryIds"),
        min_length=1,
        max_length=500,
    )


class MemberBulkRequest(BaseModel):
    action: str = "APPROVED"
    year: int
    month: int = Field(ge=1, le=12)
    reason: str | None = None

    @field_validator("action")
    @classmethod
    def _action(cls, v: str) -> str:
        v = v.strip().upper()
        v = _ACTION_ALIASES.get(v, v)
        if v not in _ACTIONS:
            raise ValueError("Action must be APPROVED or REJECTED")
        return v

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str | None) -> str | None:
        return _clean_reason(v)


class MemberRejectRequest(BaseModel):
    year: int
    month: int = Field(ge=1, le=12)
    reason: str

    @field_validator("reason")
    @classmethod
    def _reason(cls, v: str) -> str:
        v = _clean_reason(v) or ""
        if not v:
            raise ValueError("A rejection reason is required")
        return v


# ── Responses ───────────────────────────────────────────────────────
class BulkFailureRead(BaseModel):
    entry_id: int
    kind: str
    message: str

    model_config = {"from_attributes": True}


class BulkResultRead(BaseModel):
    updated_count: int
    total_requested: int
    failures: list[BulkFailureRead] = []

    model_config = {"from_attributes": True}


class MemberBulkResultRead(BaseModel):
    member_user_id: int
    action: str
    year: int
    month: int
    updated_count: int

    model_config = {"from_attributes": True}


class PendingGroupRead(BaseModel):
    project_id: int | None = None
    project_name: str
    entries: list[TimeEntryRead]

    model_config = {"from_attributes": True}


class PendingApprovalsResponse(BaseModel):
    groups: list[PendingGroupRead]
    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def from_page(cls, page: PendingPage) -> "PendingApprovalsResponse":
        return cls(
            groups=[PendingGroupRead.model_validate(g) for g in page.groups],
            total=page.total,
            page=page.page,
            limit=page.limit,
            total_pages=page.total_pages,
        )


class ProjectPendingRead(BaseModel):
    project_id: int | None = None
    name: str
    pending_count: int

    model_config = {"from_attributes": True}


class MemberSummaryRead(BaseModel):
    user_id: int
    name: str
    email: str
    is_manager: bool
    total_entries: int
    work_days: int
    work_hours: float
    pending_count: int
    approved_count: int
    rejected_count: int
    approval_rate: float
    can_export: bool

    model_config = {"from_attributes": True}


class ProjectSummaryRead(BaseModel):
    project_id: int
    name: str
    status: str | None = None
    members: list[MemberSummaryRead]
    total_pending: int
    total_approved: int
    can_export_project: bool

    model_config = {"from_attributes": True}


class ProjectMembersSummaryResponse(BaseModel):
    year: int
    month: int
    projects: list[ProjectSummaryRead]
    total_projects: int
    total_members: int
    total_pending: int

    @classmethod
    def from_report(cls, report: SummaryReport) -> "ProjectMembersSummaryResponse":
        return cls(
            year=report.year,
            month=report.month,
            projects=[ProjectSummaryRead.model_validate(p) for p in report.projects],
            total_projects=len(report.projects),
            total_members=report.total_members,
            total_pending=report.total_pending,
        )
