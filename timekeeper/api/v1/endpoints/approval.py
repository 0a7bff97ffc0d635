"""
Approval endpoints: single and bulk decisions, the approver's pending
list and project summaries, and the gated exports.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from timekeeper.api.v1.deps import (get_approval_workflow, get_scope,
                                    require_approver)
from timekeeper.core.config import settings
from timekeeper.core.scope import Scope
from timekeeper.models.user import User
from timekeeper.repositories.time_entries import EntryFilter
from timekeeper.schemas.approval import (BulkApproveRequest, BulkResultRead,
                                         MemberBulkRequest,
                                         MemberBulkResultRead,
                                         MemberRejectRequest,
                                         PendingApprovalsResponse,
                                         ProjectMembersSummaryResponse,
                                         ProjectPendingRead, RejectRequest)
from timekeeper.schemas.attendance import TimeEntryRead
from timekeeper.services.approval import ApprovalWorkflow
from timekeeper.services.export import (CsvReportRenderer, RenderedReport,
                                        ReportRenderer)
from timekeeper.services.lateness import local_zone

router = APIRouter(prefix="/attendance", tags=["approval"])
logger = logging.getLogger(__name__)


def get_renderer() -> ReportRenderer:
    return CsvReportRenderer(tz=local_zone())


def _stream(report: RenderedReport) -> StreamingResponse:
    return StreamingResponse(
        iter([report.content]),
        media_type=report.media_type,
        headers={"Content-Disposition": f"attachment; filename={report.filename}"},
    )


# ── Read side ───────────────────────────────────────────────────────
@router.get("/pending-approvals", response_model=PendingApprovalsResponse)
async def pending_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT),
    status: Optional[str] = Query("PENDING"),
    project_id: Optional[int] = Query(None, alias="projectId"),
    user_name: Optional[str] = Query(None, alias="userName", max_length=100),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    _approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> PendingApprovalsResponse:
    """Entries awaiting a decision, grouped by the projects they were reported on."""
    filters = EntryFilter(
        status=status.upper() if status else None,
        project_id=project_id,
        user_name=user_name.strip() if user_name and user_name.strip() else None,
        start_date=start_date,
        end_date=end_date,
    )
    result = await workflow.pending_approvals(scope, filters, page=page, limit=limit)
    return PendingApprovalsResponse.from_page(result)


@router.get("/approval-projects", response_model=list[ProjectPendingRead])
async def approval_projects(
    _approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> list[ProjectPendingRead]:
    projects = await workflow.approval_projects(scope)
    return [ProjectPendingRead.model_validate(p) for p in projects]


@router.get("/project-members-summary", response_model=ProjectMembersSummaryResponse)
async def project_members_summary(
    year: int = Query(...),
    month: int = Query(...),
    project_id: Optional[int] = Query(None, alias="projectId"),
    _approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> ProjectMembersSummaryResponse:
    report = await workflow.project_summary(scope, year, month, project_id)
    return ProjectMembersSummaryResponse.from_report(report)


# ── Single decisions ────────────────────────────────────────────────
@router.patch("/approve/{entry_id}", response_model=TimeEntryRead)
async def approve(
    entry_id: int,
    approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> TimeEntryRead:
    entry = await workflow.approve(scope, approver.id, entry_id)
    return TimeEntryRead.model_validate(entry)


@router.patch("/reject/{entry_id}", response_model=TimeEntryRead)
async def reject(
    entry_id: int,
    body: RejectRequest,
    approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> TimeEntryRead:
    entry = await workflow.reject(scope, approver.id, entry_id, body.reason)
    return TimeEntryRead.model_validate(entry)


# ── Bulk decisions ──────────────────────────────────────────────────
@router.post("/bulk-approve", response_model=BulkResultRead)
async def bulk_approve(
    body: BulkApproveRequest,
    approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> BulkResultRead:
    result = await workflow.bulk_approve(scope, approver.id, body.time_entry_ids)
    return BulkResultRead.model_validate(result)


@router.patch("/bulk-approve-member/{member_user_id}", response_model=MemberBulkResultRead)
async def bulk_approve_member(
    member_user_id: int,
    body: MemberBulkRequest,
    approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> MemberBulkResultRead:
    """Apply ``body.action`` to every PENDING entry of the member in that month."""
    result = await workflow.bulk_approve_by_member(
        scope, approver.id, member_user_id, body.year, body.month, action=body.action, reason=body.reason
    )
    return MemberBulkResultRead.model_validate(result)


@router.patch("/bulk-reject-member/{member_user_id}", response_model=MemberBulkResultRead)
async def bulk_reject_member(
    member_user_id: int,
    body: MemberRejectRequest,
    approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
) -> MemberBulkResultRead:
    result = await workflow.bulk_reject_by_member(
        scope, approver.id, member_user_id, body.year, body.month, body.reason
    )
    return MemberBulkResultRead.model_validate(result)


# ── Exports (locked until everything is decided) ────────────────────
@router.get("/export-member")
async def export_member(
    user_id: int = Query(..., alias="userId"),
    year: int = Query(...),
    month: int = Query(...),
    _approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
    renderer: ReportRenderer = Depends(get_renderer),
) -> StreamingResponse:
    snapshot = await workflow.member_snapshot(scope, user_id, year, month)
    report = renderer.render(snapshot)
    logger.info("Exported %s for user %s", report.filename, user_id)
    return _stream(report)


@router.get("/export-project")
async def export_project(
    project_id: int = Query(..., alias="projectId"),
    year: int = Query(...),
    month: int = Query(...),
    _approver: User = Depends(require_approver),
    scope: Scope = Depends(get_scope),
    workflow: ApprovalWorkflow = Depends(get_approval_workflow),
    renderer: ReportRenderer = Depends(get_renderer),
) -> StreamingResponse:
    snapshot = await workflow.project_snapshot(scope, project_id, year, month)
    report = renderer.render(snapshot)
    logger.info("Exported %s for project %s", report.filename, project_id)
    return _stream(report)
