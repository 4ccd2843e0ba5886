"""
api/routes/v1/logs.py -- Admin activity log viewer.

Routes (mounted under /api/admin):
  GET /logs?page=&limit=&user_id=&action=&resource_type=   (logs.view)

action is a prefix filter ("user." matches every user action).
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import LogEntryResponse, LogListResponse
from audit.store import MAX_PAGE_SIZE, AuditLog
from auth.dependencies import require_permission
from auth.models import User

router = APIRouter()


@router.get("/logs", response_model=LogListResponse)
def list_logs(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1, le=MAX_PAGE_SIZE),
    user_id: Optional[int] = Query(default=None),
    action: Optional[str] = Query(default=None, max_length=100),
    resource_type: Optional[str] = Query(default=None, max_length=50),
    current_user: User = Depends(require_permission("logs.view")),
) -> LogListResponse:
    audit: AuditLog = request.app.state.audit
    result = audit.get_logs(page=page, limit=limit, user_id=user_id, action=action, resource_type=resource_type)
    return LogListResponse(
        logs=[LogEntryResponse.from_entry(e) for e in result.logs],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )
