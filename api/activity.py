"""
api/activity.py -- Glue between route handlers and the audit log.

Route handlers know the request (client IP, user agent) and the acting user;
audit/ knows neither FastAPI nor auth/. record() builds the LogEntry here and
schedules AuditLog.log_action() as a background task, so the insert runs
after the response is sent and can never fail the request.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import BackgroundTasks, Request

from audit.models import LogEntry
from auth.models import User


def get_request_info(request: Request) -> tuple[Optional[str], Optional[str]]:
    """Return (ip_address, user_agent) for the request.

    X-Forwarded-For (first hop) wins over X-Real-IP, which wins over the
    socket peer. These headers are client-controlled unless a trusted proxy
    overwrites them; treat the value as informational only.
    """
    forwarded_for = request.headers.get("x-forwarded-for", "")
    ip = forwarded_for.split(",")[0].strip() or request.headers.get("x-real-ip") or None
    if ip is None and request.client is not None:
        ip = request.client.host
    return ip, request.headers.get("user-agent") or None


def record(
    background_tasks: BackgroundTasks,
    request: Request,
    actor: Optional[User],
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[Any] = None,
    resource_title: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Schedule an audit entry for action performed by actor."""
    ip, user_agent = get_request_info(request)
    entry = LogEntry(
        action=action,
        user_id=actor.id if actor else None,
        username=actor.username if actor else None,
        resource_type=resource_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        resource_title=resource_title,
        details=details or None,
        ip_address=ip,
        user_agent=user_agent,
    )
    background_tasks.add_task(request.app.state.audit.log_action, entry)
