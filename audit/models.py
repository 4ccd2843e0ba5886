"""
audit/models.py -- Domain dataclasses for the admin activity log.

Layer rule: no imports from api/ or auth/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Known action names, "<resource>.<verb>". log_action() accepts others but
# warns, so a misspelt action shows up in the server log.
ACTIONS: frozenset[str] = frozenset(
    {
        "event.create",
        "event.update",
        "event.delete",
        "event.cancel",
        "event.uncancel",
        "news.create",
        "news.update",
        "news.delete",
        "news.pin",
        "news.unpin",
        "gallery.upload",
        "gallery.edit",
        "gallery.delete",
        "shared_gallery.approve",
        "shared_gallery.reject",
        "shared_gallery.delete",
        "portrait.approve",
        "portrait.reject",
        "portrait.reset",
        "portrait.delete",
        "user.create",
        "user.update",
        "user.delete",
        "user.password_reset",
        "settings.update",
        "auth.login",
        "auth.logout",
        "auth.password_change",
        "archive.create",
        "archive.update",
        "archive.delete",
    }
)


@dataclass
class LogEntry:
    """One security-relevant action, as handed to AuditLog.log_action().

    details is any JSON-serializable mapping (e.g. {"permissionsAdded": [...]}).
    id and created_at are filled in by the store on read.
    """

    action: str
    user_id: int | None = None
    username: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    resource_title: str | None = None
    details: dict[str, Any] | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    id: int | None = None
    created_at: str | None = None


@dataclass
class LogPage:
    """A page of log entries plus the unpaginated total."""

    logs: list[LogEntry] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50
