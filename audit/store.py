"""
audit/store.py -- SQLAlchemy Core persistence for the admin activity log.

Pattern: Repository + Data Mapper (same shape as auth/store.py).

log_action() is fire-and-forget from the caller's point of view: a failed
insert is written to the server log and swallowed, so a broken audit table
never fails the operation being audited. Route handlers schedule it as a
FastAPI background task so it also never adds latency.

get_logs() serves the admin log viewer: newest first, paginated, optional
filters by user, action prefix, and resource type.

Layer rule: no imports from api/ or auth/. Import from core/ is allowed.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from audit.models import ACTIONS, LogEntry, LogPage
from core.config import get_settings

logger = logging.getLogger("wendessen.audit")

MAX_PAGE_SIZE = 100

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_admin_logs = Table(
    "admin_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),
    Column("username", String(255)),
    Column("action", String(100), nullable=False, index=True),
    Column("resource_type", String(50), index=True),
    Column("resource_id", String(100)),
    Column("resource_title", Text),
    Column("details", Text),  # JSON object
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False, index=True),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AuditLog:
    """Repository for admin activity log entries.

    Shares the application database by default; pass db_url to isolate it.
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def log_action(self, entry: LogEntry) -> None:
        """Persist one entry. Never raises; failures are logged and dropped."""
        if entry.action not in ACTIONS:
            logger.warning("Logging unknown audit action %r", entry.action)
        try:
            details = json.dumps(entry.details) if entry.details else None
            with self.engine.connect() as conn:
                conn.execute(
                    _admin_logs.insert().values(
                        user_id=entry.user_id,
                        username=entry.username,
                        action=entry.action,
                        resource_type=entry.resource_type,
                        resource_id=str(entry.resource_id) if entry.resource_id is not None else None,
                        resource_title=entry.resource_title,
                        details=details,
                        ip_address=entry.ip_address,
                        user_agent=entry.user_agent,
                        created_at=_now_iso(),
                    )
                )
                conn.commit()
        except (SQLAlchemyError, TypeError, ValueError):
            # Logging must not break the main operation.
            logger.exception("Failed to log admin action %r", entry.action)

    def get_logs(
        self,
        page: int = 1,
        limit: int = 50,
        user_id: int | None = None,
        action: str | None = None,
        resource_type: str | None = None,
    ) -> LogPage:
        """Return one page of entries, newest first.

        action matches as a prefix ("user." finds every user action).
        limit is clamped to 1..MAX_PAGE_SIZE and page to >= 1.
        """
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))

        conditions = []
        if user_id is not None:
            conditions.append(_admin_logs.c.user_id == user_id)
        if action:
            conditions.append(_admin_logs.c.action.startswith(action, autoescape=True))
        if resource_type:
            conditions.append(_admin_logs.c.resource_type == resource_type)

        query = _admin_logs.select().where(*conditions)
        count_query = select(func.count()).select_from(_admin_logs).where(*conditions)

        with self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(
                query.order_by(_admin_logs.c.created_at.desc(), _admin_logs.c.id.desc())
                .limit(limit)
                .offset((page - 1) * limit)
            ).fetchall()
        return LogPage(logs=[_row_to_entry(r) for r in rows], total=total, page=page, limit=limit)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_entry(row) -> LogEntry:
    details = None
    if row.details:
        try:
            details = json.loads(row.details)
        except ValueError:
            details = None
    return LogEntry(
        id=row.id,
        user_id=row.user_id,
        username=row.username,
        action=row.action,
        resource_type=row.resource_type,
        resource_id=row.resource_id,
        resource_title=row.resource_title,
        details=details,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=row.created_at,
    )
