# Overview: Service-layer operations for the activity log; append-only audit of user actions.

from __future__ import annotations

import json
from typing import Optional

from ..extensions import db
from ..models import ActivityLog
from ..time_utils import utcnow
"""
Activity Log Invariants (authoritative)

- Append-only audit trail of user actions.
- No domain/business logic here.
- Rows are written inside the same DB transaction as the change they
  record: callers flush, the caller's commit persists both.
- username is copied at write time.
"""


def log_activity(user, action: str, details: Optional[dict] = None) -> ActivityLog:
    """
    Append one activity row for `user` (None for system actions).

    - No deletes/updates of existing rows.
    - details must be JSON serializable.
    """
    entry = ActivityLog(
        user_id=user.id if user is not None else None,
        username=user.username if user is not None else "system",
        action=action,
        details=json.dumps(details, default=str) if details is not None else None,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_activity(
    *,
    action: Optional[str] = None,
    username: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> dict:
    """Newest first, with optional exact action / username filters."""
    page = max(int(page or 1), 1)
    page_size = min(max(int(page_size or 50), 1), 500)

    query = db.session.query(ActivityLog)
    if action:
        query = query.filter(ActivityLog.action == action)
    if username:
        query = query.filter(ActivityLog.username == username)

    total = query.count()
    rows = (
        query.order_by(ActivityLog.occurred_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    pages = (total + page_size - 1) // page_size
    return {
        "entries": [r.to_dict() for r in rows],
        "pagination": {"total": total, "page": page, "pages": pages, "page_size": page_size},
    }
