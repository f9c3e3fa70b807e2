# Overview: Service-layer operations for login sessions; opaque bearer tokens with absolute and idle timeouts.

"""
Login sessions

A login hands the client 32 random bytes (hex) and keeps only their
SHA-256 in session_tokens. Tokens are high-entropy, so a fast hash is
enough; bcrypt is kept for passwords.

A session stops working when any of these hold:
- it is older than SESSION_ABSOLUTE_TIMEOUT_HOURS (24)
- it was idle longer than SESSION_IDLE_TIMEOUT_HOURS (2)
- its user was deactivated
- it was revoked (logout, password change, deactivation)

Revoked and expired rows are kept for 30 days, then removed by
`flask maintenance cleanup-sessions`.
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app

from ..exceptions import NotFound
from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


RETENTION_DAYS = 30


@dataclass
class SessionContext:
    """What an authenticated request knows about its caller."""
    user: User
    session: SessionToken


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_active(token: str) -> Optional[SessionToken]:
    if not token:
        return None
    return db.session.query(SessionToken).filter_by(token_hash=hash_token(token), is_revoked=False).first()


def _mark_revoked(session: SessionToken, reason: str, now: datetime) -> None:
    session.is_revoked = True
    session.revoked_at = now
    session.revoked_reason = reason


def _end_reason(session: SessionToken, now: datetime) -> Optional[str]:
    """Why a non-revoked session can no longer be used, or None."""
    if session.expires_at < now:
        return "Expired"
    if now - session.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS", 2):
        return "Idle timeout"
    if session.user is None or not session.user.is_active:
        return "User account deactivated"
    return None


def create_session(
    user_id: int,
    user_agent: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> tuple[SessionToken, str]:
    """
    Open a session for a user who has just authenticated.

    Returns (session_row, plaintext_token). The plaintext goes to the
    client once and is never stored.
    """
    if db.session.get(User, user_id) is None:
        raise NotFound("user", user_id)

    token = secrets.token_hex(32)
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> Optional[SessionContext]:
    """
    Resolve a bearer token to its user, or None.

    A session found dead (idle, deactivated user) is revoked on the spot so
    the reason is recorded. A live one has last_used_at bumped.
    """
    session = _find_active(token)
    if session is None:
        return None

    now = utcnow()
    reason = _end_reason(session, now)
    if reason == "Expired":
        return None
    if reason:
        _mark_revoked(session, reason, now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return SessionContext(user=session.user, session=session)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Logout. False when the token was unknown or already revoked."""
    session = _find_active(token)
    if session is None:
        return False
    _mark_revoked(session, reason, utcnow())
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str, *, commit: bool = True) -> int:
    """
    End every open session of a user; returns how many were open.

    Called with commit=False from user_service so the revocation lands in
    the same transaction as the password or status change.
    """
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _mark_revoked(session, reason, now)
    if commit:
        db.session.commit()
    return len(sessions)


def list_active_sessions(user_id: int) -> list[SessionToken]:
    """Open, unexpired sessions of a user, most recently used first."""
    return (
        db.session.query(SessionToken)
        .filter(
            SessionToken.user_id == user_id,
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at >= utcnow(),
        )
        .order_by(SessionToken.last_used_at.desc())
        .all()
    )


def cleanup_expired_sessions() -> int:
    """Delete revoked or expired sessions created more than 30 days ago."""
    now = utcnow()
    deleted = db.session.query(SessionToken).filter(
        db.or_(SessionToken.expires_at < now, SessionToken.is_revoked.is_(True)),
        SessionToken.created_at < now - timedelta(days=RETENTION_DAYS),
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
