# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import bcrypt

from ..exceptions import ValidationError
from ..extensions import db
from ..models import User
from ..time_utils import utcnow


MIN_PASSWORD_LENGTH = 8


def validate_password_strength(password) -> str:
    """Raises ValidationError("password") when the password is too short."""
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"must be at least {MIN_PASSWORD_LENGTH} characters long")
    return password


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt with cost factor 12.

    Password is validated before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def authenticate(username: str, password: str) -> User | None:
    """
    Return the active user matching the credentials, or None.

    Updates last_login_at on success. All login flows go through here.
    """
    username = (username or "").strip()
    if not username:
        return None
    user = db.session.query(User).filter(User.username == username, User.is_active.is_(True)).first()
    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
