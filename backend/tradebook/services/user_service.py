# Overview: Service-layer operations for user administration, permissions and password changes.

"""
User Administration

INVARIANTS:
- Usernames are unique.
- There is always at least one Admin: the last one cannot be deleted or
  demoted.
- An admin cannot change their own role.
- Workers hold exactly the capabilities stored for them; the section
  uncheck cascade is applied before anything is written.
- Deleting or deactivating a user, or changing their password, revokes
  their sessions. Records they created stay, with attribution cleared.
"""

from __future__ import annotations

from typing import Mapping, Optional

from ..exceptions import AuthenticationError, ConflictError, NotFound, ValidationError
from ..extensions import db
from ..models import ActivityLog, BalanceEntry, Invoice, Payment, User, UserPermission
from ..models.auth import ROLE_ADMIN, ROLE_WORKER, ROLES
from ..permissions import normalize_permission_map
from .activity_service import log_activity
from .auth_service import hash_password, verify_password
from .concurrency import run_with_retry
from .session_service import revoke_all_user_sessions


def _clean_username(value) -> str:
    username = str(value).strip() if value is not None else ""
    if not username:
        raise ValidationError("username", "is required")
    if len(username) > 64:
        raise ValidationError("username", "exceeds max length 64")
    return username


def _clean_fullname(value) -> str:
    fullname = str(value).strip() if value is not None else ""
    if not fullname:
        raise ValidationError("fullname", "is required")
    if len(fullname) > 255:
        raise ValidationError("fullname", "exceeds max length 255")
    return fullname


def _clean_role(value) -> str:
    for role in ROLES:
        if str(value or "").strip().lower() == role.lower():
            return role
    raise ValidationError("role", f"must be one of {', '.join(ROLES)}")


def _ensure_username_free(username: str, exclude_id: Optional[int] = None) -> None:
    query = db.session.query(User.id).filter(User.username == username)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError(f"Username '{username}' already exists")


def _admin_count() -> int:
    return db.session.query(User).filter(User.role == ROLE_ADMIN).count()


def _write_permissions(user: User, mapping: Mapping) -> list[str]:
    granted = normalize_permission_map(mapping)
    keys = sorted(cap.key for cap in granted)
    user.permissions = [UserPermission(capability=key) for key in keys]
    return keys


# =============================================================================
# QUERIES
# =============================================================================

def get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFound("user", user_id)
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.username).all()


# =============================================================================
# ADMINISTRATION
# =============================================================================

def create_user(payload: Mapping, actor=None) -> User:
    """
    Create a user.

    payload: username, fullname, password, role (Admin|Worker, default
    Worker), permissions ({key: bool}, Workers only).

    Raises:
        ValidationError: missing fields, short password, unknown permission
        ConflictError: username already taken
    """
    username = _clean_username(payload.get("username"))
    fullname = _clean_fullname(payload.get("fullname"))
    role = _clean_role(payload.get("role") or ROLE_WORKER)
    password_hash = hash_password(payload.get("password"))

    def _op():
        _ensure_username_free(username)
        user = User(username=username, fullname=fullname, role=role, password_hash=password_hash, is_active=True)
        granted = []
        if role == ROLE_WORKER and payload.get("permissions") is not None:
            granted = _write_permissions(user, payload["permissions"])
        db.session.add(user)
        db.session.flush()
        log_activity(actor, "user.created", {
            "id": user.id,
            "username": username,
            "role": role,
            "permissions": granted,
        })
        db.session.commit()
        return user

    return run_with_retry(_op)


def update_user(user_id: int, payload: Mapping, actor=None) -> User:
    """
    Update username, fullname, role, active flag, password (new_password)
    or permissions.

    Raises:
        ValidationError: actor changing their own role, bad values
        ConflictError: username taken, or demoting the last admin
    """
    def _op():
        user = db.session.query(User).filter_by(id=user_id).first()
        if not user:
            raise NotFound("user", user_id)

        changes = []
        if "username" in payload:
            username = _clean_username(payload.get("username"))
            if username != user.username:
                _ensure_username_free(username, exclude_id=user.id)
                changes.append(f"username: {user.username} -> {username}")
                user.username = username

        if "fullname" in payload:
            fullname = _clean_fullname(payload.get("fullname"))
            if fullname != user.fullname:
                changes.append(f"fullname: {user.fullname} -> {fullname}")
                user.fullname = fullname

        if payload.get("role"):
            role = _clean_role(payload.get("role"))
            if role != user.role:
                if actor is not None and actor.id == user.id:
                    raise ValidationError("role", "You cannot change your own role")
                if user.role == ROLE_ADMIN and _admin_count() <= 1:
                    raise ConflictError("Cannot demote the last admin user")
                changes.append(f"role: {user.role} -> {role}")
                user.role = role

        if "is_active" in payload:
            is_active = payload.get("is_active")
            if not isinstance(is_active, bool):
                raise ValidationError("is_active", "must be true or false")
            if is_active != user.is_active:
                changes.append(f"is_active: {user.is_active} -> {is_active}")
                user.is_active = is_active
                if not is_active:
                    revoke_all_user_sessions(user.id, "User deactivated", commit=False)

        if payload.get("new_password"):
            user.password_hash = hash_password(payload["new_password"])
            revoke_all_user_sessions(user.id, "Password reset by admin", commit=False)
            changes.append("password: updated")

        if payload.get("permissions") is not None:
            _write_permissions(user, payload["permissions"])
            changes.append("permissions: updated")

        if changes:
            log_activity(actor, "user.updated", {"id": user.id, "username": user.username, "changes": changes})
        db.session.commit()
        return user

    return run_with_retry(_op)


def set_permissions(user_id: int, mapping: Mapping, actor=None) -> User:
    return update_user(user_id, {"permissions": mapping}, actor=actor)


def delete_user(user_id: int, actor=None) -> None:
    """
    Delete a user; the last admin can never be deleted.

    Invoices, payments, balance entries and activity rows the user created
    are kept with their user reference cleared.
    """
    def _op():
        user = db.session.query(User).filter_by(id=user_id).first()
        if not user:
            raise NotFound("user", user_id)
        if user.role == ROLE_ADMIN and _admin_count() <= 1:
            raise ConflictError("Cannot delete the last admin user")

        for model in (Invoice, Payment, BalanceEntry):
            db.session.query(model).filter(model.created_by_user_id == user.id).update(
                {model.created_by_user_id: None}, synchronize_session=False
            )
        db.session.query(ActivityLog).filter(ActivityLog.user_id == user.id).update(
            {ActivityLog.user_id: None}, synchronize_session=False
        )

        details = {"id": user.id, "username": user.username, "role": user.role, "fullname": user.fullname}
        db.session.delete(user)
        db.session.flush()
        log_activity(actor, "user.deleted", details)
        db.session.commit()

    return run_with_retry(_op)


def change_password(user: User, current_password: str, new_password: str) -> None:
    """
    Self-service password change.

    Raises:
        AuthenticationError: current password is wrong
        ValidationError: new password too short
    """
    if not verify_password(current_password or "", user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    new_hash = hash_password(new_password)

    def _op():
        target = db.session.query(User).filter_by(id=user.id).first()
        target.password_hash = new_hash
        revoke_all_user_sessions(target.id, "Password changed", commit=False)
        log_activity(target, "user.password_changed")
        db.session.commit()

    return run_with_retry(_op)
