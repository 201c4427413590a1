"""
User Service — login, account CRUD and first-start admin provisioning.

User-management mutations are admin-only; the check is made here with
``ensure_admin`` so the rule holds regardless of transport.
"""

import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from po_tracker.auth import actor_name, ensure_admin
from po_tracker.core.exceptions import ConflictError, ValidationError
from po_tracker.models import db
from po_tracker.models.audit import write_audit
from po_tracker.models.auth import User
from po_tracker.utils.crypto import hash_password, verify_password
from po_tracker.utils.helpers import commit_or_raise, get_or_raise, text_input, utcnow

logger = logging.getLogger(__name__)


def _clean_username(username) -> str:
    username = text_input(username, "username")
    if not username:
        raise ValidationError("Username required", details={"username": "required"})
    if len(username) > 100:
        raise ValidationError("Username must be at most 100 characters", details={"username": "too long"})
    return username


def _check_password(password) -> None:
    if password is not None and not isinstance(password, str):
        raise ValidationError("password must be a string", details={"password": "must be a string"})


def _username_taken(username: str, exclude_id: int | None = None) -> bool:
    q = User.query.filter(db.func.lower(User.username) == username.lower())
    if exclude_id is not None:
        q = q.filter(User.id != exclude_id)
    return db.session.query(q.exists()).scalar()


# ═══════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════
def authenticate(username: str, password: str) -> User | None:
    """Return the User when *password* matches, else None."""
    username = (username or "").strip()
    if not username or not password:
        return None
    user = User.query.filter(db.func.lower(User.username) == username.lower()).first()
    if user is None or not verify_password(password, user.password_hash):
        logger.info("Failed login for username '%s'", username)
        return None
    return user


def get_user_by_id(user_id: int) -> User | None:
    return db.session.get(User, user_id)


# ═══════════════════════════════════════════════════════════════
# Admin: User CRUD
# ═══════════════════════════════════════════════════════════════
def list_users(actor) -> list[dict]:
    ensure_admin(actor)
    users = User.query.order_by(User.username.asc()).all()
    return [u.to_dict() for u in users]


def create_user(username: str, password: str, actor, is_admin: bool = False) -> User:
    """Create an account. Raises ValidationError / ConflictError."""
    ensure_admin(actor)
    username = _clean_username(username)
    _check_password(password)
    if not password:
        raise ValidationError("Password required", details={"password": "required"})
    if _username_taken(username):
        raise ConflictError("User", "username", username)

    user = User(
        username=username,
        password_hash=hash_password(password),
        is_admin=bool(is_admin),
    )
    db.session.add(user)
    db.session.flush()
    write_audit(
        entity_type="user",
        entity_id=user.id,
        action="user.created",
        actor=actor_name(actor),
        to_value=f"{username} (admin)" if user.is_admin else username,
    )
    try:
        commit_or_raise()
    except IntegrityError as exc:
        raise ConflictError("User", "username", username) from exc

    logger.info("User created", extra={"username": username, "is_admin": user.is_admin})
    return user


def update_user(
    user_id: int,
    actor,
    username: str | None = None,
    password: str | None = None,
    is_admin: bool | None = None,
) -> User:
    """Update username / password / admin flag.  A blank password keeps the current one."""
    ensure_admin(actor)
    user = get_or_raise(User, user_id, label="User")
    _check_password(password)

    changes = []
    if username is not None:
        username = _clean_username(username)
        if username != user.username:
            if _username_taken(username, exclude_id=user.id):
                raise ConflictError("User", "username", username)
            changes.append(f"username: {user.username} -> {username}")
            user.username = username
    if password:
        user.password_hash = hash_password(password)
        changes.append("password changed")
    if is_admin is not None and bool(is_admin) != bool(user.is_admin):
        if user.id == actor.id and not is_admin:
            raise ValidationError("You cannot remove your own admin rights")
        user.is_admin = bool(is_admin)
        changes.append(f"is_admin: {not user.is_admin} -> {user.is_admin}")

    if changes:
        user.updated_at = utcnow()
        write_audit(
            entity_type="user",
            entity_id=user.id,
            action="user.updated",
            actor=actor_name(actor),
            note="; ".join(changes),
        )
    try:
        commit_or_raise()
    except IntegrityError as exc:
        raise ConflictError("User", "username", username) from exc
    return user


# ═══════════════════════════════════════════════════════════════
# Startup provisioning
# ═══════════════════════════════════════════════════════════════
def ensure_default_admin() -> User | None:
    """Create the default administrator when no users exist.

    Returns the created User, or None when accounts already exist.
    """
    if db.session.query(User.id).first() is not None:
        return None

    username = current_app.config.get("DEFAULT_ADMIN_USERNAME", "admin")
    password = current_app.config.get("DEFAULT_ADMIN_PASSWORD", "admin123")
    user = User(username=username, password_hash=hash_password(password), is_admin=True)
    db.session.add(user)
    commit_or_raise()
    logger.warning(
        "No users found — provisioned default admin '%s'. Change its password.", username,
    )
    return user
