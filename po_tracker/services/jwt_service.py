"""
JWT Service — access token generation, verification and login sessions.

Access token: 12 hours (configurable via JWT_ACCESS_EXPIRES)
Algorithm:    HS256

Token payload:
{
    "sub": "<user_id>",
    "username": "...",
    "is_admin": bool,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Every issued token is recorded as a Session (SHA-256 of the token) so that
logout can revoke it before expiry.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from po_tracker.models import db
from po_tracker.models.auth import Session
from po_tracker.utils.helpers import as_utc, commit_or_raise

# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 43200     # 12 hours
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation / Verification
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user) -> tuple[str, datetime]:
    """Generate an access token for *user*. Returns (token, expires_at)."""
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=_get_access_expires())
    payload = {
        "sub": str(user.id),
        "username": user.username,
        "is_admin": bool(user.is_admin),
        "type": "access",
        "iat": now,
        "exp": expires_at,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM), expires_at


def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")
    return payload


def hash_token(token: str) -> str:
    """SHA-256 hash of a token (for DB storage — never store raw tokens)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ═══════════════════════════════════════════════════════════════
# Session Management
# ═══════════════════════════════════════════════════════════════
def issue_session_token(user, ip_address: str | None = None, user_agent: str | None = None) -> dict:
    """Create an access token for *user* and persist its Session row."""
    token, expires_at = generate_access_token(user)
    session = Session(
        user_id=user.id,
        token_hash=hash_token(token),
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
        expires_at=expires_at,
    )
    db.session.add(session)
    commit_or_raise()
    return {
        "access_token": token,
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


def get_active_session(token: str) -> Session | None:
    """Return the active, unexpired Session for *token*, or None."""
    session = Session.query.filter_by(token_hash=hash_token(token), is_active=True).first()
    if session is None:
        return None
    if as_utc(session.expires_at) <= datetime.now(timezone.utc):
        return None
    return session


def revoke_session_by_token(token: str) -> bool:
    """
    Find an active session by token and revoke it.

    Returns True if a session was found and revoked, False otherwise.
    """
    session = Session.query.filter_by(token_hash=hash_token(token), is_active=True).first()
    if session is None:
        return False
    session.is_active = False
    commit_or_raise()
    return True
