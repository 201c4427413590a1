"""Shared utility functions for services and blueprints.

commit_or_raise:  single transaction boundary for every service mutation
get_or_raise:     primary-key lookup raising NotFoundError
utcnow / as_utc:  timezone-aware timestamps (SQLite hands back naive values)
text_input:       JSON string field → stripped str / None, ValidationError otherwise
"""
import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from po_tracker.core.exceptions import NotFoundError, StorageError, ValidationError
from po_tracker.models import db

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk)
    return obj


def text_input(value, field: str) -> str | None:
    """Normalise a client-supplied text field.

    None stays None; strings are stripped; anything else (numbers, lists,
    objects from a JSON body) raises ValidationError.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "must be a string"})
    return value.strip()


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_raise():
    """Commit the current SQLAlchemy session, rolling back on any failure.

    Every write group (record update + parent touch + audit row) is flushed
    into one session and committed here, so either all of it lands or none.

    IntegrityError is re-raised unchanged so callers can turn a unique
    violation into a ConflictError; anything else becomes StorageError.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise StorageError() from exc
