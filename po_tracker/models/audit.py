"""
PO Tracker
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for stage/field changes.
"""

from datetime import datetime, timezone

from sqlalchemy import event as _sa_event

from po_tracker.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"po_request", "po_step", "po_folder", "month", "user"}

AUDIT_ACTIONS = {
    # PO requests
    "Created",
    "Updated fields",
    "Stage changed",
    # Workflow steps
    "step.flags_updated",
    "step.file_attached",
    "step.file_detached",
    # Folders / months
    "folder.created",
    "folder.renamed",
    "folder.deleted",
    "month.created",
    "month.renamed",
    "month.deleted",
    # Users
    "user.created",
    "user.updated",
}


class AuditImmutableError(RuntimeError):
    """Raised when code attempts to modify or delete an audit row."""


class AuditLog(db.Model):
    """
    Immutable audit trail for every stage/field mutation.

    One row per action.  ``from_value``/``to_value`` carry the prior and new
    value (stage name, done state, field summary) as text.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False, comment="po_request | po_step | …")
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    from_value = db.Column(db.Text, nullable=True)
    to_value = db.Column(db.Text, nullable=True)
    note = db.Column(db.Text, nullable=True)
    actor = db.Column(db.String(100), nullable=False, default="system")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "from_value": self.from_value,
            "to_value": self.to_value,
            "note": self.note,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


@_sa_event.listens_for(AuditLog, "before_update")
def _block_audit_update(mapper, connection, target):
    raise AuditImmutableError(f"AuditLog {target.id} is append-only and cannot be updated")


@_sa_event.listens_for(AuditLog, "before_delete")
def _block_audit_delete(mapper, connection, target):
    raise AuditImmutableError(f"AuditLog {target.id} is append-only and cannot be deleted")


# ── Convenience writer ───────────────────────────────────────────────────────

def _as_text(value):
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str = "system",
    from_value=None,
    to_value=None,
    note: str | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        from_value=_as_text(from_value),
        to_value=_as_text(to_value),
        note=(_as_text(note) or "").strip() or None,
    )
    db.session.add(log)
    db.session.flush()
    return log
