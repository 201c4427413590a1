"""
Audit trail — append-only.
"""

import pytest

from po_tracker.models import db
from po_tracker.models.audit import AuditImmutableError, AuditLog, write_audit


def test_write_audit_normalises_values():
    log = write_audit(
        entity_type="po_step", entity_id=7, action="step.flags_updated",
        actor="intern", from_value=False, to_value=True, note="   ",
    )
    db.session.commit()
    assert (log.entity_id, log.from_value, log.to_value, log.note) == ("7", "false", "true", None)
    assert log.timestamp is not None


def test_audit_rows_cannot_be_updated():
    log = write_audit(entity_type="month", entity_id=1, action="month.created")
    db.session.commit()

    log.note = "tampered"
    with pytest.raises(AuditImmutableError):
        db.session.commit()
    db.session.rollback()
    assert db.session.get(AuditLog, log.id).note is None


def test_audit_rows_cannot_be_deleted():
    log = write_audit(entity_type="month", entity_id=1, action="month.created")
    db.session.commit()

    db.session.delete(log)
    with pytest.raises(AuditImmutableError):
        db.session.flush()
    db.session.rollback()
    assert AuditLog.query.count() == 1


def test_audit_survives_entity_deletion(month, regular_user):
    from po_tracker.services import tree_service

    tree_service.delete_month(month.id, regular_user)
    actions = {log.action for log in AuditLog.query.filter_by(entity_type="month")}
    assert actions == {"month.created", "month.deleted"}
