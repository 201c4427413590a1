"""
PO Request Service — stage-tracked purchase requests.

Every create / field update / stage move writes one ``audit_logs`` row
(entity_type ``po_request``) in the same transaction as the change.
"""

import logging

from sqlalchemy import or_

from po_tracker.auth import actor_name, ensure_authenticated
from po_tracker.core.exceptions import ValidationError
from po_tracker.models import db
from po_tracker.models.audit import AuditLog, write_audit
from po_tracker.models.po_request import (
    INITIAL_STAGE,
    PO_STAGES,
    SORTABLE_FIELDS,
    UPDATABLE_FIELDS,
    PORequest,
)
from po_tracker.models.workflow import CAPEX_OPEX
from po_tracker.utils.helpers import commit_or_raise, get_or_raise, text_input, utcnow

logger = logging.getLogger(__name__)

ENTITY_TYPE = "po_request"
DEFAULT_LIMIT = 500
MAX_LIMIT = 2000
MAX_LOG_ENTRIES = 300
DEFAULT_SORT = "updated_at"
CREATE_FIELDS = frozenset({"it_ref_no"}) | UPDATABLE_FIELDS


def _coerce_amount(value):
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("amount must be a number", details={"amount": value}) from exc


def _validate_capex_opex(value):
    if value not in CAPEX_OPEX:
        raise ValidationError(
            "capex_opex must be CAPEX or OPEX",
            details={"capex_opex": value},
        )
    return value


def _clamp_limit(limit) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if limit <= 0:
        return DEFAULT_LIMIT if limit == 0 else 1
    return min(limit, MAX_LIMIT)


def _clean_fields(data: dict) -> dict:
    """Validate text fields in *data*; blank strings become None."""
    cleaned = {}
    for field, value in data.items():
        if field == "amount":
            cleaned[field] = _coerce_amount(value)
        else:
            cleaned[field] = text_input(value, field) or None
    return cleaned


# ═══════════════════════════════════════════════════════════════
# Create / read
# ═══════════════════════════════════════════════════════════════
def create_po_request(data: dict, actor) -> PORequest:
    ensure_authenticated(actor)
    data = _clean_fields({k: v for k, v in (data or {}).items() if k in CREATE_FIELDS})
    missing = [f for f in ("it_ref_no", "title", "capex_opex") if not data.get(f)]
    if missing:
        raise ValidationError(
            "it_ref_no, title, capex_opex are required",
            details={f: "required" for f in missing},
        )
    _validate_capex_opex(data["capex_opex"])

    now = utcnow()
    po = PORequest(
        it_ref_no=data["it_ref_no"],
        title=data["title"],
        capex_opex=data["capex_opex"],
        form_name=data.get("form_name"),
        vendor=data.get("vendor"),
        amount=data.get("amount"),
        currency=data.get("currency") or "MYR",
        requestor=data.get("requestor"),
        manager=data.get("manager"),
        stage=INITIAL_STAGE,
        next_action=data.get("next_action") or "Get quotations",
        owner_role=data.get("owner_role") or "INTERN",
        priority=data.get("priority") or "MED",
        created_at=now,
        updated_at=now,
    )
    db.session.add(po)
    db.session.flush()
    write_audit(
        entity_type=ENTITY_TYPE, entity_id=po.id, action="Created",
        actor=actor_name(actor), to_value=INITIAL_STAGE,
    )
    commit_or_raise()
    logger.info("PO request created", extra={"po_request_id": po.id, "it_ref_no": po.it_ref_no})
    return po


def list_po_requests(
    q=None,
    stage=None,
    capex_opex=None,
    vendor=None,
    owner_role=None,
    priority=None,
    sort=DEFAULT_SORT,
    direction="desc",
    limit=DEFAULT_LIMIT,
) -> list[PORequest]:
    """Filtered, sorted list.  Unknown sort columns fall back to ``updated_at``."""
    query = PORequest.query
    if q:
        like = f"%{q}%"
        query = query.filter(or_(
            PORequest.it_ref_no.ilike(like),
            PORequest.title.ilike(like),
            PORequest.vendor.ilike(like),
            PORequest.form_name.ilike(like),
        ))
    if stage:
        query = query.filter(PORequest.stage == stage)
    if capex_opex:
        query = query.filter(PORequest.capex_opex == capex_opex)
    if vendor:
        query = query.filter(PORequest.vendor == vendor)
    if owner_role:
        query = query.filter(PORequest.owner_role == owner_role)
    if priority:
        query = query.filter(PORequest.priority == priority)

    column = getattr(PORequest, sort if sort in SORTABLE_FIELDS else DEFAULT_SORT)
    ordering = column.asc() if str(direction).lower() == "asc" else column.desc()
    return query.order_by(ordering, PORequest.id.desc()).limit(_clamp_limit(limit)).all()


def get_po_request(po_id: int) -> dict:
    """Request plus its audit entries (newest first, at most 300)."""
    po = get_or_raise(PORequest, po_id, label="PO request")
    logs = (
        AuditLog.query
        .filter_by(entity_type=ENTITY_TYPE, entity_id=str(po.id))
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(MAX_LOG_ENTRIES)
        .all()
    )
    return {"po": po.to_dict(), "logs": [log.to_dict() for log in logs]}


def get_meta() -> dict:
    vendors = [
        v for (v,) in (
            db.session.query(PORequest.vendor)
            .filter(PORequest.vendor.isnot(None), PORequest.vendor != "")
            .distinct()
            .order_by(PORequest.vendor)
            .all()
        )
    ]
    return {"stages": list(PO_STAGES), "vendors": vendors}


# ═══════════════════════════════════════════════════════════════
# Mutations
# ═══════════════════════════════════════════════════════════════
def update_po_request(po_id: int, data: dict, actor) -> PORequest:
    """Apply whitelisted fields.  ``note`` (optional) goes to the audit row."""
    ensure_authenticated(actor)
    po = get_or_raise(PORequest, po_id, label="PO request")
    data = data or {}

    updates = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
    if not updates:
        raise ValidationError("No valid fields to update")
    updates = _clean_fields(updates)
    note = text_input(data.get("note"), "note")
    if "capex_opex" in updates:
        _validate_capex_opex(updates["capex_opex"])
    if "title" in updates and not updates["title"]:
        raise ValidationError("title cannot be empty", details={"title": "required"})

    for field, value in updates.items():
        setattr(po, field, value)
    po.updated_at = utcnow()

    write_audit(
        entity_type=ENTITY_TYPE, entity_id=po.id, action="Updated fields",
        actor=actor_name(actor), to_value=", ".join(sorted(updates)),
        note=note,
    )
    commit_or_raise()
    logger.info("PO request updated", extra={"po_request_id": po.id, "fields": sorted(updates)})
    return po


def move_stage(po_id: int, to_stage: str, actor, note: str | None = None) -> PORequest:
    ensure_authenticated(actor)
    to_stage = text_input(to_stage, "to_stage")
    note = text_input(note, "note")
    if to_stage not in PO_STAGES:
        raise ValidationError("Invalid stage", details={"to_stage": to_stage})
    po = get_or_raise(PORequest, po_id, label="PO request")

    from_stage = po.stage
    po.stage = to_stage
    po.updated_at = utcnow()
    write_audit(
        entity_type=ENTITY_TYPE, entity_id=po.id, action="Stage changed",
        actor=actor_name(actor), from_value=from_stage, to_value=to_stage, note=note,
    )
    commit_or_raise()
    logger.info(
        "PO request stage changed",
        extra={"po_request_id": po.id, "from_stage": from_stage, "to_stage": to_stage},
    )
    return po
