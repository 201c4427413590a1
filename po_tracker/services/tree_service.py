"""
Tree Service — months, PO folders and the month → folder listing.

Responsibilities:
  - Month CRUD (month_key validation / derivation from a label like "Jan 2026")
  - PO folder CRUD; creating a folder creates its 9 step records in the
    same transaction, renaming re-parses the folder name
  - build_tree(): read-only projection, months newest first, folders newest
    first, each annotated with progress derived from cached step state
  - get_folder_detail(): folder + steps (catalog info, files, overdue flag)

Cascading deletes drop folders/steps/files rows; stored content is released
after the commit, best-effort.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from po_tracker.auth import actor_name, ensure_authenticated
from po_tracker.core.exceptions import ConflictError, ValidationError
from po_tracker.models import db
from po_tracker.models.audit import write_audit
from po_tracker.models.workflow import Month, POFolder, StepFile, StepRecord
from po_tracker.services import file_storage
from po_tracker.services.completion_rules import STEP_CATALOG, get_step_definition
from po_tracker.services.folder_name_parser import parse_folder_name
from po_tracker.services.progress import summarize
from po_tracker.services.step_service import recompute_step_done
from po_tracker.utils.helpers import as_utc, commit_or_raise, get_or_raise, text_input, utcnow

logger = logging.getLogger(__name__)

MONTH_KEY_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
PAYMENT_STEP_NO = 9
OVERDUE_AFTER = timedelta(days=14)

_LABEL_FORMATS = ("%b %Y", "%B %Y", "%Y-%m", "%m/%Y", "%b-%Y", "%B-%Y")


# ═══════════════════════════════════════════════════════════════════════════
# Months
# ═══════════════════════════════════════════════════════════════════════════

def month_key_from_label(label: str | None) -> str | None:
    """Derive ``YYYY-MM`` from a human label such as "Jan 2026"; None if unparseable."""
    text = " ".join((label or "").split())
    if not text:
        return None
    for fmt in _LABEL_FORMATS:
        try:
            return datetime.strptime(text, fmt).strftime("%Y-%m")
        except ValueError:
            continue
    return None


def _validate_month_key(month_key: str) -> str:
    month_key = text_input(month_key, "month_key") or ""
    if not MONTH_KEY_RE.match(month_key):
        raise ValidationError(
            "month_key must be in YYYY-MM format",
            details={"month_key": month_key},
        )
    return month_key


def _month_key_taken(month_key: str) -> bool:
    return db.session.query(Month.query.filter_by(month_key=month_key).exists()).scalar()


def create_month(label: str | None, actor, month_key: str | None = None) -> Month:
    """Create a month bucket; month_key is derived from *label* when omitted."""
    ensure_authenticated(actor)
    label = text_input(label, "label")
    if not label:
        raise ValidationError("label is required", details={"label": "required"})

    if month_key:
        month_key = _validate_month_key(month_key)
    else:
        month_key = month_key_from_label(label)
        if month_key is None:
            raise ValidationError(
                "Invalid month format. Try: Jan 2026",
                details={"label": label},
            )

    if _month_key_taken(month_key):
        raise ConflictError("Month", "month_key", month_key)

    name = actor_name(actor)
    month = Month(month_key=month_key, label=label[:100], created_by=name, updated_by=name)
    db.session.add(month)
    db.session.flush()
    write_audit(
        entity_type="month", entity_id=month.id, action="month.created",
        actor=name, to_value=f"{month_key} {label}",
    )
    try:
        commit_or_raise()
    except IntegrityError as exc:
        raise ConflictError("Month", "month_key", month_key) from exc

    logger.info("Month created", extra={"month_id": month.id, "month_key": month_key})
    return month


def rename_month(month_id: int, label: str | None, actor) -> Month:
    ensure_authenticated(actor)
    month = get_or_raise(Month, month_id, label="Month")
    label = text_input(label, "label")
    if not label:
        raise ValidationError("label is required", details={"label": "required"})

    old = month.label
    name = actor_name(actor)
    month.label = label[:100]
    month.updated_at = utcnow()
    month.updated_by = name
    write_audit(
        entity_type="month", entity_id=month.id, action="month.renamed",
        actor=name, from_value=old, to_value=month.label,
    )
    commit_or_raise()
    return month


def delete_month(month_id: int, actor) -> int:
    """Delete a month with all its folders, steps and files.

    Returns the number of folders removed.
    """
    ensure_authenticated(actor)
    month = get_or_raise(Month, month_id, label="Month")
    storage_keys = [
        key for (key,) in (
            db.session.query(StepFile.storage_key)
            .join(StepRecord, StepFile.step_id == StepRecord.id)
            .join(POFolder, StepRecord.folder_id == POFolder.id)
            .filter(POFolder.month_id == month.id)
            .all()
        )
    ]
    folder_count = len(month.folders)
    write_audit(
        entity_type="month", entity_id=month.id, action="month.deleted",
        actor=actor_name(actor), from_value=f"{month.month_key} {month.label}",
        note=f"{folder_count} folder(s) removed",
    )
    db.session.delete(month)
    commit_or_raise()

    file_storage.delete_many_quietly(storage_keys)
    logger.info(
        "Month deleted",
        extra={"month_id": month_id, "folders": folder_count, "files": len(storage_keys)},
    )
    return folder_count


# ═══════════════════════════════════════════════════════════════════════════
# PO folders
# ═══════════════════════════════════════════════════════════════════════════

def _apply_folder_name(folder: POFolder, folder_name: str) -> None:
    parsed = parse_folder_name(folder_name)
    folder.folder_name = folder_name
    folder.capex_opex = parsed.category
    folder.it_ref_no = parsed.reference_number
    folder.title = parsed.title[:255]


def _clean_folder_name(folder_name) -> str:
    folder_name = text_input(folder_name, "folder_name")
    if not folder_name:
        raise ValidationError("folder_name is required", details={"folder_name": "required"})
    if len(folder_name) > 255:
        raise ValidationError("folder_name must be at most 255 characters", details={"folder_name": "too long"})
    return folder_name


def create_folder(month_id: int, folder_name: str | None, actor) -> POFolder:
    """Create a PO folder and its 9 step records in one transaction."""
    ensure_authenticated(actor)
    month = get_or_raise(Month, month_id, label="Month")
    folder_name = _clean_folder_name(folder_name)

    name = actor_name(actor)
    folder = POFolder(month=month, created_by=name, updated_by=name)
    _apply_folder_name(folder, folder_name)
    db.session.add(folder)

    for definition in STEP_CATALOG:
        step = StepRecord(step_no=definition.step_no, updated_by=name)
        folder.steps.append(step)
        recompute_step_done(step, file_count=0)

    db.session.flush()
    write_audit(
        entity_type="po_folder", entity_id=folder.id, action="folder.created",
        actor=name, to_value=folder_name,
    )
    commit_or_raise()

    logger.info(
        "PO folder created",
        extra={"folder_id": folder.id, "month_id": month.id, "it_ref_no": folder.it_ref_no},
    )
    return folder


def rename_folder(folder_id: int, folder_name: str | None, actor) -> POFolder:
    """Rename a folder and re-parse category / reference / title from the new name."""
    ensure_authenticated(actor)
    folder = get_or_raise(POFolder, folder_id, label="PO")
    folder_name = _clean_folder_name(folder_name)

    old = folder.folder_name
    _apply_folder_name(folder, folder_name)
    folder.touch(actor_name(actor))
    write_audit(
        entity_type="po_folder", entity_id=folder.id, action="folder.renamed",
        actor=actor_name(actor), from_value=old, to_value=folder_name,
    )
    commit_or_raise()
    return folder


def delete_folder(folder_id: int, actor) -> None:
    ensure_authenticated(actor)
    folder = get_or_raise(POFolder, folder_id, label="PO")
    storage_keys = [f.storage_key for step in folder.steps for f in step.files]
    write_audit(
        entity_type="po_folder", entity_id=folder.id, action="folder.deleted",
        actor=actor_name(actor), from_value=folder.folder_name,
    )
    db.session.delete(folder)
    commit_or_raise()
    file_storage.delete_many_quietly(storage_keys)
    logger.info("PO folder deleted", extra={"folder_id": folder_id, "files": len(storage_keys)})


# ═══════════════════════════════════════════════════════════════════════════
# Read projections
# ═══════════════════════════════════════════════════════════════════════════

def _contains(haystack: str | None, q: str) -> bool:
    return q in (haystack or "").lower()


def _folder_matches(folder: POFolder, q: str) -> bool:
    hay = f"{folder.folder_name} {folder.it_ref_no} {folder.title} {folder.capex_opex}"
    return _contains(hay, q)


def folder_summary(folder: POFolder) -> dict:
    d = folder.to_dict()
    d.update(summarize(folder.steps).to_dict())
    return d


def build_tree(q: str | None = None) -> list[dict]:
    """Months (newest key first) each with folders (newest first) and progress.

    With *q*, keep folders whose name/ref/title/category contains it; a month
    whose label or key matches keeps all of its folders; months with no
    match are dropped.
    """
    q = (q or "").strip().lower()
    months = (
        Month.query
        .options(selectinload(Month.folders).selectinload(POFolder.steps))
        .order_by(Month.month_key.desc(), Month.id.desc())
        .all()
    )

    tree = []
    for month in months:
        folders = month.folders
        if q:
            month_hit = _contains(month.label, q) or _contains(month.month_key, q)
            if not month_hit:
                folders = [f for f in folders if _folder_matches(f, q)]
                if not folders:
                    continue
        node = month.to_dict()
        node["pos"] = [folder_summary(f) for f in folders]
        node["po_count"] = len(node["pos"])
        tree.append(node)
    return tree


def _is_overdue(step: StepRecord, folder: POFolder, now: datetime) -> bool:
    if step.step_no != PAYMENT_STEP_NO or step.is_done:
        return False
    created = as_utc(folder.created_at)
    return created is not None and now - created >= OVERDUE_AFTER


def get_folder_detail(folder_id: int) -> dict:
    """Folder with ordered steps (catalog text, flags, files, is_done) and progress."""
    folder = get_or_raise(POFolder, folder_id, label="PO")
    now = utcnow()

    steps = []
    for step in folder.steps:
        d = step.to_dict()
        definition = get_step_definition(step.step_no)
        if definition is not None:
            d.update(definition.to_dict())
        d["is_overdue"] = _is_overdue(step, folder, now)
        steps.append(d)

    return {
        "po": folder_summary(folder),
        "steps": steps,
    }
