"""
Step Mutation Service — checkbox toggles and file attach/detach.

Rules:
  - Every entry point takes an explicit ``actor`` (the authenticated User).
    It is used for attribution only; any authenticated user may edit any step.
  - ``recompute_step_done`` is the single place that assigns
    ``StepRecord.is_done``.  Every mutation calls it with post-mutation flags
    and the current file count.
  - Each mutation is one transaction: step row + file row + parent folder
    touch + audit row are committed together or rolled back together.
  - Stored file content is released after the metadata commit, best-effort.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from po_tracker.auth import actor_name, ensure_authenticated
from po_tracker.core.exceptions import StorageError, ValidationError
from po_tracker.models import db
from po_tracker.models.audit import write_audit
from po_tracker.models.workflow import StepFile, StepRecord
from po_tracker.services import file_storage
from po_tracker.services.completion_rules import evaluate_step, get_step_definition
from po_tracker.utils.helpers import commit_or_raise, get_or_raise, utcnow

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _file_count(step: StepRecord) -> int:
    return (
        db.session.query(func.count(StepFile.id))
        .filter(StepFile.step_id == step.id)
        .scalar()
    ) or 0


def recompute_step_done(step: StepRecord, file_count: int | None = None) -> bool:
    """Re-evaluate the completion rule for *step* and cache it on ``is_done``.

    Returns the new value.  ``file_count`` may be passed when it is already
    known (e.g. a freshly created step has no files).
    """
    if file_count is None:
        file_count = _file_count(step)
    step.is_done = evaluate_step(step.step_no, step.flags(), file_count)
    return step.is_done


def _stamp(step: StepRecord, actor) -> None:
    name = actor_name(actor)
    step.updated_at = utcnow()
    step.updated_by = name
    if step.folder is not None:
        step.folder.touch(name)


# ═══════════════════════════════════════════════════════════════════════════
# Lookups
# ═══════════════════════════════════════════════════════════════════════════

def get_step(step_id: int) -> StepRecord:
    return get_or_raise(StepRecord, step_id, label="Step")


def get_file(file_id: int, actor) -> tuple[StepFile, str]:
    """Return ``(StepFile, absolute_path)`` for download."""
    ensure_authenticated(actor)
    f = get_or_raise(StepFile, file_id, label="File")
    return f, file_storage.path_for(f.storage_key)


# ═══════════════════════════════════════════════════════════════════════════
# Mutations
# ═══════════════════════════════════════════════════════════════════════════

def update_step_flags(step_id: int, payload: dict | None, actor) -> StepRecord:
    """Merge checkbox flags onto a step and recompute its done state.

    Only flags used by the step's rule kind are applied; other keys
    (including flags of other kinds) are ignored.
    """
    ensure_authenticated(actor)
    step = get_step(step_id)
    definition = get_step_definition(step.step_no)
    allowed = definition.flag_names if definition else ()

    payload = payload if isinstance(payload, dict) else {}
    before_flags = step.flags()
    before_done = bool(step.is_done)

    for name in allowed:
        if name in payload:
            setattr(step, name, _as_bool(payload[name]))

    after_done = recompute_step_done(step)
    _stamp(step, actor)

    after_flags = step.flags()
    changed = {k: v for k, v in after_flags.items() if before_flags[k] != v}
    if changed or before_done != after_done:
        write_audit(
            entity_type="po_step",
            entity_id=step.id,
            action="step.flags_updated",
            actor=actor_name(actor),
            from_value=before_done,
            to_value=after_done,
            note=", ".join(f"{k}={v}" for k, v in sorted(changed.items())) or None,
        )

    commit_or_raise()
    logger.info(
        "Step flags updated",
        extra={"step_id": step.id, "step_no": step.step_no, "is_done": after_done},
    )
    return step


def attach_file(step_id: int, stream, filename: str | None, actor, content_type: str | None = None) -> dict:
    """Store an uploaded file on a step and recompute its done state.

    Returns ``{"id", "file_name", "storage_key"}``.
    """
    ensure_authenticated(actor)
    step = get_step(step_id)
    definition = get_step_definition(step.step_no)
    if definition is not None and not definition.accepts_files:
        raise ValidationError(
            f"Step {step.step_no} does not accept files",
            details={"step_no": step.step_no},
        )
    if stream is None:
        raise ValidationError("file is required", details={"file": "required"})

    display_name = (filename or "").strip() or "file"
    try:
        storage_key, size = file_storage.save(stream, display_name)
    except OSError as exc:
        logger.exception("Could not write upload for step %s", step.id)
        raise StorageError("Could not store file") from exc

    try:
        before_done = bool(step.is_done)
        name = actor_name(actor)
        step_file = StepFile(
            file_name=display_name[:255],
            storage_key=storage_key,
            content_type=content_type,
            size_bytes=size,
            uploaded_by=name,
        )
        step.files.append(step_file)
        after_done = recompute_step_done(step)
        _stamp(step, actor)
        write_audit(
            entity_type="po_step",
            entity_id=step.id,
            action="step.file_attached",
            actor=name,
            from_value=before_done,
            to_value=after_done,
            note=display_name,
        )
        commit_or_raise()
    except Exception:
        db.session.rollback()
        file_storage.delete_quietly(storage_key)
        raise

    logger.info(
        "File attached",
        extra={"step_id": step.id, "file_id": step_file.id, "is_done": after_done},
    )
    return {"id": step_file.id, "file_name": step_file.file_name, "storage_key": storage_key}


def detach_file(file_id: int, actor) -> StepRecord:
    """Remove a file from its step, recompute, then release the stored content.

    Missing stored content is not an error.
    """
    ensure_authenticated(actor)
    step_file = get_or_raise(StepFile, file_id, label="File")
    step = step_file.step
    storage_key = step_file.storage_key
    display_name = step_file.file_name
    before_done = bool(step.is_done)

    step.files.remove(step_file)
    db.session.delete(step_file)
    db.session.flush()

    after_done = recompute_step_done(step)
    _stamp(step, actor)
    write_audit(
        entity_type="po_step",
        entity_id=step.id,
        action="step.file_detached",
        actor=actor_name(actor),
        from_value=before_done,
        to_value=after_done,
        note=display_name,
    )
    commit_or_raise()

    file_storage.delete_quietly(storage_key)
    logger.info(
        "File detached",
        extra={"step_id": step.id, "file_id": file_id, "is_done": after_done},
    )
    return step
