"""
PO Tracker
Workflow domain model.

Models:
    - Month:      grouping bucket keyed by year-month (YYYY-MM)
    - POFolder:   one purchase order tracked through the 9-step checklist
    - StepRecord: per-folder state of one checklist step
    - StepFile:   file attached to a step

Hierarchy: Month → POFolder → StepRecord → StepFile.
Deletes cascade down the whole chain (ORM cascade + ON DELETE CASCADE).

StepRecord.is_done is a cached value of the completion rule for the step.
It is written only by ``po_tracker.services.step_service.recompute_step_done``.
PO-level progress (total/done/all-done) is never stored; see
``po_tracker.services.progress``.
"""

from datetime import datetime, timezone

from po_tracker.models import db


def _utcnow():
    return datetime.now(timezone.utc)


CAPEX_OPEX = ("CAPEX", "OPEX")


class Month(db.Model):
    """Month folder — groups PO folders created for one calendar month."""

    __tablename__ = "po_months"

    id = db.Column(db.Integer, primary_key=True)
    month_key = db.Column(
        db.String(7), unique=True, nullable=False,
        comment="Sortable key, YYYY-MM",
    )
    label = db.Column(db.String(100), nullable=False, comment="e.g. 'Jan 2026'")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    created_by = db.Column(db.String(100), default="system")
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_by = db.Column(db.String(100), default="system")

    # ── Relationships
    folders = db.relationship(
        "POFolder",
        back_populates="month",
        cascade="all, delete-orphan",
        order_by="POFolder.created_at.desc(), POFolder.id.desc()",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "month_key": self.month_key,
            "label": self.label,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }

    def __repr__(self):
        return f"<Month {self.id}: {self.month_key}>"


class POFolder(db.Model):
    """PO folder — fields parsed from the free-text folder name plus 9 steps."""

    __tablename__ = "po_folders"

    id = db.Column(db.Integer, primary_key=True)
    month_id = db.Column(
        db.Integer,
        db.ForeignKey("po_months.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    folder_name = db.Column(db.String(255), nullable=False)
    capex_opex = db.Column(db.String(10), nullable=False, default="CAPEX", comment="CAPEX | OPEX")
    it_ref_no = db.Column(db.String(50), nullable=False, default="IT-UNKNOWN")
    title = db.Column(db.String(255), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    created_by = db.Column(db.String(100), default="system")
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_by = db.Column(db.String(100), default="system")

    # ── Relationships
    month = db.relationship("Month", back_populates="folders")
    steps = db.relationship(
        "StepRecord",
        back_populates="folder",
        cascade="all, delete-orphan",
        order_by="StepRecord.step_no",
    )

    def touch(self, actor_name: str) -> None:
        """Stamp the folder as modified by *actor_name*."""
        self.updated_at = _utcnow()
        self.updated_by = actor_name

    def to_dict(self):
        return {
            "id": self.id,
            "month_id": self.month_id,
            "folder_name": self.folder_name,
            "capex_opex": self.capex_opex,
            "it_ref_no": self.it_ref_no,
            "title": self.title,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }

    def __repr__(self):
        return f"<POFolder {self.id}: {self.folder_name}>"


class StepRecord(db.Model):
    """State of one checklist step for one PO folder."""

    __tablename__ = "po_steps"
    __table_args__ = (
        db.UniqueConstraint("folder_id", "step_no", name="uq_po_step_folder_step_no"),
    )

    id = db.Column(db.Integer, primary_key=True)
    folder_id = db.Column(
        db.Integer,
        db.ForeignKey("po_folders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    step_no = db.Column(db.Integer, nullable=False, comment="1..9, copied from the step catalog")

    # Steps 5 and 8
    masterlist_done = db.Column(db.Boolean, nullable=False, default=False)
    sharepoint_done = db.Column(db.Boolean, nullable=False, default=False)
    notion_done = db.Column(db.Boolean, nullable=False, default=False)
    # Step 6
    outlook_done = db.Column(db.Boolean, nullable=False, default=False)
    # Step 9
    paid_done = db.Column(db.Boolean, nullable=False, default=False)

    is_done = db.Column(
        db.Boolean, nullable=False, default=False,
        comment="Cached completion rule result — set only by recompute_step_done()",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_by = db.Column(db.String(100), default="system")

    # ── Relationships
    folder = db.relationship("POFolder", back_populates="steps")
    files = db.relationship(
        "StepFile",
        back_populates="step",
        cascade="all, delete-orphan",
        order_by="StepFile.uploaded_at.desc(), StepFile.id.desc()",
    )

    def flags(self) -> dict:
        return {
            "masterlist_done": bool(self.masterlist_done),
            "sharepoint_done": bool(self.sharepoint_done),
            "notion_done": bool(self.notion_done),
            "outlook_done": bool(self.outlook_done),
            "paid_done": bool(self.paid_done),
        }

    def to_dict(self, include_files=True):
        d = {
            "id": self.id,
            "folder_id": self.folder_id,
            "step_no": self.step_no,
            **self.flags(),
            "is_done": bool(self.is_done),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }
        if include_files:
            d["files"] = [f.to_dict() for f in self.files]
        return d

    def __repr__(self):
        return f"<StepRecord {self.id}: folder={self.folder_id} step={self.step_no} done={self.is_done}>"


class StepFile(db.Model):
    """Uploaded file attached to a step. Content lives under UPLOAD_FOLDER."""

    __tablename__ = "po_step_files"

    id = db.Column(db.Integer, primary_key=True)
    step_id = db.Column(
        db.Integer,
        db.ForeignKey("po_steps.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = db.Column(db.String(255), nullable=False, comment="Original display name")
    storage_key = db.Column(
        db.String(300), nullable=False, unique=True,
        comment="Sanitized unique name of the stored content",
    )
    content_type = db.Column(db.String(120))
    size_bytes = db.Column(db.Integer, default=0)
    uploaded_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    uploaded_by = db.Column(db.String(100), default="system")

    # ── Relationships
    step = db.relationship("StepRecord", back_populates="files")

    def to_dict(self):
        return {
            "id": self.id,
            "step_id": self.step_id,
            "file_name": self.file_name,
            "storage_key": self.storage_key,
            "file_path": f"/api/v1/files/{self.id}",
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "uploaded_at": self.uploaded_at.isoformat() if self.uploaded_at else None,
            "uploaded_by": self.uploaded_by,
        }

    def __repr__(self):
        return f"<StepFile {self.id}: {self.file_name}>"
