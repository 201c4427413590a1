"""
PO Tracker
PO request model — stage-tracked purchase requests.

A PORequest moves through ``PO_STAGES`` from quotation to closure.  Every
create, field update and stage move is recorded in ``audit_logs`` with
entity_type ``po_request``.
"""

from datetime import datetime, timezone

from po_tracker.models import db


def _utcnow():
    return datetime.now(timezone.utc)


PO_STAGES = (
    "QUOTATION_COLLECTING",
    "FORM_DRAFTING",
    "COMBINED_PREPARING",
    "SIGNED_PENDING",
    "UPLOADED_DONE",
    "PO_PENDING_ADMIN",
    "PO_SENT_MANAGER",
    "INVOICE_PENDING",
    "INVOICE_UPLOADED",
    "PAYMENT_PENDING",
    "PAYMENT_NEED_CONFIRMATION",
    "PAYMENT_COMPLETED",
    "CLOSED",
)

INITIAL_STAGE = PO_STAGES[0]

# Fields a PATCH may touch
UPDATABLE_FIELDS = frozenset({
    "title", "capex_opex", "form_name", "vendor", "amount", "currency",
    "requestor", "manager", "next_action", "owner_role", "priority",
    "quote_requested_at", "quote_received_at", "signed_at", "uploaded_at",
    "po_received_at", "invoice_received_at", "payment_requested_at", "payment_completed_at",
    "sharepoint_folder_url", "signed_pdf_url", "po_doc_url", "invoice_url", "payment_slip_url",
})

SORTABLE_FIELDS = frozenset({
    "updated_at", "created_at", "amount", "vendor", "stage", "it_ref_no", "title",
})


class PORequest(db.Model):
    __tablename__ = "po_requests"
    __table_args__ = (
        db.Index("idx_po_requests_stage", "stage"),
        db.Index("idx_po_requests_vendor", "vendor"),
    )

    id = db.Column(db.Integer, primary_key=True)
    it_ref_no = db.Column(db.String(50), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    capex_opex = db.Column(db.String(10), nullable=False, comment="CAPEX | OPEX")
    form_name = db.Column(db.String(255))
    vendor = db.Column(db.String(200))
    amount = db.Column(db.Float)
    currency = db.Column(db.String(10), default="MYR")
    requestor = db.Column(db.String(100))
    manager = db.Column(db.String(100))

    stage = db.Column(db.String(40), nullable=False, default=INITIAL_STAGE)
    next_action = db.Column(db.String(255), default="Get quotations")
    owner_role = db.Column(db.String(30), default="INTERN")
    priority = db.Column(db.String(10), default="MED")

    # Milestones (ISO strings as entered by the user)
    quote_requested_at = db.Column(db.String(40))
    quote_received_at = db.Column(db.String(40))
    signed_at = db.Column(db.String(40))
    uploaded_at = db.Column(db.String(40))
    po_received_at = db.Column(db.String(40))
    invoice_received_at = db.Column(db.String(40))
    payment_requested_at = db.Column(db.String(40))
    payment_completed_at = db.Column(db.String(40))

    # Document links
    sharepoint_folder_url = db.Column(db.String(500))
    signed_pdf_url = db.Column(db.String(500))
    po_doc_url = db.Column(db.String(500))
    invoice_url = db.Column(db.String(500))
    payment_slip_url = db.Column(db.String(500))

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        d = {c.name: getattr(self, c.name) for c in self.__table__.columns}
        d["created_at"] = self.created_at.isoformat() if self.created_at else None
        d["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return d

    def __repr__(self):
        return f"<PORequest {self.id}: {self.it_ref_no} [{self.stage}]>"
