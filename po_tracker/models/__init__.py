"""
PO Tracker
Database models.

Modules:
    - auth:       User, Session
    - workflow:   Month, POFolder, StepRecord, StepFile
    - po_request: PORequest (stage-tracked purchase requests)
    - audit:      AuditLog (append-only)
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
