from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-branch, per-day counters for human-readable document numbers
    (INV-20250124-001, LN-20250124-002, ...).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "document_type", "period", name="uq_document_sequences_branch_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    # YYYYMMDD, or "" for sequences that never reset
    period = db.Column(db.String(8), nullable=False, default="")
    next_number = db.Column(db.Integer, nullable=False, default=1)
