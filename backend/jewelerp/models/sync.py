from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from ..extensions import db
from jewelerp.time_utils import to_utc_z, utcnow


def serialize_value(value):
    """JSON-safe form of a column value (Decimal -> str, datetime -> ISO Z)."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def serialize_columns(instance, exclude: tuple[str, ...] = ()) -> dict:
    """Snapshot of every mapped column on a row, keyed by column name."""
    mapper = instance.__mapper__
    return {
        col.name: serialize_value(getattr(instance, attr.key))
        for attr in mapper.column_attrs
        for col in attr.columns
        if col.name not in exclude
    }


class SyncQueue(db.Model):
    """
    Outbox of local mutations waiting to be pushed to the cloud store.

    Rows are appended in the same transaction as the write they describe and
    are only deleted by the retention cleanup once synced.
    """
    __tablename__ = "sync_queue"
    __table_args__ = (
        db.Index("ix_sync_queue_branch_status_created", "branch_id", "sync_status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_name = db.Column(db.String(100), nullable=False)
    operation = db.Column(db.String(16), nullable=False)  # insert, update, delete
    record_id = db.Column(db.Integer, nullable=False)
    data = db.Column(db.JSON, nullable=False)
    branch_id = db.Column(db.Integer, nullable=False, index=True)

    sync_status = db.Column(db.String(16), nullable=False, default="pending")  # pending, syncing, synced, failed
    sync_error = db.Column(db.Text, nullable=True)
    retry_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def mark_as_syncing(self) -> None:
        self.sync_status = "syncing"

    def mark_as_synced(self) -> None:
        self.sync_status = "synced"
        self.synced_at = utcnow()
        self.sync_error = None

    def mark_as_failed(self, error: str) -> None:
        self.sync_status = "failed"
        self.sync_error = error
        self.retry_count = (self.retry_count or 0) + 1

    def reset_for_retry(self) -> None:
        self.sync_status = "pending"
        self.sync_error = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "table_name": self.table_name,
            "operation": self.operation,
            "record_id": self.record_id,
            "data": self.data,
            "branch_id": self.branch_id,
            "sync_status": self.sync_status,
            "sync_error": self.sync_error,
            "retry_count": self.retry_count,
            "created_at": to_utc_z(self.created_at),
            "synced_at": to_utc_z(self.synced_at) if self.synced_at else None,
        }


class SyncStatus(db.Model):
    """
    Per-branch sync bookkeeping.

    is_syncing is an advisory flag, not a lock: it only guards against
    overlapping cycles inside a single running instance of the application.
    """
    __tablename__ = "sync_status"
    __table_args__ = (
        db.UniqueConstraint("branch_id", name="uq_sync_status_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, nullable=False)

    last_sync_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_push_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_pull_at = db.Column(db.DateTime(timezone=True), nullable=True)

    sync_enabled = db.Column(db.Boolean, nullable=False, default=True)
    sync_interval_minutes = db.Column(db.Integer, nullable=False, default=5)
    pending_changes_count = db.Column(db.Integer, nullable=False, default=0)
    failed_changes_count = db.Column(db.Integer, nullable=False, default=0)
    last_sync_error = db.Column(db.Text, nullable=True)
    is_syncing = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def start_sync(self) -> None:
        self.is_syncing = True

    def end_sync(self) -> None:
        self.is_syncing = False

    def set_sync_error(self, error: str) -> None:
        self.last_sync_error = error
        self.is_syncing = False

    def update_sync_timestamp(self, kind: str, now: datetime | None = None) -> None:
        """kind is 'push', 'pull' or 'both'."""
        now = now or utcnow()
        if kind in ("push", "both"):
            self.last_push_at = now
        if kind in ("pull", "both"):
            self.last_pull_at = now
        self.last_sync_at = now
        self.last_sync_error = None

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "last_sync_at": to_utc_z(self.last_sync_at) if self.last_sync_at else None,
            "last_push_at": to_utc_z(self.last_push_at) if self.last_push_at else None,
            "last_pull_at": to_utc_z(self.last_pull_at) if self.last_pull_at else None,
            "sync_enabled": self.sync_enabled,
            "sync_interval_minutes": self.sync_interval_minutes,
            "pending_changes_count": self.pending_changes_count,
            "failed_changes_count": self.failed_changes_count,
            "last_sync_error": self.last_sync_error,
            "is_syncing": self.is_syncing,
        }
