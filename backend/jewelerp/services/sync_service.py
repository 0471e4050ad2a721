# Overview: Offline-first sync engine: outbox enqueue, push to the cloud store, pull and upsert remote rows.

"""
Sync Service

Local writes are captured in the sync_queue outbox in the same transaction
as the write itself. A sync cycle pushes pending outbox rows to the cloud
store, then pulls rows other branches changed since the last pull and
upserts them locally (last write wins, keyed on id).

SINGLE INSTANCE: SyncStatus.is_syncing is a plain flag checked and set
without compare-and-swap. It keeps cycles from overlapping inside one
running application. Two processes pointed at the same database are not
protected.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite

from ..extensions import db
from ..models import (
    Category,
    Customer,
    GoldLoan,
    Invoice,
    InvoiceItem,
    Karigar,
    KarigarOrder,
    LoanPayment,
    MetalRate,
    MetalType,
    OldGoldTransaction,
    Payment,
    Product,
    PurchaseOrder,
    SyncQueue,
    SyncStatus,
    User,
    Vendor,
)
from ..models.sync import serialize_columns
from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError, coerce_column_value
from .branch_service import BranchContext
from .cloud_store import CloudStore

PUSH_BATCH_SIZE = 100
DEFAULT_RETENTION_DAYS = 7
DEFAULT_INTERVAL_MINUTES = 5

OPERATIONS = ("insert", "update", "delete")

# Tables whose rows travel through the outbox
SYNC_TABLES = {
    model.__tablename__: model
    for model in (
        User,
        Category,
        MetalType,
        MetalRate,
        Product,
        Customer,
        Invoice,
        InvoiceItem,
        Payment,
        OldGoldTransaction,
        GoldLoan,
        LoanPayment,
        Karigar,
        KarigarOrder,
        Vendor,
        PurchaseOrder,
    )
}

# Master data other branches may change
PULL_TABLES = ("users", "categories", "metal_types", "products", "customers", "karigars", "vendors")

# Never leaves the device
EXCLUDED_COLUMNS = {"users": ("password_hash",)}

# Filled in when a pulled row is new locally; never overwrite an existing value
PULL_INSERT_DEFAULTS = {"users": {"password_hash": "!"}}


class SyncError(Exception):
    """Raised when sync bookkeeping fails."""
    pass


class SyncPayloadError(SyncError):
    """Outbox payload does not match the table it claims to describe."""

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


# =============================================================================
# Outbox
# =============================================================================

def validate_payload(table_name: str, payload, record_id: int | None = None) -> dict:
    """
    Check an outbox payload against the registered table.

    Every key must be a column of the table and payload["id"] must equal
    record_id.
    """
    model = SYNC_TABLES.get(table_name)
    if model is None:
        raise SyncPayloadError(f"Table '{table_name}' is not synced", details={"table_name": table_name})
    if not isinstance(payload, dict):
        raise SyncPayloadError("Payload must be an object", details={"table_name": table_name})

    columns = set(model.__table__.columns.keys())
    unknown = sorted(k for k in payload if k not in columns)
    if unknown:
        raise SyncPayloadError(
            f"Unknown columns for {table_name}: {', '.join(unknown)}",
            details={"table_name": table_name, "unknown_columns": unknown},
        )

    if record_id is not None and payload.get("id") != record_id:
        raise SyncPayloadError(
            "Payload id does not match record_id",
            details={"table_name": table_name, "record_id": record_id, "payload_id": payload.get("id")},
        )
    return payload


def get_or_create_status(branch_id: int) -> SyncStatus:
    status = db.session.query(SyncStatus).filter_by(branch_id=branch_id).first()
    if status is None:
        status = SyncStatus(
            branch_id=branch_id,
            sync_enabled=True,
            sync_interval_minutes=DEFAULT_INTERVAL_MINUTES,
        )
        db.session.add(status)
        db.session.flush()
    return status


def refresh_counts(status: SyncStatus) -> SyncStatus:
    """Recompute pending/failed counts from the queue itself."""
    base = db.session.query(SyncQueue).filter(SyncQueue.branch_id == status.branch_id)
    status.pending_changes_count = base.filter(SyncQueue.sync_status == "pending").count()
    status.failed_changes_count = base.filter(SyncQueue.sync_status == "failed").count()
    return status


def queue_change(
    ctx: BranchContext,
    table_name: str,
    operation: str,
    record_id: int,
    data: dict,
) -> SyncQueue:
    """
    Append a pending outbox row to the current transaction.

    Does not commit: the row becomes durable together with the business
    write it describes, or not at all.
    """
    if operation not in OPERATIONS:
        raise SyncPayloadError(f"Unsupported operation: {operation}")
    validate_payload(table_name, data, record_id)

    entry = SyncQueue(
        table_name=table_name,
        operation=operation,
        record_id=record_id,
        data=data,
        branch_id=ctx.branch_id,
        sync_status="pending",
    )
    db.session.add(entry)
    db.session.flush()

    refresh_counts(get_or_create_status(ctx.branch_id))
    return entry


def queue_record(ctx: BranchContext, instance, operation: str = "insert") -> SyncQueue:
    """Snapshot a model instance and queue it."""
    db.session.flush()
    table_name = instance.__tablename__
    data = serialize_columns(instance, exclude=EXCLUDED_COLUMNS.get(table_name, ()))
    return queue_change(ctx, table_name, operation, instance.id, data)


# =============================================================================
# Cycle
# =============================================================================

def get_cloud_store() -> CloudStore | None:
    return current_app.extensions.get("cloud_store")


def _result(success: bool, message: str, pushed: int = 0, pulled: int = 0) -> dict:
    return {"success": success, "message": message, "pushed": pushed, "pulled": pulled}


def perform_sync(ctx: BranchContext, store: CloudStore | None = None) -> dict:
    """
    One full cycle: push, then pull.

    No-ops when sync is disabled, a cycle is already running, or no cloud
    store is configured.
    """
    store = store or get_cloud_store()
    status = get_or_create_status(ctx.branch_id)

    if not status.sync_enabled:
        db.session.commit()
        return _result(False, "Sync is disabled")
    if status.is_syncing:
        return _result(False, "Sync already in progress")
    if store is None:
        db.session.commit()
        return _result(False, "Cloud sync is not configured")

    started_at = utcnow()
    status.start_sync()
    db.session.commit()

    try:
        pushed = push_changes(ctx, store)
        pulled = pull_changes(ctx, store, since=status.last_pull_at, started_at=started_at)

        status = get_or_create_status(ctx.branch_id)
        status.update_sync_timestamp("both", started_at)
        status.end_sync()
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Sync cycle failed for branch %s", ctx.branch_id)
        status = get_or_create_status(ctx.branch_id)
        status.set_sync_error(str(exc))
        db.session.commit()
        return _result(False, f"Sync failed: {exc}")

    current_app.logger.info("Sync completed for branch %s: pushed=%s pulled=%s", ctx.branch_id, pushed, pulled)
    return _result(True, "Sync completed successfully", pushed, pulled)


def _apply_change(store: CloudStore, change: SyncQueue) -> None:
    data = validate_payload(change.table_name, change.data, change.record_id)
    if change.operation == "insert":
        store.insert(change.table_name, data)
    elif change.operation == "update":
        store.update(change.table_name, data, {"id": change.record_id})
    elif change.operation == "delete":
        store.delete(change.table_name, {"id": change.record_id})
    else:
        raise SyncPayloadError(f"Unsupported operation: {change.operation}")


def push_changes(ctx: BranchContext, store: CloudStore) -> int:
    """
    Push at most PUSH_BATCH_SIZE pending rows, oldest first.

    A failing row is marked failed and the batch carries on.
    """
    pending = (
        db.session.query(SyncQueue)
        .filter(SyncQueue.branch_id == ctx.branch_id, SyncQueue.sync_status == "pending")
        .order_by(SyncQueue.created_at.asc(), SyncQueue.id.asc())
        .limit(PUSH_BATCH_SIZE)
        .all()
    )

    pushed = 0
    for change in pending:
        change.mark_as_syncing()
        db.session.commit()
        try:
            _apply_change(store, change)
        except Exception as exc:
            change.mark_as_failed(str(exc))
            current_app.logger.error("Failed to sync change %s (%s %s): %s", change.id, change.operation, change.table_name, exc)
        else:
            change.mark_as_synced()
            pushed += 1
        db.session.commit()

    status = refresh_counts(get_or_create_status(ctx.branch_id))
    status.last_push_at = utcnow()
    db.session.commit()
    return pushed


def _coerce_remote_row(model, record: dict) -> dict:
    columns = model.__table__.columns
    values = {}
    for key, raw in record.items():
        if key not in columns:
            continue
        values[key] = coerce_column_value(columns[key], raw)
    return values


def upsert_local_record(model, values: dict) -> None:
    """INSERT ... ON CONFLICT (id) DO UPDATE for the local dialect."""
    table = model.__table__
    insert_values = {**PULL_INSERT_DEFAULTS.get(table.name, {}), **values}
    dialect = db.session.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite.insert(table).values(**insert_values)
    elif dialect == "postgresql":
        stmt = postgresql.insert(table).values(**insert_values)
    else:
        raise SyncError(f"Upsert is not supported on {dialect}")

    updates = {k: stmt.excluded[k] for k in values if k != "id"}
    if updates:
        stmt = stmt.on_conflict_do_update(index_elements=[table.c.id], set_=updates)
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=[table.c.id])
    db.session.execute(stmt)


def pull_changes(
    ctx: BranchContext,
    store: CloudStore,
    *,
    tables: tuple[str, ...] = PULL_TABLES,
    since=None,
    started_at=None,
) -> int:
    """
    Pull rows changed by other branches and upsert them locally.

    Each table commits on its own; a failing table is logged and skipped.
    Rows carrying this branch's id are never applied.
    """
    status = get_or_create_status(ctx.branch_id)
    if since is None:
        since = status.last_pull_at
    started_at = started_at or utcnow()

    pulled = 0
    for table_name in tables:
        model = SYNC_TABLES.get(table_name)
        if model is None:
            current_app.logger.warning("Skipping pull for unsynced table %s", table_name)
            continue

        filters = []
        if since is not None:
            filters.append(("updated_at", "gt", to_utc_z(since)))
        filters.append(("branch_id", "neq", ctx.branch_id))

        try:
            records = store.select(table_name, filters)
            applied = 0
            for record in records:
                if record.get("branch_id") == ctx.branch_id:
                    continue
                try:
                    values = _coerce_remote_row(model, record)
                except ValidationError as exc:
                    current_app.logger.warning("Skipping %s row %s: %s", table_name, record.get("id"), exc)
                    continue
                if values.get("id") is None:
                    continue
                upsert_local_record(model, values)
                applied += 1
            db.session.commit()
            pulled += applied
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to pull %s", table_name)

    status = get_or_create_status(ctx.branch_id)
    status.last_pull_at = started_at
    db.session.commit()
    db.session.expire_all()
    return pulled


# =============================================================================
# Maintenance and settings
# =============================================================================

def cleanup(ctx: BranchContext, days_to_keep: int = DEFAULT_RETENTION_DAYS) -> int:
    """Delete synced rows older than the retention window; returns the count."""
    if days_to_keep < 0:
        raise SyncError("days_to_keep must be >= 0")
    cutoff = utcnow() - timedelta(days=days_to_keep)
    deleted = (
        db.session.query(SyncQueue)
        .filter(
            SyncQueue.branch_id == ctx.branch_id,
            SyncQueue.sync_status == "synced",
            SyncQueue.synced_at < cutoff,
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.info("Removed %s synced queue rows older than %s days", deleted, days_to_keep)
    return deleted


def retry_failed(ctx: BranchContext) -> int:
    failed = (
        db.session.query(SyncQueue)
        .filter(SyncQueue.branch_id == ctx.branch_id, SyncQueue.sync_status == "failed")
        .all()
    )
    for change in failed:
        change.reset_for_retry()
    refresh_counts(get_or_create_status(ctx.branch_id))
    db.session.commit()
    return len(failed)


def _scheduler():
    return current_app.extensions.get("sync_scheduler")


def toggle_sync(ctx: BranchContext, enabled: bool) -> SyncStatus:
    """Disabling stops the timer; enabling restarts it, which syncs immediately."""
    status = get_or_create_status(ctx.branch_id)
    status.sync_enabled = bool(enabled)
    db.session.commit()

    scheduler = _scheduler()
    if scheduler is not None:
        if status.sync_enabled:
            scheduler.start(status.sync_interval_minutes)
        else:
            scheduler.stop()
    return status


def update_interval(ctx: BranchContext, minutes: int) -> SyncStatus:
    if not isinstance(minutes, int) or isinstance(minutes, bool) or minutes < 1:
        raise SyncError("Sync interval must be a whole number of minutes >= 1")
    status = get_or_create_status(ctx.branch_id)
    status.sync_interval_minutes = minutes
    db.session.commit()

    scheduler = _scheduler()
    if scheduler is not None and status.sync_enabled:
        scheduler.start(minutes)
    return status


def get_sync_status(ctx: BranchContext) -> dict:
    status = refresh_counts(get_or_create_status(ctx.branch_id))
    db.session.commit()
    data = status.to_dict()
    data["cloud_configured"] = get_cloud_store() is not None
    scheduler = _scheduler()
    data["scheduler_running"] = bool(scheduler and scheduler.is_running)
    return data


def trigger_manual_sync(ctx: BranchContext) -> dict:
    return perform_sync(ctx)


def list_queue(ctx: BranchContext, *, status: str | None = None, limit: int = 100) -> list[SyncQueue]:
    query = db.session.query(SyncQueue).filter(SyncQueue.branch_id == ctx.branch_id)
    if status:
        query = query.filter(SyncQueue.sync_status == status)
    return query.order_by(SyncQueue.created_at.desc(), SyncQueue.id.desc()).limit(min(max(limit, 1), 500)).all()


def reset_stale_flag(branch_id: int) -> None:
    """Clear is_syncing left behind by a process that died mid-cycle."""
    status = get_or_create_status(branch_id)
    if status.is_syncing:
        current_app.logger.warning("Clearing stale is_syncing flag for branch %s", branch_id)
        status.end_sync()
    db.session.commit()
