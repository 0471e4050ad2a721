"""
Sync engine tests against an in-memory cloud store.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from jewelerp.extensions import db
from jewelerp.models import Category, Customer, SyncQueue, User
from jewelerp.services import invoice_service, purchase_order_service, sync_service, vendor_service
from jewelerp.services.auth_service import create_user
from jewelerp.services.cloud_store import CloudStoreError
from jewelerp.services.sync_scheduler import initialize_sync
from jewelerp.services.sync_service import SyncError, SyncPayloadError
from jewelerp.time_utils import utcnow

from conftest import PASSWORD, FakeCloudStore


def _queue_categories(ctx, db_session, count, start=1000):
    for i in range(count):
        record_id = start + i
        sync_service.queue_change(ctx, "categories", "insert", record_id, {"id": record_id, "name": f"Cat {record_id}"})
    db_session.commit()


def _remote_category(row_id, branch_id=2, name="Bangles", updated_at="2999-01-01T00:00:00Z"):
    return {
        "id": row_id,
        "branch_id": branch_id,
        "name": name,
        "hsn_code": "71131900",
        "tax_percentage": "3.00",
        "is_active": True,
        "created_at": "2026-10-01T09:00:00Z",
        "updated_at": updated_at,
    }


class _RelationalCloudStore(FakeCloudStore):
    """Rejects child inserts whose parent row has not reached the cloud yet."""

    PARENTS = {
        "invoice_items": ("invoice_id", "invoices"),
        "payments": ("invoice_id", "invoices"),
        "old_gold_transactions": ("invoice_id", "invoices"),
        "purchase_orders": ("vendor_id", "vendors"),
    }

    def insert(self, table, row):
        parent = self.PARENTS.get(table)
        if parent is not None:
            column, parent_table = parent
            if row.get(column) not in self.tables.get(parent_table, {}):
                self.calls.append(("insert", table, row["id"]))
                raise CloudStoreError(
                    f"insert on {table} violates foreign key to {parent_table}", status_code=409
                )
        super().insert(table, row)


class _RecordingScheduler:
    def __init__(self):
        self.started_with = []
        self.stopped = 0

    @property
    def is_running(self):
        return bool(self.started_with) and not self.stopped

    def start(self, minutes):
        self.started_with.append(minutes)

    def stop(self):
        self.stopped += 1


class TestOutbox:

    def test_business_write_queues_snapshot(self, ctx, category):
        row = SyncQueue.query.filter_by(table_name="categories", record_id=category.id).one()

        assert row.operation == "insert"
        assert row.sync_status == "pending"
        assert row.branch_id == 1
        assert row.data["name"] == "Rings"

    def test_user_snapshot_never_carries_password_hash(self, ctx):
        user = create_user(ctx, username="manager", email="manager@shop.local", password=PASSWORD,
                           role="manager", bcrypt_rounds=4)

        row = SyncQueue.query.filter_by(table_name="users", record_id=user.id).one()
        assert "password_hash" not in row.data
        assert row.data["username"] == "manager"

    def test_status_counts_follow_queue(self, ctx, db_session):
        _queue_categories(ctx, db_session, 3)
        status = sync_service.get_sync_status(ctx)

        assert status["pending_changes_count"] == 3
        assert status["failed_changes_count"] == 0
        assert status["cloud_configured"] is False
        assert status["scheduler_running"] is False

    @pytest.mark.parametrize("table,payload,record_id,message", [
        ("sessions", {"id": 1}, 1, "not synced"),
        ("categories", ["id", 1], 1, "object"),
        ("categories", {"id": 1, "colour": "red"}, 1, "Unknown columns"),
        ("categories", {"id": 2, "name": "x"}, 1, "does not match"),
    ])
    def test_validate_payload_errors(self, table, payload, record_id, message):
        with pytest.raises(SyncPayloadError, match=message):
            sync_service.validate_payload(table, payload, record_id)

    def test_unknown_column_details(self):
        with pytest.raises(SyncPayloadError) as exc:
            sync_service.validate_payload("categories", {"id": 1, "b": 1, "a": 2}, 1)
        assert exc.value.details["unknown_columns"] == ["a", "b"]

    def test_unsupported_operation(self, ctx):
        with pytest.raises(SyncPayloadError):
            sync_service.queue_change(ctx, "categories", "upsert", 1, {"id": 1})


class TestPush:

    def test_push_caps_batch_at_100_oldest_first(self, ctx, db_session, fake_store):
        _queue_categories(ctx, db_session, 101)

        first = sync_service.push_changes(ctx, fake_store)
        assert first == 100
        inserted = [call[2] for call in fake_store.calls if call[0] == "insert"]
        assert inserted == list(range(1000, 1100))
        assert SyncQueue.query.filter_by(sync_status="pending").count() == 1

        second = sync_service.push_changes(ctx, fake_store)
        assert second == 1
        assert SyncQueue.query.filter_by(sync_status="synced").count() == 101

    def test_failed_row_is_marked_and_batch_continues(self, ctx, db_session, fake_store):
        _queue_categories(ctx, db_session, 3)
        fake_store.fail_on[("categories", 1001)] = "duplicate key value"

        pushed = sync_service.push_changes(ctx, fake_store)

        assert pushed == 2
        failed = SyncQueue.query.filter_by(record_id=1001).one()
        assert failed.sync_status == "failed"
        assert failed.retry_count == 1
        assert "duplicate key value" in failed.sync_error
        assert sync_service.get_sync_status(ctx)["failed_changes_count"] == 1

    def test_retry_failed_requeues(self, ctx, db_session, fake_store):
        _queue_categories(ctx, db_session, 1)
        fake_store.fail_on[("categories", 1000)] = "timeout"
        sync_service.push_changes(ctx, fake_store)

        assert sync_service.retry_failed(ctx) == 1
        row = SyncQueue.query.filter_by(record_id=1000).one()
        assert row.sync_status == "pending"
        assert row.retry_count == 1

        fake_store.fail_on.clear()
        assert sync_service.push_changes(ctx, fake_store) == 1
        assert row.sync_status == "synced"
        assert row.synced_at is not None

    def test_update_and_delete_use_id_match(self, ctx, db_session, fake_store):
        sync_service.queue_change(ctx, "categories", "update", 7, {"id": 7, "name": "Chains"})
        sync_service.queue_change(ctx, "categories", "delete", 7, {"id": 7})
        db_session.commit()

        sync_service.push_changes(ctx, fake_store)

        assert ("update", "categories", 7) in fake_store.calls
        assert ("delete", "categories", 7) in fake_store.calls
        assert 7 not in fake_store.tables.get("categories", {})


class TestPushOrder:

    def test_invoice_children_follow_their_invoice(self, ctx, customer, product):
        store = _RelationalCloudStore()
        invoice = invoice_service.create_invoice(
            ctx,
            customer_id=customer.id,
            items=[{"product_id": product.id, "quantity": 1, "metal_rate": "5000"}],
            old_gold={"gross_weight": "5", "tested_purity": "91.6", "current_rate": "6000"},
            payments=[{"payment_mode": "cash", "amount": "10000"}],
        )

        queued = [row.table_name for row in SyncQueue.query.order_by(SyncQueue.id).all()]
        assert queued.index("invoices") < queued.index("invoice_items")
        assert queued.index("invoices") < queued.index("payments")
        assert queued.index("invoices") < queued.index("old_gold_transactions")

        sync_service.push_changes(ctx, store)

        assert SyncQueue.query.filter_by(sync_status="failed").count() == 0
        assert invoice.id in store.tables["invoices"]
        assert len(store.tables["invoice_items"]) == 1
        assert len(store.tables["payments"]) == 1
        assert len(store.tables["old_gold_transactions"]) == 1

    def test_purchase_order_follows_its_vendor(self, ctx):
        store = _RelationalCloudStore()
        vendor = vendor_service.create_vendor(ctx, {"vendor_name": "Shree Bullion", "phone": "9825012345"})
        purchase_order_service.create_purchase_order(ctx, {
            "vendor_id": vendor.id, "quantity": "100", "rate_per_gram": "6000",
        })

        sync_service.push_changes(ctx, store)

        assert SyncQueue.query.filter_by(sync_status="failed").count() == 0
        assert len(store.tables["purchase_orders"]) == 1


class TestPull:

    def test_pull_upserts_rows_from_other_branches(self, ctx, fake_store):
        fake_store.seed("categories", _remote_category(500))

        pulled = sync_service.pull_changes(ctx, fake_store, tables=("categories",))

        assert pulled == 1
        row = db.session.get(Category, 500)
        assert row.name == "Bangles"
        assert row.branch_id == 2
        assert row.tax_percentage == Decimal("3.00")

    def test_pull_never_applies_own_branch_rows(self, ctx, app, db_session):
        store = FakeCloudStore(honor_filters=False)
        store.seed("categories", _remote_category(501, branch_id=1, name="Echo"))
        store.seed("categories", _remote_category(502, name="Anklets"))

        pulled = sync_service.pull_changes(ctx, store, tables=("categories",))

        assert pulled == 1
        assert db.session.get(Category, 501) is None
        assert db.session.get(Category, 502).name == "Anklets"

    def test_pull_sends_branch_and_since_filters(self, ctx, fake_store):
        sync_service.pull_changes(ctx, fake_store, tables=("categories",))
        first_filters = fake_store.calls[-1][2]
        assert first_filters == [("branch_id", "neq", 1)]

        sync_service.pull_changes(ctx, fake_store, tables=("categories",))
        second_filters = fake_store.calls[-1][2]
        assert second_filters[0][0:2] == ("updated_at", "gt")
        assert second_filters[0][2].endswith("Z")
        assert second_filters[1] == ("branch_id", "neq", 1)

    def test_remote_row_overwrites_local_copy(self, ctx, category, fake_store):
        fake_store.seed("categories", _remote_category(category.id, name="Rings & Bands"))

        sync_service.pull_changes(ctx, fake_store, tables=("categories",))

        assert db.session.get(Category, category.id).name == "Rings & Bands"

    def test_failing_table_is_skipped(self, ctx, fake_store):
        fake_store.fail_select.add("customers")
        fake_store.seed("categories", _remote_category(503))

        pulled = sync_service.pull_changes(ctx, fake_store, tables=("customers", "categories"))

        assert pulled == 1
        assert db.session.get(Category, 503) is not None

    def test_bad_remote_row_is_skipped(self, ctx, fake_store):
        bad = _remote_category(504)
        bad["tax_percentage"] = "three"
        fake_store.seed("categories", bad)
        fake_store.seed("categories", _remote_category(505))

        assert sync_service.pull_changes(ctx, fake_store, tables=("categories",)) == 1
        assert db.session.get(Category, 504) is None

    def test_pulled_user_gets_unusable_password(self, ctx, fake_store):
        fake_store.seed("users", {
            "id": 900,
            "branch_id": 2,
            "username": "remote",
            "email": "remote@shop.local",
            "full_name": "Remote Clerk",
            "role": "cashier",
            "is_active": True,
            "created_at": "2026-10-01T09:00:00Z",
            "updated_at": "2999-01-01T00:00:00Z",
        })

        sync_service.pull_changes(ctx, fake_store, tables=("users",))

        user = db.session.get(User, 900)
        assert user.password_hash == "!"

        user.password_hash = "local-hash"
        fake_store.tables["users"][900]["full_name"] = "Remote Cashier"
        sync_service.pull_changes(ctx, fake_store, tables=("users",), since=None)

        user = db.session.get(User, 900)
        assert user.full_name == "Remote Cashier"
        assert user.password_hash == "local-hash"

    def test_pull_updates_last_pull_at(self, ctx, fake_store):
        sync_service.pull_changes(ctx, fake_store, tables=())
        assert sync_service.get_sync_status(ctx)["last_pull_at"] is not None


class TestCycle:

    def test_not_configured(self, ctx):
        result = sync_service.perform_sync(ctx)
        assert result == {"success": False, "message": "Cloud sync is not configured", "pushed": 0, "pulled": 0}

    def test_disabled(self, ctx, fake_store):
        sync_service.toggle_sync(ctx, False)
        result = sync_service.perform_sync(ctx)
        assert result["success"] is False
        assert result["message"] == "Sync is disabled"

    def test_already_running(self, ctx, db_session, fake_store):
        status = sync_service.get_or_create_status(ctx.branch_id)
        status.start_sync()
        db_session.commit()

        assert sync_service.perform_sync(ctx)["message"] == "Sync already in progress"

        sync_service.reset_stale_flag(ctx.branch_id)
        assert sync_service.perform_sync(ctx)["success"] is True

    def test_full_cycle(self, ctx, customer, fake_store):
        fake_store.seed("customers", {
            "id": 700,
            "branch_id": 2,
            "customer_code": "CUST0200001",
            "first_name": "Meera",
            "mobile": "9811122233",
            "customer_type": "retail",
            "outstanding_balance": "0.00",
            "is_active": True,
            "created_at": "2026-10-01T09:00:00Z",
            "updated_at": "2999-01-01T00:00:00Z",
        })

        result = sync_service.perform_sync(ctx)

        assert result["success"] is True
        assert result["pushed"] >= 1
        assert result["pulled"] == 1
        assert fake_store.tables["customers"][customer.id]["first_name"] == "Ravi"
        assert db.session.get(Customer, 700).first_name == "Meera"

        status = sync_service.get_sync_status(ctx)
        assert status["is_syncing"] is False
        assert status["pending_changes_count"] == 0
        assert status["last_sync_at"] is not None
        assert status["last_sync_error"] is None


class TestMaintenance:

    def test_cleanup_removes_old_synced_rows(self, ctx, db_session, fake_store):
        _queue_categories(ctx, db_session, 3)
        sync_service.push_changes(ctx, fake_store)
        old = SyncQueue.query.filter_by(record_id=1000).one()
        old.synced_at = utcnow() - timedelta(days=10)
        db_session.commit()

        assert sync_service.cleanup(ctx, 7) == 1
        assert SyncQueue.query.count() == 2

    def test_cleanup_keeps_pending_rows(self, ctx, db_session):
        _queue_categories(ctx, db_session, 2)
        assert sync_service.cleanup(ctx, 0) == 0
        assert SyncQueue.query.count() == 2

    def test_cleanup_rejects_negative_days(self, ctx):
        with pytest.raises(SyncError):
            sync_service.cleanup(ctx, -1)

    @pytest.mark.parametrize("minutes", [0, -5, "10", 2.5, True])
    def test_update_interval_rejects_bad_values(self, ctx, minutes):
        with pytest.raises(SyncError):
            sync_service.update_interval(ctx, minutes)

    def test_interval_and_toggle_drive_scheduler(self, app, ctx):
        scheduler = _RecordingScheduler()
        app.extensions["sync_scheduler"] = scheduler

        status = sync_service.update_interval(ctx, 10)
        assert status.sync_interval_minutes == 10
        assert scheduler.started_with == [10]

        sync_service.toggle_sync(ctx, False)
        assert scheduler.stopped == 1

        sync_service.toggle_sync(ctx, True)
        assert scheduler.started_with == [10, 10]

    def test_list_queue_filters_by_status(self, ctx, db_session):
        _queue_categories(ctx, db_session, 2)
        rows = sync_service.list_queue(ctx, status="pending")
        assert [r.record_id for r in rows] == [1001, 1000]
        assert sync_service.list_queue(ctx, status="failed") == []

    def test_initialize_sync_local_only(self, app, branch):
        assert initialize_sync(app) is None
        assert "sync_scheduler" not in app.extensions
