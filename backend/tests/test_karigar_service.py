from datetime import date, timedelta
from decimal import Decimal

import pytest

from jewelerp.services import karigar_service
from jewelerp.services.karigar_service import KarigarError, KarigarNotFoundError
from jewelerp.validation import ConflictError, ValidationError


@pytest.fixture
def karigar(ctx):
    return karigar_service.create_karigar(ctx, {
        "name": "Mahesh Soni",
        "mobile": "9988776655",
        "specialization": "chains",
        "payment_type": "per_gram",
        "payment_rate": "200",
    })


@pytest.fixture
def order(ctx, karigar):
    """20 g of 91.6 issued: 18.320 g fine."""
    return karigar_service.create_order(ctx, {
        "karigar_id": karigar.id,
        "description": "Rope chain, 22 inch",
        "metal_issued_weight": "20",
        "metal_issued_purity": "91.6",
        "expected_delivery_date": (date.today() + timedelta(days=7)).isoformat(),
    })


def _receive(ctx, order, weight="19.5", purity="91.6", rate="6000"):
    return karigar_service.receive_order(ctx, order.id, {
        "metal_received_weight": weight,
        "metal_received_purity": purity,
        "metal_rate": rate,
    })


def test_create_karigar_assigns_code(karigar):
    assert karigar.karigar_code == "KAR0100001"
    assert karigar.outstanding_balance == Decimal("0")


def test_duplicate_mobile_rejected(ctx, karigar):
    with pytest.raises(ConflictError):
        karigar_service.create_karigar(ctx, {"name": "Other", "mobile": "9988776655"})


def test_karigar_requires_name(ctx):
    with pytest.raises(ValidationError):
        karigar_service.create_karigar(ctx, {"mobile": "9000011111"})


def test_bad_payment_type_rejected(ctx):
    with pytest.raises(KarigarError):
        karigar_service.create_karigar(ctx, {"name": "X", "mobile": "9000011111", "payment_type": "hourly"})


def test_issue_metal_creates_pending_order(karigar, order):
    assert order.order_number.startswith("KOR-")
    assert order.status == "pending"
    assert order.metal_issued_fine_weight == Decimal("18.320")
    assert order.payment_type == "per_gram"
    assert order.payment_rate == Decimal("200.00")
    assert karigar.total_orders_pending == 1


@pytest.mark.parametrize("overrides", [
    {"metal_issued_weight": "0"},
    {"metal_issued_purity": "120"},
    {"description": ""},
    {"expected_delivery_date": None},
    {"order_type": "resizing"},
    {"quantity": -1},
])
def test_invalid_orders(ctx, karigar, overrides):
    data = {
        "karigar_id": karigar.id,
        "description": "Ring",
        "metal_issued_weight": "5",
        "metal_issued_purity": "91.6",
        "expected_delivery_date": "2026-12-01",
    }
    data.update(overrides)
    with pytest.raises(KarigarError):
        karigar_service.create_order(ctx, data)


def test_order_for_unknown_karigar(ctx):
    with pytest.raises(KarigarNotFoundError):
        karigar_service.create_order(ctx, {
            "karigar_id": 99999,
            "description": "Ring",
            "metal_issued_weight": "5",
            "metal_issued_purity": "91.6",
            "expected_delivery_date": "2026-12-01",
        })


def test_receive_computes_wastage_and_labour(ctx, karigar, order):
    karigar_service.start_order(ctx, order.id)
    _receive(ctx, order)

    assert order.status == "completed"
    assert order.metal_received_fine_weight == Decimal("17.862")
    assert order.wastage_weight == Decimal("0.458")
    assert order.wastage_percentage == Decimal("2.50")
    assert order.wastage_amount == Decimal("2748.00")
    assert order.total_payment == Decimal("3900.00")
    assert order.payment_status == "pending"

    assert karigar.total_orders_pending == 0
    assert karigar.total_orders_completed == 1
    assert karigar.outstanding_balance == Decimal("3900.00")


def test_receive_more_fine_than_issued_rejected(ctx, order):
    with pytest.raises(KarigarError, match="exceeds"):
        _receive(ctx, order, weight="21")
    assert order.status == "pending"


def test_cannot_start_twice(ctx, order):
    karigar_service.start_order(ctx, order.id)
    with pytest.raises(KarigarError):
        karigar_service.start_order(ctx, order.id)


def test_labour_payments(ctx, karigar, order):
    _receive(ctx, order)

    karigar_service.record_karigar_payment(ctx, order.id, "1000")
    assert order.payment_status == "partial"
    assert karigar.outstanding_balance == Decimal("2900.00")

    with pytest.raises(KarigarError) as exc:
        karigar_service.record_karigar_payment(ctx, order.id, "5000")
    assert exc.value.details["due"] == "2900.00"

    karigar_service.record_karigar_payment(ctx, order.id, "2900")
    assert order.payment_status == "paid"
    assert karigar.outstanding_balance == Decimal("0")


def test_payment_before_receipt_rejected(ctx, order):
    with pytest.raises(KarigarError, match="received"):
        karigar_service.record_karigar_payment(ctx, order.id, "100")


def test_deliver_only_completed(ctx, order):
    with pytest.raises(KarigarError):
        karigar_service.deliver_order(ctx, order.id)

    _receive(ctx, order)
    karigar_service.deliver_order(ctx, order.id)
    assert order.status == "delivered"
    assert order.actual_delivery_date is not None

    with pytest.raises(KarigarError, match="Delivered"):
        karigar_service.cancel_order(ctx, order.id, "late")


def test_cancel_open_order(ctx, karigar, order):
    karigar_service.cancel_order(ctx, order.id, "Customer cancelled")

    assert order.status == "cancelled"
    assert order.cancellation_reason == "Customer cancelled"
    assert karigar.total_orders_pending == 0

    with pytest.raises(KarigarError, match="already cancelled"):
        karigar_service.cancel_order(ctx, order.id)


def test_cancel_completed_order_reverses_unpaid_labour(ctx, karigar, order):
    _receive(ctx, order)
    karigar_service.record_karigar_payment(ctx, order.id, "1000")

    karigar_service.cancel_order(ctx, order.id, "Rework")

    assert karigar.total_orders_completed == 0
    assert karigar.outstanding_balance == Decimal("0")


def test_cannot_deactivate_with_pending_orders(ctx, karigar, order):
    with pytest.raises(KarigarError, match="pending"):
        karigar_service.update_karigar(ctx, karigar.id, {"is_active": False})

    karigar_service.cancel_order(ctx, order.id)
    karigar_service.update_karigar(ctx, karigar.id, {"is_active": False})
    assert karigar.is_active is False


def test_inactive_karigar_gets_no_orders(ctx, karigar):
    karigar_service.update_karigar(ctx, karigar.id, {"is_active": False})
    with pytest.raises(KarigarError, match="inactive"):
        karigar_service.create_order(ctx, {
            "karigar_id": karigar.id,
            "description": "Ring",
            "metal_issued_weight": "5",
            "metal_issued_purity": "91.6",
            "expected_delivery_date": "2026-12-01",
        })


def test_stats(ctx, karigar, order):
    _receive(ctx, order)
    karigar_service.record_karigar_payment(ctx, order.id, "1000")
    karigar_service.create_order(ctx, {
        "karigar_id": karigar.id,
        "description": "Bangle repair",
        "order_type": "repair",
        "metal_issued_weight": "10",
        "metal_issued_purity": "91.6",
        "expected_delivery_date": "2000-01-01",
    })

    stats = karigar_service.get_karigar_stats(karigar.id)

    assert stats["total_orders"] == 2
    assert stats["pending_orders"] == 1
    assert stats["completed_orders"] == 1
    assert stats["delayed_orders"] == 1
    assert stats["total_metal_issued"] == "27.480"
    assert stats["total_wastage"] == "0.458"
    assert stats["total_labour"] == "3900.00"
    assert stats["total_paid"] == "1000.00"


def test_list_karigars_search(karigar):
    result = karigar_service.list_karigars(search="Mahesh")
    assert [row["id"] for row in result["items"]] == [karigar.id]
    assert karigar_service.list_karigars(specialization="stone_setting")["items"] == []
