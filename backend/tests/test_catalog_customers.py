from datetime import timedelta
from decimal import Decimal

import pytest

from jewelerp.services import catalog_service, customer_service, metal_rate_service
from jewelerp.services.catalog_service import CatalogError, CatalogNotFoundError
from jewelerp.services.customer_service import CustomerNotFoundError
from jewelerp.services.metal_rate_service import MetalRateError
from jewelerp.time_utils import utcnow
from jewelerp.validation import ConflictError, ValidationError


def _product_payload(category, metal_type, **overrides):
    payload = {
        "product_name": "Gold Bangle",
        "category_id": category.id,
        "metal_type_id": metal_type.id,
        "gross_weight": "12.5",
        "stone_weight": "0.5",
    }
    payload.update(overrides)
    return payload


class TestProducts:

    def test_weights_and_defaults(self, ctx, category, metal_type):
        product = catalog_service.create_product(ctx, _product_payload(category, metal_type))

        assert product.product_code == "PRD0100001"
        assert product.net_weight == Decimal("12.000")
        assert product.purity == Decimal("91.60")
        assert product.fine_weight == Decimal("10.992")
        assert product.current_stock == 1
        assert product.status == "in_stock"

    def test_explicit_code_and_barcode_must_be_unique(self, ctx, category, metal_type, product):
        with pytest.raises(ConflictError):
            catalog_service.create_product(ctx, _product_payload(category, metal_type, barcode="RING0001"))

        catalog_service.create_product(ctx, _product_payload(category, metal_type, product_code="BNG-1"))
        with pytest.raises(ConflictError):
            catalog_service.create_product(ctx, _product_payload(category, metal_type, product_code="BNG-1"))

    @pytest.mark.parametrize("overrides", [
        {"gross_weight": None},
        {"stone_weight": "20"},
        {"purity": "101"},
        {"making_charge_type": "hourly"},
        {"current_stock": -1},
        {"gross_weight": "abc"},
        {"secret": "x"},
    ])
    def test_invalid_payloads(self, ctx, category, metal_type, overrides):
        with pytest.raises(ValidationError):
            catalog_service.create_product(ctx, _product_payload(category, metal_type, **overrides))

    def test_unknown_category(self, ctx, metal_type, category):
        with pytest.raises(ValidationError, match="category_id"):
            catalog_service.create_product(ctx, _product_payload(category, metal_type, category_id=99999))

    def test_update_recomputes_weights(self, ctx, product):
        catalog_service.update_product(ctx, product.id, {"stone_weight": "1"})

        assert product.net_weight == Decimal("9.000")
        assert product.fine_weight == Decimal("8.244")

    def test_product_code_is_immutable(self, ctx, product):
        with pytest.raises(ValidationError):
            catalog_service.update_product(ctx, product.id, {"product_code": "NEW"})

    def test_stock_adjustment(self, ctx, product):
        catalog_service.adjust_stock(ctx, product.id, -2)
        assert product.current_stock == 0
        assert product.status == "sold"

        catalog_service.adjust_stock(ctx, product.id, 3)
        assert product.current_stock == 3
        assert product.status == "in_stock"

    def test_stock_never_negative(self, ctx, product):
        with pytest.raises(CatalogError) as exc:
            catalog_service.adjust_stock(ctx, product.id, -5)
        assert exc.value.details["available"] == 2
        assert product.current_stock == 2

    @pytest.mark.parametrize("delta", [0, "1", True, 1.5])
    def test_stock_delta_must_be_integer(self, ctx, product, delta):
        with pytest.raises(ValidationError):
            catalog_service.adjust_stock(ctx, product.id, delta)

    def test_missing_product(self, ctx):
        with pytest.raises(CatalogNotFoundError):
            catalog_service.adjust_stock(ctx, 99999, 1)
        with pytest.raises(CatalogNotFoundError):
            catalog_service.get_product(99999)

    def test_barcode_lookup_matches_code_too(self, product):
        assert catalog_service.find_by_barcode("RING0001").id == product.id
        assert catalog_service.find_by_barcode(product.product_code).id == product.id
        assert catalog_service.find_by_barcode("NOPE") is None

    def test_low_stock(self, ctx, product):
        catalog_service.update_product(ctx, product.id, {"min_stock_level": 2})
        assert [p.id for p in catalog_service.get_low_stock_products()] == [product.id]

    def test_list_products_paginates(self, ctx, category, metal_type, product):
        catalog_service.create_product(ctx, _product_payload(category, metal_type))

        result = catalog_service.list_products(search="Gold", page=1, per_page=1)

        assert result["count"] == 1
        assert result["pagination"]["total"] == 2
        assert result["pagination"]["has_next"] is True

    def test_duplicate_metal_code(self, ctx, metal_type):
        with pytest.raises(ConflictError):
            catalog_service.create_metal_type(ctx, name="Gold", metal_code="g22", purity_percentage="91.6")

    def test_duplicate_category(self, ctx, category):
        with pytest.raises(ConflictError):
            catalog_service.create_category(ctx, name="Rings")


class TestMetalRates:

    def test_latest_rate_wins(self, ctx, metal_type):
        metal_rate_service.update_metal_rates(ctx, {metal_type.id: "5900"})
        metal_rate_service.update_metal_rates(ctx, {str(metal_type.id): "6000"}, source="ibja")

        latest = metal_rate_service.get_latest_rate(metal_type.id)
        assert latest.rate_per_gram == Decimal("6000.00")
        assert latest.source == "ibja"
        assert [r.rate_per_gram for r in metal_rate_service.get_latest_rates()] == [Decimal("6000.00")]

    @pytest.mark.parametrize("rates", [{}, {"abc": "1"}, {99999: "10"}])
    def test_invalid_updates(self, ctx, metal_type, rates):
        with pytest.raises(MetalRateError):
            metal_rate_service.update_metal_rates(ctx, rates)

    def test_non_positive_rate(self, ctx, metal_type):
        with pytest.raises(MetalRateError):
            metal_rate_service.update_metal_rates(ctx, {metal_type.id: "0"})

    def test_history_window(self, ctx, metal_type):
        metal_rate_service.update_metal_rates(ctx, {metal_type.id: "5900"})
        now = utcnow()

        rows = metal_rate_service.get_historical_rates(now - timedelta(days=1), now + timedelta(days=1), metal_type.id)
        assert len(rows) == 1

        with pytest.raises(MetalRateError):
            metal_rate_service.get_historical_rates(now, now - timedelta(days=1))


class TestCustomers:

    def test_create_assigns_code(self, customer):
        assert customer.customer_code == "CUST0100001"
        assert customer.full_name == "Ravi Patel"
        assert customer.outstanding_balance == Decimal("0")

    @pytest.mark.parametrize("payload", [
        {"first_name": "A", "mobile": "12345"},
        {"first_name": "A", "mobile": "98765abcde"},
        {"mobile": "9876500000"},
        {"first_name": "A", "mobile": "9876500000", "pan_number": "ABC"},
        {"first_name": "A", "mobile": "9876500000", "customer_type": "gold"},
    ])
    def test_invalid_customers(self, ctx, payload):
        with pytest.raises(ValidationError):
            customer_service.create_customer(ctx, payload)

    def test_duplicate_active_mobile(self, ctx, customer):
        with pytest.raises(ConflictError):
            customer_service.create_customer(ctx, {"first_name": "Other", "mobile": "9876543210"})

    def test_update_checks_mobile_clash(self, ctx, customer):
        other = customer_service.create_customer(ctx, {"first_name": "Kiran", "mobile": "9123400000"})
        with pytest.raises(ConflictError):
            customer_service.update_customer(ctx, other.id, {"mobile": "9876543210"})

        customer_service.update_customer(ctx, other.id, {"city": "Surat"})
        assert other.city == "Surat"

    def test_missing_customer(self, ctx):
        with pytest.raises(CustomerNotFoundError):
            customer_service.get_customer(99999)
        with pytest.raises(CustomerNotFoundError):
            customer_service.update_customer(ctx, 99999, {"city": "Surat"})

    def test_search(self, ctx, customer):
        customer_service.create_customer(ctx, {"first_name": "Kiran", "mobile": "9123400000"})

        assert [c["first_name"] for c in customer_service.search_customers("98765")["items"]] == ["Ravi"]
        assert customer_service.search_customers(None)["count"] == 2

    def test_outstanding_balance_floors_at_zero(self, customer):
        customer_service.adjust_outstanding_balance(customer, "100.50")
        assert customer.outstanding_balance == Decimal("100.50")

        customer_service.adjust_outstanding_balance(customer, "-500")
        assert customer.outstanding_balance == Decimal("0")
