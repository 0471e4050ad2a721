"""
Gold loan lifecycle tests.

Reference loan: 10 g at 91.6% purity, Rs 6000/g, 75% LTV, 12% p.a. monthly
for 6 months -> fine 9.160 g, appraised 54960, loan 41220, interest 2473.20.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from jewelerp.models import LoanPayment
from jewelerp.services import gold_loan_service
from jewelerp.services.gold_loan_service import GoldLoanError, GoldLoanNotFoundError


def _loan_data(customer, **overrides):
    data = {
        "customer_id": customer.id,
        "gross_weight": "10",
        "stone_weight": "0",
        "purity_percentage": "91.6",
        "current_gold_rate": "6000",
        "interest_rate": "12",
        "interest_calculation_type": "monthly",
        "tenure_months": 6,
        "item_description": "Gold chain, 22K",
    }
    data.update(overrides)
    return data


@pytest.fixture
def active_loan(ctx, customer):
    loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer))
    gold_loan_service.approve_loan(ctx, loan.id)
    gold_loan_service.disburse_loan(ctx, loan.id)
    return loan


class TestOrigination:

    def test_valuation_and_terms(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, loan_date="2026-08-31"))

        assert loan.loan_number == "LN-20260831-001"
        assert loan.status == "sanctioned"
        assert loan.net_weight == Decimal("10.000")
        assert loan.fine_weight == Decimal("9.160")
        assert loan.appraised_value == Decimal("54960.00")
        assert loan.loan_amount == Decimal("41220.00")
        assert loan.total_interest == Decimal("2473.20")
        assert loan.total_payable == Decimal("43693.20")
        assert loan.balance_due == Decimal("43693.20")
        # month-end clamps to the last day of the shorter month
        assert loan.maturity_date == date(2027, 2, 28)
        assert loan.customer_name == "Ravi Patel"

    @pytest.mark.parametrize("kind,expected", [
        ("monthly", "2885.40"),
        ("quarterly", "3709.80"),
        ("maturity", "2885.40"),
    ])
    def test_interest_schedules(self, ctx, customer, kind, expected):
        loan = gold_loan_service.create_gold_loan(
            ctx, _loan_data(customer, interest_calculation_type=kind, tenure_months=7)
        )
        assert loan.total_interest == Decimal(expected)

    def test_processing_fee_is_payable(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, processing_fee="500"))
        assert loan.total_payable == Decimal("44193.20")

    def test_manual_amount_within_appraisal(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, loan_amount="30000"))
        assert loan.loan_amount == Decimal("30000.00")
        assert loan.total_interest == Decimal("1800.00")

    def test_manual_amount_above_appraisal_rejected(self, ctx, customer):
        with pytest.raises(GoldLoanError) as exc:
            gold_loan_service.create_gold_loan(ctx, _loan_data(customer, loan_amount="60000"))
        assert exc.value.details["appraised_value"] == "54960.00"

    @pytest.mark.parametrize("overrides", [
        {"gross_weight": "0"},
        {"stone_weight": "10"},
        {"purity_percentage": "101"},
        {"ltv_ratio": "0"},
        {"interest_calculation_type": "weekly"},
        {"tenure_months": 0},
        {"tenure_months": "six"},
        {"item_description": "  "},
        {"processing_fee": "-1"},
        {"customer_id": None},
    ])
    def test_invalid_requests(self, ctx, customer, overrides):
        with pytest.raises(GoldLoanError):
            gold_loan_service.create_gold_loan(ctx, _loan_data(customer, **overrides))

    def test_unknown_customer(self, ctx, customer):
        with pytest.raises(GoldLoanNotFoundError):
            gold_loan_service.create_gold_loan(ctx, _loan_data(customer, customer_id=99999))


class TestDisbursement:

    def test_requires_approval(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer))
        with pytest.raises(GoldLoanError, match="approval"):
            gold_loan_service.disburse_loan(ctx, loan.id)

    def test_without_approval_requirement(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, requires_approval=False))
        gold_loan_service.disburse_loan(ctx, loan.id)
        assert loan.status == "disbursed"

    def test_disbursement_adds_to_customer_balance(self, ctx, customer, active_loan):
        assert active_loan.status == "disbursed"
        assert active_loan.approved_by == ctx.user_id
        assert active_loan.disbursed_date is not None
        assert customer.outstanding_balance == Decimal("41220.00")

    def test_cannot_disburse_twice(self, ctx, active_loan):
        with pytest.raises(GoldLoanError):
            gold_loan_service.disburse_loan(ctx, active_loan.id)

    def test_payment_before_disbursement_rejected(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer))
        with pytest.raises(GoldLoanError, match="cannot accept payment"):
            gold_loan_service.record_payment(ctx, loan.id, {"principal_amount": "100"})

    def test_manual_status_transitions(self, ctx, active_loan):
        gold_loan_service.update_status(ctx, active_loan.id, "active")
        assert active_loan.status == "active"

        with pytest.raises(GoldLoanError, match="Cannot move"):
            gold_loan_service.update_status(ctx, active_loan.id, "closed")
        with pytest.raises(GoldLoanError, match="Unknown"):
            gold_loan_service.update_status(ctx, active_loan.id, "lost")


class TestRepayment:

    def test_partial_payment(self, ctx, customer, active_loan):
        payment = gold_loan_service.record_payment(ctx, active_loan.id, {"principal_amount": "10000"})

        assert payment.payment_number.startswith("LP-")
        assert payment.payment_type == "partial"
        assert payment.loan_balance_before == Decimal("43693.20")
        assert payment.loan_balance_after == Decimal("33693.20")
        assert active_loan.status == "partial_repaid"
        assert active_loan.payment_status == "partial"
        assert active_loan.balance_due == Decimal("33693.20")
        assert customer.outstanding_balance == Decimal("31220.00")

    def test_exact_payment_closes_loan(self, ctx, active_loan):
        payment = gold_loan_service.record_payment(ctx, active_loan.id, {
            "principal_amount": "41220",
            "interest_amount": "2473.20",
        })

        assert payment.payment_type == "full"
        assert active_loan.status == "closed"
        assert active_loan.payment_status == "paid"
        assert active_loan.balance_due == Decimal("0")
        assert active_loan.closed_date is not None

    def test_penalty_kept_out_of_balance(self, ctx, active_loan):
        payment = gold_loan_service.record_payment(ctx, active_loan.id, {
            "principal_amount": "1000",
            "penalty_amount": "250",
        })

        assert payment.total_amount == Decimal("1250.00")
        assert active_loan.amount_paid == Decimal("1000.00")
        assert active_loan.penalty_paid == Decimal("250.00")
        assert active_loan.balance_due == active_loan.total_payable - active_loan.amount_paid

    def test_overpayment_rejected(self, ctx, active_loan):
        with pytest.raises(GoldLoanError, match="exceeds"):
            gold_loan_service.record_payment(ctx, active_loan.id, {"principal_amount": "50000"})
        assert LoanPayment.query.count() == 0

    @pytest.mark.parametrize("data", [
        {"principal_amount": "0"},
        {"principal_amount": "-5"},
        {"principal_amount": "100", "payment_mode": "card"},
        {"principal_amount": "100", "payment_mode": "upi"},
    ])
    def test_invalid_payments(self, ctx, active_loan, data):
        with pytest.raises(GoldLoanError):
            gold_loan_service.record_payment(ctx, active_loan.id, data)

    def test_upi_payment_with_reference(self, ctx, active_loan):
        payment = gold_loan_service.record_payment(ctx, active_loan.id, {
            "principal_amount": "500",
            "payment_mode": "upi",
            "upi_transaction_id": "UPI-42",
        })
        assert payment.payment_mode == "upi"

    def test_foreclosure_settles_balance_with_penalty(self, ctx, customer, active_loan):
        gold_loan_service.record_payment(ctx, active_loan.id, {"principal_amount": "10000"})

        payment = gold_loan_service.foreclose_loan(ctx, active_loan.id, penalty_amount="1000", notes="Customer request")

        assert payment.payment_type == "foreclosure"
        assert payment.principal_amount == Decimal("33693.20")
        assert payment.total_amount == Decimal("34693.20")
        assert active_loan.status == "foreclosed"
        assert active_loan.balance_due == Decimal("0")
        assert active_loan.penalty_paid == Decimal("1000.00")
        assert "Foreclosure: Customer request" in active_loan.notes
        assert customer.outstanding_balance == Decimal("0")

    def test_closed_loan_rejects_payments_and_foreclosure(self, ctx, active_loan):
        gold_loan_service.foreclose_loan(ctx, active_loan.id)
        with pytest.raises(GoldLoanError):
            gold_loan_service.record_payment(ctx, active_loan.id, {"principal_amount": "1"})
        with pytest.raises(GoldLoanError):
            gold_loan_service.foreclose_loan(ctx, active_loan.id)

    def test_close_requires_zero_balance(self, ctx, active_loan):
        with pytest.raises(GoldLoanError, match="outstanding balance"):
            gold_loan_service.close_loan(ctx, active_loan.id)

    def test_mark_default_records_reason(self, ctx, active_loan):
        gold_loan_service.mark_default(ctx, active_loan.id, "Customer unreachable")

        assert active_loan.status == "defaulted"
        assert active_loan.defaulted_date is not None
        assert "Default Reason: Customer unreachable" in active_loan.notes


class TestMonitoring:

    def test_overdue_risk_levels(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, loan_date="2026-01-10"))
        gold_loan_service.approve_loan(ctx, loan.id)
        gold_loan_service.disburse_loan(ctx, loan.id)
        maturity = loan.maturity_date

        assert gold_loan_service.refresh_overdue_status(ctx, maturity) == []
        assert loan.risk_level == "low"

        overdue = gold_loan_service.refresh_overdue_status(ctx, maturity + timedelta(days=10))
        assert [row.id for row in overdue] == [loan.id]
        assert loan.days_overdue == 10
        assert loan.risk_level == "medium"
        assert loan.payment_status == "overdue"

        gold_loan_service.refresh_overdue_status(ctx, maturity + timedelta(days=40))
        assert loan.risk_level == "high"

    def test_undisbursed_loans_are_never_overdue(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, loan_date="2025-01-10"))
        assert gold_loan_service.refresh_overdue_status(ctx, date(2026, 10, 18)) == []
        assert loan.is_overdue is False

    def test_maturing_soon(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer, loan_date="2026-01-10"))
        gold_loan_service.approve_loan(ctx, loan.id)
        gold_loan_service.disburse_loan(ctx, loan.id)

        soon = gold_loan_service.get_maturing_soon(30, today=loan.maturity_date - timedelta(days=10))
        later = gold_loan_service.get_maturing_soon(5, today=loan.maturity_date - timedelta(days=10))

        assert [row.id for row in soon] == [loan.id]
        assert later == []

    def test_accrued_interest(self, active_loan):
        today = active_loan.disbursed_date.date() + timedelta(days=30)

        result = gold_loan_service.calculate_current_interest(active_loan.id, today)

        assert result["days_elapsed"] == 30
        assert result["accrued_interest"] == "406.55"
        assert result["remaining_interest"] == "2066.65"

    def test_accrued_interest_requires_disbursement(self, ctx, customer):
        loan = gold_loan_service.create_gold_loan(ctx, _loan_data(customer))
        with pytest.raises(GoldLoanError, match="not yet disbursed"):
            gold_loan_service.calculate_current_interest(loan.id)

    def test_portfolio_stats(self, ctx, customer, active_loan):
        gold_loan_service.create_gold_loan(ctx, _loan_data(customer))
        gold_loan_service.record_payment(ctx, active_loan.id, {"principal_amount": "10000"})

        stats = gold_loan_service.get_loan_stats()

        assert stats["total_loans"] == 2
        assert stats["active_loans"] == 1
        assert stats["total_disbursed_amount"] == "41220.00"
        assert stats["total_outstanding_balance"] == "33693.20"
        assert stats["total_amount_paid"] == "10000.00"
        assert stats["total_collateral_value"] == "109920.00"
        assert stats["average_ltv"] == "75.00"
        assert stats["low_risk_loans"] == 2

    def test_list_and_search(self, ctx, active_loan):
        result = gold_loan_service.list_loans({"search": "Ravi"}, page=1)
        assert result["pagination"]["total"] == 1
        assert result["items"][0]["loan_number"] == active_loan.loan_number
