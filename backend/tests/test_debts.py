"""
Debt tests.

remaining_amount and status are derived on every write; overdue depends on
the clock and is refreshed before debts are read.
"""

from datetime import datetime, timedelta

import pytest

from backoffice.enums import DebtStatus
from backoffice.errors import ErrorCode
from backoffice.models import Debt
from backoffice.services import debt_service
from backoffice.time_utils import utcnow


def future(days=30):
    return utcnow() + timedelta(days=days)


@pytest.fixture
def supplier_debt(backoffice, manager_client, branches):
    """Payable of 1000 to a supplier, due in 30 days."""
    b1, _b2 = branches
    result = backoffice.create_debt(
        manager_client,
        branch_id=b1.id,
        type="payable",
        entity_name="Fresh Farms",
        amount=1000,
        due_date=future(),
    )
    assert result.ok, result.message
    return result.value


# =============================================================================
# STATUS DERIVATION
# =============================================================================


class TestDeriveStatus:
    now = datetime(2025, 6, 1, 12, 0)

    @pytest.mark.parametrize(
        "amount,paid,due_offset,expected",
        [
            (1000, 0, 1, DebtStatus.PENDING),
            (1000, 400, 1, DebtStatus.PARTIAL),
            (1000, 1000, 1, DebtStatus.PAID),
            (1000, 0, -1, DebtStatus.OVERDUE),
            (1000, 400, -1, DebtStatus.OVERDUE),
            (1000, 1000, -1, DebtStatus.PAID),
        ],
    )
    def test_derive(self, amount, paid, due_offset, expected):
        due = self.now + timedelta(days=due_offset)
        assert debt_service.derive_status(amount, paid, due, self.now) == expected

    def test_due_exactly_now_is_not_overdue(self):
        assert debt_service.derive_status(10, 0, self.now, self.now) == DebtStatus.PENDING


# =============================================================================
# LIFECYCLE
# =============================================================================


class TestDebtLifecycle:

    def test_new_debt_is_pending(self, supplier_debt):
        assert supplier_debt["status"] == "pending"
        assert supplier_debt["remaining_amount"] == 1000
        assert supplier_debt["paid_amount"] == 0

    def test_partial_then_settle(self, backoffice, manager_client, supplier_debt):
        partial = backoffice.record_debt_payment(manager_client, supplier_debt["id"], 400)
        assert partial.value["status"] == "partial"
        assert partial.value["remaining_amount"] == 600

        settled = backoffice.settle_debt(manager_client, supplier_debt["id"])
        assert settled.value["status"] == "paid"
        assert settled.value["remaining_amount"] == 0
        assert settled.value["paid_at"] is not None

    def test_overpayment_is_refused(self, backoffice, manager_client, supplier_debt):
        backoffice.record_debt_payment(manager_client, supplier_debt["id"], 900)
        result = backoffice.record_debt_payment(manager_client, supplier_debt["id"], 101)

        assert result.error == ErrorCode.OVER_PAYMENT
        assert result.details["remaining_amount"] == 100
        debt = backoffice.get_entity(manager_client, "debt", supplier_debt["id"]).value
        assert debt["paid_amount"] == 900

    def test_settling_a_paid_debt(self, backoffice, manager_client, supplier_debt):
        backoffice.settle_debt(manager_client, supplier_debt["id"])
        assert backoffice.settle_debt(manager_client, supplier_debt["id"]).error == ErrorCode.OVER_PAYMENT

    @pytest.mark.parametrize("delta", [0, -10, 1.5, "50"])
    def test_invalid_payment(self, backoffice, manager_client, supplier_debt, delta):
        result = backoffice.record_debt_payment(manager_client, supplier_debt["id"], delta)
        assert result.error == ErrorCode.INVALID_AMOUNT

    def test_unknown_debt(self, backoffice, manager_client, supplier_debt):
        assert backoffice.record_debt_payment(manager_client, 999, 10).error == ErrorCode.NOT_FOUND

    def test_create_with_initial_payment(self, backoffice, manager_client, branches):
        b1, _b2 = branches
        result = backoffice.create_debt(
            manager_client, branch_id=b1.id, type="receivable", entity_name="Catering client",
            amount=500, paid_amount=500, due_date=future(),
        )
        assert result.value["status"] == "paid"

    def test_create_with_overpayment(self, backoffice, manager_client, branches):
        b1, _b2 = branches
        result = backoffice.create_debt(
            manager_client, branch_id=b1.id, type="receivable", entity_name="Catering client",
            amount=500, paid_amount=600, due_date=future(),
        )
        assert result.error == ErrorCode.OVER_PAYMENT

    @pytest.mark.parametrize(
        "fields,error",
        [
            ({"type": "loan"}, ErrorCode.VALIDATION_FAILED),
            ({"entity_name": "  "}, ErrorCode.VALIDATION_FAILED),
            ({"amount": 0}, ErrorCode.INVALID_AMOUNT),
            ({"due_date": "next tuesday"}, ErrorCode.VALIDATION_FAILED),
            ({"status": "paid"}, ErrorCode.VALIDATION_FAILED),
            ({"remaining_amount": 0}, ErrorCode.VALIDATION_FAILED),
        ],
    )
    def test_create_validation(self, backoffice, manager_client, branches, fields, error):
        b1, _b2 = branches
        payload = dict(branch_id=b1.id, type="payable", entity_name="Gas Co", amount=100, due_date=future())
        payload.update(fields)
        assert backoffice.create_debt(manager_client, **payload).error == error

    def test_status_cannot_be_updated(self, backoffice, manager_client, supplier_debt):
        result = backoffice.update_entity(manager_client, "debt", supplier_debt["id"], {"status": "paid"})
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_moving_due_date_rederives_status(self, backoffice, manager_client, supplier_debt):
        past = (utcnow() - timedelta(days=1)).isoformat()
        result = backoffice.update_entity(manager_client, "debt", supplier_debt["id"], {"due_date": past})
        assert result.value["status"] == "overdue"

    def test_staff_cannot_manage_debts(self, backoffice, staff_client, supplier_debt):
        assert backoffice.record_debt_payment(staff_client, supplier_debt["id"], 10).error == ErrorCode.PERMISSION_DENIED


# =============================================================================
# OVERDUE REFRESH AND SUMMARY
# =============================================================================


class TestOverdue:

    def test_reads_refresh_overdue_status(self, backoffice, manager_client, supplier_debt, store):
        debt = store.get(Debt, supplier_debt["id"])
        debt.due_date = utcnow() - timedelta(minutes=1)
        store.commit()

        listed = backoffice.list_entities(manager_client, "debt").value
        assert listed[0]["status"] == "overdue"

    def test_refresh_with_explicit_clock(self, backoffice, manager_client, supplier_debt, store):
        later = utcnow() + timedelta(days=31)
        assert debt_service.refresh_debt_statuses(store, later) == 1
        assert store.get(Debt, supplier_debt["id"]).status == DebtStatus.OVERDUE
        # Paying it off wins over overdue
        debt_service.record_debt_payment(store, supplier_debt["id"], 1000, now=later)
        assert store.get(Debt, supplier_debt["id"]).status == DebtStatus.PAID

    def test_summary(self, backoffice, manager_client, supplier_debt, branches):
        b1, _b2 = branches
        backoffice.create_debt(
            manager_client, branch_id=b1.id, type="receivable", entity_name="Event client",
            amount=300, due_date=utcnow() - timedelta(days=2),
        )
        backoffice.record_debt_payment(manager_client, supplier_debt["id"], 250)

        summary = backoffice.debt_summary(manager_client).value
        assert summary["count"] == 2
        assert summary["payable_total"] == 1000
        assert summary["payable_outstanding"] == 750
        assert summary["receivable_outstanding"] == 300
        assert summary["overdue_count"] == 1
        assert summary["by_status"]["partial"] == 1

        finance = backoffice.finance_summary(manager_client).value
        assert finance["payables_outstanding"] == 750
        assert finance["receivables_outstanding"] == 300
