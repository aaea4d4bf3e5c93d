"""
Floor tests: permissive table statuses, reservation state machine.
"""

from datetime import timedelta

import pytest

from backoffice.enums import ReservationStatus
from backoffice.errors import ErrorCode
from backoffice.services.floor_service import can_transition
from backoffice.time_utils import utcnow


@pytest.fixture
def table(backoffice, staff_client):
    result = backoffice.add_entity(staff_client, "table", {"number": 7, "seats": 4})
    assert result.ok, result.message
    return result.value


@pytest.fixture
def booking(backoffice, staff_client, table):
    result = backoffice.add_entity(staff_client, "reservation", {
        "table_id": table["id"],
        "customer_name": "Ngo Family",
        "customer_phone": "+237 6 70 00 00 00",
        "date": (utcnow() + timedelta(days=1)).isoformat(),
        "guests": 4,
    })
    assert result.ok, result.message
    return result.value


class TestTables:

    def test_new_table_is_available(self, table):
        assert table["status"] == "available"

    @pytest.mark.parametrize(
        "path",
        [
            ["occupied", "cleaning", "available"],
            ["reserved", "available"],
            ["cleaning", "occupied", "reserved"],
        ],
    )
    def test_any_status_may_follow_any_other(self, backoffice, staff_client, table, path):
        for status in path:
            result = backoffice.set_table_status(staff_client, table["id"], status)
            assert result.ok
            assert result.value["status"] == status

    def test_unknown_status(self, backoffice, staff_client, table):
        assert backoffice.set_table_status(staff_client, table["id"], "on-fire").error == ErrorCode.VALIDATION_FAILED

    def test_duplicate_table_number(self, backoffice, staff_client, table):
        result = backoffice.add_entity(staff_client, "table", {"number": 7})
        assert result.error == ErrorCode.CONFLICT

    def test_same_number_in_other_branch(self, backoffice, admin_client, table, branches):
        _b1, b2 = branches
        assert backoffice.add_entity(admin_client, "table", {"branch_id": b2.id, "number": 7}).ok

    def test_table_with_reservations_cannot_be_deleted(self, backoffice, staff_client, table, booking):
        assert backoffice.delete_entity(staff_client, "table", table["id"]).error == ErrorCode.CONFLICT


class TestReservations:

    def test_new_reservation_is_pending(self, booking):
        assert booking["status"] == "pending"

    def test_status_is_not_writable_on_create(self, backoffice, staff_client, table):
        result = backoffice.add_entity(staff_client, "reservation", {
            "customer_name": "X", "customer_phone": "1", "date": "2030-01-01", "status": "confirmed",
        })
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_happy_path(self, backoffice, staff_client, booking):
        confirmed = backoffice.transition_reservation(staff_client, booking["id"], "confirmed")
        assert confirmed.value["status"] == "confirmed"
        completed = backoffice.transition_reservation(staff_client, booking["id"], "completed")
        assert completed.value["status"] == "completed"

    def test_terminal_states_are_final(self, backoffice, staff_client, booking):
        backoffice.transition_reservation(staff_client, booking["id"], "cancelled")
        for target in ("pending", "confirmed", "completed"):
            result = backoffice.transition_reservation(staff_client, booking["id"], target)
            assert result.error == ErrorCode.INVALID_TRANSITION

    def test_cannot_complete_unconfirmed(self, backoffice, staff_client, booking):
        result = backoffice.transition_reservation(staff_client, booking["id"], "completed")
        assert result.error == ErrorCode.INVALID_TRANSITION

    def test_reservation_table_must_share_branch(self, backoffice, admin_client, table, branches):
        _b1, b2 = branches
        result = backoffice.add_entity(admin_client, "reservation", {
            "branch_id": b2.id, "table_id": table["id"], "customer_name": "Y",
            "customer_phone": "2", "date": "2030-01-01",
        })
        assert result.error == ErrorCode.VALIDATION_FAILED

    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("pending", "confirmed", True),
            ("pending", "cancelled", True),
            ("pending", "completed", False),
            ("confirmed", "completed", True),
            ("confirmed", "cancelled", True),
            ("confirmed", "pending", False),
            ("completed", "cancelled", False),
            ("cancelled", "pending", False),
        ],
    )
    def test_transition_table(self, current, target, allowed):
        assert can_transition(ReservationStatus(current), ReservationStatus(target)) is allowed
