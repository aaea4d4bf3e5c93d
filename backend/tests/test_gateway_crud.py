"""
Gateway tests for the generic entity surface.

Covers add/update/delete/get/list across the simple record types, subject
administration, permission denials and the InternalError path.
"""

import pytest

from backoffice.errors import ErrorCode, NotFound
from backoffice.models import SecurityEvent
from backoffice.services import records_service


# =============================================================================
# GENERIC RECORDS
# =============================================================================


class TestGenericRecords:

    @pytest.mark.parametrize(
        "entity_type,fields",
        [
            ("supplier", {"name": "Fresh Farms", "phone": "+237 6 11", "rating": 4.5}),
            ("menu_item", {"name": "Ndole", "category": "mains", "price": 3500}),
            ("order", {"order_number": "ORD-001", "type": "dine-in", "items": [{"name": "Ndole", "qty": 2}], "total": 7000}),
            ("staff", {"name": "Paul Waiter", "position": "waiter"}),
            ("customer", {"name": "Regular Guest", "phone": "+237 6 22"}),
        ],
    )
    def test_crud_cycle(self, backoffice, manager_client, branches, entity_type, fields):
        b1, _b2 = branches
        created = backoffice.add_entity(manager_client, entity_type, fields)
        assert created.ok, created.message
        assert created.value["branch_id"] == b1.id

        entity_id = created.value["id"]
        fetched = backoffice.get_entity(manager_client, entity_type, entity_id)
        assert fetched.value == created.value

        listed = backoffice.list_entities(manager_client, entity_type).value
        assert [row["id"] for row in listed] == [entity_id]

        assert backoffice.delete_entity(manager_client, entity_type, entity_id).ok
        assert backoffice.get_entity(manager_client, entity_type, entity_id).error == ErrorCode.NOT_FOUND

    def test_update_record(self, backoffice, manager_client, branches):
        item = backoffice.add_entity(manager_client, "menu_item", {"name": "Poulet DG", "category": "mains", "price": 4000}).value
        result = backoffice.update_entity(manager_client, "menu_item", item["id"], {"price": 4500, "available": False})
        assert result.value["price"] == 4500
        assert result.value["available"] is False

    def test_record_cannot_move_branch(self, backoffice, admin_client, branches):
        b1, b2 = branches
        customer = backoffice.add_entity(admin_client, "customer", {"branch_id": b1.id, "name": "A", "phone": "1"}).value
        result = backoffice.update_entity(admin_client, "customer", customer["id"], {"branch_id": b2.id})
        assert result.error == ErrorCode.VALIDATION_FAILED

    @pytest.mark.parametrize(
        "entity_type,fields",
        [
            ("menu_item", {"name": "Free lunch", "category": "mains", "price": -1}),
            ("menu_item", {"name": "Half", "category": "mains", "price": 10.5}),
            ("supplier", {"name": "Bad Rating", "rating": 9}),
            ("table", {"number": 0}),
            ("customer", {"name": "No Phone"}),
            ("order", {"order_number": "ORD-9", "status": "teleported"}),
        ],
    )
    def test_validation(self, backoffice, manager_client, branches, entity_type, fields):
        assert backoffice.add_entity(manager_client, entity_type, fields).error == ErrorCode.VALIDATION_FAILED

    def test_unknown_entity_type(self, backoffice, manager_client):
        assert backoffice.list_entities(manager_client, "spaceship").error == ErrorCode.VALIDATION_FAILED

    def test_unknown_field(self, backoffice, manager_client, branches):
        result = backoffice.add_entity(manager_client, "customer", {"name": "A", "phone": "1", "vip": True})
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Field not allowed: vip"

    def test_duplicate_order_number(self, backoffice, manager_client, branches):
        backoffice.add_entity(manager_client, "order", {"order_number": "ORD-1"})
        assert backoffice.add_entity(manager_client, "order", {"order_number": "ORD-1"}).error == ErrorCode.CONFLICT

    def test_missing_entity(self, backoffice, manager_client, branches):
        assert backoffice.update_entity(manager_client, "supplier", 404, {"name": "x"}).error == ErrorCode.NOT_FOUND
        assert backoffice.delete_entity(manager_client, "supplier", 404).error == ErrorCode.NOT_FOUND


# =============================================================================
# PERMISSIONS
# =============================================================================


class TestPermissions:

    @pytest.mark.parametrize("entity_type", ["menu_item", "supplier", "customer", "staff"])
    def test_staff_write_denied(self, backoffice, staff_client, entity_type, store):
        result = backoffice.add_entity(staff_client, entity_type, {"name": "x"})
        assert result.error == ErrorCode.PERMISSION_DENIED

        [event] = store.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").all()
        assert event.action == f"add_{entity_type}"

    @pytest.mark.parametrize("entity_type", ["order", "table", "reservation"])
    def test_staff_floor_writes_allowed(self, backoffice, staff_client, entity_type):
        fields = {
            "order": {"order_number": "ORD-7"},
            "table": {"number": 12},
            "reservation": {"customer_name": "Guest", "customer_phone": "1", "date": "2030-05-01T19:00"},
        }[entity_type]
        assert backoffice.add_entity(staff_client, entity_type, fields).ok

    def test_staff_can_read(self, backoffice, staff_client, branches):
        assert backoffice.list_entities(staff_client, "menu_item").ok
        assert backoffice.finance_summary(staff_client).ok

    def test_calls_without_session(self, backoffice, branches):
        client = backoffice.begin()
        assert backoffice.list_entities(client, "table").error == ErrorCode.SESSION_EXPIRED
        assert backoffice.add_entity(None, "table", {"number": 1}).error == ErrorCode.SESSION_EXPIRED


# =============================================================================
# SUBJECTS
# =============================================================================


class TestSubjects:

    def test_admin_adds_subject(self, backoffice, admin_client, branches):
        b1, _b2 = branches
        result = backoffice.add_entity(admin_client, "subject", {
            "name": "Night Cashier", "email": "night@restaurant.com", "password": "secret1",
            "role": "staff", "assigned_branch_id": b1.id,
        })
        assert result.ok
        assert result.value["assigned_branch_id"] == b1.id

    def test_subject_fields_are_restricted(self, backoffice, admin_client, users):
        result = backoffice.add_entity(admin_client, "subject", {
            "name": "X", "email": "x@restaurant.com", "password": "secret1", "password_hash": "nope",
        })
        assert result.error == ErrorCode.VALIDATION_FAILED

        result = backoffice.update_entity(admin_client, "subject", users["staff"].id, {"email": "new@restaurant.com"})
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_manager_cannot_administer_subjects(self, backoffice, manager_client, users):
        result = backoffice.update_entity(manager_client, "subject", users["staff"].id, {"role": "admin"})
        assert result.error == ErrorCode.PERMISSION_DENIED

    def test_subjects_are_never_deleted(self, backoffice, admin_client, users):
        assert backoffice.delete_entity(admin_client, "subject", users["staff"].id).error == ErrorCode.VALIDATION_FAILED

    def test_profile_edit_keeps_sessions(self, backoffice, admin_client, staff_client, users):
        assert backoffice.update_entity(admin_client, "subject", users["staff"].id, {"phone": "+237 6 99"}).ok
        assert backoffice.list_entities(staff_client, "table").ok


# =============================================================================
# MISSING FIELDS
# =============================================================================


class TestMissingFields:

    def test_transaction_without_amount(self, backoffice, manager_client, cash_account):
        result = backoffice.post_finance_transaction(
            manager_client, account_id=cash_account["id"], type="income", category="sales",
        )
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Missing required fields: amount"

    def test_movement_without_type(self, backoffice, staff_client, rice):
        result = backoffice.post_stock_movement(staff_client, item_id=rice["id"], quantity=2)
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert "type" in result.message

    def test_debt_without_due_date(self, backoffice, manager_client, branches):
        result = backoffice.create_debt(manager_client, type="payable", entity_name="Gas Co", amount=100)
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Missing required fields: due_date"

    def test_payroll_without_period(self, backoffice, manager_client, branches):
        cook = backoffice.add_entity(manager_client, "staff", {"name": "Cook", "position": "chef"}).value
        result = backoffice.post_payroll(manager_client, staff_id=cook["id"], base_salary=1000)
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Missing required fields: payment_period"

    def test_subject_without_password(self, backoffice, admin_client, users):
        result = backoffice.add_entity(admin_client, "subject", {"name": "Night Cashier", "email": "night@restaurant.com"})
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Missing required fields: password"


# =============================================================================
# FAILURE HANDLING
# =============================================================================


class TestUnexpectedErrors:

    def test_unexpected_exception_becomes_internal_error(self, backoffice, manager_client, branches, monkeypatch, caplog):
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(records_service, "create_record", explode)
        result = backoffice.add_entity(manager_client, "customer", {"name": "A", "phone": "1"})

        assert not result.ok
        assert result.error == ErrorCode.INTERNAL_ERROR
        assert "disk on fire" not in result.message
        assert "Unexpected error" in caplog.text

    def test_failure_rolls_back_partial_work(self, backoffice, manager_client, branches, store, monkeypatch):
        seen = []
        backoffice.subscribe(lambda sender, event: seen.append(event))
        original = store.commit

        def failing_commit():
            raise RuntimeError("commit failed")

        monkeypatch.setattr(store, "commit", failing_commit)
        result = backoffice.add_entity(manager_client, "customer", {"name": "A", "phone": "1"})
        monkeypatch.setattr(store, "commit", original)

        assert result.error == ErrorCode.INTERNAL_ERROR
        assert seen == []
        assert backoffice.list_entities(manager_client, "customer").value == []

    def test_result_unwrap(self, backoffice, manager_client):
        ok = backoffice.list_entities(manager_client, "customer")
        assert ok.unwrap() == []
        with pytest.raises(NotFound):
            backoffice.get_entity(manager_client, "customer", 1).unwrap()
