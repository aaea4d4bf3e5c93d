"""
Gateway tests for the rota and customer engagement records.

Covers attendance, shifts, announcements, customer feedback, loyalty
transactions and promotions: CRUD through the generic surface, branch
references, delete guards, loyalty point balances and permissions.
"""

import pytest

from backoffice.errors import ErrorCode
from backoffice.events import CREATED, UPDATED
from backoffice.models import Customer, LoyaltyTransaction


@pytest.fixture
def waiter(backoffice, manager_client, branches):
    result = backoffice.add_entity(manager_client, "staff", {"name": "Paul Waiter", "position": "waiter"})
    assert result.ok, result.message
    return result.value


@pytest.fixture
def guest(backoffice, manager_client, branches):
    result = backoffice.add_entity(manager_client, "customer", {"name": "Regular Guest", "phone": "+237 6 22"})
    assert result.ok, result.message
    return result.value


PROMO = {
    "name": "Happy Hour",
    "discount_type": "percentage",
    "discount_value": 20,
    "start_date": "2030-05-01",
    "end_date": "2030-05-31",
}


# =============================================================================
# CRUD
# =============================================================================


class TestEngagementRecords:

    @pytest.mark.parametrize(
        "entity_type,fields",
        [
            ("attendance", {"date": "2030-05-01", "check_in_time": "08:00", "hours_worked": 8}),
            ("shift", {"date": "2030-05-01", "start_time": "08:00", "end_time": "16:00"}),
            ("feedback", {"rating": 4, "category": "service", "message": "Quick and friendly"}),
            ("announcement", {"title": "Staff meeting", "content": "Friday at 3pm", "type": "event"}),
            ("promotion", PROMO),
        ],
    )
    def test_crud_cycle(self, backoffice, manager_client, branches, waiter, guest, entity_type, fields):
        b1, _b2 = branches
        fields = dict(fields)
        if entity_type in ("attendance", "shift"):
            fields["staff_id"] = waiter["id"]
        if entity_type == "feedback":
            fields["customer_id"] = guest["id"]

        created = backoffice.add_entity(manager_client, entity_type, fields)
        assert created.ok, created.message
        assert created.value["branch_id"] == b1.id

        entity_id = created.value["id"]
        assert backoffice.get_entity(manager_client, entity_type, entity_id).value == created.value
        listed = backoffice.list_entities(manager_client, entity_type).value
        assert [row["id"] for row in listed] == [entity_id]

        assert backoffice.delete_entity(manager_client, entity_type, entity_id).ok
        assert backoffice.get_entity(manager_client, entity_type, entity_id).error == ErrorCode.NOT_FOUND

    def test_defaults(self, backoffice, manager_client, waiter, guest):
        shift = backoffice.add_entity(manager_client, "shift", {
            "staff_id": waiter["id"], "date": "2030-05-01", "start_time": "08:00", "end_time": "16:00",
        }).value
        assert shift["status"] == "scheduled"
        assert shift["role"] == "waiter"

        feedback = backoffice.add_entity(manager_client, "feedback", {"customer_id": guest["id"], "rating": 5}).value
        assert feedback["status"] == "pending"
        assert feedback["category"] == "overall"

        promo = backoffice.add_entity(manager_client, "promotion", PROMO).value
        assert promo["status"] == "inactive"
        assert promo["usage_count"] == 0
        assert promo["applicable_segments"] == []

    def test_feedback_is_addressed(self, backoffice, manager_client, guest):
        feedback = backoffice.add_entity(manager_client, "feedback", {"customer_id": guest["id"], "rating": 2}).value
        result = backoffice.update_entity(manager_client, "feedback", feedback["id"], {
            "status": "addressed", "response": "Sorry, next meal is on us", "response_date": "2030-05-02T10:00Z",
        })
        assert result.ok, result.message
        assert result.value["status"] == "addressed"
        assert result.value["response_date"] == "2030-05-02T10:00:00Z"

    def test_announcement_author_is_caller(self, backoffice, manager_client, users, branches):
        result = backoffice.add_entity(manager_client, "announcement", {"title": "Menu change", "content": "New dessert"})
        assert result.ok, result.message
        assert result.value["author_id"] == users["manager"].id
        assert result.value["type"] == "general"

    def test_announcement_author_not_writable(self, backoffice, manager_client, users, branches):
        result = backoffice.add_entity(manager_client, "announcement", {
            "title": "Menu change", "content": "New dessert", "author_id": users["admin"].id,
        })
        assert result.error == ErrorCode.VALIDATION_FAILED
        assert result.message == "Field not allowed: author_id"


# =============================================================================
# RULES
# =============================================================================


class TestRules:

    @pytest.mark.parametrize(
        "entity_type,fields",
        [
            ("promotion", dict(PROMO, discount_value=150)),
            ("promotion", dict(PROMO, discount_value=-5, discount_type="fixed")),
            ("promotion", dict(PROMO, end_date="2030-04-01")),
            ("promotion", dict(PROMO, discount_type="bogof")),
            ("promotion", {"name": "No dates", "discount_type": "fixed", "discount_value": 500}),
            ("announcement", {"title": "No content"}),
        ],
    )
    def test_validation(self, backoffice, manager_client, branches, entity_type, fields):
        assert backoffice.add_entity(manager_client, entity_type, fields).error == ErrorCode.VALIDATION_FAILED

    def test_fixed_discount_above_hundred(self, backoffice, manager_client, branches):
        result = backoffice.add_entity(manager_client, "promotion", dict(PROMO, discount_type="fixed", discount_value=5000))
        assert result.ok, result.message

    @pytest.mark.parametrize("rating", [0, 6])
    def test_feedback_rating_range(self, backoffice, manager_client, guest, rating):
        result = backoffice.add_entity(manager_client, "feedback", {"customer_id": guest["id"], "rating": rating})
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_attendance_hours_range(self, backoffice, manager_client, waiter):
        result = backoffice.add_entity(manager_client, "attendance", {
            "staff_id": waiter["id"], "date": "2030-05-01", "hours_worked": 30,
        })
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_one_attendance_per_day(self, backoffice, manager_client, waiter):
        fields = {"staff_id": waiter["id"], "date": "2030-05-01", "status": "late"}
        assert backoffice.add_entity(manager_client, "attendance", fields).ok
        assert backoffice.add_entity(manager_client, "attendance", fields).error == ErrorCode.CONFLICT

        other_day = backoffice.add_entity(manager_client, "attendance", dict(fields, date="2030-05-02")).value
        result = backoffice.update_entity(manager_client, "attendance", other_day["id"], {"date": "2030-05-01"})
        assert result.error == ErrorCode.CONFLICT

    def test_attendance_note_update(self, backoffice, manager_client, waiter):
        record = backoffice.add_entity(manager_client, "attendance", {"staff_id": waiter["id"], "date": "2030-05-01"}).value
        result = backoffice.update_entity(manager_client, "attendance", record["id"], {"notes": "Left early"})
        assert result.ok, result.message
        assert result.value["notes"] == "Left early"


# =============================================================================
# REFERENCES
# =============================================================================


class TestReferences:

    def test_staff_from_another_branch(self, backoffice, admin_client, manager_client, branches):
        _b1, b2 = branches
        remote = backoffice.add_entity(admin_client, "staff", {"branch_id": b2.id, "name": "Airport Chef"}).value
        result = backoffice.add_entity(manager_client, "shift", {
            "staff_id": remote["id"], "date": "2030-05-01", "start_time": "08:00", "end_time": "16:00",
        })
        assert result.error == ErrorCode.VALIDATION_FAILED

    def test_unknown_customer(self, backoffice, manager_client, branches):
        result = backoffice.add_entity(manager_client, "feedback", {"customer_id": 4242, "rating": 3})
        assert result.error == ErrorCode.NOT_FOUND

    def test_staff_delete_blocked_by_rota(self, backoffice, manager_client, waiter):
        backoffice.add_entity(manager_client, "shift", {
            "staff_id": waiter["id"], "date": "2030-05-01", "start_time": "08:00", "end_time": "16:00",
        })
        assert backoffice.delete_entity(manager_client, "staff", waiter["id"]).error == ErrorCode.CONFLICT

    def test_staff_delete_blocked_by_attendance(self, backoffice, manager_client, waiter):
        backoffice.add_entity(manager_client, "attendance", {"staff_id": waiter["id"], "date": "2030-05-01"})
        result = backoffice.delete_entity(manager_client, "staff", waiter["id"])
        assert result.error == ErrorCode.CONFLICT
        assert "attendance" in result.message

    def test_customer_delete_blocked_by_feedback(self, backoffice, manager_client, guest):
        backoffice.add_entity(manager_client, "feedback", {"customer_id": guest["id"], "rating": 5})
        assert backoffice.delete_entity(manager_client, "customer", guest["id"]).error == ErrorCode.CONFLICT

    def test_branch_delete_blocked_by_promotion(self, backoffice, admin_client, branches):
        _b1, b2 = branches
        assert backoffice.add_entity(admin_client, "promotion", dict(PROMO, branch_id=b2.id)).ok
        result = backoffice.delete_branch(admin_client, b2.id)
        assert result.error == ErrorCode.CONFLICT


# =============================================================================
# LOYALTY
# =============================================================================


class TestLoyalty:

    def earn(self, backoffice, client, customer_id, points, kind="earn"):
        return backoffice.add_entity(client, "loyalty_transaction", {
            "customer_id": customer_id, "type": kind, "points": points, "description": "Dinner",
        })

    def test_earn_and_redeem(self, backoffice, manager_client, guest, store):
        first = self.earn(backoffice, manager_client, guest["id"], 100)
        assert first.ok, first.message
        assert first.value["resulting_points"] == 100

        second = self.earn(backoffice, manager_client, guest["id"], 30, kind="redeem")
        assert second.value["resulting_points"] == 70

        customer = backoffice.get_entity(manager_client, "customer", guest["id"]).value
        assert customer["loyalty_points"] == 70

    def test_redeem_beyond_balance(self, backoffice, manager_client, guest, store):
        self.earn(backoffice, manager_client, guest["id"], 50)
        result = self.earn(backoffice, manager_client, guest["id"], 80, kind="redeem")
        assert result.error == ErrorCode.VALIDATION_FAILED

        assert store.get(Customer, guest["id"]).loyalty_points == 50
        assert store.query(LoyaltyTransaction).count() == 1

    @pytest.mark.parametrize("points", [0, -10])
    def test_points_must_be_positive(self, backoffice, manager_client, guest, points):
        assert self.earn(backoffice, manager_client, guest["id"], points).error == ErrorCode.VALIDATION_FAILED

    def test_entries_are_append_only(self, backoffice, manager_client, guest, store):
        entry = self.earn(backoffice, manager_client, guest["id"], 40).value
        assert backoffice.update_entity(
            manager_client, "loyalty_transaction", entry["id"], {"description": "Edited"},
        ).error == ErrorCode.VALIDATION_FAILED
        assert backoffice.delete_entity(
            manager_client, "loyalty_transaction", entry["id"],
        ).error == ErrorCode.VALIDATION_FAILED
        assert store.get(Customer, guest["id"]).loyalty_points == 40

    def test_customer_delete_blocked(self, backoffice, manager_client, guest):
        self.earn(backoffice, manager_client, guest["id"], 10)
        assert backoffice.delete_entity(manager_client, "customer", guest["id"]).error == ErrorCode.CONFLICT

    def test_balance_change_is_announced(self, backoffice, manager_client, guest):
        seen = []
        backoffice.subscribe(lambda sender, event: seen.append((event.entity_type, event.action)))
        self.earn(backoffice, manager_client, guest["id"], 10)
        assert ("customer", UPDATED) in seen
        assert ("loyalty_transaction", CREATED) in seen


# =============================================================================
# PERMISSIONS
# =============================================================================


class TestPermissions:

    @pytest.mark.parametrize(
        "entity_type",
        ["attendance", "shift", "announcement", "feedback", "loyalty_transaction", "promotion"],
    )
    def test_staff_write_denied(self, backoffice, staff_client, branches, entity_type):
        assert backoffice.add_entity(staff_client, entity_type, {}).error == ErrorCode.PERMISSION_DENIED

    def test_staff_can_read(self, backoffice, staff_client, manager_client, branches):
        backoffice.add_entity(manager_client, "announcement", {"title": "Rota", "content": "Posted"})
        listed = backoffice.list_entities(staff_client, "announcement")
        assert listed.ok
        assert [row["title"] for row in listed.value] == ["Rota"]
