"""
Change notification tests.

Events fire once per mutated entity, only after commit, and a failing
receiver never undoes the mutation.
"""

from backoffice.enums import EntityType
from backoffice.errors import ErrorCode
from backoffice.events import CREATED, DELETED, UPDATED, ChangeChannel, ChangeEvent


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, sender, event):
        self.events.append((sender, event.action, event.entity_id, event.branch_id))


class TestChangeEvents:

    def test_transaction_emits_transaction_and_account_events(self, backoffice, manager_client, cash_account):
        recorder = backoffice.subscribe(Recorder())
        tx = backoffice.post_finance_transaction(
            manager_client, account_id=cash_account["id"], type="income", amount=10, category="sales",
        ).value

        assert recorder.events == [
            (EntityType.FINANCE_TRANSACTION, CREATED, tx["id"], cash_account["branch_id"]),
            (EntityType.FINANCE_ACCOUNT, UPDATED, cash_account["id"], cash_account["branch_id"]),
        ]

    def test_subscribe_to_one_entity_type(self, backoffice, manager_client, cash_account, rice):
        recorder = backoffice.subscribe(Recorder(), EntityType.INVENTORY_ITEM)
        backoffice.post_finance_transaction(
            manager_client, account_id=cash_account["id"], type="income", amount=10, category="sales",
        )
        backoffice.post_stock_movement(manager_client, item_id=rice["id"], type="in", quantity=1)

        assert [(sender, action) for sender, action, _id, _b in recorder.events] == [
            (EntityType.INVENTORY_ITEM, UPDATED),
        ]

    def test_string_entity_type_filter(self, backoffice, admin_client, branches):
        recorder = backoffice.subscribe(Recorder(), "branch")
        backoffice.add_branch(admin_client, {"name": "Harbour"})
        assert [action for _s, action, _i, _b in recorder.events] == [CREATED]

    def test_refused_mutation_emits_nothing(self, backoffice, manager_client, cash_account):
        recorder = backoffice.subscribe(Recorder())
        result = backoffice.post_finance_transaction(
            manager_client, account_id=cash_account["id"], type="income", amount=-1, category="sales",
        )
        assert result.error == ErrorCode.INVALID_AMOUNT
        assert recorder.events == []

    def test_failing_receiver_does_not_undo_mutation(self, backoffice, manager_client, branches, caplog):
        def broken(sender, event):
            raise ValueError("receiver bug")

        recorder = Recorder()
        backoffice.subscribe(broken)
        backoffice.subscribe(recorder)

        result = backoffice.add_entity(manager_client, "customer", {"name": "A", "phone": "1"})
        assert result.ok
        assert len(recorder.events) == 1
        assert backoffice.get_entity(manager_client, "customer", result.value["id"]).ok
        assert "Change receiver" in caplog.text

    def test_unsubscribe(self, backoffice, manager_client, branches):
        recorder = backoffice.subscribe(Recorder())
        backoffice.unsubscribe(recorder)
        backoffice.add_entity(manager_client, "customer", {"name": "A", "phone": "1"})
        assert recorder.events == []

    def test_delete_event_carries_id_and_branch(self, backoffice, manager_client, branches):
        b1, _b2 = branches
        customer = backoffice.add_entity(manager_client, "customer", {"name": "A", "phone": "1"}).value
        recorder = backoffice.subscribe(Recorder())
        backoffice.delete_entity(manager_client, "customer", customer["id"])
        assert recorder.events == [(EntityType.CUSTOMER, DELETED, customer["id"], b1.id)]


class TestChangeChannel:

    def test_emit_counts_failures(self):
        channel = ChangeChannel()
        calls = []
        channel.subscribe(lambda sender, event: calls.append(event))
        channel.subscribe(lambda sender, event: 1 / 0, EntityType.ORDER)

        event = ChangeEvent(entity_type=EntityType.ORDER, action=CREATED, entity_id=1)
        assert channel.emit(event) == 1
        assert calls == [event]

    def test_clear(self):
        channel = ChangeChannel()
        calls = []
        channel.subscribe(lambda sender, event: calls.append(event))
        channel.clear()
        channel.emit(ChangeEvent(entity_type=EntityType.TABLE, action=UPDATED, entity_id=3))
        assert calls == []
