"""
CLI command tests (flask system/users/ledger groups).
"""

import pytest

from backoffice.models import FinanceAccount, Subject


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestSystemCommands:

    def test_init_seeds_demo_data(self, runner, store):
        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 0, result.output
        assert "PASS Created 2 branches" in result.output
        assert "PASS Created 5 subjects" in result.output
        assert "2fa@restaurant.com" in result.output
        assert store.query(Subject).count() == 5
        assert store.query(FinanceAccount).count() == 4

    def test_init_is_idempotent(self, runner, store):
        runner.invoke(args=["system", "init"])
        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 0
        assert "nothing seeded" in result.output
        assert store.query(Subject).count() == 5

    def test_seeded_credentials_work(self, runner, backoffice):
        runner.invoke(args=["system", "init"])
        client = backoffice.begin()
        result = backoffice.login(client, "manager@restaurant.com", "manager123")
        assert result.value["stage"] == "authenticated"
        assert backoffice.low_stock_items(client).value[0]["name"] == "Cooking oil"


class TestUserCommands:

    def test_list_empty(self, runner):
        result = runner.invoke(args=["users", "list"])
        assert "No users found." in result.output

    def test_list(self, runner, users, branches):
        b1, _b2 = branches
        result = runner.invoke(args=["users", "list", "--branch-id", str(b1.id)])

        assert result.exit_code == 0
        assert "manager@restaurant.com" in result.output
        assert "staff@restaurant.com" in result.output
        assert "admin@restaurant.com" not in result.output

    def test_create(self, runner, branches, store):
        b1, _b2 = branches
        result = runner.invoke(args=[
            "users", "create",
            "--name", "Jane Doe", "--email", "jane@restaurant.com", "--password", "secret1",
            "--role", "manager", "--branch-id", str(b1.id), "--two-factor",
        ])

        assert result.exit_code == 0, result.output
        assert "PASS Created user: Jane Doe" in result.output
        subject = store.query(Subject).filter_by(email="jane@restaurant.com").one()
        assert subject.two_factor_enabled
        assert subject.assigned_branch_id == b1.id

    def test_create_rejects_short_password(self, runner, branches, store):
        result = runner.invoke(args=[
            "users", "create",
            "--name", "Jane", "--email", "jane@restaurant.com", "--password", "123", "--role", "staff",
        ])

        assert "FAIL Failed to create user" in result.output
        assert store.query(Subject).count() == 0


class TestLedgerCommands:

    def test_audit_passes(self, runner, cash_account):
        result = runner.invoke(args=["ledger", "audit"])
        assert result.exit_code == 0
        assert "PASS Ledger consistent" in result.output

    def test_audit_reports_drift(self, runner, cash_account, store):
        store.get(FinanceAccount, cash_account["id"]).balance = 7
        store.commit()

        result = runner.invoke(args=["ledger", "audit"])
        assert result.exit_code == 1
        assert "stored=7 expected=1000" in result.output

    def test_balances(self, runner, cash_account, branches):
        b1, b2 = branches
        result = runner.invoke(args=["ledger", "balances", "--branch-id", str(b1.id)])
        assert "Cash Register" in result.output
        assert "1000" in result.output

        empty = runner.invoke(args=["ledger", "balances", "--branch-id", str(b2.id)])
        assert "No accounts found." in empty.output

    def test_balances_unknown_branch(self, runner, branches):
        result = runner.invoke(args=["ledger", "balances", "--branch-id", "99"])
        assert "FAIL Branch ID 99 not found" in result.output
