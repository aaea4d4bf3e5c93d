# Overview: Ledger consistency engine for finance accounts; balances follow posted transactions.

from __future__ import annotations

import logging
from datetime import datetime

import sqlalchemy as sa

from ..enums import AccountType, DebtType, EntityType, PaymentMethod, TransactionType
from ..errors import AccountNotFound, InvalidAmount, NotFound, ValidationFailed
from ..events import CREATED, DELETED, UPDATED
from ..models import Branch, Debt, FinanceAccount, FinanceTransaction, InventoryItem, PayrollRecord
from ..time_utils import normalize_datetime, utcnow
from ..validation import MAX_AMOUNT, POLICIES, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import recompute_quantity
from .payroll_service import compute_net_pay

logger = logging.getLogger(__name__)

"""
Finance Ledger Invariants (authoritative)

- FinanceAccount.balance == SUM(+amount for income, -amount for expense) over
  the transactions currently posted against the account.
- Transactions are immutable once posted, except for free-text fields
  (description, notes, reference_number). Reversal is delete.
- Every post/delete updates the balance in the same DB transaction as the
  row it adds or removes; accounts carry a version_id so a concurrent writer
  on a shared database raises StaleDataError and is retried.
- An opening balance is an 'opening-balance' transaction, never a direct write.
- Amounts are positive integers in minor units.
"""

OPENING_BALANCE_CATEGORY = "opening-balance"


def validate_amount(amount, exc_cls=InvalidAmount) -> int:
    """Positive integer in minor units (bools, floats and strings rejected)."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise exc_cls(f"Amount must be a positive integer, got {amount!r}")
    if amount <= 0:
        raise exc_cls(f"Amount must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise exc_cls(f"Amount cannot exceed {MAX_AMOUNT}")
    return amount


def _coerce_enum(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationFailed(f"{field} must be one of: {allowed}")


def get_account(store, account_id: int, *, for_update: bool = False) -> FinanceAccount:
    query = store.query(FinanceAccount).filter(FinanceAccount.id == account_id)
    if for_update:
        query = lock_for_update(query)
    account = query.first()
    if account is None:
        raise AccountNotFound(f"Finance account {account_id} not found")
    return account


# =============================================================================
# ACCOUNTS
# =============================================================================

def open_account(
    store,
    fields: dict,
    opening_balance: int = 0,
    *,
    created_by: int | None = None,
    default_currency: str = "XAF",
) -> FinanceAccount:
    """
    Create an account with zero balance, then post any opening balance as a
    transaction (negative opening balance -> expense) so the invariant holds
    from the first row.

    Accounts opened without a currency get default_currency.
    """
    patch = validate_payload(
        model=FinanceAccount,
        payload=fields,
        policy=POLICIES[EntityType.FINANCE_ACCOUNT],
        partial=False,
    )
    patch.setdefault("currency", default_currency)
    if store.get(Branch, patch["branch_id"]) is None:
        raise NotFound(f"Branch {patch['branch_id']} not found")
    if isinstance(opening_balance, bool) or not isinstance(opening_balance, int):
        raise InvalidAmount(f"Opening balance must be an integer, got {opening_balance!r}")

    exists = store.query(FinanceAccount).filter_by(branch_id=patch["branch_id"], name=patch["name"]).first()
    if exists is not None:
        raise ValidationFailed(f"Account name already used in this branch: {patch['name']}")

    account = FinanceAccount(balance=0, **patch)
    store.add(account)
    store.flush()
    store.record_change(EntityType.FINANCE_ACCOUNT, CREATED, account)

    if opening_balance:
        tx = FinanceTransaction(
            branch_id=account.branch_id,
            account_id=account.id,
            type=TransactionType.INCOME if opening_balance > 0 else TransactionType.EXPENSE,
            category=OPENING_BALANCE_CATEGORY,
            amount=validate_amount(abs(opening_balance)),
            description="Opening balance",
            payment_method=PaymentMethod.CASH if account.type == AccountType.CASH else PaymentMethod.BANK_TRANSFER,
            date=utcnow(),
            created_by=created_by,
        )
        store.add(tx)
        account.balance += tx.signed_amount
        store.flush()
        store.record_change(EntityType.FINANCE_TRANSACTION, CREATED, tx)

    store.commit()
    logger.info("Opened account %s (%s) with balance %s", account.id, account.name, account.balance)
    return account


def update_account(store, account_id: int, fields: dict) -> FinanceAccount:
    account = get_account(store, account_id)
    patch = validate_payload(
        model=FinanceAccount,
        payload=fields,
        policy=POLICIES[EntityType.FINANCE_ACCOUNT],
        partial=True,
    )
    if "branch_id" in patch and patch["branch_id"] != account.branch_id:
        raise ValidationFailed("An account cannot move between branches")
    for key, value in patch.items():
        setattr(account, key, value)
    store.record_change(EntityType.FINANCE_ACCOUNT, UPDATED, account)
    store.commit()
    return account


def delete_account(store, account_id: int) -> None:
    account = get_account(store, account_id)
    posted = store.query(FinanceTransaction).filter_by(account_id=account_id).count()
    if posted:
        raise ValidationFailed(f"Account {account_id} has {posted} posted transaction(s); deactivate it instead")
    store.delete(account)
    store.record_change(EntityType.FINANCE_ACCOUNT, DELETED, entity_id=account_id, branch_id=account.branch_id)
    store.commit()


# =============================================================================
# TRANSACTIONS
# =============================================================================

def post_finance_transaction(
    store,
    *,
    account_id: int,
    type: TransactionType | str,
    amount: int,
    category: str,
    branch_id: int | None = None,
    description: str = "",
    payment_method: PaymentMethod | str = PaymentMethod.CASH,
    reference_number: str | None = None,
    notes: str | None = None,
    date: datetime | str | None = None,
    created_by: int | None = None,
) -> FinanceTransaction:
    """
    Append a transaction and apply its signed effect to the account balance.

    Raises:
        InvalidAmount: amount <= 0 or not an integer
        AccountNotFound: unknown account
        ValidationFailed: inactive account, branch mismatch, bad type/category
    """
    validate_amount(amount)
    tx_type = _coerce_enum(TransactionType, type, "type")
    method = _coerce_enum(PaymentMethod, payment_method, "payment_method")
    category = (category or "").strip()
    if not category:
        raise ValidationFailed("category is required")
    try:
        when = normalize_datetime(date) or utcnow()
    except ValueError:
        raise ValidationFailed("date must be an ISO-8601 datetime")

    def _op():
        account = get_account(store, account_id, for_update=True)
        if not account.is_active:
            raise ValidationFailed(f"Account {account_id} is inactive")
        if branch_id is not None and branch_id != account.branch_id:
            raise ValidationFailed(f"Account {account_id} does not belong to branch {branch_id}")

        tx = FinanceTransaction(
            branch_id=account.branch_id,
            account_id=account.id,
            type=tx_type,
            category=category,
            amount=amount,
            description=(description or "").strip(),
            payment_method=method,
            reference_number=reference_number,
            notes=notes,
            date=when,
            created_by=created_by,
        )
        store.add(tx)
        account.balance += tx.signed_amount
        store.flush()

        store.record_change(EntityType.FINANCE_TRANSACTION, CREATED, tx)
        store.record_change(EntityType.FINANCE_ACCOUNT, UPDATED, account)
        store.commit()
        return tx

    tx = run_with_retry(store, _op)
    logger.info("Posted %s %s to account %s (tx %s)", tx.type, tx.amount, tx.account_id, tx.id)
    return tx


def get_transaction(store, transaction_id: int) -> FinanceTransaction:
    tx = store.get(FinanceTransaction, transaction_id)
    if tx is None:
        raise NotFound(f"Transaction {transaction_id} not found")
    return tx


def delete_finance_transaction(store, transaction_id: int) -> None:
    """Reverse the transaction's effect on the balance, then remove it."""

    def _op():
        tx = get_transaction(store, transaction_id)
        account = get_account(store, tx.account_id, for_update=True)
        account.balance -= tx.signed_amount
        store.delete(tx)
        store.flush()

        store.record_change(EntityType.FINANCE_TRANSACTION, DELETED, entity_id=transaction_id, branch_id=tx.branch_id)
        store.record_change(EntityType.FINANCE_ACCOUNT, UPDATED, account)
        store.commit()
        return account

    account = run_with_retry(store, _op)
    logger.info("Reversed transaction %s; account %s balance now %s", transaction_id, account.id, account.balance)


def update_finance_transaction(store, transaction_id: int, fields: dict) -> FinanceTransaction:
    """Only free-text fields may change on a posted transaction."""
    tx = get_transaction(store, transaction_id)
    patch = validate_payload(
        model=FinanceTransaction,
        payload=fields,
        policy=POLICIES[EntityType.FINANCE_TRANSACTION],
        partial=True,
    )
    for key, value in patch.items():
        setattr(tx, key, value)
    store.record_change(EntityType.FINANCE_TRANSACTION, UPDATED, tx)
    store.commit()
    return tx


# =============================================================================
# READS AND AUDIT
# =============================================================================

def finance_summary(store, scope) -> dict:
    """Totals for the dashboards, restricted to scope."""
    accounts = scope.apply(store.query(FinanceAccount), FinanceAccount).all()

    totals = {
        str(tx_type): total
        for tx_type, total in scope.apply(
            store.query(FinanceTransaction.type, sa.func.coalesce(sa.func.sum(FinanceTransaction.amount), 0))
            .filter(FinanceTransaction.category != OPENING_BALANCE_CATEGORY),
            FinanceTransaction,
        ).group_by(FinanceTransaction.type).all()
    }
    income = int(totals.get(str(TransactionType.INCOME), 0) or 0)
    expense = int(totals.get(str(TransactionType.EXPENSE), 0) or 0)

    by_type: dict[str, int] = {}
    for account in accounts:
        by_type[str(account.type)] = by_type.get(str(account.type), 0) + account.balance

    debts = scope.apply(store.query(Debt), Debt).all()

    return {
        "branch_id": scope.branch_id,
        "total_balance": sum(a.balance for a in accounts if a.is_active),
        "balance_by_type": by_type,
        "account_count": len(accounts),
        "total_income": income,
        "total_expense": expense,
        "net_profit": income - expense,
        "receivables_outstanding": sum(d.remaining_amount for d in debts if d.type == DebtType.RECEIVABLE),
        "payables_outstanding": sum(d.remaining_amount for d in debts if d.type == DebtType.PAYABLE),
    }


def recompute_balance(store, account_id: int) -> int:
    rows = store.query(FinanceTransaction).filter_by(account_id=account_id).all()
    return sum(tx.signed_amount for tx in rows)


def audit_ledger(store) -> list[dict]:
    """
    Recompute every derived ledger value from its source rows.

    Returns a list of drift records (empty when every invariant holds).
    """
    drift: list[dict] = []

    for account in store.query(FinanceAccount).order_by(FinanceAccount.id).all():
        expected = recompute_balance(store, account.id)
        if expected != account.balance:
            drift.append({
                "entity_type": str(EntityType.FINANCE_ACCOUNT),
                "id": account.id,
                "field": "balance",
                "stored": account.balance,
                "expected": expected,
            })

    for debt in store.query(Debt).order_by(Debt.id).all():
        expected = debt.amount - debt.paid_amount
        if expected != debt.remaining_amount:
            drift.append({
                "entity_type": str(EntityType.DEBT),
                "id": debt.id,
                "field": "remaining_amount",
                "stored": debt.remaining_amount,
                "expected": expected,
            })

    for item in store.query(InventoryItem).order_by(InventoryItem.id).all():
        expected = recompute_quantity(store, item.id)
        if expected != item.quantity:
            drift.append({
                "entity_type": str(EntityType.INVENTORY_ITEM),
                "id": item.id,
                "field": "quantity",
                "stored": item.quantity,
                "expected": expected,
            })

    for record in store.query(PayrollRecord).order_by(PayrollRecord.id).all():
        expected = compute_net_pay(record.base_salary, record.bonuses, record.deductions)
        if expected != record.net_pay:
            drift.append({
                "entity_type": str(EntityType.PAYROLL_RECORD),
                "id": record.id,
                "field": "net_pay",
                "stored": record.net_pay,
                "expected": expected,
            })

    if drift:
        logger.error("Ledger audit found %d drifted value(s)", len(drift))
    return drift
