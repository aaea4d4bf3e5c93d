from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import relationship

from ..enums import AccountType, DebtStatus, DebtType, PaymentMethod, PayrollStatus, TransactionType
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class FinanceAccount(Model):
    """
    Cash, bank or mobile-money account of a branch.

    LEDGER INVARIANT: balance == SUM(+amount for income, -amount for expense)
    over the FinanceTransactions currently posted against this account.
    balance is only ever written by the ledger service; an opening balance is
    recorded as an 'opening-balance' transaction.

    Amounts are integers in the currency's minor unit.
    """
    __tablename__ = "finance_accounts"
    __table_args__ = (
        sa.UniqueConstraint("branch_id", "name", name="uq_finance_accounts_branch_name"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    name = sa.Column(sa.String(120), nullable=False)
    type = enum_column(AccountType, nullable=False, default=AccountType.CASH)
    balance = sa.Column(sa.BigInteger, nullable=False, default=0)
    currency = sa.Column(sa.String(3), nullable=False, default="XAF")

    account_number = sa.Column(sa.String(64), nullable=True)
    bank_name = sa.Column(sa.String(120), nullable=True)

    is_active = sa.Column(sa.Boolean, nullable=False, default=True)

    version_id = sa.Column(sa.Integer, nullable=False, default=1)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<FinanceAccount id={self.id} name={self.name!r} balance={self.balance}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "type": enum_value(self.type),
            "balance": self.balance,
            "currency": self.currency,
            "account_number": self.account_number,
            "bank_name": self.bank_name,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class FinanceTransaction(Model):
    """
    Posted income or expense against a FinanceAccount.

    IMMUTABLE once posted (type, amount, account, branch). Free-text fields may
    be edited. Deleting a transaction reverses its effect on the balance.
    """
    __tablename__ = "finance_transactions"
    __table_args__ = (
        sa.Index("ix_finance_transactions_account_date", "account_id", "date"),
        sa.CheckConstraint("amount > 0", name="ck_finance_transactions_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    account_id = sa.Column(sa.Integer, sa.ForeignKey("finance_accounts.id"), nullable=False, index=True)

    type = enum_column(TransactionType, nullable=False)
    category = sa.Column(sa.String(64), nullable=False)
    amount = sa.Column(sa.BigInteger, nullable=False)

    description = sa.Column(sa.String(255), nullable=False, default="")
    payment_method = enum_column(PaymentMethod, nullable=False, default=PaymentMethod.CASH)
    reference_number = sa.Column(sa.String(64), nullable=True)
    notes = sa.Column(sa.Text, nullable=True)

    date = sa.Column(sa.DateTime, nullable=False, index=True)
    created_by = sa.Column(sa.Integer, nullable=True)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    account = relationship("FinanceAccount")

    @property
    def signed_amount(self) -> int:
        if self.type == TransactionType.INCOME:
            return self.amount
        return -self.amount

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "account_id": self.account_id,
            "type": enum_value(self.type),
            "category": self.category,
            "amount": self.amount,
            "description": self.description,
            "payment_method": enum_value(self.payment_method),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "date": to_utc_z(self.date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class Debt(Model):
    """
    Receivable (owed to the restaurant) or payable (owed by it).

    INVARIANTS:
    - remaining_amount == amount - paid_amount
    - status == 'paid'    iff remaining_amount == 0
    - status == 'overdue' iff remaining_amount > 0 and now > due_date
    - otherwise 'partial' when paid_amount > 0, else 'pending'
    Status is derived by the debt service; callers never set it.
    """
    __tablename__ = "debts"
    __table_args__ = (
        sa.CheckConstraint("paid_amount >= 0", name="ck_debts_paid_non_negative"),
        sa.CheckConstraint("paid_amount <= amount", name="ck_debts_paid_le_amount"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    type = enum_column(DebtType, nullable=False)
    entity_name = sa.Column(sa.String(255), nullable=False)
    entity_id = sa.Column(sa.Integer, nullable=True)
    description = sa.Column(sa.String(255), nullable=False, default="")

    amount = sa.Column(sa.BigInteger, nullable=False)
    paid_amount = sa.Column(sa.BigInteger, nullable=False, default=0)
    remaining_amount = sa.Column(sa.BigInteger, nullable=False)

    due_date = sa.Column(sa.DateTime, nullable=False)
    status = enum_column(DebtStatus, nullable=False, default=DebtStatus.PENDING, index=True)

    invoice_number = sa.Column(sa.String(64), nullable=True)
    notes = sa.Column(sa.Text, nullable=True)

    paid_at = sa.Column(sa.DateTime, nullable=True)
    version_id = sa.Column(sa.Integer, nullable=False, default=1)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "type": enum_value(self.type),
            "entity_name": self.entity_name,
            "entity_id": self.entity_id,
            "description": self.description,
            "amount": self.amount,
            "paid_amount": self.paid_amount,
            "remaining_amount": self.remaining_amount,
            "due_date": to_utc_z(self.due_date),
            "status": enum_value(self.status),
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class PayrollRecord(Model):
    """
    Salary payment for one staff member and period.

    net_pay == base_salary + bonuses - deductions, computed once at creation.
    Marking a record paid flips status only; pay is never recomputed.
    """
    __tablename__ = "payroll_records"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    staff_id = sa.Column(sa.Integer, sa.ForeignKey("staff.id"), nullable=False, index=True)

    base_salary = sa.Column(sa.BigInteger, nullable=False)
    bonuses = sa.Column(sa.BigInteger, nullable=False, default=0)
    deductions = sa.Column(sa.BigInteger, nullable=False, default=0)
    net_pay = sa.Column(sa.BigInteger, nullable=False)

    payment_period = sa.Column(sa.String(64), nullable=False)
    payment_method = enum_column(PaymentMethod, nullable=False, default=PaymentMethod.BANK_TRANSFER)
    status = enum_column(PayrollStatus, nullable=False, default=PayrollStatus.PENDING, index=True)
    notes = sa.Column(sa.Text, nullable=True)

    paid_at = sa.Column(sa.DateTime, nullable=True)
    created_by = sa.Column(sa.Integer, nullable=True)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    staff = relationship("Staff")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "staff_id": self.staff_id,
            "base_salary": self.base_salary,
            "bonuses": self.bonuses,
            "deductions": self.deductions,
            "net_pay": self.net_pay,
            "payment_period": self.payment_period,
            "payment_method": enum_value(self.payment_method),
            "status": enum_value(self.status),
            "notes": self.notes,
            "paid_at": to_utc_z(self.paid_at),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
