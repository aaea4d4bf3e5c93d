# Overview: Receivables and payables; remaining amount and status are derived on every write.

"""
Debt invariants:

- remaining_amount == amount - paid_amount, 0 <= paid_amount <= amount
- status is derived, never set by callers:
    paid     iff remaining_amount == 0
    overdue  iff remaining_amount > 0 and now > due_date
    partial  iff paid_amount > 0 (and not overdue)
    pending  otherwise
- overdue depends on the clock, so refresh_debt_statuses(now) runs before
  debts are read.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..enums import DebtStatus, DebtType, EntityType
from ..errors import InvalidAmount, NotFound, OverPayment, ValidationFailed
from ..events import CREATED, DELETED, UPDATED
from ..models import Branch, Debt
from ..time_utils import normalize_datetime, utcnow
from ..validation import POLICIES, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import validate_amount

logger = logging.getLogger(__name__)


def derive_status(amount: int, paid_amount: int, due_date: datetime, now: datetime) -> DebtStatus:
    if amount - paid_amount == 0:
        return DebtStatus.PAID
    if now > due_date:
        return DebtStatus.OVERDUE
    if paid_amount > 0:
        return DebtStatus.PARTIAL
    return DebtStatus.PENDING


def _rederive(debt: Debt, now: datetime) -> bool:
    """Recompute derived fields in place. Returns True if status changed."""
    debt.remaining_amount = debt.amount - debt.paid_amount
    status = derive_status(debt.amount, debt.paid_amount, debt.due_date, now)
    changed = debt.status != status
    debt.status = status
    if status == DebtStatus.PAID and debt.paid_at is None:
        debt.paid_at = now
    elif status != DebtStatus.PAID:
        debt.paid_at = None
    return changed


def get_debt(store, debt_id: int, *, for_update: bool = False) -> Debt:
    query = store.query(Debt).filter(Debt.id == debt_id)
    if for_update:
        query = lock_for_update(query)
    debt = query.first()
    if debt is None:
        raise NotFound(f"Debt {debt_id} not found")
    return debt


def _parse_due_date(value) -> datetime:
    try:
        due = normalize_datetime(value)
    except ValueError:
        due = None
    if due is None:
        raise ValidationFailed("due_date must be an ISO-8601 datetime")
    return due


def create_debt(
    store,
    *,
    branch_id: int,
    type: DebtType | str,
    entity_name: str,
    amount: int,
    due_date,
    paid_amount: int = 0,
    description: str = "",
    entity_id: int | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Debt:
    """
    Raises:
        InvalidAmount: amount <= 0, or paid_amount negative / not an integer
        OverPayment: paid_amount > amount
        ValidationFailed: bad type, blank entity name, bad due date
    """
    validate_amount(amount)
    if isinstance(paid_amount, bool) or not isinstance(paid_amount, int) or paid_amount < 0:
        raise InvalidAmount(f"paid_amount must be a non-negative integer, got {paid_amount!r}")
    if paid_amount > amount:
        raise OverPayment(f"paid_amount {paid_amount} exceeds amount {amount}")
    try:
        debt_type = DebtType(type)
    except ValueError:
        raise ValidationFailed("type must be one of: receivable, payable")
    entity_name = (entity_name or "").strip()
    if not entity_name:
        raise ValidationFailed("entity_name is required")
    due = _parse_due_date(due_date)
    if store.get(Branch, branch_id) is None:
        raise NotFound(f"Branch {branch_id} not found")

    now = now or utcnow()
    debt = Debt(
        branch_id=branch_id,
        type=debt_type,
        entity_name=entity_name,
        entity_id=entity_id,
        description=(description or "").strip(),
        amount=amount,
        paid_amount=paid_amount,
        due_date=due,
        invoice_number=invoice_number,
        notes=notes,
    )
    _rederive(debt, now)
    store.add(debt)
    store.flush()
    store.record_change(EntityType.DEBT, CREATED, debt)
    store.commit()

    logger.info("Created %s debt %s for %s (%s, %s)", debt.type, debt.id, debt.entity_name, debt.amount, debt.status)
    return debt


def record_debt_payment(store, debt_id: int, paid_delta: int, *, now: datetime | None = None) -> Debt:
    """
    Raises:
        InvalidAmount: paid_delta <= 0 or not an integer
        NotFound: unknown debt
        OverPayment: paid_amount would exceed amount
    """
    validate_amount(paid_delta)

    def _op():
        debt = get_debt(store, debt_id, for_update=True)
        if debt.paid_amount + paid_delta > debt.amount:
            raise OverPayment(
                f"Payment of {paid_delta} exceeds remaining amount {debt.amount - debt.paid_amount}",
                remaining_amount=debt.amount - debt.paid_amount,
            )
        debt.paid_amount += paid_delta
        _rederive(debt, now or utcnow())
        store.record_change(EntityType.DEBT, UPDATED, debt)
        store.commit()
        return debt

    debt = run_with_retry(store, _op)
    logger.info("Debt %s paid %s; remaining %s (%s)", debt.id, paid_delta, debt.remaining_amount, debt.status)
    return debt


def settle_debt(store, debt_id: int, *, now: datetime | None = None) -> Debt:
    debt = get_debt(store, debt_id)
    remaining = debt.amount - debt.paid_amount
    if remaining == 0:
        raise OverPayment(f"Debt {debt_id} is already paid")
    return record_debt_payment(store, debt_id, remaining, now=now)


def update_debt(store, debt_id: int, fields: dict, *, now: datetime | None = None) -> Debt:
    debt = get_debt(store, debt_id)
    patch = validate_payload(model=Debt, payload=fields, policy=POLICIES[EntityType.DEBT], partial=True)
    for key, value in patch.items():
        setattr(debt, key, value)
    _rederive(debt, now or utcnow())
    store.record_change(EntityType.DEBT, UPDATED, debt)
    store.commit()
    return debt


def delete_debt(store, debt_id: int) -> None:
    debt = get_debt(store, debt_id)
    store.delete(debt)
    store.record_change(EntityType.DEBT, DELETED, entity_id=debt_id, branch_id=debt.branch_id)
    store.commit()


def refresh_debt_statuses(store, now: datetime | None = None) -> int:
    """Re-derive time-dependent status for every unpaid debt. Returns how many changed."""
    now = now or utcnow()
    changed = 0
    for debt in store.query(Debt).filter(Debt.status != DebtStatus.PAID).all():
        if _rederive(debt, now):
            changed += 1
            store.record_change(EntityType.DEBT, UPDATED, debt)
    if changed:
        store.commit()
        logger.info("Refreshed status of %d debt(s)", changed)
    return changed


def debt_summary(store, scope) -> dict:
    debts = scope.apply(store.query(Debt), Debt).all()
    summary = {
        "branch_id": scope.branch_id,
        "count": len(debts),
        "receivable_total": 0,
        "receivable_outstanding": 0,
        "payable_total": 0,
        "payable_outstanding": 0,
        "overdue_count": 0,
        "by_status": {str(status): 0 for status in DebtStatus},
    }
    for debt in debts:
        prefix = "receivable" if debt.type == DebtType.RECEIVABLE else "payable"
        summary[f"{prefix}_total"] += debt.amount
        summary[f"{prefix}_outstanding"] += debt.remaining_amount
        summary["by_status"][str(debt.status)] += 1
        if debt.status == DebtStatus.OVERDUE:
            summary["overdue_count"] += 1
    return summary
