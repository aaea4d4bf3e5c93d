# Overview: Payroll records; net pay computed once at creation, pending -> paid only.

from __future__ import annotations

import logging

from ..enums import EntityType, PaymentMethod, PayrollStatus
from ..errors import InvalidAmount, InvalidTransition, NotFound, ValidationFailed
from ..events import CREATED, DELETED, UPDATED
from ..models import PayrollRecord, Staff
from ..time_utils import utcnow
from ..validation import MAX_AMOUNT, POLICIES, validate_payload

logger = logging.getLogger(__name__)


def compute_net_pay(base_salary: int, bonuses: int, deductions: int) -> int:
    return base_salary + bonuses - deductions


def _component(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmount(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise InvalidAmount(f"{name} cannot be negative")
    if value > MAX_AMOUNT:
        raise InvalidAmount(f"{name} cannot exceed {MAX_AMOUNT}")
    return value


def get_record(store, record_id: int) -> PayrollRecord:
    record = store.get(PayrollRecord, record_id)
    if record is None:
        raise NotFound(f"Payroll record {record_id} not found")
    return record


def post_payroll(
    store,
    *,
    staff_id: int,
    base_salary: int,
    payment_period: str,
    bonuses: int = 0,
    deductions: int = 0,
    payment_method: PaymentMethod | str = PaymentMethod.BANK_TRANSFER,
    branch_id: int | None = None,
    notes: str | None = None,
    created_by: int | None = None,
) -> PayrollRecord:
    """
    Create a pending payroll record with net_pay = base + bonuses - deductions.

    Raises:
        InvalidAmount: negative component or negative net pay
        NotFound: unknown staff member
        ValidationFailed: branch mismatch, blank period, bad payment method
    """
    base_salary = _component(base_salary, "base_salary")
    bonuses = _component(bonuses, "bonuses")
    deductions = _component(deductions, "deductions")
    net_pay = compute_net_pay(base_salary, bonuses, deductions)
    if net_pay < 0:
        raise InvalidAmount(f"Deductions exceed gross pay (net pay would be {net_pay})")

    payment_period = (payment_period or "").strip()
    if not payment_period:
        raise ValidationFailed("payment_period is required")
    try:
        method = PaymentMethod(payment_method)
    except ValueError:
        raise ValidationFailed(f"Unknown payment method: {payment_method}")

    staff = store.get(Staff, staff_id)
    if staff is None:
        raise NotFound(f"Staff member {staff_id} not found")
    if branch_id is not None and branch_id != staff.branch_id:
        raise ValidationFailed(f"Staff member {staff_id} does not belong to branch {branch_id}")

    record = PayrollRecord(
        branch_id=staff.branch_id,
        staff_id=staff.id,
        base_salary=base_salary,
        bonuses=bonuses,
        deductions=deductions,
        net_pay=net_pay,
        payment_period=payment_period,
        payment_method=method,
        status=PayrollStatus.PENDING,
        notes=notes,
        created_by=created_by,
    )
    store.add(record)
    store.flush()
    store.record_change(EntityType.PAYROLL_RECORD, CREATED, record)
    store.commit()

    logger.info("Payroll %s for staff %s (%s): net %s", record.id, staff.id, payment_period, net_pay)
    return record


def mark_payroll_paid(store, record_id: int) -> PayrollRecord:
    record = get_record(store, record_id)
    if record.status != PayrollStatus.PENDING:
        raise InvalidTransition(f"Payroll record {record_id} is already {record.status}")
    record.status = PayrollStatus.PAID
    record.paid_at = utcnow()
    store.record_change(EntityType.PAYROLL_RECORD, UPDATED, record)
    store.commit()
    logger.info("Payroll %s marked paid", record.id)
    return record


def update_payroll(store, record_id: int, fields: dict) -> PayrollRecord:
    record = get_record(store, record_id)
    patch = validate_payload(
        model=PayrollRecord,
        payload=fields,
        policy=POLICIES[EntityType.PAYROLL_RECORD],
        partial=True,
    )
    for key, value in patch.items():
        setattr(record, key, value)
    store.record_change(EntityType.PAYROLL_RECORD, UPDATED, record)
    store.commit()
    return record


def delete_payroll(store, record_id: int) -> None:
    record = get_record(store, record_id)
    if record.status == PayrollStatus.PAID:
        raise InvalidTransition(f"Payroll record {record_id} is paid and cannot be deleted")
    store.delete(record)
    store.record_change(EntityType.PAYROLL_RECORD, DELETED, entity_id=record_id, branch_id=record.branch_id)
    store.commit()
