# Overview: Generic branch-scoped records (suppliers, menu, orders, people, floor, rota and customer engagement).

from __future__ import annotations

import logging

from ..enums import EntityType, ReservationStatus
from ..errors import Conflict, NotFound, ValidationFailed
from ..events import CREATED, DELETED, UPDATED
from ..models import (
    Announcement,
    Attendance,
    Branch,
    Customer,
    CustomerFeedback,
    Debt,
    DiningTable,
    FinanceAccount,
    FinanceTransaction,
    InventoryItem,
    LoyaltyTransaction,
    MenuItem,
    Order,
    PayrollRecord,
    Promotion,
    Reservation,
    Shift,
    Staff,
    StockMovement,
    Subject,
    Supplier,
)
from ..validation import POLICIES, enforce_rules, validate_payload

logger = logging.getLogger(__name__)


ENTITY_MODELS: dict[EntityType, type] = {
    EntityType.BRANCH: Branch,
    EntityType.SUBJECT: Subject,
    EntityType.FINANCE_ACCOUNT: FinanceAccount,
    EntityType.FINANCE_TRANSACTION: FinanceTransaction,
    EntityType.DEBT: Debt,
    EntityType.PAYROLL_RECORD: PayrollRecord,
    EntityType.INVENTORY_ITEM: InventoryItem,
    EntityType.STOCK_MOVEMENT: StockMovement,
    EntityType.SUPPLIER: Supplier,
    EntityType.TABLE: DiningTable,
    EntityType.RESERVATION: Reservation,
    EntityType.STAFF: Staff,
    EntityType.CUSTOMER: Customer,
    EntityType.MENU_ITEM: MenuItem,
    EntityType.ORDER: Order,
    EntityType.ATTENDANCE: Attendance,
    EntityType.SHIFT: Shift,
    EntityType.ANNOUNCEMENT: Announcement,
    EntityType.FEEDBACK: CustomerFeedback,
    EntityType.LOYALTY_TRANSACTION: LoyaltyTransaction,
    EntityType.PROMOTION: Promotion,
}

# Entity types written straight to the store by this module
GENERIC_TYPES = frozenset({
    EntityType.SUPPLIER,
    EntityType.MENU_ITEM,
    EntityType.ORDER,
    EntityType.STAFF,
    EntityType.CUSTOMER,
    EntityType.TABLE,
    EntityType.RESERVATION,
    EntityType.ATTENDANCE,
    EntityType.SHIFT,
    EntityType.ANNOUNCEMENT,
    EntityType.FEEDBACK,
    EntityType.LOYALTY_TRANSACTION,
    EntityType.PROMOTION,
})

# Written once, never edited or removed
APPEND_ONLY_TYPES = frozenset({
    EntityType.STOCK_MOVEMENT,
    EntityType.LOYALTY_TRANSACTION,
})


def ensure_mutable(entity_type: EntityType) -> None:
    if entity_type in APPEND_ONLY_TYPES:
        raise ValidationFailed(f"{entity_type} records are append-only")


def entity_type_of(value) -> EntityType:
    try:
        return EntityType(value)
    except ValueError:
        raise ValidationFailed(f"Unknown entity type: {value}")


def model_for(entity_type) -> type:
    return ENTITY_MODELS[entity_type_of(entity_type)]


def branch_column(model):
    """Column that carries branch ownership for scope filtering."""
    if model is Branch:
        return Branch.id
    if model is Subject:
        return Subject.assigned_branch_id
    return model.branch_id


def owning_branch_id(obj) -> int | None:
    if isinstance(obj, Branch):
        return obj.id
    if isinstance(obj, Subject):
        return obj.assigned_branch_id
    return obj.branch_id


def get_record(store, entity_type, entity_id: int):
    entity_type = entity_type_of(entity_type)
    obj = store.get(ENTITY_MODELS[entity_type], entity_id)
    if obj is None:
        raise NotFound(f"{entity_type} {entity_id} not found")
    return obj


def list_records(store, entity_type, scope) -> list:
    model = model_for(entity_type)
    query = scope.apply(store.query(model), model, branch_column(model))
    return query.order_by(model.id.asc()).all()


def check_references(store, entity_type: EntityType, patch: dict, branch_id: int) -> None:
    """Foreign references in patch must exist and live in the same branch."""
    refs = {
        "supplier_id": Supplier,
        "table_id": DiningTable,
        "customer_id": Customer,
        "order_id": Order,
        "staff_id": Staff,
    }
    for field, model in refs.items():
        ref_id = patch.get(field)
        if ref_id is None:
            continue
        target = store.get(model, ref_id)
        if target is None:
            raise NotFound(f"{model.__tablename__} {ref_id} not found")
        if target.branch_id != branch_id:
            raise ValidationFailed(f"{field} {ref_id} belongs to another branch")

    if entity_type == EntityType.TABLE and "number" in patch:
        clash = store.query(DiningTable).filter(
            DiningTable.branch_id == branch_id,
            DiningTable.number == patch["number"],
        ).first()
        if clash is not None and clash.id != patch.get("id"):
            raise Conflict(f"Table number {patch['number']} already exists in this branch")

    if entity_type == EntityType.ORDER and "order_number" in patch:
        clash = store.query(Order).filter(
            Order.branch_id == branch_id,
            Order.order_number == patch["order_number"],
        ).first()
        if clash is not None and clash.id != patch.get("id"):
            raise Conflict(f"Order number {patch['order_number']} already exists in this branch")

    if entity_type == EntityType.ATTENDANCE and ("staff_id" in patch or "date" in patch):
        current = store.get(Attendance, patch["id"]) if patch.get("id") else None
        staff_id = patch.get("staff_id", current.staff_id if current else None)
        day = patch.get("date", current.date if current else None)
        clash = store.query(Attendance).filter(
            Attendance.staff_id == staff_id,
            Attendance.date == day,
        ).first()
        if clash is not None and clash.id != patch.get("id"):
            raise Conflict(f"Attendance for staff {staff_id} on {day:%Y-%m-%d} already recorded")


def _apply_loyalty(store, entry: LoyaltyTransaction) -> None:
    """Move the customer's points balance by the entry; redeeming past zero is refused."""
    customer = store.get(Customer, entry.customer_id)
    balance = (customer.loyalty_points or 0) + entry.signed_points
    if balance < 0:
        raise ValidationFailed(
            f"Customer {customer.id} has {customer.loyalty_points} points; cannot redeem {entry.points}"
        )
    customer.loyalty_points = balance
    entry.resulting_points = balance
    store.record_change(EntityType.CUSTOMER, UPDATED, customer)


def create_record(store, entity_type, fields: dict, *, stamped: dict | None = None):
    """
    Validate fields and insert one generic record.

    stamped holds values the caller sets on the caller's behalf (such as an
    announcement's author_id); they skip the writable-field allowlist.
    A loyalty transaction also moves its customer's loyalty_points.
    """
    entity_type = entity_type_of(entity_type)
    if entity_type not in GENERIC_TYPES:
        raise ValidationFailed(f"{entity_type} records are not created through generic add")

    model = ENTITY_MODELS[entity_type]
    patch = validate_payload(model=model, payload=fields, policy=POLICIES[entity_type], partial=False)
    enforce_rules(entity_type, patch)

    if store.get(Branch, patch["branch_id"]) is None:
        raise NotFound(f"Branch {patch['branch_id']} not found")
    check_references(store, entity_type, patch, patch["branch_id"])

    obj = model(**dict(patch, **(stamped or {})))
    if entity_type == EntityType.RESERVATION:
        obj.status = ReservationStatus.PENDING
    if entity_type == EntityType.LOYALTY_TRANSACTION:
        _apply_loyalty(store, obj)
    store.add(obj)
    store.flush()
    store.record_change(entity_type, CREATED, obj)
    store.commit()

    logger.info("Created %s %s in branch %s", entity_type, obj.id, obj.branch_id)
    return obj


def update_record(store, entity_type, entity_id: int, fields: dict):
    entity_type = entity_type_of(entity_type)
    if entity_type not in GENERIC_TYPES:
        raise ValidationFailed(f"{entity_type} records are not updated through generic update")
    ensure_mutable(entity_type)

    obj = get_record(store, entity_type, entity_id)
    model = ENTITY_MODELS[entity_type]
    patch = validate_payload(model=model, payload=fields, policy=POLICIES[entity_type], partial=True)
    enforce_rules(entity_type, patch)

    if "branch_id" in patch and patch["branch_id"] != obj.branch_id:
        raise ValidationFailed(f"A {entity_type} cannot move between branches")
    check_references(store, entity_type, dict(patch, id=obj.id), obj.branch_id)

    for key, value in patch.items():
        setattr(obj, key, value)
    store.record_change(entity_type, UPDATED, obj)
    store.commit()
    return obj


# Rows that keep a record alive: entity type -> (model, column, label)
BLOCKING_REFERENCES: dict[EntityType, tuple] = {
    EntityType.STAFF: (
        (PayrollRecord, "staff_id", "payroll records"),
        (Attendance, "staff_id", "attendance records"),
        (Shift, "staff_id", "shifts"),
    ),
    EntityType.SUPPLIER: ((InventoryItem, "supplier_id", "inventory items"),),
    EntityType.CUSTOMER: (
        (Order, "customer_id", "orders"),
        (CustomerFeedback, "customer_id", "feedback"),
        (LoyaltyTransaction, "customer_id", "loyalty transactions"),
    ),
    EntityType.ORDER: (
        (CustomerFeedback, "order_id", "feedback"),
        (LoyaltyTransaction, "order_id", "loyalty transactions"),
        (StockMovement, "order_id", "stock movements"),
    ),
    EntityType.TABLE: ((Reservation, "table_id", "reservations"),),
}


def _blocking_references(store, entity_type: EntityType, entity_id: int) -> str | None:
    for model, column, label in BLOCKING_REFERENCES.get(entity_type, ()):
        if store.query(model).filter_by(**{column: entity_id}).count():
            return label
    return None


def delete_record(store, entity_type, entity_id: int) -> None:
    entity_type = entity_type_of(entity_type)
    if entity_type not in GENERIC_TYPES:
        raise ValidationFailed(f"{entity_type} records are not deleted through generic delete")
    ensure_mutable(entity_type)

    obj = get_record(store, entity_type, entity_id)
    blocker = _blocking_references(store, entity_type, entity_id)
    if blocker:
        raise Conflict(f"{entity_type} {entity_id} is still referenced by {blocker}")

    branch_id = obj.branch_id
    store.delete(obj)
    store.record_change(entity_type, DELETED, entity_id=entity_id, branch_id=branch_id)
    store.commit()
    logger.info("Deleted %s %s", entity_type, entity_id)
