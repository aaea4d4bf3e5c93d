# Overview: Stock movements and inventory items; quantity follows the clamped movement sum.

"""
Inventory invariants:

- InventoryItem.quantity is the running sum of its StockMovements with a
  floor of zero applied after every movement. An 'out' larger than the
  current stock is recorded in full but the quantity saturates at zero; the
  movement's resulting_quantity shows where it landed.
- StockMovement rows are append-only.
- An 'in' movement stamps last_restocked.
- quantity is never written directly; items start at zero and an opening
  stock is posted as an 'in' movement.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..enums import EntityType, MovementType
from ..errors import InvalidQuantity, ItemNotFound, NotFound, ValidationFailed
from ..events import CREATED, DELETED, UPDATED
from ..models import Branch, InventoryItem, StockMovement
from ..time_utils import normalize_datetime, utcnow
from ..validation import POLICIES, enforce_rules, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .records_service import check_references

logger = logging.getLogger(__name__)


OPENING_STOCK_REASON = "opening-stock"


def apply_movement(quantity: int, movement_type: MovementType, amount: int) -> int:
    """Clamped stock arithmetic shared by posting and auditing."""
    if movement_type == MovementType.IN:
        return quantity + amount
    return max(0, quantity - amount)


def get_item(store, item_id: int, *, for_update: bool = False) -> InventoryItem:
    query = store.query(InventoryItem).filter(InventoryItem.id == item_id)
    if for_update:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise ItemNotFound(f"Inventory item {item_id} not found")
    return item


def create_item(store, fields: dict, *, opening_quantity: int = 0, user_id: int | None = None) -> InventoryItem:
    patch = validate_payload(
        model=InventoryItem,
        payload=fields,
        policy=POLICIES[EntityType.INVENTORY_ITEM],
        partial=False,
    )
    enforce_rules(EntityType.INVENTORY_ITEM, patch)
    if store.get(Branch, patch["branch_id"]) is None:
        raise NotFound(f"Branch {patch['branch_id']} not found")
    check_references(store, EntityType.INVENTORY_ITEM, patch, patch["branch_id"])
    if isinstance(opening_quantity, bool) or not isinstance(opening_quantity, int) or opening_quantity < 0:
        raise InvalidQuantity("Opening quantity must be a non-negative integer")

    item = InventoryItem(quantity=0, **patch)
    store.add(item)
    store.flush()
    store.record_change(EntityType.INVENTORY_ITEM, CREATED, item)

    if opening_quantity:
        _append_movement(
            store, item, MovementType.IN, opening_quantity,
            reason=OPENING_STOCK_REASON, user_id=user_id, when=utcnow(),
        )

    store.commit()
    return item


def update_item(store, item_id: int, fields: dict) -> InventoryItem:
    item = get_item(store, item_id)
    patch = validate_payload(
        model=InventoryItem,
        payload=fields,
        policy=POLICIES[EntityType.INVENTORY_ITEM],
        partial=True,
    )
    enforce_rules(EntityType.INVENTORY_ITEM, patch)
    if "branch_id" in patch and patch["branch_id"] != item.branch_id:
        raise ValidationFailed("An inventory item cannot move between branches")
    check_references(store, EntityType.INVENTORY_ITEM, patch, item.branch_id)
    for key, value in patch.items():
        setattr(item, key, value)
    store.record_change(EntityType.INVENTORY_ITEM, UPDATED, item)
    store.commit()
    return item


def delete_item(store, item_id: int) -> None:
    item = get_item(store, item_id)
    moved = store.query(StockMovement).filter_by(item_id=item_id).count()
    if moved:
        raise ValidationFailed(f"Item {item_id} has {moved} stock movement(s) and cannot be deleted")
    store.delete(item)
    store.record_change(EntityType.INVENTORY_ITEM, DELETED, entity_id=item_id, branch_id=item.branch_id)
    store.commit()


def _append_movement(
    store,
    item: InventoryItem,
    movement_type: MovementType,
    quantity: int,
    *,
    when: datetime,
    reason: str | None = None,
    notes: str | None = None,
    unit_cost: int | None = None,
    supplier_id: int | None = None,
    order_id: int | None = None,
    user_id: int | None = None,
) -> StockMovement:
    before = item.quantity
    item.quantity = apply_movement(before, movement_type, quantity)
    if movement_type == MovementType.IN:
        item.last_restocked = when
    elif before < quantity:
        logger.warning(
            "Stock of item %s clamped at zero (had %s, withdrew %s)", item.id, before, quantity,
        )

    movement = StockMovement(
        branch_id=item.branch_id,
        item_id=item.id,
        type=movement_type,
        quantity=quantity,
        resulting_quantity=item.quantity,
        reason=reason,
        notes=notes,
        unit_cost=unit_cost,
        supplier_id=supplier_id,
        order_id=order_id,
        date=when,
        user_id=user_id,
    )
    store.add(movement)
    store.flush()

    store.record_change(EntityType.STOCK_MOVEMENT, CREATED, movement)
    store.record_change(EntityType.INVENTORY_ITEM, UPDATED, item)
    return movement


def post_stock_movement(
    store,
    *,
    item_id: int,
    type: MovementType | str,
    quantity: int,
    branch_id: int | None = None,
    reason: str | None = None,
    notes: str | None = None,
    unit_cost: int | None = None,
    supplier_id: int | None = None,
    order_id: int | None = None,
    date: datetime | str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Record a movement and apply it to the item's quantity.

    Raises:
        InvalidQuantity: quantity <= 0 or not an integer
        ItemNotFound: unknown item
        ValidationFailed: bad type, branch mismatch, negative unit cost,
            supplier or order from another branch
        NotFound: unknown supplier or order
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}")
    try:
        movement_type = MovementType(type)
    except ValueError:
        raise ValidationFailed("type must be one of: in, out")
    if unit_cost is not None and (isinstance(unit_cost, bool) or not isinstance(unit_cost, int) or unit_cost < 0):
        raise ValidationFailed("unit_cost must be a non-negative integer")
    try:
        when = normalize_datetime(date) or utcnow()
    except ValueError:
        raise ValidationFailed("date must be an ISO-8601 datetime")

    def _op():
        item = get_item(store, item_id, for_update=True)
        if branch_id is not None and branch_id != item.branch_id:
            raise ValidationFailed(f"Item {item_id} does not belong to branch {branch_id}")
        check_references(
            store, EntityType.STOCK_MOVEMENT, {"supplier_id": supplier_id, "order_id": order_id}, item.branch_id,
        )
        movement = _append_movement(
            store, item, movement_type, quantity,
            when=when, reason=reason, notes=notes, unit_cost=unit_cost,
            supplier_id=supplier_id, order_id=order_id, user_id=user_id,
        )
        store.commit()
        return movement

    movement = run_with_retry(store, _op)
    logger.info(
        "Stock %s %s for item %s -> %s", movement.type, movement.quantity, movement.item_id, movement.resulting_quantity,
    )
    return movement


def low_stock_items(store, scope) -> list[InventoryItem]:
    query = scope.apply(store.query(InventoryItem), InventoryItem)
    return query.filter(InventoryItem.quantity <= InventoryItem.min_stock).order_by(InventoryItem.id).all()


def recompute_quantity(store, item_id: int) -> int:
    quantity = 0
    movements = store.query(StockMovement).filter_by(item_id=item_id).order_by(StockMovement.id.asc()).all()
    for movement in movements:
        quantity = apply_movement(quantity, MovementType(movement.type), movement.quantity)
    return quantity
