from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import relationship

from ..enums import MovementType
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class Supplier(Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    name = sa.Column(sa.String(255), nullable=False)
    contact_person = sa.Column(sa.String(120), nullable=True)
    email = sa.Column(sa.String(255), nullable=True)
    phone = sa.Column(sa.String(32), nullable=False, default="")
    address = sa.Column(sa.String(255), nullable=True)
    payment_terms = sa.Column(sa.String(64), nullable=True)
    rating = sa.Column(sa.Float, nullable=True)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "payment_terms": self.payment_terms,
            "rating": self.rating,
            "created_at": to_utc_z(self.created_at),
        }


class InventoryItem(Model):
    """
    Stock-keeping item of a branch (ingredient, drink, consumable).

    LEDGER INVARIANT: quantity is the floor-clamped running sum of the item's
    StockMovements (in: +qty, out: -qty, never below zero). quantity is only
    written by the inventory service.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        sa.UniqueConstraint("branch_id", "name", name="uq_inventory_items_branch_name"),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    name = sa.Column(sa.String(255), nullable=False)
    category = sa.Column(sa.String(64), nullable=False, default="general")
    unit = sa.Column(sa.String(16), nullable=False, default="unit")

    quantity = sa.Column(sa.Integer, nullable=False, default=0)
    min_stock = sa.Column(sa.Integer, nullable=False, default=0)
    reorder_level = sa.Column(sa.Integer, nullable=False, default=0)
    cost_per_unit = sa.Column(sa.BigInteger, nullable=False, default=0)

    supplier_id = sa.Column(sa.Integer, sa.ForeignKey("suppliers.id"), nullable=True)
    last_restocked = sa.Column(sa.DateTime, nullable=True)
    expiry_date = sa.Column(sa.DateTime, nullable=True)

    version_id = sa.Column(sa.Integer, nullable=False, default=1)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    supplier = relationship("Supplier")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r} quantity={self.quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "quantity": self.quantity,
            "min_stock": self.min_stock,
            "reorder_level": self.reorder_level,
            "cost_per_unit": self.cost_per_unit,
            "supplier_id": self.supplier_id,
            "last_restocked": to_utc_z(self.last_restocked),
            "expiry_date": to_utc_z(self.expiry_date),
            "is_low_stock": self.is_low_stock,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockMovement(Model):
    """
    Append-only stock in/out record.

    resulting_quantity snapshots the item quantity right after this movement
    was applied (after the zero floor clamp).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        sa.Index("ix_stock_movements_item_date", "item_id", "date"),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    item_id = sa.Column(sa.Integer, sa.ForeignKey("inventory_items.id"), nullable=False, index=True)

    type = enum_column(MovementType, nullable=False)
    quantity = sa.Column(sa.Integer, nullable=False)
    resulting_quantity = sa.Column(sa.Integer, nullable=False)

    reason = sa.Column(sa.String(255), nullable=True)
    notes = sa.Column(sa.Text, nullable=True)
    unit_cost = sa.Column(sa.BigInteger, nullable=True)
    supplier_id = sa.Column(sa.Integer, nullable=True)
    order_id = sa.Column(sa.Integer, nullable=True)

    date = sa.Column(sa.DateTime, nullable=False, index=True)
    user_id = sa.Column(sa.Integer, nullable=True)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    item = relationship("InventoryItem")

    @property
    def signed_quantity(self) -> int:
        if self.type == MovementType.IN:
            return self.quantity
        return -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "item_id": self.item_id,
            "type": enum_value(self.type),
            "quantity": self.quantity,
            "resulting_quantity": self.resulting_quantity,
            "reason": self.reason,
            "notes": self.notes,
            "unit_cost": self.unit_cost,
            "supplier_id": self.supplier_id,
            "order_id": self.order_id,
            "date": to_utc_z(self.date),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
