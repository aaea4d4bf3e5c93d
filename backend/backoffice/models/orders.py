from __future__ import annotations

import sqlalchemy as sa

from ..enums import OrderStatus, OrderType
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class MenuItem(Model):
    __tablename__ = "menu_items"
    __table_args__ = (
        sa.Index("ix_menu_items_branch_category", "branch_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    name = sa.Column(sa.String(255), nullable=False)
    category = sa.Column(sa.String(64), nullable=False)
    description = sa.Column(sa.Text, nullable=False, default="")
    price = sa.Column(sa.BigInteger, nullable=False)
    available = sa.Column(sa.Boolean, nullable=False, default=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price": self.price,
            "available": self.available,
            "created_at": to_utc_z(self.created_at),
        }


class Order(Model):
    """
    Customer order. Line items are stored as a JSON list of
    {menu_item_id, name, quantity, price} dicts; totals are caller-supplied.
    """
    __tablename__ = "orders"
    __table_args__ = (
        sa.UniqueConstraint("branch_id", "order_number", name="uq_orders_branch_number"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    order_number = sa.Column(sa.String(32), nullable=False)
    type = enum_column(OrderType, nullable=False, default=OrderType.DINE_IN)
    status = enum_column(OrderStatus, nullable=False, default=OrderStatus.PENDING, index=True)
    items = sa.Column(sa.JSON, nullable=False, default=list)

    table_number = sa.Column(sa.String(16), nullable=True)
    customer_id = sa.Column(sa.Integer, sa.ForeignKey("customers.id"), nullable=True)
    customer_name = sa.Column(sa.String(120), nullable=True)

    subtotal = sa.Column(sa.BigInteger, nullable=False, default=0)
    tax = sa.Column(sa.BigInteger, nullable=False, default=0)
    discount = sa.Column(sa.BigInteger, nullable=False, default=0)
    total = sa.Column(sa.BigInteger, nullable=False, default=0)
    payment_method = sa.Column(sa.String(32), nullable=True)
    notes = sa.Column(sa.Text, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())
    completed_at = sa.Column(sa.DateTime, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "order_number": self.order_number,
            "type": enum_value(self.type),
            "status": enum_value(self.status),
            "items": list(self.items or []),
            "table_number": self.table_number,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subtotal": self.subtotal,
            "tax": self.tax,
            "discount": self.discount,
            "total": self.total,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
