from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import relationship

from ..enums import ReservationStatus, TableStatus
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class DiningTable(Model):
    """
    Physical table on a branch floor.

    Status is staff-observed: any status may follow any other.
    """
    __tablename__ = "dining_tables"
    __table_args__ = (
        sa.UniqueConstraint("branch_id", "number", name="uq_dining_tables_branch_number"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    number = sa.Column(sa.Integer, nullable=False)
    seats = sa.Column(sa.Integer, nullable=False, default=2)
    status = enum_column(TableStatus, nullable=False, default=TableStatus.AVAILABLE)
    shape = sa.Column(sa.String(16), nullable=True)
    location = sa.Column(sa.String(64), nullable=True)
    current_order_id = sa.Column(sa.Integer, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "number": self.number,
            "seats": self.seats,
            "status": enum_value(self.status),
            "shape": self.shape,
            "location": self.location,
            "current_order_id": self.current_order_id,
            "created_at": to_utc_z(self.created_at),
        }


class Reservation(Model):
    """
    Table reservation.

    pending -> confirmed | cancelled
    confirmed -> completed | cancelled
    completed and cancelled are terminal.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        sa.Index("ix_reservations_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    table_id = sa.Column(sa.Integer, sa.ForeignKey("dining_tables.id"), nullable=True)

    customer_name = sa.Column(sa.String(120), nullable=False)
    customer_phone = sa.Column(sa.String(32), nullable=False)
    customer_email = sa.Column(sa.String(255), nullable=True)

    date = sa.Column(sa.DateTime, nullable=False)
    guests = sa.Column(sa.Integer, nullable=False, default=2)
    status = enum_column(ReservationStatus, nullable=False, default=ReservationStatus.PENDING)
    source = sa.Column(sa.String(16), nullable=True)  # walk-in / online
    notes = sa.Column(sa.Text, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    table = relationship("DiningTable")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "table_id": self.table_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "date": to_utc_z(self.date),
            "guests": self.guests,
            "status": enum_value(self.status),
            "source": self.source,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
