from __future__ import annotations

import sqlalchemy as sa

from ..enums import AttendanceStatus, ShiftStatus
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class Staff(Model):
    """Employee record of a branch (not a login; see Subject)."""
    __tablename__ = "staff"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    name = sa.Column(sa.String(120), nullable=False)
    position = sa.Column(sa.String(32), nullable=False, default="waiter")  # chef, waiter, cashier, manager
    email = sa.Column(sa.String(255), nullable=True)
    phone = sa.Column(sa.String(32), nullable=False, default="")
    salary = sa.Column(sa.BigInteger, nullable=True)
    shift_start = sa.Column(sa.String(8), nullable=True)
    shift_end = sa.Column(sa.String(8), nullable=True)
    is_active = sa.Column(sa.Boolean, nullable=False, default=True)
    date_joined = sa.Column(sa.DateTime, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "position": self.position,
            "email": self.email,
            "phone": self.phone,
            "salary": self.salary,
            "shift_start": self.shift_start,
            "shift_end": self.shift_end,
            "is_active": self.is_active,
            "date_joined": to_utc_z(self.date_joined),
            "created_at": to_utc_z(self.created_at),
        }


class Customer(Model):
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)

    name = sa.Column(sa.String(120), nullable=False)
    email = sa.Column(sa.String(255), nullable=True)
    phone = sa.Column(sa.String(32), nullable=False)
    segment = sa.Column(sa.String(16), nullable=False, default="new")  # regular, vip, new
    loyalty_points = sa.Column(sa.Integer, nullable=False, default=0)
    total_orders = sa.Column(sa.Integer, nullable=False, default=0)
    total_spent = sa.Column(sa.BigInteger, nullable=False, default=0)
    last_visit = sa.Column(sa.DateTime, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "segment": self.segment,
            "loyalty_points": self.loyalty_points,
            "total_orders": self.total_orders,
            "total_spent": self.total_spent,
            "last_visit": to_utc_z(self.last_visit),
            "created_at": to_utc_z(self.created_at),
        }


class Attendance(Model):
    """One staff member's attendance for one day."""
    __tablename__ = "attendance"
    __table_args__ = (
        sa.UniqueConstraint("staff_id", "date", name="uq_attendance_staff_date"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    staff_id = sa.Column(sa.Integer, sa.ForeignKey("staff.id"), nullable=False, index=True)

    date = sa.Column(sa.DateTime, nullable=False)
    check_in_time = sa.Column(sa.String(8), nullable=True)   # HH:MM
    check_out_time = sa.Column(sa.String(8), nullable=True)
    hours_worked = sa.Column(sa.Float, nullable=True)
    status = enum_column(AttendanceStatus, nullable=False, default=AttendanceStatus.PRESENT)
    notes = sa.Column(sa.Text, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "staff_id": self.staff_id,
            "date": to_utc_z(self.date),
            "check_in_time": self.check_in_time,
            "check_out_time": self.check_out_time,
            "hours_worked": self.hours_worked,
            "status": enum_value(self.status),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class Shift(Model):
    """Scheduled shift on the branch rota."""
    __tablename__ = "shifts"
    __table_args__ = (
        sa.Index("ix_shifts_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=False, index=True)
    staff_id = sa.Column(sa.Integer, sa.ForeignKey("staff.id"), nullable=False, index=True)

    date = sa.Column(sa.DateTime, nullable=False)
    start_time = sa.Column(sa.String(8), nullable=False)
    end_time = sa.Column(sa.String(8), nullable=False)
    role = sa.Column(sa.String(32), nullable=False, default="waiter")
    status = enum_column(ShiftStatus, nullable=False, default=ShiftStatus.SCHEDULED)
    notes = sa.Column(sa.Text, nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "staff_id": self.staff_id,
            "date": to_utc_z(self.date),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "role": self.role,
            "status": enum_value(self.status),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
