from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import relationship

from ..enums import Role
from .base import Model, enum_column, enum_value
from ..time_utils import to_utc_z


class Subject(Model):
    """
    Registered back-office user (admin, manager or staff).

    Subjects with an assigned_branch_id are pinned to that branch. Admins and
    managers without one choose a branch after login.

    WHY: Every action must be attributable. No shared logins.
    """
    __tablename__ = "subjects"
    __table_args__ = (
        sa.UniqueConstraint("email", name="uq_subjects_email"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    name = sa.Column(sa.String(120), nullable=False)
    email = sa.Column(sa.String(255), nullable=False, index=True)
    phone = sa.Column(sa.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = sa.Column(sa.String(255), nullable=False)

    role = enum_column(Role, nullable=False, default=Role.STAFF)
    assigned_branch_id = sa.Column(sa.Integer, sa.ForeignKey("branches.id"), nullable=True, index=True)

    two_factor_enabled = sa.Column(sa.Boolean, nullable=False, default=False)
    is_active = sa.Column(sa.Boolean, nullable=False, default=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())
    last_login_at = sa.Column(sa.DateTime, nullable=True)

    assigned_branch = relationship("Branch")

    def __repr__(self) -> str:
        return f"<Subject id={self.id} email={self.email!r} role={enum_value(self.role)}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": enum_value(self.role),
            "assigned_branch_id": self.assigned_branch_id,
            "two_factor_enabled": self.two_factor_enabled,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at),
        }


class ResetToken(Model):
    """
    Single-use password reset token.

    Only the SHA-256 hash of the token is stored. A token is valid until
    expires_at and is deleted when consumed.
    """
    __tablename__ = "reset_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    token_hash = sa.Column(sa.String(64), nullable=False, unique=True, index=True)
    subject_email = sa.Column(sa.String(255), nullable=False, index=True)
    expires_at = sa.Column(sa.DateTime, nullable=False)
    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())
