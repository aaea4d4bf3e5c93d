from __future__ import annotations

import sqlalchemy as sa

from .base import Model
from ..time_utils import to_utc_z


class Branch(Model):
    """
    Restaurant branch; the unit of data visibility.

    Every scoped entity carries a branch_id. Exactly one branch is the main
    branch (is_main=True). The main branch cannot be deleted or demoted
    directly: promote another branch instead.
    """
    __tablename__ = "branches"
    __table_args__ = (
        sa.UniqueConstraint("name", name="uq_branches_name"),
        sa.UniqueConstraint("code", name="uq_branches_code"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)
    name = sa.Column(sa.String(120), nullable=False)
    code = sa.Column(sa.String(32), nullable=True, index=True)
    location = sa.Column(sa.String(255), nullable=False, default="")

    phone = sa.Column(sa.String(32), nullable=True)
    email = sa.Column(sa.String(255), nullable=True)
    operating_hours = sa.Column(sa.String(120), nullable=True)
    manager_id = sa.Column(sa.Integer, nullable=True)

    latitude = sa.Column(sa.Float, nullable=True)
    longitude = sa.Column(sa.Float, nullable=True)

    is_main = sa.Column(sa.Boolean, nullable=False, default=False, index=True)

    created_at = sa.Column(sa.DateTime, nullable=False, server_default=sa.func.now())

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} is_main={self.is_main}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "location": self.location,
            "phone": self.phone,
            "email": self.email,
            "operating_hours": self.operating_hours,
            "manager_id": self.manager_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "is_main": self.is_main,
            "created_at": to_utc_z(self.created_at),
        }
