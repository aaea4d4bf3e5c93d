from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase

from ..enums import Role
from .base import enum_column, enum_value
from ..time_utils import to_utc_z


class VaultModel(DeclarativeBase):
    """
    Declarative base for the durable session vault.

    Kept apart from the entity store metadata: the vault lives in its own
    database so remembered sessions survive process restarts even though the
    entity dataset does not.
    """


class PersistedSession(VaultModel):
    """
    Remembered (durable) session.

    Only the SHA-256 hash of the session token is stored.
    """
    __tablename__ = "persisted_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = sa.Column(sa.Integer, primary_key=True)
    token_hash = sa.Column(sa.String(64), nullable=False, unique=True, index=True)

    subject_id = sa.Column(sa.Integer, nullable=False, index=True)
    role = enum_column(Role, nullable=False)
    assigned_branch_id = sa.Column(sa.Integer, nullable=True)
    effective_branch_id = sa.Column(sa.String(32), nullable=True)

    created_at = sa.Column(sa.DateTime, nullable=False)
    expires_at = sa.Column(sa.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "role": enum_value(self.role),
            "assigned_branch_id": self.assigned_branch_id,
            "effective_branch_id": self.effective_branch_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
        }


class BranchPreference(VaultModel):
    """Last branch a subject selected; re-applied on the next login."""
    __tablename__ = "branch_preferences"

    subject_id = sa.Column(sa.Integer, primary_key=True, autoincrement=False)
    branch_id = sa.Column(sa.String(32), nullable=False)
    updated_at = sa.Column(sa.DateTime, nullable=False)
