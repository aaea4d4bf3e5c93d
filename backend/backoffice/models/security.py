from __future__ import annotations

import sqlalchemy as sa

from .base import Model
from ..time_utils import to_utc_z


class SecurityEvent(Model):
    """
    Security event audit log.

    WHY: Track failed logins, lockouts and denied scope/permission checks.
    Login throttling counts LOGIN_FAILED rows per identifier.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        sa.Index("ix_security_events_subject_type", "subject_id", "event_type"),
        sa.Index("ix_security_events_identifier_type", "identifier", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = sa.Column(sa.Integer, primary_key=True)

    subject_id = sa.Column(sa.Integer, nullable=True, index=True)  # Nullable for anonymous
    branch_id = sa.Column(sa.Integer, nullable=True)

    # LOGIN_FAILED, LOGIN_SUCCESS, SECOND_FACTOR_FAILED, SCOPE_DENIED, PERMISSION_DENIED, ...
    event_type = sa.Column(sa.String(64), nullable=False, index=True)
    identifier = sa.Column(sa.String(255), nullable=True)  # email used for the attempt
    action = sa.Column(sa.String(64), nullable=True)

    success = sa.Column(sa.Boolean, nullable=False)
    reason = sa.Column(sa.Text, nullable=True)

    occurred_at = sa.Column(sa.DateTime, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "branch_id": self.branch_id,
            "event_type": self.event_type,
            "identifier": self.identifier,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
