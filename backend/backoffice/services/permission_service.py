# Overview: Role permission checks and the security event audit trail.

"""
Permission Checking and Security Event Logging

- Fail closed: deny by default, require an explicit grant
- Log denials only: grants are not logged
- Roles map to permission codes statically (see permissions.py)
"""

from __future__ import annotations

import logging

from ..errors import PermissionDenied
from ..models import SecurityEvent
from ..permissions import permissions_for_role
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


PERMISSION_DENIED = "PERMISSION_DENIED"
SCOPE_DENIED = "SCOPE_DENIED"


def log_security_event(
    store,
    subject_id: int | None,
    event_type: str,
    success: bool,
    action: str | None = None,
    reason: str | None = None,
    identifier: str | None = None,
    branch_id: int | None = None,
) -> SecurityEvent:
    """
    Append a row to the security audit trail and commit it immediately.

    Denials are logged before any mutation happens, so committing here never
    publishes half-done work.

    event_type examples:
    - LOGIN_FAILED / LOGIN_SUCCESS
    - PERMISSION_DENIED
    - SCOPE_DENIED
    - SECOND_FACTOR_FAILED
    - PASSWORD_RESET
    """
    event = SecurityEvent(
        subject_id=subject_id,
        branch_id=branch_id,
        event_type=event_type,
        identifier=identifier,
        action=action,
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    )
    store.add(event)
    store.commit()
    return event


def has_permission(role, permission_code: str) -> bool:
    return permission_code in permissions_for_role(role)


def require_permission(store, session, permission_code: str, *, action: str | None = None) -> None:
    """
    Raise PermissionDenied unless the session's role grants permission_code.

    The denial is written to the security event log.
    """
    if has_permission(session.role, permission_code):
        return

    logger.warning(
        "Permission denied: subject=%s role=%s permission=%s action=%s",
        session.subject_id, session.role, permission_code, action,
    )
    log_security_event(
        store,
        session.subject_id,
        PERMISSION_DENIED,
        success=False,
        action=action or permission_code,
        reason=f"Missing permission {permission_code}",
    )
    raise PermissionDenied(f"Missing permission {permission_code}", permission=permission_code)
