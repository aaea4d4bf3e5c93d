"""
Login throttling.

Password failures are written to security_events as LOGIN_FAILED rows keyed
by the normalized email. Once an email collects MAX_FAILED_ATTEMPTS inside
LOCKOUT_WINDOW, further logins are refused until LOCKOUT_DURATION has passed
since the latest failure. Successful logins leave old failures in place; the
window ages them out.
"""

from __future__ import annotations

from datetime import timedelta

from ..models import SecurityEvent
from ..time_utils import utcnow
from .auth_service import find_subject_by_email


MAX_FAILED_ATTEMPTS = 10
LOCKOUT_WINDOW = timedelta(minutes=15)
LOCKOUT_DURATION = timedelta(minutes=15)

LOGIN_FAILED = "LOGIN_FAILED"
LOGIN_SUCCESS = "LOGIN_SUCCESS"


def _key(email: str) -> str:
    return (email or "").strip().lower()


def _failures(store, email: str):
    return store.query(SecurityEvent).filter(
        SecurityEvent.event_type == LOGIN_FAILED,
        SecurityEvent.identifier == _key(email),
    )


def _log_login(store, *, email: str, subject_id, success: bool, reason=None) -> None:
    store.add(SecurityEvent(
        subject_id=subject_id,
        event_type=LOGIN_SUCCESS if success else LOGIN_FAILED,
        identifier=_key(email),
        action="login",
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    ))
    store.commit()


def get_recent_failed_attempts(store, email: str) -> int:
    cutoff = utcnow() - LOCKOUT_WINDOW
    return _failures(store, email).filter(SecurityEvent.occurred_at >= cutoff).count()


def is_account_locked(store, email: str) -> tuple[bool, int | None]:
    """Return (True, seconds_remaining) while the email is locked out, else (False, None)."""
    if get_recent_failed_attempts(store, email) < MAX_FAILED_ATTEMPTS:
        return False, None

    latest = _failures(store, email).order_by(SecurityEvent.occurred_at.desc()).first()
    unlock_at = latest.occurred_at + LOCKOUT_DURATION
    now = utcnow()
    if now >= unlock_at:
        return False, None
    return True, int((unlock_at - now).total_seconds())


def record_failed_attempt(store, email: str, reason: str = "Invalid credentials") -> int:
    """Log a password failure and return how many failures are now inside the window."""
    subject = find_subject_by_email(store, email)
    _log_login(store, email=email, subject_id=subject.id if subject else None, success=False, reason=reason)
    return get_recent_failed_attempts(store, email)


def record_successful_login(store, subject_id: int, email: str) -> None:
    _log_login(store, email=email, subject_id=subject_id, success=True)
