# Overview: Service-layer operations for credentials; registration, authentication and password reset.

"""
Authentication Service

Every action must be attributable: subjects log in with their own email and
password. Passwords are hashed with bcrypt; reset tokens are random,
single-use, time-limited and stored only as a SHA-256 hash.

SECURITY NOTES:
- bcrypt cost factor comes from BCRYPT_ROUNDS (lowered in tests)
- Minimum 6 characters (see validation.validate_password_strength)
- request_password_reset never reveals whether an email is registered
- Session handling lives in session_service.py
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

import bcrypt

from ..enums import EntityType, Role
from ..errors import Conflict, InvalidOrExpiredToken, NotFound, ValidationFailed
from ..events import CREATED, UPDATED
from ..models import Branch, ResetToken, Subject
from ..time_utils import utcnow
from ..validation import POLICIES, validate_email, validate_password_strength, validate_payload
from .session_tokens import hash_token

logger = logging.getLogger(__name__)


DEFAULT_BCRYPT_ROUNDS = 12
RESET_TOKEN_TTL = timedelta(hours=1)


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Validate strength, then hash with bcrypt. Stored as a str."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash counts as a
    mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def find_subject_by_email(store, email: str) -> Subject | None:
    if not email:
        return None
    return store.query(Subject).filter(Subject.email == email.strip().lower()).first()


def register_subject(
    store,
    *,
    name: str,
    email: str,
    password: str,
    role: Role | str = Role.STAFF,
    assigned_branch_id: int | None = None,
    phone: str | None = None,
    two_factor_enabled: bool = False,
    rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> Subject:
    """
    Create a subject.

    Raises:
        ValidationFailed: blank name, malformed email, short password, unknown role
        Conflict: email already registered
        NotFound: assigned branch does not exist
    """
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Please fill in all required fields")
    email = validate_email(email)
    try:
        role = Role(role)
    except ValueError:
        raise ValidationFailed(f"Unknown role: {role}")

    if find_subject_by_email(store, email) is not None:
        raise Conflict("Email already registered")

    if assigned_branch_id is not None and store.get(Branch, assigned_branch_id) is None:
        raise NotFound(f"Branch {assigned_branch_id} not found")

    subject = Subject(
        name=name,
        email=email,
        phone=(phone or "").strip() or None,
        password_hash=hash_password(password, rounds),
        role=role,
        assigned_branch_id=assigned_branch_id,
        two_factor_enabled=bool(two_factor_enabled),
        is_active=True,
    )
    store.add(subject)
    store.flush()
    store.record_change(EntityType.SUBJECT, CREATED, subject, branch_id=assigned_branch_id)
    store.commit()

    logger.info("Registered subject %s (%s, role=%s)", subject.id, email, role)
    return subject


def authenticate(store, email: str, password: str) -> Subject | None:
    """
    Return the active subject whose credentials match, else None.

    Updates last_login_at on success (committed by the caller's session step).
    """
    subject = find_subject_by_email(store, email)
    if subject is None or not subject.is_active:
        return None
    if not verify_password(password, subject.password_hash):
        return None
    subject.last_login_at = utcnow()
    return subject


def request_password_reset(store, email: str, *, ttl: timedelta = RESET_TOKEN_TTL) -> str | None:
    """
    Issue a reset token for a registered email.

    Returns the plaintext token (to be delivered out of band), or None when
    the email is unknown. Callers report success either way.
    """
    subject = find_subject_by_email(store, email)
    if subject is None:
        logger.info("Password reset requested for unknown email")
        return None

    token = secrets.token_urlsafe(32)
    store.add(ResetToken(
        token_hash=hash_token(token),
        subject_email=subject.email,
        expires_at=utcnow() + ttl,
    ))
    store.commit()

    logger.info("Password reset token issued for subject %s", subject.id)
    return token


def reset_password(store, token: str, new_password: str, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> Subject:
    """
    Consume a reset token and replace the subject's password.

    Existence and expiry are both checked before anything is mutated; an
    expired token is deleted. Session revocation is the caller's job
    (the session vault lives outside the entity store).

    Raises:
        InvalidOrExpiredToken: unknown, expired or orphaned token
        ValidationFailed: new password too short
    """
    if not token:
        raise InvalidOrExpiredToken()

    record = store.query(ResetToken).filter_by(token_hash=hash_token(token)).first()
    if record is None:
        raise InvalidOrExpiredToken()

    if record.expires_at <= utcnow():
        store.delete(record)
        store.commit()
        raise InvalidOrExpiredToken("Reset link has expired")

    subject = find_subject_by_email(store, record.subject_email)
    if subject is None:
        store.delete(record)
        store.commit()
        raise InvalidOrExpiredToken()

    subject.password_hash = hash_password(new_password, rounds)
    store.delete(record)
    store.record_change(EntityType.SUBJECT, UPDATED, subject, branch_id=subject.assigned_branch_id)
    store.commit()

    logger.info("Password reset for subject %s", subject.id)
    return subject


def update_subject(store, subject_id: int, fields: dict) -> tuple[Subject, bool]:
    """
    Update profile, role, branch assignment or activation.

    Returns (subject, access_changed); when access_changed is True the
    caller must revoke the subject's sessions.
    """
    subject = store.get(Subject, subject_id)
    if subject is None:
        raise NotFound(f"Subject {subject_id} not found")

    patch = validate_payload(model=Subject, payload=fields, policy=POLICIES[EntityType.SUBJECT], partial=True)
    if patch.get("assigned_branch_id") is not None and store.get(Branch, patch["assigned_branch_id"]) is None:
        raise NotFound(f"Branch {patch['assigned_branch_id']} not found")

    access_changed = any(
        key in patch and patch[key] != getattr(subject, key)
        for key in ("role", "assigned_branch_id", "is_active")
    )
    for key, value in patch.items():
        setattr(subject, key, value)
    store.record_change(EntityType.SUBJECT, UPDATED, subject, branch_id=subject.assigned_branch_id)
    store.commit()
    return subject, access_changed
