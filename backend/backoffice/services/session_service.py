# Overview: Session and authentication state machine; login, second factor, branch gate, persistence.

"""
Session & Authentication State Machine

Stages:

    Anonymous --login--> PendingSecondFactor --verify--> Authenticated
    Anonymous --login--------------------------------> Authenticated

Right after reaching Authenticated, an admin or manager with no assigned
branch and no remembered branch lands in PendingBranchSelection until
select_branch() is called.

Persistence:
- remember_me=True: the session is written to the durable SessionVault
  (separate SQLite database, survives restarts)
- remember_me=False: the session lives in the ScopedSessionStore, cleared when
  the application closes
- the branch choice is remembered per subject in the vault, independently of
  remember_me, and re-applied on the next session of the same subject

SECURITY FEATURES:
- Session tokens from secrets.token_hex(32); only SHA-256 hashes are stored
- Second-factor codes are hashed, expire, and allow a limited number of tries
- Absolute session expiry checked on every use (no background sweep)
- Failed logins feed the login throttle (see login_throttle_service.py)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy.orm import sessionmaker

from ..enums import ALL_BRANCHES, Role, SessionStage
from ..errors import (
    AccountLocked,
    ForbiddenScope,
    InvalidCode,
    InvalidCredentials,
    NotFound,
    SessionExpired,
    ValidationFailed,
)
from ..models import Branch, BranchPreference, PersistedSession, Subject, VaultModel
from ..store import build_engine
from ..time_utils import to_utc_z, utcnow
from . import login_throttle_service
from .auth_service import authenticate
from .permission_service import SCOPE_DENIED, log_security_event
from .scope_service import normalize_branch_ref
from .session_tokens import generate_code, generate_token, hash_token, matches

logger = logging.getLogger(__name__)


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SECOND_FACTOR_TTL = timedelta(minutes=10)
SECOND_FACTOR_MAX_ATTEMPTS = 5

GATED_ROLES = (Role.ADMIN, Role.MANAGER)


@dataclass(frozen=True)
class SessionSettings:
    absolute_timeout: timedelta = SESSION_ABSOLUTE_TIMEOUT
    reset_token_ttl: timedelta = timedelta(hours=1)
    second_factor_ttl: timedelta = SECOND_FACTOR_TTL
    second_factor_max_attempts: int = SECOND_FACTOR_MAX_ATTEMPTS
    second_factor_fixed_code: str | None = None
    bcrypt_rounds: int = 12

    @classmethod
    def from_config(cls, config) -> "SessionSettings":
        return cls(
            absolute_timeout=timedelta(hours=int(config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))),
            reset_token_ttl=timedelta(minutes=int(config.get("RESET_TOKEN_TTL_MINUTES", 60))),
            second_factor_ttl=timedelta(minutes=int(config.get("SECOND_FACTOR_TTL_MINUTES", 10))),
            second_factor_max_attempts=int(config.get("SECOND_FACTOR_MAX_ATTEMPTS", SECOND_FACTOR_MAX_ATTEMPTS)),
            second_factor_fixed_code=config.get("SECOND_FACTOR_FIXED_CODE") or None,
            bcrypt_rounds=int(config.get("BCRYPT_ROUNDS", 12)),
        )


@dataclass
class Session:
    """Authenticated (or branch-gated) session. Owned by one SessionStateMachine."""
    subject_id: int
    role: Role
    assigned_branch_id: int | None
    effective_branch_id: int | str | None
    stage: SessionStage
    token: str
    remember_me: bool
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "role": str(self.role),
            "assigned_branch_id": self.assigned_branch_id,
            "effective_branch_id": self.effective_branch_id,
            "stage": str(self.stage),
            "remember_me": self.remember_me,
            "expires_at": to_utc_z(self.expires_at),
        }


@dataclass
class ProvisionalIdentity:
    """Credential-verified subject held while the second factor is pending."""
    subject_id: int
    email: str
    code_hash: str
    issued_at: datetime
    expires_at: datetime
    remember_me: bool = False
    attempts: int = 0


@dataclass(frozen=True)
class LoginOutcome:
    stage: SessionStage
    session: Session | None = None

    @property
    def requires_second_factor(self) -> bool:
        return self.stage == SessionStage.PENDING_SECOND_FACTOR

    @property
    def requires_branch_selection(self) -> bool:
        return self.stage == SessionStage.PENDING_BRANCH_SELECTION


def log_code_sender(email: str, code: str) -> None:
    """Default delivery: write the code to the log (demo deployments)."""
    logger.info("Second-factor code for %s: %s", email, code)


def _stage_for(role, assigned_branch_id, effective_branch_id) -> SessionStage:
    if assigned_branch_id is None and effective_branch_id is None and Role(role) in GATED_ROLES:
        return SessionStage.PENDING_BRANCH_SELECTION
    return SessionStage.AUTHENTICATED


# =============================================================================
# SESSION STORES
# =============================================================================

class ScopedSessionStore:
    """Process-scoped sessions (remember_me=False). Keyed by token hash."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[hash_token(session.token)] = replace(session)

    def load(self, token: str) -> Session | None:
        with self._lock:
            session = self._sessions.get(hash_token(token))
            return replace(session) if session else None

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(hash_token(token), None) is not None

    def delete_subject(self, subject_id: int) -> int:
        with self._lock:
            doomed = [k for k, s in self._sessions.items() if s.subject_id == subject_id]
            for key in doomed:
                del self._sessions[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)


class SessionVault:
    """
    Durable session store: remembered sessions and branch preferences.

    Uses its own engine and short-lived ORM sessions; nothing here touches
    the entity store.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = build_engine(database_url)
        VaultModel.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def save(self, session: Session) -> None:
        token_hash = hash_token(session.token)
        effective = None if session.effective_branch_id is None else str(session.effective_branch_id)
        with self._session_factory.begin() as db:
            row = db.query(PersistedSession).filter_by(token_hash=token_hash).first()
            if row is None:
                row = PersistedSession(token_hash=token_hash, created_at=utcnow())
                db.add(row)
            row.subject_id = session.subject_id
            row.role = Role(session.role)
            row.assigned_branch_id = session.assigned_branch_id
            row.effective_branch_id = effective
            row.expires_at = session.expires_at

    def load(self, token: str) -> Session | None:
        with self._session_factory() as db:
            row = db.query(PersistedSession).filter_by(token_hash=hash_token(token)).first()
            if row is None:
                return None
            effective = normalize_branch_ref(row.effective_branch_id)
            return Session(
                subject_id=row.subject_id,
                role=Role(row.role),
                assigned_branch_id=row.assigned_branch_id,
                effective_branch_id=effective,
                stage=_stage_for(row.role, row.assigned_branch_id, effective),
                token=token,
                remember_me=True,
                expires_at=row.expires_at,
            )

    def delete(self, token: str) -> bool:
        with self._session_factory.begin() as db:
            deleted = db.query(PersistedSession).filter_by(token_hash=hash_token(token)).delete()
        return deleted > 0

    def delete_subject(self, subject_id: int) -> int:
        with self._session_factory.begin() as db:
            return db.query(PersistedSession).filter_by(subject_id=subject_id).delete()

    def delete_expired(self, now: datetime | None = None) -> int:
        with self._session_factory.begin() as db:
            return db.query(PersistedSession).filter(PersistedSession.expires_at <= (now or utcnow())).delete()

    def count(self, subject_id: int | None = None) -> int:
        with self._session_factory() as db:
            query = db.query(PersistedSession)
            if subject_id is not None:
                query = query.filter_by(subject_id=subject_id)
            return query.count()

    def get_preference(self, subject_id: int) -> str | None:
        with self._session_factory() as db:
            row = db.get(BranchPreference, subject_id)
            return row.branch_id if row else None

    def set_preference(self, subject_id: int, branch_ref) -> None:
        with self._session_factory.begin() as db:
            row = db.get(BranchPreference, subject_id)
            if row is None:
                row = BranchPreference(subject_id=subject_id)
                db.add(row)
            row.branch_id = str(branch_ref)
            row.updated_at = utcnow()

    def clear_preference(self, subject_id: int) -> None:
        with self._session_factory.begin() as db:
            db.query(BranchPreference).filter_by(subject_id=subject_id).delete()

    def close(self) -> None:
        self.engine.dispose()


def revoke_subject_sessions(vault: SessionVault, scoped: ScopedSessionStore, subject_id: int) -> int:
    """Drop every persisted copy of the subject's sessions (password reset, deactivation)."""
    count = vault.delete_subject(subject_id) + scoped.delete_subject(subject_id)
    logger.info("Revoked %d session(s) of subject %s", count, subject_id)
    return count


# =============================================================================
# STATE MACHINE
# =============================================================================

class SessionStateMachine:
    """
    Per-client authentication state.

    Obtain one from BackOffice.begin(). All methods raise BackOfficeError
    subclasses; the gateway turns them into Results.
    """

    def __init__(
        self,
        store,
        vault: SessionVault,
        scoped: ScopedSessionStore,
        settings: SessionSettings | None = None,
        *,
        code_sender: Callable[[str, str], None] | None = None,
    ):
        self.store = store
        self.vault = vault
        self.scoped = scoped
        self.settings = settings or SessionSettings()
        self.code_sender = code_sender or log_code_sender
        self.stage = SessionStage.ANONYMOUS
        self.session: Session | None = None
        self.provisional: ProvisionalIdentity | None = None

    # ------------------------------------------------------------------
    # Login and second factor
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, remember_me: bool = False) -> LoginOutcome:
        self.provisional = None
        if self.stage == SessionStage.PENDING_SECOND_FACTOR:
            self.stage = SessionStage.ANONYMOUS

        locked, seconds_remaining = login_throttle_service.is_account_locked(self.store, email)
        if locked:
            logger.warning("Login refused for locked account %s", email)
            minutes = max(1, (seconds_remaining + 59) // 60)
            raise AccountLocked(
                f"Account temporarily locked. Try again in {minutes} minute(s).",
                seconds_remaining=seconds_remaining,
            )

        subject = authenticate(self.store, email, password)
        if subject is None:
            self.store.rollback()
            failures = login_throttle_service.record_failed_attempt(self.store, email)
            logger.info("Failed login for %s (%d recent failures)", email, failures)
            raise InvalidCredentials()

        # A successful login replaces whatever session this client held
        if self.session is not None:
            self._forget_session()

        login_throttle_service.record_successful_login(self.store, subject.id, email)

        if subject.two_factor_enabled:
            self._issue_code(subject, remember_me)
            self.stage = SessionStage.PENDING_SECOND_FACTOR
            logger.info("Subject %s passed password check; second factor pending", subject.id)
            return LoginOutcome(stage=self.stage)

        return self._establish(subject, remember_me)

    def verify_second_factor(self, code: str) -> LoginOutcome:
        provisional = self.provisional
        if self.stage != SessionStage.PENDING_SECOND_FACTOR or provisional is None:
            raise SessionExpired()

        if utcnow() >= provisional.expires_at:
            self._reset_anonymous()
            raise SessionExpired("Verification code expired. Please login again.")

        if not matches(str(code or "").strip(), provisional.code_hash):
            provisional.attempts += 1
            log_security_event(
                self.store,
                provisional.subject_id,
                "SECOND_FACTOR_FAILED",
                success=False,
                identifier=provisional.email,
                action="verify_second_factor",
                reason=f"attempt {provisional.attempts}",
            )
            remaining = self.settings.second_factor_max_attempts - provisional.attempts
            if remaining <= 0:
                self._reset_anonymous()
                raise InvalidCode("Too many invalid codes. Please login again.", attempts_remaining=0)
            raise InvalidCode(attempts_remaining=remaining)

        subject = self.store.get(Subject, provisional.subject_id)
        if subject is None or not subject.is_active:
            self._reset_anonymous()
            raise SessionExpired()

        self.provisional = None
        return self._establish(subject, provisional.remember_me)

    def resend_second_factor(self) -> None:
        provisional = self.provisional
        if self.stage != SessionStage.PENDING_SECOND_FACTOR or provisional is None:
            raise SessionExpired()
        subject = self.store.get(Subject, provisional.subject_id)
        if subject is None or not subject.is_active:
            self._reset_anonymous()
            raise SessionExpired()
        self._issue_code(subject, provisional.remember_me)

    def _issue_code(self, subject: Subject, remember_me: bool) -> None:
        code = self.settings.second_factor_fixed_code or generate_code()
        now = utcnow()
        self.provisional = ProvisionalIdentity(
            subject_id=subject.id,
            email=subject.email,
            code_hash=hash_token(code),
            issued_at=now,
            expires_at=now + self.settings.second_factor_ttl,
            remember_me=bool(remember_me),
        )
        self.code_sender(subject.email, code)

    # ------------------------------------------------------------------
    # Session establishment and branch gate
    # ------------------------------------------------------------------

    def _remembered_branch(self, subject_id: int, role) -> int | str | None:
        """Stored preference if it is still valid for this role, else None."""
        raw = self.vault.get_preference(subject_id)
        if raw is None:
            return None
        try:
            ref = normalize_branch_ref(raw)
        except ForbiddenScope:
            return None
        if ref == ALL_BRANCHES:
            return ALL_BRANCHES if Role(role) == Role.ADMIN else None
        if ref is None or self.store.get(Branch, ref) is None:
            return None
        return ref

    def _establish(self, subject: Subject, remember_me: bool) -> LoginOutcome:
        if subject.assigned_branch_id is not None:
            effective = subject.assigned_branch_id
        else:
            effective = self._remembered_branch(subject.id, subject.role)

        session = Session(
            subject_id=subject.id,
            role=Role(subject.role),
            assigned_branch_id=subject.assigned_branch_id,
            effective_branch_id=effective,
            stage=_stage_for(subject.role, subject.assigned_branch_id, effective),
            token=generate_token(),
            remember_me=bool(remember_me),
            expires_at=utcnow() + self.settings.absolute_timeout,
        )
        self._persist(session)
        self.session = session
        self.stage = session.stage
        self.store.commit()

        logger.info(
            "Session established for subject %s (stage=%s, remember_me=%s)",
            subject.id, session.stage, session.remember_me,
        )
        return LoginOutcome(stage=session.stage, session=session)

    def select_branch(self, branch_id) -> Session:
        session = self.require_session(allow_gate=True)
        role = Role(session.role)

        try:
            ref = normalize_branch_ref(branch_id)
        except ForbiddenScope:
            raise NotFound(f"Branch {branch_id!r} not found")
        if ref is None:
            raise ValidationFailed("branch_id is required")

        if ref == ALL_BRANCHES:
            if role != Role.ADMIN:
                self._deny_scope(session, None, "Only administrators may view all branches")
        else:
            if self.store.get(Branch, ref) is None:
                raise NotFound(f"Branch {ref} not found")
            if role != Role.ADMIN:
                if session.assigned_branch_id is not None and ref != session.assigned_branch_id:
                    self._deny_scope(session, ref, f"Branch {ref} is outside the session scope")
                if session.assigned_branch_id is None and role not in GATED_ROLES:
                    self._deny_scope(session, ref, "No branch assigned")

        session.effective_branch_id = ref
        session.stage = SessionStage.AUTHENTICATED
        self.stage = session.stage
        self.vault.set_preference(session.subject_id, ref)
        self._persist(session)

        logger.info("Subject %s selected branch %s", session.subject_id, ref)
        return session

    def _deny_scope(self, session: Session, branch_id, reason: str) -> None:
        logger.warning("Branch selection denied for subject %s: %s", session.subject_id, reason)
        log_security_event(
            self.store,
            session.subject_id,
            SCOPE_DENIED,
            success=False,
            action="select_branch",
            reason=reason,
            branch_id=branch_id,
        )
        raise ForbiddenScope(reason)

    # ------------------------------------------------------------------
    # Validation, resume and logout
    # ------------------------------------------------------------------

    def require_session(self, *, allow_gate: bool = False) -> Session:
        """
        Return the live session or raise.

        SessionExpired: no session, expired, revoked, or subject deactivated.
        ForbiddenScope: still at the branch gate (unless allow_gate).
        """
        session = self.session
        if session is None or self.stage in (SessionStage.ANONYMOUS, SessionStage.PENDING_SECOND_FACTOR):
            raise SessionExpired()

        if session.is_expired():
            logger.info("Session of subject %s expired", session.subject_id)
            self._forget_session()
            raise SessionExpired()

        persisted = self.vault.load(session.token) if session.remember_me else self.scoped.load(session.token)
        if persisted is None:
            self._reset_anonymous()
            raise SessionExpired("Session was revoked. Please login again.")

        subject = self.store.get(Subject, session.subject_id)
        if subject is None or not subject.is_active:
            self._forget_session()
            raise SessionExpired()

        if not allow_gate and self.stage == SessionStage.PENDING_BRANCH_SELECTION:
            raise ForbiddenScope("Select a branch first")
        return session

    def resume(self, token: str) -> Session:
        """Restore a persisted session (scoped store first, then the vault)."""
        if not token:
            raise SessionExpired()
        session = self.scoped.load(token)
        if session is None:
            session = self.vault.load(token)
        if session is None:
            raise SessionExpired()

        if session.is_expired():
            self.scoped.delete(token)
            self.vault.delete(token)
            raise SessionExpired()

        subject = self.store.get(Subject, session.subject_id)
        if subject is None or not subject.is_active:
            self.scoped.delete(token)
            self.vault.delete(token)
            raise SessionExpired()

        if session.assigned_branch_id is None:
            remembered = self._remembered_branch(session.subject_id, session.role)
            if remembered is not None:
                session.effective_branch_id = remembered
        session.stage = _stage_for(session.role, session.assigned_branch_id, session.effective_branch_id)
        self._persist(session)

        self.provisional = None
        self.session = session
        self.stage = session.stage
        logger.info("Session resumed for subject %s", session.subject_id)
        return session

    def logout(self) -> None:
        """Clear every trace of this client's session. Idempotent."""
        if self.session is not None:
            logger.info("Subject %s logged out", self.session.subject_id)
        self._forget_session()

    def _persist(self, session: Session) -> None:
        if session.remember_me:
            self.vault.save(session)
        else:
            self.scoped.save(session)

    def _forget_session(self) -> None:
        if self.session is not None:
            self.vault.delete(self.session.token)
            self.scoped.delete(self.session.token)
        self._reset_anonymous()

    def _reset_anonymous(self) -> None:
        self.session = None
        self.provisional = None
        self.stage = SessionStage.ANONYMOUS
