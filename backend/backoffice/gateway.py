# Overview: Mutation gateway; the single in-process surface the presentation layer calls.

"""
BackOffice gateway

Every call:
1. validates the client's session (SessionStateMachine.require_session)
2. checks the role permission (permission_service.require_permission)
3. resolves the branch scope (scope_service)
4. routes ledger mutations through the ledger services and everything else
   straight to the entity store
5. commits (inside the service), after which change events fire

All mutations run under the store's writer lock. Expected failures come back
as Result(ok=False, error=<ErrorCode>); anything unexpected is logged with its
traceback and returned as InternalError. The store session is rolled back on
every failure.
"""

from __future__ import annotations

import logging
from typing import Callable

from .enums import EntityType, Role
from .errors import BackOfficeError, ErrorCode, ForbiddenScope, SessionExpired, ValidationFailed
from .permissions import ENTITY_WRITE_PERMISSIONS
from .results import Result
from .services import (
    auth_service,
    branch_service,
    debt_service,
    floor_service,
    inventory_service,
    ledger_service,
    payroll_service,
    records_service,
)
from .services.permission_service import require_permission
from .services.scope_service import ensure_branch_in_scope, resolve_scope
from .services.session_service import (
    ScopedSessionStore,
    SessionSettings,
    SessionStateMachine,
    SessionVault,
    revoke_subject_sessions,
)
from .store import EntityStore
from .validation import check_ledger_fields, check_registration_fields

logger = logging.getLogger(__name__)


def log_reset_sender(email: str, token: str) -> None:
    """Default delivery: write the reset token to the log (demo deployments)."""
    logger.info("Password reset token for %s: %s", email, token)


def _dump(value):
    if isinstance(value, list):
        return [_dump(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class BackOffice:
    def __init__(
        self,
        store: EntityStore,
        vault: SessionVault,
        settings: SessionSettings | None = None,
        *,
        code_sender: Callable[[str, str], None] | None = None,
        reset_sender: Callable[[str, str], None] | None = None,
        default_currency: str = "XAF",
    ):
        self.store = store
        self.vault = vault
        self.scoped = ScopedSessionStore()
        self.settings = settings or SessionSettings()
        self.code_sender = code_sender
        self.reset_sender = reset_sender or log_reset_sender
        self.default_currency = default_currency

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _call(self, action: str, func, *args, **kwargs) -> Result:
        with self.store.writer_lock:
            try:
                value = func(*args, **kwargs)
            except BackOfficeError as exc:
                self.store.rollback()
                logger.info("%s refused: %s: %s", action, exc.code, exc.message)
                return Result.from_error(exc)
            except Exception:
                self.store.rollback()
                logger.exception("Unexpected error in %s", action)
                return Result.failure(ErrorCode.INTERNAL_ERROR, "Internal error")
        return Result.success(_dump(value))

    @staticmethod
    def _live(client, *, allow_gate: bool = False):
        if not isinstance(client, SessionStateMachine):
            raise SessionExpired()
        return client.require_session(allow_gate=allow_gate)

    def _authorize(self, client, permission: str, branch_id=None, *, action: str):
        """Session + permission + scope for a write to branch_id. Returns (session, scope)."""
        session = self._live(client)
        require_permission(self.store, session, permission, action=action)
        scope = ensure_branch_in_scope(self.store, session, branch_id, action=action)
        return session, scope

    def _target_branch(self, fields: dict, scope) -> int:
        """branch_id for a new record: explicit, or the single branch in scope."""
        branch_id = fields.get("branch_id")
        if branch_id is None:
            branch_id = scope.branch_id
        if branch_id is None:
            raise ValidationFailed("branch_id is required when viewing all branches")
        return branch_id

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def begin(self) -> SessionStateMachine:
        """Start an anonymous client session."""
        return SessionStateMachine(
            self.store,
            self.vault,
            self.scoped,
            self.settings,
            code_sender=self.code_sender,
        )

    @staticmethod
    def _outcome(outcome) -> dict:
        session = outcome.session
        return {
            "stage": str(outcome.stage),
            "requires_second_factor": outcome.requires_second_factor,
            "requires_branch_selection": outcome.requires_branch_selection,
            "session": session.to_dict() if session else None,
            "token": session.token if session else None,
        }

    def login(self, client: SessionStateMachine, email: str, password: str, remember_me: bool = False) -> Result:
        return self._call("login", lambda: self._outcome(client.login(email, password, remember_me)))

    def verify_second_factor(self, client: SessionStateMachine, code: str) -> Result:
        return self._call("verify_second_factor", lambda: self._outcome(client.verify_second_factor(code)))

    def resend_second_factor(self, client: SessionStateMachine) -> Result:
        return self._call("resend_second_factor", client.resend_second_factor)

    def select_branch(self, client: SessionStateMachine, branch_id) -> Result:
        return self._call("select_branch", lambda: client.select_branch(branch_id).to_dict())

    def resume(self, client: SessionStateMachine, token: str) -> Result:
        return self._call("resume", lambda: client.resume(token).to_dict())

    def logout(self, client: SessionStateMachine) -> Result:
        return self._call("logout", client.logout)

    def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Role | str = Role.STAFF,
        assigned_branch_id: int | None = None,
        phone: str | None = None,
        *,
        two_factor_enabled: bool = False,
        client: SessionStateMachine | None = None,
    ) -> Result:
        """
        Self-registration creates staff accounts. Creating an admin or
        manager needs a session holding MANAGE_SUBJECTS.
        """
        def _op():
            try:
                wanted = Role(role)
            except ValueError:
                raise ValidationFailed(f"Unknown role: {role}")
            if wanted != Role.STAFF:
                session = self._live(client)
                require_permission(self.store, session, "MANAGE_SUBJECTS", action="register")
            return auth_service.register_subject(
                self.store,
                name=name,
                email=email,
                password=password,
                role=role,
                assigned_branch_id=assigned_branch_id,
                phone=phone,
                two_factor_enabled=two_factor_enabled,
                rounds=self.settings.bcrypt_rounds,
            )
        return self._call("register", _op)

    def request_password_reset(self, email: str) -> Result:
        """Always succeeds; a token is issued only for a registered email."""
        def _op():
            token = auth_service.request_password_reset(self.store, email, ttl=self.settings.reset_token_ttl)
            if token is not None:
                self.reset_sender(email.strip().lower(), token)
            return None
        return self._call("request_password_reset", _op)

    def reset_password(self, token: str, new_password: str) -> Result:
        def _op():
            subject = auth_service.reset_password(
                self.store, token, new_password, rounds=self.settings.bcrypt_rounds,
            )
            revoke_subject_sessions(self.vault, self.scoped, subject.id)
            return None
        return self._call("reset_password", _op)

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    def _open_account(self, client, fields: dict, opening_balance=0):
        session = self._live(client)
        require_permission(self.store, session, "MANAGE_FINANCE", action="open_account")
        scope = ensure_branch_in_scope(self.store, session, fields.get("branch_id"), action="open_account")
        payload = dict(fields, branch_id=self._target_branch(fields, scope))
        return ledger_service.open_account(
            self.store, payload, opening_balance,
            created_by=session.subject_id, default_currency=self.default_currency,
        )

    def _post_transaction(self, client, tx: dict):
        session = self._live(client)
        require_permission(self.store, session, "MANAGE_FINANCE", action="post_finance_transaction")
        check_ledger_fields(EntityType.FINANCE_TRANSACTION, tx)
        account = ledger_service.get_account(self.store, tx.get("account_id"))
        ensure_branch_in_scope(self.store, session, account.branch_id, action="post_finance_transaction")
        return ledger_service.post_finance_transaction(self.store, **dict(tx, created_by=session.subject_id))

    def _post_movement(self, client, movement: dict):
        session = self._live(client)
        require_permission(self.store, session, "RECORD_STOCK_MOVEMENT", action="post_stock_movement")
        check_ledger_fields(EntityType.STOCK_MOVEMENT, movement)
        item = inventory_service.get_item(self.store, movement.get("item_id"))
        ensure_branch_in_scope(self.store, session, item.branch_id, action="post_stock_movement")
        return inventory_service.post_stock_movement(self.store, **dict(movement, user_id=session.subject_id))

    def _create_debt(self, client, fields: dict):
        session = self._live(client)
        require_permission(self.store, session, "MANAGE_DEBTS", action="create_debt")
        check_ledger_fields(EntityType.DEBT, fields)
        scope = ensure_branch_in_scope(self.store, session, fields.get("branch_id"), action="create_debt")
        return debt_service.create_debt(self.store, **dict(fields, branch_id=self._target_branch(fields, scope)))

    def _post_payroll(self, client, record: dict):
        session = self._live(client)
        require_permission(self.store, session, "MANAGE_PAYROLL", action="post_payroll")
        check_ledger_fields(EntityType.PAYROLL_RECORD, record)
        staff = records_service.get_record(self.store, EntityType.STAFF, record.get("staff_id"))
        ensure_branch_in_scope(self.store, session, staff.branch_id, action="post_payroll")
        return payroll_service.post_payroll(self.store, **dict(record, created_by=session.subject_id))

    def _on_existing(self, client, permission: str, loader, ident, action: str):
        """Session + permission first, then scope on the loaded row's branch."""
        session = self._live(client)
        require_permission(self.store, session, permission, action=action)
        obj = loader(self.store, ident)
        ensure_branch_in_scope(self.store, session, records_service.owning_branch_id(obj), action=action)
        return session, obj

    def open_account(self, client, fields: dict, opening_balance: int = 0) -> Result:
        return self._call("open_account", self._open_account, client, fields, opening_balance)

    def post_finance_transaction(self, client, **tx) -> Result:
        return self._call("post_finance_transaction", self._post_transaction, client, tx)

    def delete_finance_transaction(self, client, transaction_id: int) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_FINANCE", ledger_service.get_transaction, transaction_id,
                              "delete_finance_transaction")
            ledger_service.delete_finance_transaction(self.store, transaction_id)
            return None
        return self._call("delete_finance_transaction", _op)

    def post_stock_movement(self, client, **movement) -> Result:
        return self._call("post_stock_movement", self._post_movement, client, movement)

    def create_debt(self, client, **fields) -> Result:
        return self._call("create_debt", self._create_debt, client, fields)

    def record_debt_payment(self, client, debt_id: int, paid_delta: int) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_DEBTS", debt_service.get_debt, debt_id, "record_debt_payment")
            return debt_service.record_debt_payment(self.store, debt_id, paid_delta)
        return self._call("record_debt_payment", _op)

    def settle_debt(self, client, debt_id: int) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_DEBTS", debt_service.get_debt, debt_id, "settle_debt")
            return debt_service.settle_debt(self.store, debt_id)
        return self._call("settle_debt", _op)

    def post_payroll(self, client, **record) -> Result:
        return self._call("post_payroll", self._post_payroll, client, record)

    def mark_payroll_paid(self, client, record_id: int) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_PAYROLL", payroll_service.get_record, record_id, "mark_payroll_paid")
            return payroll_service.mark_payroll_paid(self.store, record_id)
        return self._call("mark_payroll_paid", _op)

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def _add_branch(self, client, fields: dict):
        session = self._live(client)
        require_permission(self.store, session, "MANAGE_BRANCHES", action="add_branch")
        return branch_service.create_branch(self.store, fields)

    def add_branch(self, client, fields: dict) -> Result:
        return self._call("add_branch", self._add_branch, client, fields)

    def update_branch(self, client, branch_id: int, fields: dict) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_BRANCHES", branch_service.get_branch, branch_id, "update_branch")
            return branch_service.update_branch(self.store, branch_id, fields)
        return self._call("update_branch", _op)

    def delete_branch(self, client, branch_id: int) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_BRANCHES", branch_service.get_branch, branch_id, "delete_branch")
            branch_service.delete_branch(self.store, branch_id)
            return None
        return self._call("delete_branch", _op)

    def add_entity(self, client, entity_type, fields: dict) -> Result:
        def _op():
            etype = records_service.entity_type_of(entity_type)
            payload = dict(fields or {})

            if etype == EntityType.BRANCH:
                return self._add_branch(client, payload)
            if etype == EntityType.FINANCE_ACCOUNT:
                opening = payload.pop("opening_balance", 0)
                return self._open_account(client, payload, opening)
            if etype == EntityType.FINANCE_TRANSACTION:
                return self._post_transaction(client, payload)
            if etype == EntityType.STOCK_MOVEMENT:
                return self._post_movement(client, payload)
            if etype == EntityType.DEBT:
                return self._create_debt(client, payload)
            if etype == EntityType.PAYROLL_RECORD:
                return self._post_payroll(client, payload)

            session = self._live(client)
            require_permission(self.store, session, ENTITY_WRITE_PERMISSIONS[etype], action=f"add_{etype}")

            if etype == EntityType.SUBJECT:
                check_registration_fields(payload)
                return auth_service.register_subject(self.store, rounds=self.settings.bcrypt_rounds, **payload)

            scope = ensure_branch_in_scope(self.store, session, payload.get("branch_id"), action=f"add_{etype}")
            payload["branch_id"] = self._target_branch(payload, scope)

            if etype == EntityType.INVENTORY_ITEM:
                opening = payload.pop("opening_quantity", 0)
                return inventory_service.create_item(
                    self.store, payload, opening_quantity=opening, user_id=session.subject_id,
                )
            if etype == EntityType.ANNOUNCEMENT:
                return records_service.create_record(
                    self.store, etype, payload, stamped={"author_id": session.subject_id},
                )
            return records_service.create_record(self.store, etype, payload)

        return self._call(f"add_entity[{entity_type}]", _op)

    def update_entity(self, client, entity_type, entity_id: int, fields: dict) -> Result:
        def _op():
            etype = records_service.entity_type_of(entity_type)
            permission = ENTITY_WRITE_PERMISSIONS[etype]

            if etype == EntityType.SUBJECT:
                session = self._live(client)
                require_permission(self.store, session, permission, action="update_subject")
                subject, access_changed = auth_service.update_subject(self.store, entity_id, fields)
                if access_changed:
                    revoke_subject_sessions(self.vault, self.scoped, subject.id)
                return subject

            self._on_existing(
                client, permission,
                lambda store, ident: records_service.get_record(store, etype, ident),
                entity_id, f"update_{etype}",
            )

            if etype == EntityType.BRANCH:
                return branch_service.update_branch(self.store, entity_id, fields)
            if etype == EntityType.FINANCE_ACCOUNT:
                return ledger_service.update_account(self.store, entity_id, fields)
            if etype == EntityType.FINANCE_TRANSACTION:
                return ledger_service.update_finance_transaction(self.store, entity_id, fields)
            if etype == EntityType.INVENTORY_ITEM:
                return inventory_service.update_item(self.store, entity_id, fields)
            if etype == EntityType.DEBT:
                return debt_service.update_debt(self.store, entity_id, fields)
            if etype == EntityType.PAYROLL_RECORD:
                return payroll_service.update_payroll(self.store, entity_id, fields)
            records_service.ensure_mutable(etype)
            return records_service.update_record(self.store, etype, entity_id, fields)

        return self._call(f"update_entity[{entity_type}]", _op)

    def delete_entity(self, client, entity_type, entity_id: int) -> Result:
        def _op():
            etype = records_service.entity_type_of(entity_type)
            if etype == EntityType.SUBJECT:
                raise ValidationFailed("Subjects are deactivated, not deleted")
            records_service.ensure_mutable(etype)

            self._on_existing(
                client, ENTITY_WRITE_PERMISSIONS[etype],
                lambda store, ident: records_service.get_record(store, etype, ident),
                entity_id, f"delete_{etype}",
            )

            if etype == EntityType.BRANCH:
                branch_service.delete_branch(self.store, entity_id)
            elif etype == EntityType.FINANCE_ACCOUNT:
                ledger_service.delete_account(self.store, entity_id)
            elif etype == EntityType.FINANCE_TRANSACTION:
                ledger_service.delete_finance_transaction(self.store, entity_id)
            elif etype == EntityType.INVENTORY_ITEM:
                inventory_service.delete_item(self.store, entity_id)
            elif etype == EntityType.DEBT:
                debt_service.delete_debt(self.store, entity_id)
            elif etype == EntityType.PAYROLL_RECORD:
                payroll_service.delete_payroll(self.store, entity_id)
            else:
                records_service.delete_record(self.store, etype, entity_id)
            return None

        return self._call(f"delete_entity[{entity_type}]", _op)

    def set_table_status(self, client, table_id: int, status) -> Result:
        def _op():
            self._on_existing(client, "MANAGE_TABLES", floor_service.get_table, table_id, "set_table_status")
            return floor_service.set_table_status(self.store, table_id, status)
        return self._call("set_table_status", _op)

    def transition_reservation(self, client, reservation_id: int, status) -> Result:
        def _op():
            self._on_existing(
                client, "MANAGE_RESERVATIONS", floor_service.get_reservation, reservation_id,
                "transition_reservation",
            )
            return floor_service.transition_reservation(self.store, reservation_id, status)
        return self._call("transition_reservation", _op)

    # ------------------------------------------------------------------
    # Scoped reads
    # ------------------------------------------------------------------

    def _read_scope(self, client, branch_id, action: str):
        session = self._live(client)
        require_permission(self.store, session, "VIEW_DATA", action=action)
        return ensure_branch_in_scope(self.store, session, branch_id, action=action)

    def list_entities(self, client, entity_type, branch_id=None) -> Result:
        def _op():
            etype = records_service.entity_type_of(entity_type)
            scope = self._read_scope(client, branch_id, f"list_{etype}")
            if etype == EntityType.DEBT:
                debt_service.refresh_debt_statuses(self.store)
            return records_service.list_records(self.store, etype, scope)
        return self._call(f"list_entities[{entity_type}]", _op)

    def get_entity(self, client, entity_type, entity_id: int) -> Result:
        def _op():
            etype = records_service.entity_type_of(entity_type)
            session = self._live(client)
            require_permission(self.store, session, "VIEW_DATA", action=f"get_{etype}")
            if etype == EntityType.DEBT:
                debt_service.refresh_debt_statuses(self.store)
            obj = records_service.get_record(self.store, etype, entity_id)
            owner = records_service.owning_branch_id(obj)
            if owner is not None:
                ensure_branch_in_scope(self.store, session, owner, action=f"get_{etype}")
            elif not resolve_scope(session).is_all:
                # Unassigned subjects are visible from the all-branches view only
                raise ForbiddenScope(f"{etype} {entity_id} is outside the session scope")
            return obj
        return self._call(f"get_entity[{entity_type}]", _op)

    def finance_summary(self, client, branch_id=None) -> Result:
        def _op():
            scope = self._read_scope(client, branch_id, "finance_summary")
            debt_service.refresh_debt_statuses(self.store)
            return ledger_service.finance_summary(self.store, scope)
        return self._call("finance_summary", _op)

    def debt_summary(self, client, branch_id=None) -> Result:
        def _op():
            scope = self._read_scope(client, branch_id, "debt_summary")
            debt_service.refresh_debt_statuses(self.store)
            return debt_service.debt_summary(self.store, scope)
        return self._call("debt_summary", _op)

    def low_stock_items(self, client, branch_id=None) -> Result:
        def _op():
            scope = self._read_scope(client, branch_id, "low_stock_items")
            return inventory_service.low_stock_items(self.store, scope)
        return self._call("low_stock_items", _op)

    def audit_ledger(self, client) -> Result:
        def _op():
            session = self._live(client)
            require_permission(self.store, session, "MANAGE_FINANCE", action="audit_ledger")
            return ledger_service.audit_ledger(self.store)
        return self._call("audit_ledger", _op)

    # ------------------------------------------------------------------
    # Notifications and lifecycle
    # ------------------------------------------------------------------

    def subscribe(self, handler, entity_type=None):
        return self.store.subscribe(handler, entity_type)

    def unsubscribe(self, handler) -> None:
        self.store.unsubscribe(handler)

    def close(self) -> None:
        """Full close: scoped sessions are dropped, durable ones stay in the vault."""
        self.scoped.clear()
        self.store.close()
        self.vault.close()
