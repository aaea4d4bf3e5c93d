# Overview: Branch scope resolution; which branches a session may read and write.

"""
Branch Scope Resolver

resolve_scope(session, requested_branch_id) is a pure function of its inputs:

- admin: effective "all" (or unset) sees every branch; a specific effective
  branch or a requested branch narrows the view; admins may request any branch
- manager/staff with an assigned branch: restricted to it
- manager without an assignment: the branch chosen at the selection gate
- staff without an assignment: no scope at all

Anything else raises ForbiddenScope. ensure_branch_in_scope() is the write
path: it also records the denial as a security event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..enums import ALL_BRANCHES, Role
from ..errors import ForbiddenScope
from .permission_service import SCOPE_DENIED, log_security_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BranchScope:
    """Resolved visibility. branch_ids=None means every branch."""
    branch_ids: frozenset[int] | None

    @classmethod
    def everything(cls) -> "BranchScope":
        return cls(branch_ids=None)

    @classmethod
    def single(cls, branch_id: int) -> "BranchScope":
        return cls(branch_ids=frozenset({branch_id}))

    @property
    def is_all(self) -> bool:
        return self.branch_ids is None

    @property
    def branch_id(self) -> int | None:
        """The single branch in scope, or None for the all-branches view."""
        if self.branch_ids is None or len(self.branch_ids) != 1:
            return None
        return next(iter(self.branch_ids))

    def allows(self, branch_id: int | None) -> bool:
        if self.branch_ids is None:
            return True
        return branch_id in self.branch_ids

    def apply(self, query, model, column=None):
        """Filter a query on model.branch_id (or the given column)."""
        if self.branch_ids is None:
            return query
        column = column if column is not None else model.branch_id
        return query.filter(column.in_(sorted(self.branch_ids)))


def normalize_branch_ref(value) -> int | str | None:
    """Accept an int id, its string form, "all" or None."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.strip()
        if value.lower() == ALL_BRANCHES:
            return ALL_BRANCHES
        if not value.isdigit():
            raise ForbiddenScope(f"Unknown branch reference {value!r}")
        return int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ForbiddenScope(f"Unknown branch reference {value!r}")
    return value


def resolve_scope(session, requested_branch_id=None) -> BranchScope:
    role = Role(session.role)
    requested = normalize_branch_ref(requested_branch_id)
    effective = normalize_branch_ref(session.effective_branch_id)

    if role == Role.ADMIN:
        if requested == ALL_BRANCHES:
            return BranchScope.everything()
        if requested is not None:
            return BranchScope.single(requested)
        if effective is None or effective == ALL_BRANCHES:
            return BranchScope.everything()
        return BranchScope.single(effective)

    if requested == ALL_BRANCHES:
        raise ForbiddenScope("Only administrators may view all branches")

    if session.assigned_branch_id is not None:
        allowed = session.assigned_branch_id
    elif role == Role.MANAGER:
        if effective is None or effective == ALL_BRANCHES:
            raise ForbiddenScope("Select a branch first")
        allowed = effective
    else:
        raise ForbiddenScope("No branch assigned")

    if requested is not None and requested != allowed:
        raise ForbiddenScope(f"Branch {requested} is outside the session scope")
    return BranchScope.single(allowed)


def ensure_branch_in_scope(store, session, branch_id, *, action: str | None = None) -> BranchScope:
    """Resolve the scope for a write to branch_id; log and raise on denial."""
    try:
        return resolve_scope(session, branch_id)
    except ForbiddenScope as exc:
        logger.warning(
            "Scope denied: subject=%s role=%s branch=%s action=%s",
            session.subject_id, session.role, branch_id, action,
        )
        log_security_event(
            store,
            session.subject_id,
            SCOPE_DENIED,
            success=False,
            action=action,
            reason=exc.message,
            branch_id=branch_id if isinstance(branch_id, int) else None,
        )
        raise
