# Overview: Branch management; single main branch and referential guards on delete.

"""
Branch invariants:

- At most one branch has is_main = True; the first branch created becomes main.
- Promoting a branch demotes the previous main branch in the same commit.
- The main branch cannot be demoted directly (promote another one instead)
  and cannot be deleted.
- A branch still referenced by a subject or any branch-scoped entity cannot
  be deleted.
"""

from __future__ import annotations

import logging

from ..enums import EntityType
from ..errors import Conflict, NotFound
from ..events import CREATED, DELETED, UPDATED
from ..models import (
    Announcement,
    Attendance,
    Branch,
    Customer,
    CustomerFeedback,
    Debt,
    DiningTable,
    FinanceAccount,
    FinanceTransaction,
    InventoryItem,
    LoyaltyTransaction,
    MenuItem,
    Order,
    PayrollRecord,
    Promotion,
    Reservation,
    Shift,
    Staff,
    StockMovement,
    Subject,
    Supplier,
)
from ..validation import POLICIES, enforce_rules, validate_payload

logger = logging.getLogger(__name__)


BRANCH_SCOPED_MODELS = (
    FinanceAccount, FinanceTransaction, Debt, PayrollRecord,
    InventoryItem, StockMovement, Supplier,
    DiningTable, Reservation, Staff, Customer, MenuItem, Order,
    Attendance, Shift, Announcement, CustomerFeedback, LoyaltyTransaction, Promotion,
)


def get_branch(store, branch_id: int) -> Branch:
    branch = store.get(Branch, branch_id)
    if branch is None:
        raise NotFound(f"Branch {branch_id} not found")
    return branch


def get_main_branch(store) -> Branch | None:
    return store.query(Branch).filter(Branch.is_main.is_(True)).first()


def _demote_others(store, keep: Branch) -> None:
    for other in store.query(Branch).filter(Branch.is_main.is_(True), Branch.id != keep.id).all():
        other.is_main = False
        store.record_change(EntityType.BRANCH, UPDATED, other, branch_id=other.id)
        logger.info("Branch %s demoted; %s is now main", other.id, keep.id)


def _ensure_unique(store, patch: dict, branch_id: int | None = None) -> None:
    for field in ("name", "code"):
        value = patch.get(field)
        if not value:
            continue
        clash = store.query(Branch).filter(getattr(Branch, field) == value).first()
        if clash is not None and clash.id != branch_id:
            raise Conflict(f"Branch {field} already in use: {value}")


def create_branch(store, fields: dict) -> Branch:
    patch = validate_payload(model=Branch, payload=fields, policy=POLICIES[EntityType.BRANCH], partial=False)
    enforce_rules(EntityType.BRANCH, patch)
    _ensure_unique(store, patch)

    branch = Branch(**patch)
    if get_main_branch(store) is None:
        branch.is_main = True
    store.add(branch)
    store.flush()

    if branch.is_main:
        _demote_others(store, branch)

    store.record_change(EntityType.BRANCH, CREATED, branch, branch_id=branch.id)
    store.commit()
    logger.info("Created branch %s (%s, main=%s)", branch.id, branch.name, branch.is_main)
    return branch


def update_branch(store, branch_id: int, fields: dict) -> Branch:
    branch = get_branch(store, branch_id)
    patch = validate_payload(model=Branch, payload=fields, policy=POLICIES[EntityType.BRANCH], partial=True)
    enforce_rules(EntityType.BRANCH, patch)
    _ensure_unique(store, patch, branch_id)

    if patch.get("is_main") is False and branch.is_main:
        raise Conflict("The main branch cannot be demoted; promote another branch instead")

    for key, value in patch.items():
        setattr(branch, key, value)

    if branch.is_main:
        _demote_others(store, branch)

    store.record_change(EntityType.BRANCH, UPDATED, branch, branch_id=branch.id)
    store.commit()
    return branch


def branch_references(store, branch_id: int) -> dict[str, int]:
    """Counts of rows still pointing at branch_id, by table name."""
    refs: dict[str, int] = {}
    subjects = store.query(Subject).filter(Subject.assigned_branch_id == branch_id).count()
    if subjects:
        refs[Subject.__tablename__] = subjects
    for model in BRANCH_SCOPED_MODELS:
        count = store.query(model).filter(model.branch_id == branch_id).count()
        if count:
            refs[model.__tablename__] = count
    return refs


def delete_branch(store, branch_id: int) -> None:
    branch = get_branch(store, branch_id)
    if branch.is_main:
        raise Conflict("The main branch cannot be deleted")

    refs = branch_references(store, branch_id)
    if refs:
        summary = ", ".join(f"{name}={count}" for name, count in sorted(refs.items()))
        raise Conflict(f"Branch {branch_id} is still referenced ({summary})", references=refs)

    store.delete(branch)
    store.record_change(EntityType.BRANCH, DELETED, entity_id=branch_id, branch_id=branch_id)
    store.commit()
    logger.info("Deleted branch %s", branch_id)
