# Overview: Idempotent demo dataset; branches, the five demo accounts and a little ledger history.

from __future__ import annotations

import logging

from .enums import AccountType, Role
from .models import Branch, Subject
from .services import auth_service, branch_service, inventory_service, ledger_service, records_service

logger = logging.getLogger(__name__)


DEMO_BRANCHES = [
    {"name": "Main Branch", "code": "MAIN", "location": "Douala, Bonapriso", "phone": "+237 6 99 00 11 22"},
    {"name": "Yaounde Branch", "code": "YDE", "location": "Yaounde, Bastos", "phone": "+237 6 99 33 44 55"},
]

# (name, email, password, role, branch index or None, phone, two_factor_enabled)
DEMO_USERS = [
    ("Admin User", "admin@restaurant.com", "admin123", Role.ADMIN, None, "+237 6 12 34 56 78", False),
    ("Branch Manager", "manager@restaurant.com", "manager123", Role.MANAGER, 0, "+237 6 23 45 67 89", False),
    ("Waiter Staff", "staff@restaurant.com", "staff123", Role.STAFF, 0, "+237 6 34 56 78 90", False),
    ("Multi-Branch Manager", "multi@restaurant.com", "multi123", Role.MANAGER, None, "+237 6 45 67 89 01", False),
    ("Secure Admin", "2fa@restaurant.com", "secure123", Role.ADMIN, None, "+237 6 56 78 90 12", True),
]


def seed_demo_data(backoffice) -> dict:
    """
    Populate an empty store with demo data.

    Goes through the services (not the gateway) so the ledger invariants hold
    from the first row. Does nothing when subjects already exist.

    Returns counts of what was created.
    """
    store = backoffice.store
    rounds = backoffice.settings.bcrypt_rounds
    created = {"branches": 0, "subjects": 0, "accounts": 0, "items": 0, "tables": 0}

    with store.writer_lock:
        if store.query(Subject).count():
            logger.info("Demo data skipped: subjects already exist")
            return created

        branches = store.query(Branch).order_by(Branch.id).all()
        if not branches:
            for fields in DEMO_BRANCHES:
                branches.append(branch_service.create_branch(store, fields))
                created["branches"] += 1

        for name, email, password, role, branch_index, phone, two_factor in DEMO_USERS:
            auth_service.register_subject(
                store,
                name=name,
                email=email,
                password=password,
                role=role,
                assigned_branch_id=branches[branch_index].id if branch_index is not None else None,
                phone=phone,
                two_factor_enabled=two_factor,
                rounds=rounds,
            )
            created["subjects"] += 1

        for branch in branches:
            ledger_service.open_account(
                store, {"branch_id": branch.id, "name": "Cash Register", "type": AccountType.CASH}, 150_000,
                default_currency=backoffice.default_currency,
            )
            ledger_service.open_account(
                store,
                {"branch_id": branch.id, "name": "Business Account", "type": AccountType.BANK,
                 "bank_name": "Afriland First Bank"},
                2_500_000,
                default_currency=backoffice.default_currency,
            )
            created["accounts"] += 2

            for name, unit, opening, min_stock in (("Rice", "kg", 50, 10), ("Cooking oil", "l", 8, 10)):
                inventory_service.create_item(
                    store,
                    {"branch_id": branch.id, "name": name, "category": "dry-goods", "unit": unit,
                     "min_stock": min_stock, "reorder_level": min_stock * 2},
                    opening_quantity=opening,
                )
                created["items"] += 1

            for number, seats in ((1, 2), (2, 4), (3, 6)):
                records_service.create_record(
                    store, "table", {"branch_id": branch.id, "number": number, "seats": seats},
                )
                created["tables"] += 1

    logger.info("Demo data seeded: %s", created)
    return created
