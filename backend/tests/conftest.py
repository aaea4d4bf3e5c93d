"""
Pytest fixtures for back-office tests.

Every test gets a fresh application: an in-memory entity store, an in-memory
session vault, cheap bcrypt rounds and a fixed second-factor code.
"""

import pytest

from backoffice import create_app
from backoffice.enums import Role
from backoffice.services import auth_service, branch_service


TEST_CODE = "123456"

PASSWORDS = {
    "admin": "admin123",
    "manager": "manager123",
    "staff": "staff123",
    "multi": "multi123",
    "secure": "secure123",
    "floater": "floater123",
}


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'DATABASE_URL': 'sqlite://',
        'SESSION_DATABASE_URL': 'sqlite://',
        'BCRYPT_ROUNDS': 4,
        'SECOND_FACTOR_FIXED_CODE': TEST_CODE,
        'SEED_DEMO_DATA': False,
    })
    yield app
    app.extensions["backoffice"].close()


@pytest.fixture(scope='function')
def backoffice(app):
    return app.extensions["backoffice"]


@pytest.fixture(scope='function')
def store(backoffice):
    return backoffice.store


@pytest.fixture(scope='function')
def branches(store):
    """Two branches: B1 (main) and B2."""
    b1 = branch_service.create_branch(store, {"name": "Downtown", "code": "B1", "location": "Douala"})
    b2 = branch_service.create_branch(store, {"name": "Airport", "code": "B2", "location": "Yaounde"})
    return b1, b2


@pytest.fixture(scope='function')
def users(store, branches):
    """
    admin    - admin, no branch
    manager  - manager assigned to B1
    staff    - staff assigned to B1
    multi    - manager with no branch (goes through the branch gate)
    secure   - admin with two-factor enabled
    floater  - staff with no branch
    """
    b1, _b2 = branches
    specs = {
        "admin": ("Admin User", "admin@restaurant.com", Role.ADMIN, None, False),
        "manager": ("Branch Manager", "manager@restaurant.com", Role.MANAGER, b1.id, False),
        "staff": ("Waiter Staff", "staff@restaurant.com", Role.STAFF, b1.id, False),
        "multi": ("Multi-Branch Manager", "multi@restaurant.com", Role.MANAGER, None, False),
        "secure": ("Secure Admin", "2fa@restaurant.com", Role.ADMIN, None, True),
        "floater": ("Floating Staff", "floater@restaurant.com", Role.STAFF, None, False),
    }
    created = {}
    for key, (name, email, role, branch_id, two_factor) in specs.items():
        created[key] = auth_service.register_subject(
            store,
            name=name,
            email=email,
            password=PASSWORDS[key],
            role=role,
            assigned_branch_id=branch_id,
            two_factor_enabled=two_factor,
            rounds=4,
        )
    return created


def login_as(backoffice, subject, password, *, branch=None, remember_me=False):
    """Log a subject in through the gateway; select branch when gated."""
    client = backoffice.begin()
    result = backoffice.login(client, subject.email, password, remember_me=remember_me)
    assert result.ok, result.message
    if result.value["requires_second_factor"]:
        result = backoffice.verify_second_factor(client, TEST_CODE)
        assert result.ok, result.message
    if result.value["requires_branch_selection"]:
        chosen = backoffice.select_branch(client, branch if branch is not None else "all")
        assert chosen.ok, chosen.message
    return client


@pytest.fixture(scope='function')
def admin_client(backoffice, users):
    """Admin viewing all branches."""
    return login_as(backoffice, users["admin"], PASSWORDS["admin"], branch="all")


@pytest.fixture(scope='function')
def manager_client(backoffice, users):
    """Manager assigned to B1."""
    return login_as(backoffice, users["manager"], PASSWORDS["manager"])


@pytest.fixture(scope='function')
def staff_client(backoffice, users):
    """Staff assigned to B1."""
    return login_as(backoffice, users["staff"], PASSWORDS["staff"])


@pytest.fixture(scope='function')
def cash_account(backoffice, manager_client, branches):
    """Cash account in B1 with opening balance 1000."""
    b1, _b2 = branches
    result = backoffice.open_account(
        manager_client, {"branch_id": b1.id, "name": "Cash Register", "type": "cash"}, 1000,
    )
    assert result.ok, result.message
    return result.value


@pytest.fixture(scope='function')
def rice(backoffice, manager_client, branches):
    """Inventory item in B1 with 3 units on hand."""
    b1, _b2 = branches
    result = backoffice.add_entity(
        manager_client, "inventory_item",
        {"branch_id": b1.id, "name": "Rice", "unit": "kg", "min_stock": 5, "opening_quantity": 3},
    )
    assert result.ok, result.message
    return result.value
