"""
Permission codes and default role mappings.

Centralized so that the gateway, the CLI and the tests agree on the codes.

- Permissions are granular (one area per permission)
- Admin has every permission
- Manager has everything except branch management and subject administration
- Staff gets day-to-day floor work plus stock movements
"""

from __future__ import annotations

from .enums import EntityType, Role


class PermissionCategory:
    """Permission categories for organization."""
    SYSTEM = "SYSTEM"
    FINANCE = "FINANCE"
    INVENTORY = "INVENTORY"
    FLOOR = "FLOOR"
    PEOPLE = "PEOPLE"
    MENU = "MENU"
    MARKETING = "MARKETING"


# (code, name, category)
PERMISSION_DEFINITIONS = [
    ("VIEW_DATA", "View Data", PermissionCategory.SYSTEM),
    ("MANAGE_BRANCHES", "Manage Branches", PermissionCategory.SYSTEM),
    ("MANAGE_SUBJECTS", "Manage Users", PermissionCategory.SYSTEM),

    ("MANAGE_FINANCE", "Manage Finance", PermissionCategory.FINANCE),
    ("MANAGE_DEBTS", "Manage Debts", PermissionCategory.FINANCE),
    ("MANAGE_PAYROLL", "Manage Payroll", PermissionCategory.FINANCE),

    ("MANAGE_INVENTORY", "Manage Inventory", PermissionCategory.INVENTORY),
    ("RECORD_STOCK_MOVEMENT", "Record Stock Movements", PermissionCategory.INVENTORY),
    ("MANAGE_SUPPLIERS", "Manage Suppliers", PermissionCategory.INVENTORY),

    ("MANAGE_ORDERS", "Manage Orders", PermissionCategory.FLOOR),
    ("MANAGE_TABLES", "Manage Tables", PermissionCategory.FLOOR),
    ("MANAGE_RESERVATIONS", "Manage Reservations", PermissionCategory.FLOOR),

    ("MANAGE_STAFF", "Manage Staff", PermissionCategory.PEOPLE),
    ("MANAGE_CUSTOMERS", "Manage Customers", PermissionCategory.PEOPLE),
    ("MANAGE_ANNOUNCEMENTS", "Manage Announcements", PermissionCategory.PEOPLE),

    ("MANAGE_MENU", "Manage Menu", PermissionCategory.MENU),

    ("MANAGE_PROMOTIONS", "Manage Promotions", PermissionCategory.MARKETING),
]

ALL_PERMISSIONS = frozenset(code for code, _name, _category in PERMISSION_DEFINITIONS)

DEFAULT_ROLE_PERMISSIONS: dict[Role, frozenset[str]] = {
    Role.ADMIN: ALL_PERMISSIONS,
    Role.MANAGER: ALL_PERMISSIONS - {"MANAGE_BRANCHES", "MANAGE_SUBJECTS"},
    Role.STAFF: frozenset({
        "VIEW_DATA",
        "MANAGE_ORDERS",
        "MANAGE_TABLES",
        "MANAGE_RESERVATIONS",
        "RECORD_STOCK_MOVEMENT",
    }),
}

# Permission required to write each entity type through the gateway
ENTITY_WRITE_PERMISSIONS: dict[EntityType, str] = {
    EntityType.BRANCH: "MANAGE_BRANCHES",
    EntityType.SUBJECT: "MANAGE_SUBJECTS",
    EntityType.FINANCE_ACCOUNT: "MANAGE_FINANCE",
    EntityType.FINANCE_TRANSACTION: "MANAGE_FINANCE",
    EntityType.DEBT: "MANAGE_DEBTS",
    EntityType.PAYROLL_RECORD: "MANAGE_PAYROLL",
    EntityType.INVENTORY_ITEM: "MANAGE_INVENTORY",
    EntityType.STOCK_MOVEMENT: "RECORD_STOCK_MOVEMENT",
    EntityType.SUPPLIER: "MANAGE_SUPPLIERS",
    EntityType.TABLE: "MANAGE_TABLES",
    EntityType.RESERVATION: "MANAGE_RESERVATIONS",
    EntityType.STAFF: "MANAGE_STAFF",
    EntityType.CUSTOMER: "MANAGE_CUSTOMERS",
    EntityType.MENU_ITEM: "MANAGE_MENU",
    EntityType.ORDER: "MANAGE_ORDERS",
    EntityType.ATTENDANCE: "MANAGE_STAFF",
    EntityType.SHIFT: "MANAGE_STAFF",
    EntityType.ANNOUNCEMENT: "MANAGE_ANNOUNCEMENTS",
    EntityType.FEEDBACK: "MANAGE_CUSTOMERS",
    EntityType.LOYALTY_TRANSACTION: "MANAGE_CUSTOMERS",
    EntityType.PROMOTION: "MANAGE_PROMOTIONS",
}


def permissions_for_role(role: Role | str) -> frozenset[str]:
    return DEFAULT_ROLE_PERMISSIONS.get(Role(role), frozenset())
