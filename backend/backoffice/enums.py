# Overview: Closed value sets for roles, session stages and entity statuses.

from __future__ import annotations

import enum


class StrEnum(str, enum.Enum):
    """String-valued enum that compares equal to its value."""

    def __str__(self) -> str:
        return self.value


class Role(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


class SessionStage(StrEnum):
    ANONYMOUS = "anonymous"
    PENDING_SECOND_FACTOR = "pending_second_factor"
    PENDING_BRANCH_SELECTION = "pending_branch_selection"
    AUTHENTICATED = "authenticated"


class AccountType(StrEnum):
    CASH = "cash"
    BANK = "bank"
    MOBILE_MONEY = "mobile-money"


class TransactionType(StrEnum):
    INCOME = "income"
    EXPENSE = "expense"


class PaymentMethod(StrEnum):
    CASH = "cash"
    CARD = "card"
    MOBILE_MONEY = "mobile-money"
    BANK_TRANSFER = "bank-transfer"
    CHECK = "check"


class DebtType(StrEnum):
    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class DebtStatus(StrEnum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class PayrollStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"


class MovementType(StrEnum):
    IN = "in"
    OUT = "out"


class TableStatus(StrEnum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    CLEANING = "cleaning"


class ReservationStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderType(StrEnum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"


class OrderStatus(StrEnum):
    PENDING = "pending"
    IN_KITCHEN = "in-kitchen"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AttendanceStatus(StrEnum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    ON_LEAVE = "on-leave"


class ShiftStatus(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AnnouncementType(StrEnum):
    ANNOUNCEMENT = "announcement"
    EVENT = "event"
    SHIFT_UPDATE = "shift-update"
    GENERAL = "general"


class FeedbackCategory(StrEnum):
    FOOD = "food"
    SERVICE = "service"
    DELIVERY = "delivery"
    OVERALL = "overall"


class FeedbackStatus(StrEnum):
    PENDING = "pending"
    ADDRESSED = "addressed"


class LoyaltyType(StrEnum):
    EARN = "earn"
    REDEEM = "redeem"


class DiscountType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromotionStatus(StrEnum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPIRED = "expired"


class EntityType(StrEnum):
    """Keys of the entity store; also the sender of change events."""
    BRANCH = "branch"
    SUBJECT = "subject"
    FINANCE_ACCOUNT = "finance_account"
    FINANCE_TRANSACTION = "finance_transaction"
    DEBT = "debt"
    PAYROLL_RECORD = "payroll_record"
    INVENTORY_ITEM = "inventory_item"
    STOCK_MOVEMENT = "stock_movement"
    SUPPLIER = "supplier"
    TABLE = "table"
    RESERVATION = "reservation"
    STAFF = "staff"
    CUSTOMER = "customer"
    MENU_ITEM = "menu_item"
    ORDER = "order"
    ATTENDANCE = "attendance"
    SHIFT = "shift"
    ANNOUNCEMENT = "announcement"
    FEEDBACK = "feedback"
    LOYALTY_TRANSACTION = "loyalty_transaction"
    PROMOTION = "promotion"


ALL_BRANCHES = "all"
