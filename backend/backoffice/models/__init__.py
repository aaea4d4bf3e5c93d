from .base import Model
from .branches import Branch
from .auth import Subject, ResetToken
from .security import SecurityEvent
from .finance import FinanceAccount, FinanceTransaction, Debt, PayrollRecord
from .inventory import Supplier, InventoryItem, StockMovement
from .floor import DiningTable, Reservation
from .people import Staff, Customer, Attendance, Shift
from .orders import MenuItem, Order
from .engagement import Announcement, CustomerFeedback, LoyaltyTransaction, Promotion
from .sessions import VaultModel, PersistedSession, BranchPreference

__all__ = [
    'Model', 'Branch',
    'Subject', 'ResetToken', 'SecurityEvent',
    'FinanceAccount', 'FinanceTransaction', 'Debt', 'PayrollRecord',
    'Supplier', 'InventoryItem', 'StockMovement',
    'DiningTable', 'Reservation',
    'Staff', 'Customer', 'Attendance', 'Shift',
    'MenuItem', 'Order',
    'Announcement', 'CustomerFeedback', 'LoyaltyTransaction', 'Promotion',
    'VaultModel', 'PersistedSession', 'BranchPreference',
]
