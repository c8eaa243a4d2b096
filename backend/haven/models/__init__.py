from .auth import User, SessionToken
from .inventory import InventoryItem
from .sales import Sale
from .expenses import Expense
from .notifications import Notification, NotificationPreferences, notification_reads
from .security import SecurityEvent

__all__ = [
    'User', 'SessionToken',
    'InventoryItem',
    'Sale',
    'Expense',
    'Notification', 'NotificationPreferences', 'notification_reads',
    'SecurityEvent',
]
