from .broadcast import BroadcastHub, hub
from .chat_service import ChatService
from .kpi_service import KpiCounters
from .notification_service import EmailSender, NotificationEmitter
from .transaction_service import TransactionService
from .user_directory import UserDirectory

__all__ = [
    'BroadcastHub',
    'hub',
    'ChatService',
    'KpiCounters',
    'EmailSender',
    'NotificationEmitter',
    'TransactionService',
    'UserDirectory',
]
