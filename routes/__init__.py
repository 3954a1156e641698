from .transaction_routes import router as transaction_routes
from .chat_routes import router as chat_routes
from .notification_routes import router as notification_routes
from .kpi_routes import router as kpi_routes
from .socket_routes import router as socket_routes

__all__ = [
    'transaction_routes',
    'chat_routes',
    'notification_routes',
    'kpi_routes',
    'socket_routes'
]
