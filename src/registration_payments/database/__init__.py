"""Database module for the registration order store."""

from .models import (
    Base,
    Profile,
    Order,
    OrderItem,
    OrderPaymentStatus,
)
from .session import (
    get_db,
    get_database_url,
    init_db,
    close_db,
    create_async_engine,
    get_async_session_factory,
    DatabaseManager,
)
from .repository import (
    OrderRepository,
    ProfileRepository,
)

__all__ = [
    # Models
    "Base",
    "Profile",
    "Order",
    "OrderItem",
    "OrderPaymentStatus",
    # Session management
    "get_db",
    "get_database_url",
    "init_db",
    "close_db",
    "create_async_engine",
    "get_async_session_factory",
    "DatabaseManager",
    # Repositories
    "OrderRepository",
    "ProfileRepository",
]
