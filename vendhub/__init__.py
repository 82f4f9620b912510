"""
VendHub - Client State for the Vending Storefront

Observable stores with versioned persistence, and the cart pricing engine
(subtotal, promo discount, loyalty points redemption) built on them.
"""

__version__ = "0.3.0"

# Bootstrap and configuration
from .app import AppStores, bootstrap
from .config import Settings

# Cart/pricing engine
from .cart import (
    AddItemResult,
    CartLine,
    CartState,
    CartStore,
    CheckoutDraft,
    Machine,
    Product,
)

# Errors
from .errors import (
    CheckoutError,
    PersistenceError,
    PersistenceReadFailed,
    PersistenceWriteFailed,
    VendHubError,
    VersionMismatch,
)

# Sibling stores
from .favorites import FavoriteItem, FavoritesState, FavoritesStore
from .notifications import (
    Notification,
    NotificationSettings,
    NotificationsState,
    NotificationsStore,
    NotificationType,
)

# Core primitives
from .observable import Observable, transaction
from .onboarding import OnboardingState, OnboardingStore
from .order_history import (
    Order,
    OrderHistoryStore,
    OrderItem,
    OrderStats,
    OrderStatus,
    PendingDrink,
    PendingOrderStore,
)
from .persistence import FileSlot, KeyValueSlot, MemorySlot
from .store import Store, StoreOptions, create_store

__all__ = [
    # Core primitives
    "Observable",
    "transaction",
    "Store",
    "StoreOptions",
    "create_store",
    # Persistence
    "KeyValueSlot",
    "MemorySlot",
    "FileSlot",
    # Cart
    "CartStore",
    "CartState",
    "CartLine",
    "Product",
    "Machine",
    "AddItemResult",
    "CheckoutDraft",
    # Sibling stores
    "FavoritesStore",
    "FavoritesState",
    "FavoriteItem",
    "OnboardingStore",
    "OnboardingState",
    "NotificationsStore",
    "NotificationsState",
    "Notification",
    "NotificationSettings",
    "NotificationType",
    "OrderHistoryStore",
    "Order",
    "OrderItem",
    "OrderStats",
    "OrderStatus",
    "PendingOrderStore",
    "PendingDrink",
    # Bootstrap
    "AppStores",
    "bootstrap",
    "Settings",
    # Errors
    "VendHubError",
    "PersistenceError",
    "PersistenceReadFailed",
    "PersistenceWriteFailed",
    "VersionMismatch",
    "CheckoutError",
]
