"""
Application bootstrap.

Every store is constructed exactly once here and handed to consumers
explicitly; nothing in the package keeps a module-level store instance.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .cart import CART_STORE_NAME, CartStore
from .config import Settings
from .favorites import FAVORITES_STORE_NAME, FavoritesStore
from .notifications import NOTIFICATIONS_STORE_NAME, NotificationsStore
from .onboarding import ONBOARDING_STORE_NAME, OnboardingStore
from .order_history import ORDER_HISTORY_STORE_NAME, OrderHistoryStore, PendingOrderStore
from .persistence import FileSlot, KeyValueSlot, MemorySlot

logger = logging.getLogger(__name__)


@dataclass
class AppStores:
    settings: Settings
    slot: KeyValueSlot
    cart: CartStore
    favorites: FavoritesStore
    onboarding: OnboardingStore
    notifications: NotificationsStore
    order_history: OrderHistoryStore
    pending_order: PendingOrderStore

    def persistent_stores(self):
        return (
            self.cart,
            self.favorites,
            self.onboarding,
            self.notifications,
            self.order_history,
        )


def default_slot(settings: Settings) -> KeyValueSlot:
    if settings.storage_dir is None:
        return MemorySlot()
    return FileSlot(settings.storage_dir, cache_size=settings.slot_cache_size)


def bootstrap(
    settings: Optional[Settings] = None, slot: Optional[KeyValueSlot] = None
) -> AppStores:
    """Build and hydrate one instance of every store."""
    settings = settings if settings is not None else Settings.from_env()
    slot = slot if slot is not None else default_slot(settings)
    logger.debug("Bootstrapping stores with %r", slot)

    return AppStores(
        settings=settings,
        slot=slot,
        cart=CartStore(
            slot,
            settings.key(CART_STORE_NAME),
            cashback_percent=settings.cashback_percent,
        ),
        favorites=FavoritesStore(slot, settings.key(FAVORITES_STORE_NAME)),
        onboarding=OnboardingStore(
            slot,
            settings.key(ONBOARDING_STORE_NAME),
            current_version=settings.onboarding_version,
        ),
        notifications=NotificationsStore(slot, settings.key(NOTIFICATIONS_STORE_NAME)),
        order_history=OrderHistoryStore(slot, settings.key(ORDER_HISTORY_STORE_NAME)),
        pending_order=PendingOrderStore(),
    )
