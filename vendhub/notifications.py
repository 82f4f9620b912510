"""
In-app notifications and the user's notification preferences.

Only the preferences are persisted; the notification feed itself is refilled
from the server on every launch.
"""

import enum
import uuid
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .persistence import KeyValueSlot
from .store import Payload, Store, StoreOptions

NOTIFICATIONS_STORE_NAME = "notifications"


class NotificationType(str, enum.Enum):
    PROMO = "promo"
    FAVORITE_PROMO = "favorite_promo"
    ORDER_STATUS = "order_status"
    BONUS = "bonus"
    NEW_PRODUCT = "new_product"
    SYSTEM = "system"


_TYPE_LABELS = {
    NotificationType.PROMO: "Акция",
    NotificationType.FAVORITE_PROMO: "Избранное",
    NotificationType.ORDER_STATUS: "Заказ",
    NotificationType.BONUS: "Бонусы",
    NotificationType.NEW_PRODUCT: "Новинка",
    NotificationType.SYSTEM: "Система",
}

# Which settings flag gates each type; system messages are gated only by ``enabled``
_TYPE_SETTINGS = {
    NotificationType.PROMO: "promo_notifications",
    NotificationType.FAVORITE_PROMO: "favorite_promo_notifications",
    NotificationType.ORDER_STATUS: "order_status_notifications",
    NotificationType.BONUS: "bonus_notifications",
    NotificationType.NEW_PRODUCT: "new_product_notifications",
}


@dataclass(frozen=True)
class NotificationSettings:
    enabled: bool = True
    promo_notifications: bool = True
    favorite_promo_notifications: bool = True
    order_status_notifications: bool = True
    bonus_notifications: bool = True
    new_product_notifications: bool = True
    sound: bool = True
    vibration: bool = True

    def allows(self, kind: NotificationType) -> bool:
        if not self.enabled:
            return False
        flag = _TYPE_SETTINGS.get(kind)
        return True if flag is None else getattr(self, flag)


@dataclass(frozen=True)
class Notification:
    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: datetime
    read: bool = False
    action_url: Optional[str] = None
    image: Optional[str] = None
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NotificationsState:
    notifications: Tuple[Notification, ...] = ()
    settings: NotificationSettings = NotificationSettings()


def _settings_only(payload: Payload) -> Payload:
    return {"settings": payload["settings"]}


def _generate_id() -> str:
    return uuid.uuid4().hex[:13]


class NotificationsStore(Store[NotificationsState]):
    def __init__(
        self,
        slot: Optional[KeyValueSlot] = None,
        persistence_key: Optional[str] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        id_factory: Callable[[], str] = _generate_id,
    ):
        options = StoreOptions(
            persistence_key=persistence_key if slot is not None else None,
            partialize=_settings_only,
        )
        self._clock = clock
        self._id_factory = id_factory
        super().__init__(NotificationsState(), options, slot)

    def add_notification(
        self,
        kind: NotificationType,
        title: str,
        message: str,
        action_url: Optional[str] = None,
        image: Optional[str] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Notification]:
        """Prepend a new unread notification, unless settings mute its type."""
        kind = NotificationType(kind)
        if not self.get().settings.allows(kind):
            return None
        notification = Notification(
            id=self._id_factory(),
            type=kind,
            title=title,
            message=message,
            timestamp=self._clock(),
            action_url=action_url,
            image=image,
            data=dict(data or {}),
        )
        self.set(
            lambda state: {"notifications": (notification,) + state.notifications}
        )
        return notification

    def mark_as_read(self, notification_id: str) -> None:
        def update(state: NotificationsState):
            target = next(
                (n for n in state.notifications if n.id == notification_id), None
            )
            if target is None or target.read:
                return None
            return {
                "notifications": tuple(
                    replace(n, read=True) if n.id == notification_id else n
                    for n in state.notifications
                )
            }

        self.set(update)

    def mark_all_as_read(self) -> None:
        self.set(
            lambda state: {
                "notifications": tuple(
                    n if n.read else replace(n, read=True)
                    for n in state.notifications
                )
            }
        )

    def remove_notification(self, notification_id: str) -> None:
        def update(state: NotificationsState):
            remaining = tuple(n for n in state.notifications if n.id != notification_id)
            if len(remaining) == len(state.notifications):
                return None
            return {"notifications": remaining}

        self.set(update)

    def clear_all(self) -> None:
        self.set({"notifications": ()})

    def update_settings(self, **changes: bool) -> NotificationSettings:
        settings = replace(self.get().settings, **changes)
        self.set({"settings": settings})
        return settings

    def get_unread_count(self) -> int:
        return sum(1 for n in self.get().notifications if not n.read)

    def get_notifications_by_type(self, kind: NotificationType) -> Tuple[Notification, ...]:
        kind = NotificationType(kind)
        return tuple(n for n in self.get().notifications if n.type is kind)

    def encode_state(self, state: NotificationsState) -> Payload:
        settings = {f.name: getattr(state.settings, f.name) for f in fields(state.settings)}
        return {
            "notifications": [
                {
                    "id": n.id,
                    "type": n.type.value,
                    "title": n.title,
                    "message": n.message,
                    "timestamp": n.timestamp.isoformat(),
                    "read": n.read,
                    "action_url": n.action_url,
                    "image": n.image,
                    "data": dict(n.data),
                }
                for n in state.notifications
            ],
            "settings": settings,
        }

    def decode_state(self, payload: Payload) -> Dict[str, Any]:
        known = {f.name for f in fields(NotificationSettings)}
        raw = payload.get("settings") or {}
        settings = NotificationSettings(
            **{k: bool(v) for k, v in raw.items() if k in known}
        )
        return {"settings": settings}


def type_label(kind: NotificationType) -> str:
    return _TYPE_LABELS.get(NotificationType(kind), "Уведомление")


def format_relative_time(moment: datetime, now: Optional[datetime] = None) -> str:
    """Short Russian relative timestamp as shown in the notification centre."""
    now = now or datetime.now(timezone.utc)
    seconds = (now - moment).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "Только что"
    if minutes < 60:
        return f"{minutes} мин назад"
    if hours < 24:
        return f"{hours} ч назад"
    if days == 1:
        return "Вчера"
    if days < 7:
        return f"{days} дн назад"
    return moment.strftime("%d.%m")
