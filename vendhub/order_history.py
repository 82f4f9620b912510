"""
Order history kept on the device, plus the transient "pending drink".

``OrderHistoryStore`` remembers past orders (newest first) and derives the
per-user statistics used by the recommendations and profile screens.
``PendingOrderStore`` remembers a drink picked on the home screen while the
user goes on to choose a machine; it is not persisted.
"""

import enum
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .cart import CheckoutDraft
from .persistence import KeyValueSlot
from .store import Payload, Store, StoreOptions

ORDER_HISTORY_STORE_NAME = "order-history"
TOP_ITEMS_LIMIT = 5
RECENT_ORDERS_FOR_CATEGORIES = 5


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class OrderItem:
    id: str
    name: str
    price: int
    quantity: int
    category: str = "other"
    image: Optional[str] = None


@dataclass(frozen=True)
class Order:
    id: str
    items: Tuple[OrderItem, ...]
    total: int
    machine_id: str
    machine_name: str
    location_name: str
    status: OrderStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    bonus_earned: Optional[int] = None


@dataclass(frozen=True)
class TopItem:
    id: str
    name: str
    count: int
    category: str
    price: int
    image: Optional[str] = None


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    total_spent: int
    average_order_value: int
    favorite_category: Optional[str]
    most_ordered_items: Tuple[TopItem, ...]
    recent_categories: Tuple[str, ...]
    order_frequency: Mapping[str, int]


@dataclass(frozen=True)
class OrderHistoryState:
    orders: Tuple[Order, ...] = ()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_order_id() -> str:
    return f"order-{uuid.uuid4().hex[:12]}"


def _round_half_up(numerator: int, denominator: int) -> int:
    return (2 * numerator + denominator) // (2 * denominator)


def compute_order_stats(orders: Tuple[Order, ...]) -> OrderStats:
    completed = [o for o in orders if o.status is OrderStatus.COMPLETED]
    total_orders = len(completed)
    total_spent = sum(o.total for o in completed)
    average = _round_half_up(total_spent, total_orders) if total_orders else 0

    item_counts: Dict[str, Dict[str, Any]] = {}
    category_counts: Dict[str, int] = {}
    for order in completed:
        for item in order.items:
            entry = item_counts.setdefault(
                item.id,
                {
                    "name": item.name,
                    "category": item.category,
                    "price": item.price,
                    "image": item.image,
                    "count": 0,
                },
            )
            entry["count"] += item.quantity
            category_counts[item.category] = (
                category_counts.get(item.category, 0) + item.quantity
            )

    # sorted() is stable: ties keep first-seen order
    ranked = sorted(item_counts.items(), key=lambda kv: kv[1]["count"], reverse=True)
    top_items = tuple(
        TopItem(id=item_id, **data) for item_id, data in ranked[:TOP_ITEMS_LIMIT]
    )

    favorite_category = None
    best = 0
    for category, count in category_counts.items():
        if count > best:
            favorite_category, best = category, count

    recent: List[str] = []
    for order in completed[:RECENT_ORDERS_FOR_CATEGORIES]:
        for item in order.items:
            if item.category not in recent:
                recent.append(item.category)

    return OrderStats(
        total_orders=total_orders,
        total_spent=total_spent,
        average_order_value=average,
        favorite_category=favorite_category,
        most_ordered_items=top_items,
        recent_categories=tuple(recent),
        order_frequency=dict(category_counts),
    )


class OrderHistoryStore(Store[OrderHistoryState]):
    def __init__(
        self,
        slot: Optional[KeyValueSlot] = None,
        persistence_key: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = _new_order_id,
    ):
        options = StoreOptions(
            persistence_key=persistence_key if slot is not None else None
        )
        self._clock = clock
        self._id_factory = id_factory
        super().__init__(OrderHistoryState(), options, slot)

    def add_order(
        self,
        items: Tuple[OrderItem, ...],
        total: int,
        machine_id: str,
        machine_name: str,
        location_name: str = "",
        status: OrderStatus = OrderStatus.PENDING,
        bonus_earned: Optional[int] = None,
    ) -> str:
        order = Order(
            id=self._id_factory(),
            items=tuple(items),
            total=total,
            machine_id=machine_id,
            machine_name=machine_name,
            location_name=location_name,
            status=OrderStatus(status),
            created_at=self._clock(),
            bonus_earned=bonus_earned,
        )
        self.set(lambda state: {"orders": (order,) + state.orders})
        return order.id

    def record_checkout(
        self,
        draft: CheckoutDraft,
        location_name: str = "",
        status: OrderStatus = OrderStatus.PENDING,
    ) -> str:
        """Remember a submitted checkout as a local order."""
        items = tuple(
            OrderItem(
                id=line.id,
                name=line.name,
                price=line.unit_price,
                quantity=line.quantity,
                category=line.metadata.get("category", "other"),
                image=line.image,
            )
            for line in draft.lines
        )
        return self.add_order(
            items=items,
            total=draft.total,
            machine_id=draft.machine_id,
            machine_name=draft.machine_name,
            location_name=location_name,
            status=status,
            bonus_earned=draft.points_earned,
        )

    def update_order_status(self, order_id: str, status: OrderStatus) -> None:
        status = OrderStatus(status)

        def update(state: OrderHistoryState):
            if self.get_order_by_id(order_id) is None:
                return None
            now = self._clock()
            return {
                "orders": tuple(
                    replace(
                        o,
                        status=status,
                        completed_at=now
                        if status is OrderStatus.COMPLETED
                        else o.completed_at,
                    )
                    if o.id == order_id
                    else o
                    for o in state.orders
                )
            }

        self.set(update)

    def get_order_by_id(self, order_id: str) -> Optional[Order]:
        return next((o for o in self.get().orders if o.id == order_id), None)

    def get_recent_orders(self, limit: int = 10) -> Tuple[Order, ...]:
        return self.get().orders[:limit]

    def get_completed_orders(self) -> Tuple[Order, ...]:
        return tuple(o for o in self.get().orders if o.status is OrderStatus.COMPLETED)

    def get_order_stats(self) -> OrderStats:
        return compute_order_stats(self.get().orders)

    def clear_history(self) -> None:
        self.set({"orders": ()})

    def encode_state(self, state: OrderHistoryState) -> Payload:
        return {
            "orders": [
                {
                    "id": o.id,
                    "items": [
                        {
                            "id": i.id,
                            "name": i.name,
                            "price": i.price,
                            "quantity": i.quantity,
                            "category": i.category,
                            "image": i.image,
                        }
                        for i in o.items
                    ],
                    "total": o.total,
                    "machine_id": o.machine_id,
                    "machine_name": o.machine_name,
                    "location_name": o.location_name,
                    "status": o.status.value,
                    "created_at": o.created_at.isoformat(),
                    "completed_at": o.completed_at.isoformat() if o.completed_at else None,
                    "bonus_earned": o.bonus_earned,
                }
                for o in state.orders
            ]
        }

    def decode_state(self, payload: Payload) -> Dict[str, Any]:
        orders = []
        for data in payload.get("orders") or []:
            completed_at = data.get("completed_at")
            orders.append(
                Order(
                    id=data["id"],
                    items=tuple(OrderItem(**item) for item in data.get("items") or []),
                    total=int(data["total"]),
                    machine_id=data["machine_id"],
                    machine_name=data.get("machine_name", ""),
                    location_name=data.get("location_name", ""),
                    status=OrderStatus(data["status"]),
                    created_at=datetime.fromisoformat(data["created_at"]),
                    completed_at=datetime.fromisoformat(completed_at)
                    if completed_at
                    else None,
                    bonus_earned=data.get("bonus_earned"),
                )
            )
        return {"orders": tuple(orders)}


@dataclass(frozen=True)
class PendingDrink:
    id: str
    name: str
    price: int
    image: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class PendingOrderState:
    pending_drink: Optional[PendingDrink] = None


class PendingOrderStore(Store[PendingOrderState]):
    def __init__(self):
        super().__init__(PendingOrderState())

    def set_pending_drink(self, drink: PendingDrink) -> None:
        self.set({"pending_drink": drink})

    def clear_pending_drink(self) -> None:
        self.set({"pending_drink": None})

    def has_pending_drink(self) -> bool:
        return self.get().pending_drink is not None
