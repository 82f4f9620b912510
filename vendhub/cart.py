"""
VendHub Cart - Pricing and Points Redemption
============================================

``CartStore`` is the store behind the order screen. It holds the selected
vending machine, the cart lines, an optional promo code and the number of
loyalty points the user wants to spend, and it derives every amount shown at
checkout from those fields.

Pricing
-------

All amounts are whole currency units::

    subtotal          = sum(unit_price * quantity)
    discount          = floor(subtotal * promo_percent / 100)
    points_discount   = points_to_redeem          (1 point = 1 unit)
    total             = max(0, subtotal - discount - points_discount)

``points_to_redeem`` is clamped, never rejected, into
``[0, min(balance, subtotal - discount)]``. The balance is whatever the caller
last passed in from the loyalty service; the cart trusts it for the ceiling
and only guarantees that ``discount + points_discount <= subtotal``. Every
mutation that lowers the payable amount re-clamps the stored points.

Lifecycle
---------

A cart is tied to one machine per checkout cycle: clearing the cart, or
removing its last line, also drops the machine, the promo and the points.

```python
cart = CartStore()
cart.add_item(Product(id="esp", name="Espresso", price=12000))
cart.add_item(Product(id="esp", name="Espresso", price=12000))
cart.apply_promo("COFFEE10", 10)
cart.set_points_to_redeem(100000, available_balance=5000)
cart.get_total()  # 16600
```
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import CheckoutError
from .persistence import KeyValueSlot
from .store import Payload, Store, StoreOptions

logger = logging.getLogger(__name__)

CART_STORE_NAME = "cart"
CART_STATE_VERSION = 1


@dataclass(frozen=True)
class Machine:
    id: str
    name: str
    machine_number: str = ""
    location_name: str = ""
    address: Optional[str] = None
    is_available: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "machine_number": self.machine_number,
            "location_name": self.location_name,
            "address": self.address,
            "is_available": self.is_available,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Machine":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            machine_number=data.get("machine_number", ""),
            location_name=data.get("location_name", ""),
            address=data.get("address"),
            is_available=bool(data.get("is_available", True)),
        )


@dataclass(frozen=True)
class Product:
    """A menu entry as delivered by the catalog; only ``id`` and ``price`` matter for pricing."""

    id: str
    name: str
    price: int
    image: Optional[str] = None
    category: Optional[str] = None
    is_available: bool = True
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if isinstance(self.price, bool) or not isinstance(self.price, int):
            raise TypeError(f"price must be an integer, got {self.price!r}")
        if self.price < 0:
            raise ValueError(f"price must not be negative: {self.price}")


@dataclass(frozen=True)
class CartLine:
    id: str
    name: str
    unit_price: int
    quantity: int
    image: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> "CartLine":
        metadata = dict(product.metadata)
        if product.category is not None:
            metadata.setdefault("category", product.category)
        return cls(
            id=product.id,
            name=product.name,
            unit_price=product.price,
            quantity=quantity,
            image=product.image,
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "image": self.image,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartLine":
        unit_price = int(data["unit_price"])
        quantity = int(data["quantity"])
        if unit_price < 0 or quantity < 1:
            raise ValueError(f"invalid cart line {data!r}")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            unit_price=unit_price,
            quantity=quantity,
            image=data.get("image"),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class CartState:
    machine: Optional[Machine] = None
    items: Tuple[CartLine, ...] = ()
    promo_code: Optional[str] = None
    promo_discount_percent: Optional[int] = None
    points_to_redeem: int = 0
    # Last balance reported by the loyalty service; None until told
    points_balance: Optional[int] = None


class AddItemResult(enum.Enum):
    ADDED = "added"
    INCREMENTED = "incremented"
    UNAVAILABLE = "unavailable"

    @property
    def ok(self) -> bool:
        return self is not AddItemResult.UNAVAILABLE


@dataclass(frozen=True)
class CheckoutDraft:
    """Immutable order snapshot handed to the order-creation service."""

    machine_id: str
    machine_name: str
    lines: Tuple[CartLine, ...]
    subtotal: int
    discount: int
    promo_code: Optional[str]
    promo_discount_percent: int
    points_used: int
    total: int
    points_earned: int
    payment_method: str

    def to_request(self) -> Dict[str, Any]:
        """Shape expected by the order ``create`` procedure."""
        return {
            "machineId": self.machine_id,
            "items": [
                {
                    "productId": line.id,
                    "name": line.name,
                    "price": line.unit_price,
                    "quantity": line.quantity,
                }
                for line in self.lines
            ],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "total": self.total,
            "paymentMethod": self.payment_method,
            "promoCode": self.promo_code,
            "promoDiscount": self.promo_discount_percent,
            "pointsUsed": self.points_used,
        }


# ----------------------------------------------------------------------
# Pure pricing functions
# ----------------------------------------------------------------------


def subtotal_of(items: Iterable[CartLine]) -> int:
    return sum(line.unit_price * line.quantity for line in items)


def clamp_percent(percent: int) -> int:
    return min(max(0, int(percent)), 100)


def promo_discount_of(subtotal: int, percent: Optional[int]) -> int:
    if not percent:
        return 0
    # Floor to whole currency units
    return subtotal * clamp_percent(percent) // 100


def points_ceiling(
    subtotal: int, discount: int, balance: Optional[int]
) -> int:
    payable = max(0, subtotal - discount)
    if balance is None:
        return 0
    return max(0, min(balance, payable))


def points_earned_for(total: int, cashback_percent: int) -> int:
    return total * cashback_percent // 100


def _clamp_points(state: CartState, requested: int) -> int:
    subtotal = subtotal_of(state.items)
    discount = promo_discount_of(subtotal, state.promo_discount_percent)
    ceiling = points_ceiling(subtotal, discount, state.points_balance)
    return min(max(0, requested), ceiling)


def _reconcile(state: CartState, items: Tuple[CartLine, ...]) -> Dict[str, Any]:
    """Partial update for a new line list, keeping the cart invariants."""
    if not items:
        return {
            "items": (),
            "machine": None,
            "promo_code": None,
            "promo_discount_percent": None,
            "points_to_redeem": 0,
        }
    candidate = CartState(
        machine=state.machine,
        items=items,
        promo_code=state.promo_code,
        promo_discount_percent=state.promo_discount_percent,
        points_to_redeem=state.points_to_redeem,
        points_balance=state.points_balance,
    )
    return {
        "items": items,
        "points_to_redeem": _clamp_points(candidate, state.points_to_redeem),
    }


def migrate_cart_payload(payload: Payload, version: int) -> Payload:
    """Upgrade a persisted cart written by an older client."""
    if version == 0:
        # Version 0 stored menu items with camelCase fields and a bare
        # percentage where 0 meant "no promo".
        items = []
        for item in payload.get("items") or []:
            metadata = {
                k: v
                for k, v in item.items()
                if k not in ("id", "name", "price", "quantity", "image")
            }
            items.append(
                {
                    "id": item["id"],
                    "name": item.get("name", ""),
                    "unit_price": item["price"],
                    "quantity": item["quantity"],
                    "image": item.get("image"),
                    "metadata": metadata,
                }
            )
        machine = payload.get("machine")
        if machine is not None:
            machine = {
                "id": machine["id"],
                "name": machine.get("name", ""),
                "machine_number": machine.get("machineNumber", ""),
                "location_name": machine.get("locationName", ""),
                "address": machine.get("address"),
                "is_available": machine.get("isAvailable", True),
            }
        percent = payload.get("promoDiscount") or None
        code = payload.get("promoCode") if percent else None
        return {
            "machine": machine,
            "items": items,
            "promo_code": code,
            "promo_discount_percent": percent if code else None,
            "points_to_redeem": 0,
            "points_balance": None,
        }
    raise ValueError(f"unknown cart payload version {version}")


class CartStore(Store[CartState]):
    """Cart state plus the pricing rules applied to it."""

    def __init__(
        self,
        slot: Optional[KeyValueSlot] = None,
        persistence_key: Optional[str] = None,
        cashback_percent: int = 1,
    ):
        options = StoreOptions(
            persistence_key=persistence_key if slot is not None else None,
            version=CART_STATE_VERSION,
            migrate=migrate_cart_payload,
        )
        self.cashback_percent = cashback_percent
        super().__init__(CartState(), options, slot)

    # ------------------------------------------------------------------
    # Machine
    # ------------------------------------------------------------------

    def set_machine(self, machine: Machine) -> None:
        """Select the machine for this order. Lines are left untouched."""
        self.set({"machine": machine})

    def clear_machine(self) -> None:
        self.set({"machine": None})

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def add_item(self, product: Product) -> AddItemResult:
        if not product.is_available:
            logger.debug("Refusing to add unavailable product %s", product.id)
            return AddItemResult.UNAVAILABLE

        state = self.get()
        existing = self.get_line(product.id)
        if existing is not None:
            items = tuple(
                CartLine(
                    id=line.id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity + 1,
                    image=line.image,
                    metadata=line.metadata,
                )
                if line.id == product.id
                else line
                for line in state.items
            )
            result = AddItemResult.INCREMENTED
        else:
            items = state.items + (CartLine.from_product(product),)
            result = AddItemResult.ADDED

        self.set(_reconcile(state, items))
        return result

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line. Unknown ids are ignored."""
        if quantity <= 0:
            self.remove_item(item_id)
            return

        state = self.get()
        if self.get_line(item_id) is None:
            return
        items = tuple(
            CartLine(
                id=line.id,
                name=line.name,
                unit_price=line.unit_price,
                quantity=quantity,
                image=line.image,
                metadata=line.metadata,
            )
            if line.id == item_id
            else line
            for line in state.items
        )
        self.set(_reconcile(state, items))

    def remove_item(self, item_id: str) -> None:
        state = self.get()
        if self.get_line(item_id) is None:
            return
        items = tuple(line for line in state.items if line.id != item_id)
        self.set(_reconcile(state, items))

    def clear_cart(self) -> None:
        """Full reset, used after a successful checkout."""
        self.set(
            {
                "items": (),
                "machine": None,
                "promo_code": None,
                "promo_discount_percent": None,
                "points_to_redeem": 0,
            }
        )

    complete_checkout = clear_cart

    # ------------------------------------------------------------------
    # Promo and points
    # ------------------------------------------------------------------

    def apply_promo(self, code: str, discount_percent: int) -> None:
        """Store an already validated promo code; the percentage is clamped into [0, 100]."""
        discount_percent = clamp_percent(discount_percent)

        def update(state: CartState) -> Dict[str, Any]:
            candidate = CartState(
                machine=state.machine,
                items=state.items,
                promo_code=code,
                promo_discount_percent=discount_percent,
                points_balance=state.points_balance,
            )
            return {
                "promo_code": code,
                "promo_discount_percent": discount_percent,
                "points_to_redeem": _clamp_points(candidate, state.points_to_redeem),
            }

        self.set(update)

    def remove_promo(self) -> None:
        self.set({"promo_code": None, "promo_discount_percent": None})

    def set_points_to_redeem(
        self, requested_points: int, available_balance: Optional[int] = None
    ) -> int:
        """
        Clamp ``requested_points`` into the redeemable range and store it.

        ``available_balance`` is the balance just fetched from the loyalty
        service; when omitted, the last reported balance is used. Returns the
        number of points actually stored.
        """
        state = self.get()
        balance = state.points_balance if available_balance is None else max(0, available_balance)
        candidate = CartState(
            machine=state.machine,
            items=state.items,
            promo_code=state.promo_code,
            promo_discount_percent=state.promo_discount_percent,
            points_balance=balance,
        )
        points = _clamp_points(candidate, requested_points)
        self.set({"points_to_redeem": points, "points_balance": balance})
        return points

    def get_max_redeemable_points(self, available_balance: Optional[int] = None) -> int:
        state = self.get()
        balance = state.points_balance if available_balance is None else available_balance
        subtotal = self.get_subtotal()
        return points_ceiling(subtotal, self.get_discount(), balance)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def get_line(self, item_id: str) -> Optional[CartLine]:
        for line in self.get().items:
            if line.id == item_id:
                return line
        return None

    def is_empty(self) -> bool:
        return not self.get().items

    def get_total_items(self) -> int:
        return sum(line.quantity for line in self.get().items)

    def get_subtotal(self) -> int:
        return subtotal_of(self.get().items)

    def get_discount(self) -> int:
        return promo_discount_of(self.get_subtotal(), self.get().promo_discount_percent)

    def get_points_discount(self) -> int:
        return self.get().points_to_redeem

    def get_total(self) -> int:
        return max(0, self.get_subtotal() - self.get_discount() - self.get_points_discount())

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def build_checkout(self, payment_method: str) -> CheckoutDraft:
        state = self.get()
        if not state.items:
            raise CheckoutError("cannot check out an empty cart")
        if state.machine is None:
            raise CheckoutError("no machine selected for this order")

        total = self.get_total()
        return CheckoutDraft(
            machine_id=state.machine.id,
            machine_name=state.machine.name,
            lines=state.items,
            subtotal=self.get_subtotal(),
            discount=self.get_discount(),
            promo_code=state.promo_code,
            promo_discount_percent=state.promo_discount_percent or 0,
            points_used=state.points_to_redeem,
            total=total,
            points_earned=points_earned_for(total, self.cashback_percent),
            payment_method=payment_method,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def encode_state(self, state: CartState) -> Payload:
        return {
            "machine": state.machine.to_dict() if state.machine else None,
            "items": [line.to_dict() for line in state.items],
            "promo_code": state.promo_code,
            "promo_discount_percent": state.promo_discount_percent,
            "points_to_redeem": state.points_to_redeem,
            "points_balance": state.points_balance,
        }

    def decode_state(self, payload: Payload) -> Dict[str, Any]:
        machine = payload.get("machine")
        items = tuple(CartLine.from_dict(item) for item in payload.get("items") or [])
        code = payload.get("promo_code")
        percent = payload.get("promo_discount_percent")
        if code is None or percent is None:
            code, percent = None, None
        else:
            percent = clamp_percent(percent)
        balance = payload.get("points_balance")
        restored = CartState(
            machine=Machine.from_dict(machine) if machine else None,
            items=items,
            promo_code=code,
            promo_discount_percent=int(percent) if percent is not None else None,
            points_balance=int(balance) if balance is not None else None,
        )
        return {
            "machine": restored.machine,
            "items": restored.items,
            "promo_code": restored.promo_code,
            "promo_discount_percent": restored.promo_discount_percent,
            "points_balance": restored.points_balance,
            "points_to_redeem": _clamp_points(
                restored, int(payload.get("points_to_redeem") or 0)
            ),
        }
