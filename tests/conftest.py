"""
Shared pytest fixtures and configuration for VendHub tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from vendhub.cart import CartStore, Machine, Product
from vendhub.observable import reset_notification_state
from vendhub.persistence import MemorySlot


@pytest.fixture(autouse=True)
def reset_propagation_state():
    """Reset thread-local notification state so a failing test cannot leak into the next."""
    reset_notification_state()
    yield
    reset_notification_state()


@pytest.fixture
def slot():
    """A fresh in-memory durable slot."""
    return MemorySlot()


@pytest.fixture
def cart():
    """An in-memory cart with no persistence."""
    return CartStore()


@pytest.fixture
def machine():
    return Machine(
        id="M-001",
        name="KIUT Корпус А",
        machine_number="M-001",
        location_name="KIUT University",
    )


@pytest.fixture
def espresso():
    return Product(id="esp", name="Эспрессо", price=12000, category="coffee")


@pytest.fixture
def latte():
    return Product(id="lat", name="Латте", price=22000, category="coffee")


@pytest.fixture
def croissant():
    return Product(id="cro", name="Круассан", price=8000, category="bakery")


class FakeClock:
    """Deterministic clock: every call returns the current time, ``advance`` moves it."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 12, 26, 10, 30, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
