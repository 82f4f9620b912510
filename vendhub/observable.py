"""
VendHub Observable - Change Propagation Primitive
=================================================

This module provides the single reactive building block used by every store:
an ``Observable`` holding one value and a list of observers that are notified
after each ``set``.

Notification Model
------------------

Notifications never recurse. Every ``set`` enqueues one notification per
observer into a thread-local FIFO queue held by ``PropagationContext``; the
outermost ``set`` drains the queue. An observer that calls ``set`` while it is
being notified therefore only enqueues, and its notifications are delivered
after the current round finishes (breadth-first). Stack depth stays constant
no matter how long a chain of observers reacting to each other becomes.

Batching
--------

``transaction()`` opens a ``TransactionContext``. While any transaction is
active, notifications are queued but not delivered; they are flushed once when
the outermost transaction exits.

```python
from vendhub.observable import Observable, transaction

count = Observable("count", 0)
count.subscribe(print)

with transaction():
    count.set(1)
    count.set(2)
# prints 1 then 2, after the block
```

Observer exceptions are not swallowed: they propagate out of the ``set`` that
triggered the flush, and the pending queue is discarded so the next ``set``
starts from a clean state.
"""

import threading
from collections import deque
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

T = TypeVar("T")

Observer = Callable[[Any], None]


class PropagationContext:
    """Manages breadth-first change propagation to prevent stack overflow."""

    _local = threading.local()

    @classmethod
    def _get_state(cls) -> dict:
        if not hasattr(cls._local, "state"):
            cls._local.state = {"is_propagating": False, "pending": deque()}
        return cls._local.state

    @classmethod
    def _enqueue_notification(cls, observer: Observer, value: Any) -> None:
        cls._get_state()["pending"].append((observer, value))

    @classmethod
    def _is_propagating(cls) -> bool:
        return cls._get_state()["is_propagating"]

    @classmethod
    def _process_notifications(cls) -> None:
        state = cls._get_state()
        if state["is_propagating"]:
            return

        state["is_propagating"] = True
        try:
            while state["pending"]:
                observer, value = state["pending"].popleft()
                observer(value)
        finally:
            state["is_propagating"] = False
            # An observer raised; drop what it left behind
            state["pending"].clear()

    @classmethod
    def _reset_state(cls) -> None:
        """Reset the propagation state for testing."""
        cls._local.__dict__.clear()


class TransactionContext:
    """Batches observable updates and emits the queued notifications on commit."""

    _local = threading.local()

    @classmethod
    def _get_active(cls) -> list:
        if not hasattr(cls._local, "active"):
            cls._local.active = []
        return cls._local.active

    @classmethod
    def _in_transaction(cls) -> bool:
        return bool(cls._get_active())

    def __init__(self):
        self._is_outermost = False

    def __enter__(self) -> "TransactionContext":
        active = self._get_active()
        self._is_outermost = not active
        active.append(self)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        active = self._get_active()
        active.pop()
        if self._is_outermost and not active:
            PropagationContext._process_notifications()

    @classmethod
    def _reset_state(cls) -> None:
        """Reset the transaction state for testing."""
        cls._local.__dict__.clear()


def transaction() -> TransactionContext:
    """Open a batch: notifications are delivered when the outermost batch exits."""
    return TransactionContext()


def reset_notification_state() -> None:
    """Clear thread-local propagation and transaction state (tests only)."""
    PropagationContext._reset_state()
    TransactionContext._reset_state()


class Observable(Generic[T]):
    """
    A value that notifies its observers every time it is set.

    Observers are called in subscription order with the new value. They are
    keyed by the callable itself, so registering the same callable twice is a
    no-op and either unsubscribe handle removes the shared registration.
    Subscribe distinct callables (a fresh lambda) for independent lifetimes.
    """

    def __init__(self, key: Optional[str] = None, initial_value: Optional[T] = None):
        self._key = key or "<unnamed>"
        self._value = initial_value
        # dict keeps subscription order and gives O(1) removal
        self._observers: Dict[Observer, None] = {}
        self._lock = threading.RLock()

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> Optional[T]:
        return self._value

    def set(self, value: T) -> "Observable[T]":
        self._value = value
        self._notify_observers(value)
        return self

    def add_observer(self, observer: Observer) -> None:
        with self._lock:
            self._observers[observer] = None

    def remove_observer(self, observer: Observer) -> None:
        with self._lock:
            self._observers.pop(observer, None)

    def has_observer(self, observer: Observer) -> bool:
        with self._lock:
            return observer in self._observers

    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register ``callback`` and return an idempotent unsubscribe function."""
        self.add_observer(callback)

        def unsubscribe() -> None:
            self.remove_observer(callback)

        return unsubscribe

    def _notify_observers(self, value: T) -> None:
        with self._lock:
            observers_snapshot = tuple(self._observers)

        for observer in observers_snapshot:
            PropagationContext._enqueue_notification(observer, value)

        if TransactionContext._in_transaction():
            return
        PropagationContext._process_notifications()

    def __repr__(self) -> str:
        return f"Observable({self._key!r}, {self._value!r})"
