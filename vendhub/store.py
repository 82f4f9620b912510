"""
VendHub Store - Observable State Container
==========================================

This module provides ``Store``, the container every piece of client state is
built on: the cart, favorites, onboarding, notifications and order history
are all ``Store`` subclasses.

Why Use Stores?
---------------

A store holds one immutable state object and is the only way to change it.
Each change produces a *new* snapshot (structural sharing), so a snapshot a
caller held on to stays valid and can be diffed against the next one. UI code
subscribes once and re-renders from the snapshot it is handed.

Core Components
---------------

**Store**: holds the state, exposes ``get``/``set``/``subscribe`` and optional
persistence.

**StoreOptions**: persistence configuration: the slot key, the state version,
an optional ``migrate`` hook and an optional ``partialize`` filter selecting
which fields are written.

**create_store**: convenience factory for ad-hoc stores.

Basic Usage
-----------

```python
from vendhub.store import create_store

counter = create_store({"count": 0, "label": "clicks"})

unsubscribe = counter.subscribe(lambda state: print(state["count"]))

counter.set({"count": 1})                             # prints 1
counter.set(lambda prev: {"count": prev["count"] + 1})  # prints 2
unsubscribe()
```

State Shapes
------------

Two state shapes are supported:

- a frozen dataclass: partial updates are applied with ``dataclasses.replace``;
- a ``dict``: partial updates are applied to a shallow copy.

Anything else is a programming error and raises ``TypeError`` from ``set``.

Notification Policy
-------------------

``set`` commits the new snapshot and then notifies subscribers synchronously.
A subscriber that calls ``set`` during notification does not recurse: its
notification is queued and delivered once the current round completes (see
``vendhub.observable``). ``batch()`` defers both notifications and the
persistence write until the outermost batch exits.

Persistence
-----------

With a ``persistence_key`` configured, every committed ``set`` writes the
envelope ``{"state": ..., "version": N}`` to the slot, last write wins.
On construction the slot is read back (*hydration*):

- absent payload: start from ``initial_state``;
- unreadable payload: start from ``initial_state`` and log a warning;
- version differs and ``migrate`` is given: ``migrate(old_state, old_version)``
  produces the payload to restore, and the migrated state is written back;
- version differs and there is no ``migrate``: start from ``initial_state``.

Restored fields are merged over ``initial_state``, which is what makes
``partialize`` work: fields that are not persisted keep their defaults.

Persistence failures never escape the store. They are logged and kept on
``last_persistence_error``; the in-memory state stays authoritative.
"""

import dataclasses
import logging
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Generic,
    Iterator,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from .errors import (
    PersistenceError,
    PersistenceReadFailed,
    PersistenceWriteFailed,
    VersionMismatch,
)
from .observable import Observable, transaction
from .persistence import KeyValueSlot, MemorySlot, decode_envelope, encode_envelope

logger = logging.getLogger(__name__)

S = TypeVar("S")

Partial = Mapping[str, Any]
Updater = Union[Partial, Callable[[Any], Optional[Partial]], None]
Payload = Dict[str, Any]
Migrate = Callable[[Payload, int], Payload]
Partialize = Callable[[Payload], Payload]

# Errors a user-supplied encode/decode/migrate hook may raise on bad data
_RESTORE_ERRORS = (TypeError, ValueError, KeyError, AttributeError)


@dataclasses.dataclass(frozen=True)
class StoreOptions:
    """Persistence configuration for a ``Store``."""

    persistence_key: Optional[str] = None
    version: int = 0
    migrate: Optional[Migrate] = None
    partialize: Optional[Partialize] = None


def merge_state(state: Any, partial: Partial) -> Any:
    """Return a new snapshot with ``partial`` applied shallowly over ``state``."""
    if dataclasses.is_dataclass(state) and not isinstance(state, type):
        return dataclasses.replace(state, **partial)
    if isinstance(state, dict):
        merged = dict(state)
        merged.update(partial)
        return merged
    raise TypeError(
        f"Store state must be a dataclass instance or dict, got {type(state).__name__}"
    )


class Store(Generic[S]):
    """
    Base class for observable state containers.

    Subclasses add domain operations on top of ``set`` and may override
    ``encode_state``/``decode_state`` when their state holds values that are
    not JSON-native (nested dataclasses, datetimes).
    """

    def __init__(
        self,
        initial_state: S,
        options: Optional[StoreOptions] = None,
        slot: Optional[KeyValueSlot] = None,
    ):
        self._initial_state = initial_state
        self._options = options or StoreOptions()
        if self._options.persistence_key is not None and slot is None:
            slot = MemorySlot()
        self._slot = slot
        self._batch_depth = 0
        self._pending_write = False
        self._needs_write_back = False
        self.last_persistence_error: Optional[PersistenceError] = None

        self._observable: Observable[S] = Observable(
            self._options.persistence_key or type(self).__name__, self._hydrate()
        )
        if self._needs_write_back:
            self._needs_write_back = False
            self._write_back()

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    @property
    def persistence_key(self) -> Optional[str]:
        return self._options.persistence_key

    @property
    def is_persistent(self) -> bool:
        return self._options.persistence_key is not None

    @property
    def slot(self) -> Optional[KeyValueSlot]:
        return self._slot

    @property
    def initial_state(self) -> S:
        return self._initial_state

    def get(self) -> S:
        """Current snapshot. No side effects."""
        return self._observable.value

    def set(self, updater: Updater) -> bool:
        """
        Apply a partial update and notify subscribers.

        ``updater`` is either a mapping of field values or a callable receiving
        the current snapshot and returning such a mapping. An empty or ``None``
        partial commits nothing. Returns whether a new snapshot was committed.
        """
        current = self.get()
        partial = updater(current) if callable(updater) else updater
        if not partial:
            return False
        self._commit(merge_state(current, partial))
        return True

    def reset(self) -> None:
        """Replace the state with the initial state."""
        self._commit(self._initial_state)

    def subscribe(self, callback: Callable[[S], None]) -> Callable[[], None]:
        """Register ``callback(snapshot)``; returns an idempotent unsubscribe."""
        return self._observable.subscribe(callback)

    def subscriber_count(self) -> int:
        return self._observable.observer_count()

    @contextmanager
    def batch(self) -> Iterator["Store[S]"]:
        """Defer notifications and the persistence write to the end of the block."""
        self._batch_depth += 1
        try:
            with transaction():
                yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending_write:
                self._pending_write = False
                self._write_back()

    def rehydrate(self) -> S:
        """Reload the state from the slot, notifying subscribers."""
        restored = self._hydrate()
        self._needs_write_back = False
        self._observable.set(restored)
        return restored

    def clear_persisted(self) -> None:
        """Remove this store's payload from the slot. In-memory state is kept."""
        if self._slot is None or self.persistence_key is None:
            return
        try:
            self._slot.delete(self.persistence_key)
        except OSError as exc:
            self._record_error(
                PersistenceWriteFailed(
                    self.persistence_key, f"slot delete failed: {exc}", exc
                )
            )

    # ------------------------------------------------------------------
    # Serialization hooks
    # ------------------------------------------------------------------

    def encode_state(self, state: S) -> Payload:
        """Turn a snapshot into a JSON-compatible dict."""
        if dataclasses.is_dataclass(state):
            return {
                f.name: getattr(state, f.name) for f in dataclasses.fields(state)
            }
        return dict(state)

    def decode_state(self, payload: Payload) -> Partial:
        """Turn a persisted dict back into field values to merge over the initial state."""
        if dataclasses.is_dataclass(self._initial_state):
            names = {f.name for f in dataclasses.fields(self._initial_state)}
            return {name: value for name, value in payload.items() if name in names}
        return dict(payload)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, new_state: S) -> None:
        # A raising subscriber must not leave the slot behind the in-memory state
        try:
            self._observable.set(new_state)
        finally:
            self._write_back()

    def _record_error(self, error: PersistenceError) -> None:
        self.last_persistence_error = error
        if isinstance(error, VersionMismatch):
            logger.info("Discarding persisted state for %s", error)
        else:
            logger.warning("Persistence problem for %s", error)

    def _hydrate(self) -> S:
        key = self._options.persistence_key
        if key is None or self._slot is None:
            return self._initial_state

        try:
            raw = self._slot.read(key)
        except OSError as exc:
            self._record_error(
                PersistenceReadFailed(key, f"slot read failed: {exc}", exc)
            )
            return self._initial_state

        if raw is None:
            logger.debug("No persisted state for %s, using defaults", key)
            return self._initial_state

        try:
            payload, version = decode_envelope(key, raw)
            if version != self._options.version:
                payload = self._migrate(key, payload, version)
                self._needs_write_back = True
            restored = merge_state(self._initial_state, self.decode_state(payload))
        except PersistenceError as exc:
            self._needs_write_back = False
            self._record_error(exc)
            return self._initial_state
        except _RESTORE_ERRORS as exc:
            self._needs_write_back = False
            self._record_error(
                PersistenceReadFailed(key, f"state could not be restored: {exc}", exc)
            )
            return self._initial_state

        logger.debug("Hydrated %s from version %d", key, version)
        return restored

    def _migrate(self, key: str, payload: Payload, stored_version: int) -> Payload:
        migrate = self._options.migrate
        if migrate is None:
            raise VersionMismatch(key, stored_version, self._options.version)
        try:
            migrated = migrate(payload, stored_version)
        except _RESTORE_ERRORS as exc:
            raise PersistenceReadFailed(
                key, f"migration from version {stored_version} failed: {exc}", exc
            ) from exc
        if not isinstance(migrated, dict):
            raise PersistenceReadFailed(
                key, f"migration from version {stored_version} returned no state"
            )
        logger.info(
            "Migrated %s from version %d to %d",
            key,
            stored_version,
            self._options.version,
        )
        return migrated

    def _serialize(self, state: S) -> Payload:
        payload = self.encode_state(state)
        if self._options.partialize is not None:
            payload = self._options.partialize(payload)
        return payload

    def _write_back(self) -> None:
        key = self._options.persistence_key
        if key is None or self._slot is None:
            return
        if self._batch_depth:
            self._pending_write = True
            return

        try:
            raw = encode_envelope(key, self._serialize(self.get()), self._options.version)
            self._slot.write(key, raw)
        except PersistenceWriteFailed as exc:
            self._record_error(exc)
        except _RESTORE_ERRORS as exc:
            self._record_error(
                PersistenceWriteFailed(key, f"state could not be encoded: {exc}", exc)
            )
        except OSError as exc:
            self._record_error(
                PersistenceWriteFailed(key, f"slot write failed: {exc}", exc)
            )
        else:
            self.last_persistence_error = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.get()!r})"


def create_store(
    initial_state: S,
    *,
    persistence_key: Optional[str] = None,
    version: int = 0,
    migrate: Optional[Migrate] = None,
    partialize: Optional[Partialize] = None,
    slot: Optional[KeyValueSlot] = None,
) -> Store[S]:
    """Build a plain ``Store`` without subclassing."""
    options = StoreOptions(
        persistence_key=persistence_key,
        version=version,
        migrate=migrate,
        partialize=partialize,
    )
    return Store(initial_state, options, slot)
