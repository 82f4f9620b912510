"""
Durable Key-Value Slots
=======================

Stores persist their state to a *slot*: anything offering ``read``, ``write``
and ``delete`` of raw bytes by key. Each store owns one namespaced key
(``vendhub-cart``, ``vendhub-favorites`` ...) so clearing one never touches
another.

Two slots ship with the package:

- ``MemorySlot``: dict-backed; the default for tests and for sessions that do
  not need to survive a restart.
- ``FileSlot``: one JSON file per key under a directory, written atomically
  and read through an LRU cache of raw bytes.

The payload written by a store is an envelope ``{"state": ..., "version": N}``
encoded as UTF-8 JSON; ``encode_envelope`` and ``decode_envelope`` own that
format.
"""

import json
import logging
import os
import re
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple, Union, runtime_checkable

from cachetools import LRUCache

from .errors import PersistenceReadFailed, PersistenceWriteFailed

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@runtime_checkable
class KeyValueSlot(Protocol):
    """Durable storage consumed by ``Store`` persistence."""

    def read(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None when the key is absent."""
        ...

    def write(self, key: str, data: bytes) -> None:
        """Store ``data`` under ``key``, replacing any previous value."""
        ...

    def delete(self, key: str) -> None:
        """Remove ``key``; deleting an absent key is not an error."""
        ...


class MemorySlot:
    """In-process slot. Survives store re-creation, not process restart."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.RLock()

    def read(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(data)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self):
        with self._lock:
            return sorted(self._data)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def __repr__(self) -> str:
        return f"MemorySlot(keys={self.keys()!r})"


class FileSlot:
    """
    Directory-backed slot: ``<directory>/<key>.json``.

    Writes go to a temporary sibling file that is then renamed over the
    target, so a crash mid-write leaves the previous payload intact. Reads are
    served from an LRU cache that is refreshed on every write and dropped on
    delete. Absent keys are not cached.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Union[str, Path], cache_size: int = 128):
        self._directory = Path(directory).expanduser()
        self._directory.mkdir(parents=True, exist_ok=True)
        self._cache: LRUCache = LRUCache(maxsize=cache_size)
        self._lock = threading.RLock()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        return self._directory / (_UNSAFE_KEY_CHARS.sub("_", key) + self.SUFFIX)

    def read(self, key: str) -> Optional[bytes]:
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            path = self.path_for(key)
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                return None
            self._cache[key] = data
            return data

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            path = self.path_for(key)
            tmp_path = path.with_name(path.name + ".tmp")
            try:
                tmp_path.write_bytes(data)
                os.replace(tmp_path, path)
            except OSError:
                tmp_path.unlink(missing_ok=True)
                raise
            self._cache[key] = bytes(data)

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)
            try:
                self.path_for(key).unlink()
            except FileNotFoundError:
                pass

    def __repr__(self) -> str:
        return f"FileSlot({str(self._directory)!r})"


def encode_envelope(key: str, state: Any, version: int) -> bytes:
    """Serialize a persisted state and its version, or raise PersistenceWriteFailed."""
    try:
        text = json.dumps(
            {"state": state, "version": version},
            ensure_ascii=False,
            allow_nan=False,
            separators=(",", ":"),
        )
    except (TypeError, ValueError) as exc:
        raise PersistenceWriteFailed(key, f"state is not serializable: {exc}", exc)
    return text.encode("utf-8")


def decode_envelope(key: str, raw: bytes) -> Tuple[Dict[str, Any], int]:
    """Parse bytes produced by ``encode_envelope`` into (state, version)."""
    try:
        envelope = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise PersistenceReadFailed(key, f"payload is not valid JSON: {exc}", exc)

    if not isinstance(envelope, dict) or "state" not in envelope:
        raise PersistenceReadFailed(key, "payload has no state envelope")

    state = envelope["state"]
    version = envelope.get("version", 0)
    if not isinstance(state, dict):
        raise PersistenceReadFailed(key, "persisted state is not an object")
    if isinstance(version, bool) or not isinstance(version, int):
        raise PersistenceReadFailed(key, f"invalid version {version!r}")
    return state, version
