"""Favorite drinks, persisted across sessions and keyed by product id."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .persistence import KeyValueSlot
from .store import Payload, Store, StoreOptions

FAVORITES_STORE_NAME = "favorites"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class FavoriteItem:
    id: str
    name: str
    price: int
    description: str = ""
    image: Optional[str] = None
    category: Optional[str] = None
    added_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "description": self.description,
            "image": self.image,
            "category": self.category,
            "added_at": self.added_at.isoformat() if self.added_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FavoriteItem":
        added_at = data.get("added_at")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            price=int(data.get("price", 0)),
            description=data.get("description", ""),
            image=data.get("image"),
            category=data.get("category"),
            added_at=datetime.fromisoformat(added_at) if added_at else None,
        )


@dataclass(frozen=True)
class FavoritesState:
    favorites: Tuple[FavoriteItem, ...] = ()


class FavoritesStore(Store[FavoritesState]):
    def __init__(
        self,
        slot: Optional[KeyValueSlot] = None,
        persistence_key: Optional[str] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        options = StoreOptions(
            persistence_key=persistence_key if slot is not None else None
        )
        self._clock = clock
        super().__init__(FavoritesState(), options, slot)

    def get_favorites(self) -> Tuple[FavoriteItem, ...]:
        return self.get().favorites

    def is_favorite(self, item_id: str) -> bool:
        return any(f.id == item_id for f in self.get().favorites)

    def add_favorite(self, item: FavoriteItem) -> bool:
        """Add ``item`` stamped with the current time. Returns False if already present."""
        if self.is_favorite(item.id):
            return False
        stamped = replace(item, added_at=self._clock())
        self.set(lambda state: {"favorites": state.favorites + (stamped,)})
        return True

    def remove_favorite(self, item_id: str) -> None:
        if not self.is_favorite(item_id):
            return
        self.set(
            lambda state: {
                "favorites": tuple(f for f in state.favorites if f.id != item_id)
            }
        )

    def toggle_favorite(self, item: FavoriteItem) -> bool:
        """Flip membership; returns whether the item is a favorite afterwards."""
        if self.is_favorite(item.id):
            self.remove_favorite(item.id)
            return False
        self.add_favorite(item)
        return True

    def clear_favorites(self) -> None:
        self.set({"favorites": ()})

    def encode_state(self, state: FavoritesState) -> Payload:
        return {"favorites": [f.to_dict() for f in state.favorites]}

    def decode_state(self, payload: Payload) -> Dict[str, Any]:
        seen = set()
        favorites = []
        for data in payload.get("favorites") or []:
            item = FavoriteItem.from_dict(data)
            if item.id in seen:
                continue
            seen.add(item.id)
            favorites.append(item)
        return {"favorites": tuple(favorites)}
