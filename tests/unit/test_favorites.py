"""Unit tests for FavoritesStore."""

import json

import pytest

from vendhub.favorites import FavoriteItem, FavoritesStore
from vendhub.persistence import encode_envelope


@pytest.fixture
def cappuccino():
    return FavoriteItem(id="cap", name="Капучино", price=20000, category="coffee")


@pytest.mark.unit
@pytest.mark.store
def test_add_favorite_stamps_time(clock, cappuccino):
    store = FavoritesStore(clock=clock)

    assert store.add_favorite(cappuccino) is True

    (saved,) = store.get_favorites()
    assert saved.id == "cap"
    assert saved.added_at == clock.now
    assert store.is_favorite("cap")


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.edge_case
def test_duplicate_add_is_ignored(clock, cappuccino):
    store = FavoritesStore(clock=clock)
    store.add_favorite(cappuccino)
    calls = []
    store.subscribe(calls.append)

    assert store.add_favorite(cappuccino) is False

    assert len(store.get_favorites()) == 1
    assert calls == []


@pytest.mark.unit
@pytest.mark.store
def test_toggle_favorite(clock, cappuccino):
    store = FavoritesStore(clock=clock)

    assert store.toggle_favorite(cappuccino) is True
    assert store.toggle_favorite(cappuccino) is False
    assert not store.is_favorite("cap")


@pytest.mark.unit
@pytest.mark.store
def test_remove_and_clear_favorites(clock, cappuccino):
    store = FavoritesStore(clock=clock)
    store.add_favorite(cappuccino)
    store.add_favorite(FavoriteItem(id="tea", name="Чай", price=10000))

    store.remove_favorite("cap")
    assert [f.id for f in store.get_favorites()] == ["tea"]

    store.clear_favorites()
    assert store.get_favorites() == ()


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.persistence
def test_favorites_survive_restart(slot, clock, cappuccino):
    FavoritesStore(slot, "vendhub-favorites", clock=clock).add_favorite(cappuccino)

    restored = FavoritesStore(slot, "vendhub-favorites")

    (item,) = restored.get_favorites()
    assert item.name == "Капучино"
    assert item.added_at == clock.now


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.persistence
@pytest.mark.edge_case
def test_restored_duplicates_are_dropped(slot):
    entry = {"id": "cap", "name": "Капучино", "price": 20000}
    slot.write(
        "vendhub-favorites",
        encode_envelope("vendhub-favorites", {"favorites": [entry, entry]}, 0),
    )

    store = FavoritesStore(slot, "vendhub-favorites")

    assert len(store.get_favorites()) == 1
    assert json.loads(slot.read("vendhub-favorites"))["state"]["favorites"] == [
        entry,
        entry,
    ]
