"""Integration tests: every store built by bootstrap, restarted against one slot."""

import json

import pytest

from vendhub import FavoriteItem, NotificationType, Settings, bootstrap
from vendhub.persistence import FileSlot, MemorySlot


@pytest.mark.integration
@pytest.mark.persistence
def test_bootstrap_uses_namespaced_keys(slot, machine, espresso):
    stores = bootstrap(Settings(), slot=slot)

    stores.cart.set_machine(machine)
    stores.cart.add_item(espresso)
    stores.favorites.add_favorite(FavoriteItem(id="esp", name="Эспрессо", price=12000))
    stores.onboarding.complete_onboarding()
    stores.notifications.update_settings(sound=False)
    stores.order_history.add_order([], 0, "M-001", "KIUT Корпус А")
    stores.pending_order.clear_pending_drink()

    assert slot.keys() == [
        "vendhub-cart",
        "vendhub-favorites",
        "vendhub-notifications",
        "vendhub-onboarding",
        "vendhub-order-history",
    ]


@pytest.mark.integration
@pytest.mark.persistence
def test_clearing_one_store_leaves_others(slot, espresso):
    stores = bootstrap(Settings(), slot=slot)
    stores.cart.add_item(espresso)
    stores.favorites.add_favorite(FavoriteItem(id="esp", name="Эспрессо", price=12000))

    stores.cart.clear_persisted()

    assert "vendhub-cart" not in slot
    assert "vendhub-favorites" in slot


@pytest.mark.integration
@pytest.mark.persistence
def test_restart_from_disk_restores_every_store(tmp_path, machine, espresso):
    """State written by one process is hydrated by the next one"""
    settings = Settings(storage_dir=tmp_path)
    first = bootstrap(settings)
    assert isinstance(first.slot, FileSlot)

    first.cart.set_machine(machine)
    first.cart.add_item(espresso)
    first.cart.apply_promo("COFFEE10", 10)
    first.favorites.add_favorite(FavoriteItem(id="lat", name="Латте", price=22000))
    first.onboarding.complete_onboarding()
    first.notifications.add_notification(NotificationType.PROMO, "a", "b")
    first.notifications.update_settings(promo_notifications=False)
    order_id = first.order_history.record_checkout(first.cart.build_checkout("click"))

    second = bootstrap(Settings(storage_dir=tmp_path))

    assert second.cart.get() == first.cart.get()
    assert second.cart.get_total() == 10800
    assert second.favorites.is_favorite("lat")
    assert not second.onboarding.should_show_onboarding()
    assert second.notifications.get().notifications == ()
    assert not second.notifications.get().settings.promo_notifications
    assert second.order_history.get_order_by_id(order_id).total == 10800
    assert not second.pending_order.has_pending_drink()

    for store in second.persistent_stores():
        assert store.last_persistence_error is None


@pytest.mark.integration
@pytest.mark.persistence
@pytest.mark.edge_case
def test_corrupt_file_only_affects_its_store(tmp_path, espresso):
    first = bootstrap(Settings(storage_dir=tmp_path))
    first.cart.add_item(espresso)
    first.onboarding.complete_onboarding()
    (tmp_path / "vendhub-cart.json").write_text("{truncated")

    second = bootstrap(Settings(storage_dir=tmp_path))

    assert second.cart.is_empty()
    assert second.cart.last_persistence_error is not None
    assert not second.onboarding.should_show_onboarding()


@pytest.mark.integration
def test_bootstrap_without_storage_dir_stays_in_memory():
    stores = bootstrap(Settings())

    assert isinstance(stores.slot, MemorySlot)


@pytest.mark.integration
@pytest.mark.persistence
def test_settings_flow_into_stores(slot, machine, espresso):
    stores = bootstrap(
        Settings(key_prefix="kiosk", cashback_percent=10, onboarding_version=3), slot=slot
    )
    stores.cart.set_machine(machine)
    stores.cart.add_item(espresso)

    assert stores.cart.build_checkout("click").points_earned == 1200
    assert stores.onboarding.current_version == 3
    assert json.loads(slot.read("kiosk-cart"))["version"] == 1
