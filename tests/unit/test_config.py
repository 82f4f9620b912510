"""Unit tests for Settings loading."""

from pathlib import Path

import pytest

from vendhub.config import Settings


@pytest.mark.unit
def test_defaults():
    settings = Settings()

    assert settings.storage_dir is None
    assert settings.key("cart") == "vendhub-cart"
    assert settings.cashback_percent == 1


@pytest.mark.unit
def test_environment_overrides_keywords(tmp_path):
    environ = {
        "VENDHUB_STORAGE_DIR": str(tmp_path),
        "VENDHUB_KEY_PREFIX": "kiosk",
        "VENDHUB_CASHBACK_PERCENT": "3",
    }

    settings = Settings.from_env(environ, cashback_percent=2, onboarding_version=4)

    assert settings.storage_dir == tmp_path
    assert settings.key("cart") == "kiosk-cart"
    assert settings.cashback_percent == 3
    assert settings.onboarding_version == 4


@pytest.mark.unit
def test_empty_environment_values_are_ignored():
    settings = Settings.from_env({"VENDHUB_KEY_PREFIX": ""})

    assert settings.key_prefix == "vendhub"


@pytest.mark.unit
def test_storage_dir_string_becomes_path():
    assert Settings(storage_dir="state").storage_dir == Path("state")


@pytest.mark.unit
@pytest.mark.edge_case
def test_non_integer_environment_value_is_rejected():
    with pytest.raises(ValueError, match="VENDHUB_CASHBACK_PERCENT"):
        Settings.from_env({"VENDHUB_CASHBACK_PERCENT": "lots"})


@pytest.mark.unit
@pytest.mark.edge_case
@pytest.mark.parametrize("overrides", [{"cashback_percent": 101}, {"slot_cache_size": 0}])
def test_out_of_range_settings_are_rejected(overrides):
    with pytest.raises(ValueError):
        Settings(**overrides)
