"""Unit tests for durable slots and the persisted envelope format."""

import json

import pytest

from vendhub.errors import PersistenceReadFailed, PersistenceWriteFailed
from vendhub.persistence import (
    FileSlot,
    KeyValueSlot,
    MemorySlot,
    decode_envelope,
    encode_envelope,
)


@pytest.mark.unit
@pytest.mark.persistence
def test_memory_slot_round_trips_bytes():
    slot = MemorySlot()

    slot.write("vendhub-cart", b"payload")

    assert slot.read("vendhub-cart") == b"payload"
    assert "vendhub-cart" in slot
    assert slot.keys() == ["vendhub-cart"]


@pytest.mark.unit
@pytest.mark.persistence
def test_memory_slot_absent_key_reads_none():
    assert MemorySlot().read("missing") is None


@pytest.mark.unit
@pytest.mark.persistence
def test_memory_slot_delete_is_idempotent():
    slot = MemorySlot({"a": b"1"})

    slot.delete("a")
    slot.delete("a")

    assert slot.read("a") is None


@pytest.mark.unit
@pytest.mark.persistence
def test_slots_satisfy_protocol(tmp_path):
    """Both shipped slots are recognised as KeyValueSlot"""
    assert isinstance(MemorySlot(), KeyValueSlot)
    assert isinstance(FileSlot(tmp_path), KeyValueSlot)


@pytest.mark.unit
@pytest.mark.persistence
def test_file_slot_writes_one_file_per_key(tmp_path):
    slot = FileSlot(tmp_path)

    slot.write("vendhub-cart", b"{}")
    slot.write("vendhub-favorites", b"[]")

    assert (tmp_path / "vendhub-cart.json").read_bytes() == b"{}"
    assert (tmp_path / "vendhub-favorites.json").read_bytes() == b"[]"
    assert not list(tmp_path.glob("*.tmp"))


@pytest.mark.unit
@pytest.mark.persistence
def test_file_slot_survives_new_instance(tmp_path):
    """A fresh FileSlot over the same directory sees earlier writes"""
    FileSlot(tmp_path).write("vendhub-cart", b"saved")

    assert FileSlot(tmp_path).read("vendhub-cart") == b"saved"


@pytest.mark.unit
@pytest.mark.persistence
def test_file_slot_creates_missing_directory(tmp_path):
    target = tmp_path / "nested" / "state"

    slot = FileSlot(target)

    assert slot.directory == target
    assert target.is_dir()


@pytest.mark.unit
@pytest.mark.persistence
@pytest.mark.edge_case
def test_file_slot_sanitizes_keys(tmp_path):
    """Path separators in a key cannot escape the slot directory"""
    slot = FileSlot(tmp_path)

    path = slot.path_for("../evil/key")

    assert path.parent == tmp_path
    slot.write("../evil/key", b"x")
    assert slot.read("../evil/key") == b"x"


@pytest.mark.unit
@pytest.mark.persistence
def test_file_slot_delete_removes_file_and_cache(tmp_path):
    slot = FileSlot(tmp_path)
    slot.write("k", b"v")
    assert slot.read("k") == b"v"

    slot.delete("k")
    slot.delete("k")

    assert slot.read("k") is None
    assert not slot.path_for("k").exists()


@pytest.mark.unit
@pytest.mark.persistence
def test_file_slot_does_not_cache_absent_keys(tmp_path):
    """A key written by another process after a miss becomes visible"""
    slot = FileSlot(tmp_path)
    assert slot.read("k") is None

    FileSlot(tmp_path).write("k", b"later")

    assert slot.read("k") == b"later"


@pytest.mark.unit
@pytest.mark.persistence
def test_envelope_contains_state_and_version():
    raw = encode_envelope("k", {"count": 1, "label": "чай"}, 2)

    assert json.loads(raw.decode("utf-8")) == {
        "state": {"count": 1, "label": "чай"},
        "version": 2,
    }
    assert decode_envelope("k", raw) == ({"count": 1, "label": "чай"}, 2)


@pytest.mark.unit
@pytest.mark.persistence
def test_envelope_version_defaults_to_zero():
    assert decode_envelope("k", b'{"state": {}}') == ({}, 0)


@pytest.mark.unit
@pytest.mark.persistence
@pytest.mark.edge_case
@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"\xff\xfe",
        b"[]",
        b'{"version": 1}',
        b'{"state": [], "version": 1}',
        b'{"state": {}, "version": "1"}',
        b'{"state": {}, "version": true}',
    ],
)
def test_malformed_envelopes_are_rejected(raw):
    """Anything that is not a {state: object, version: int} envelope fails to decode"""
    with pytest.raises(PersistenceReadFailed) as excinfo:
        decode_envelope("vendhub-cart", raw)

    assert excinfo.value.key == "vendhub-cart"


@pytest.mark.unit
@pytest.mark.persistence
@pytest.mark.edge_case
def test_unserializable_state_fails_to_encode():
    with pytest.raises(PersistenceWriteFailed) as excinfo:
        encode_envelope("k", {"value": float("nan")}, 0)

    assert str(excinfo.value).startswith("k: ")


@pytest.mark.unit
@pytest.mark.persistence
@pytest.mark.edge_case
def test_file_slot_failed_write_leaves_no_temp_file(tmp_path, monkeypatch):
    """A failed rename removes the temporary file and keeps the previous payload"""
    slot = FileSlot(tmp_path)
    slot.write("k", b"old")

    def refuse(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr("vendhub.persistence.os.replace", refuse)
    with pytest.raises(OSError):
        slot.write("k", b"new")

    assert not list(tmp_path.glob("*.tmp"))
    assert (tmp_path / "k.json").read_bytes() == b"old"
    assert slot.read("k") == b"old"
