"""MemoryStore semantics: case-insensitive lookup, tagged values, snapshots."""

import pytest

from nicpurge.modules.nicpurge_store import (
    MemoryStore,
    PropertyValue,
    StoreError,
    StoreNotFound,
    ValueKind,
)


class TestMemoryStore:
    """Registry-like behaviour of the in-memory store."""

    def test_lookup_is_case_insensitive(self):
        store = MemoryStore()
        store.create_node("SYSTEM\\Services\\{ABC}")
        assert store.exists("system\\services\\{abc}")
        assert [c.name for c in store.list_children("SYSTEM\\SERVICES")] == ["{ABC}"]

    def test_children_report_full_path(self):
        store = MemoryStore()
        store.create_node("A\\B\\C")
        child = store.list_children("a\\b")[0]
        assert child.full_path == "a\\b\\C"

    def test_tagged_values(self):
        store = MemoryStore()
        store.set_property("K", "Single", "x")
        store.set_property("K", "Multi", ["a", "b"])
        store.set_property("K", "Dword", 1)
        assert store.read_property("K", "single") == PropertyValue.single("x")
        assert store.read_property("K", "Multi").kind == ValueKind.LIST
        assert store.read_property("K", "Multi").data == ("a", "b")
        assert store.read_property("K", "Dword").kind == ValueKind.OTHER

    def test_missing_property_and_node(self):
        store = MemoryStore()
        store.create_node("K")
        with pytest.raises(StoreNotFound):
            store.read_property("K", "Nope")
        with pytest.raises(StoreNotFound):
            store.list_children("Missing")

    def test_write_keeps_original_property_name(self):
        store = MemoryStore()
        store.set_property("K", "Bind", ["a"])
        store.write_property("K", "BIND", PropertyValue.multi([]))
        assert store.list_properties("K") == ["Bind"]
        assert store.read_property("K", "Bind").data == ()

    def test_delete_recursive_and_not(self):
        store = MemoryStore()
        store.create_node("A\\B\\C")
        with pytest.raises(StoreError):
            store.delete_node("A\\B", recursive=False)
        store.delete_node("a\\b")
        assert not store.exists("A\\B\\C")
        assert store.exists("A")
        with pytest.raises(StoreNotFound):
            store.delete_node("A\\B")

    def test_join_path(self):
        store = MemoryStore()
        assert store.join_path("A\\B\\", "C") == "A\\B\\C"
        assert store.join_path("", "C") == "C"


class TestSnapshots:
    """JSON snapshot load/save."""

    def test_roundtrip_through_file(self, tmp_path):
        data = {"keys": {"SYSTEM": {"values": {"Bind": ["x", "y"], "Name": "n"}, "keys": {"Child": {}}}}}
        path = tmp_path / "snap.json"
        MemoryStore.from_dict(data).save(path)
        loaded = MemoryStore.load(path)
        assert loaded.to_dict() == data

    def test_bad_snapshot(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreError):
            MemoryStore.load(path)
