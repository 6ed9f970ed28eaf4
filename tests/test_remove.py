"""Batch controller: normalization, independence of GUIDs, reports, inventory."""

import json
from unittest.mock import patch

import pytest

from conftest import CLASS, GUID, OTHER, ROOTS, populate

from nicpurge.modules.nicpurge_catalog import ExactChildPath, PropertyScan, build_catalog
from nicpurge.modules.nicpurge_config import ConfigStore
from nicpurge.modules.nicpurge_remove import InvalidInputError, NicpurgeRemove, catalog_from_config, store_from_config
from nicpurge.modules.nicpurge_report import Action, MUTATIONS
from nicpurge.modules.nicpurge_store import MemoryStore, StoreError


def make_remover(store, catalog, logger, **settings):
    cfg = ConfigStore.load(use_system=False)
    for key, value in settings.items():
        cfg.set(key.replace("__", "."), value)
    return NicpurgeRemove(cfg=cfg, logger=logger, store=store, catalog=catalog)


class TestNormalization:
    """Turning raw user input into GUID tokens."""

    def test_trim_wrap_and_drop_blanks(self, store, catalog, logger):
        remover = make_remover(store, catalog, logger)
        tokens = remover.normalize_guids(["  1234ABCD-0000-0000-0000-000000000001 ", "", "   ", OTHER])
        assert [t.value for t in tokens] == [GUID, OTHER]

    def test_duplicates_skipped_case_insensitively(self, store, catalog, logger):
        remover = make_remover(store, catalog, logger)
        tokens = remover.normalize_guids([GUID, GUID.lower(), GUID.strip("{}")])
        assert [t.value for t in tokens] == [GUID]

    def test_stray_braces_are_dropped(self, logger):
        store = MemoryStore()
        nic_list = "SYSTEM\\CurrentControlSet\\Services\\VMSMP\\Parameters\\NicList"
        store.create_node(nic_list + "\\" + OTHER.strip("{}"))
        catalog = [ExactChildPath("vmsmp", nic_list, strip_braces=True)]
        remover = make_remover(store, catalog, logger)
        # "{ GUID }" typed at the prompt splits into three entries
        report = remover.remove_adapters(["{", GUID.strip("{}"), "}"], dry_run=False)
        assert [s.guid for s in report.per_guid] == [GUID]
        assert not report.has_errors
        assert store.exists(nic_list + "\\" + OTHER.strip("{}"))

    def test_empty_input_fails_before_store_access(self, catalog, logger):
        store = MemoryStore()
        remover = make_remover(store, catalog, logger)
        with patch.object(store, "exists") as exists, patch.object(store, "list_children") as children:
            with pytest.raises(InvalidInputError):
                remover.remove_adapters(["", "  "], dry_run=True)
        exists.assert_not_called()
        children.assert_not_called()


class TestRemoveAdapters:
    """End-to-end runs against the in-memory registry."""

    def test_unbraced_input_deletes_bracketed_node(self, logger):
        store = MemoryStore()
        node = f"SYSTEM\\CurrentControlSet\\Services\\Tcpip\\Parameters\\Interfaces\\{GUID}"
        store.create_node(node)
        catalog = [ExactChildPath("ifaces", "SYSTEM\\CurrentControlSet\\Services\\Tcpip\\Parameters\\Interfaces")]
        remover = make_remover(store, catalog, logger)

        preview = remover.remove_adapters(["1234ABCD-0000-0000-0000-000000000001"], dry_run=True)
        assert [r.action for r in preview.per_guid[0].records] == [Action.WOULD_DELETE_NODE]
        assert preview.per_guid[0].guid == GUID
        assert store.exists(node)

        applied = remover.remove_adapters(["1234ABCD-0000-0000-0000-000000000001"], dry_run=False)
        assert [r.action for r in applied.per_guid[0].records] == [Action.DELETED_NODE]
        assert not store.exists(node)

    def test_linkage_scenario(self, logger):
        store = MemoryStore()
        store.set_property("Linkage", "Bind", ["\\Device\\{AAA}", f"\\Device\\{GUID}"])
        remover = make_remover(store, [PropertyScan("linkage", "Linkage", property_names=("Bind",))], logger)
        remover.remove_adapters([GUID], dry_run=False)
        assert store.read_property("Linkage", "Bind").data == ("\\Device\\{AAA}",)

    def test_dry_run_leaves_store_untouched(self, store, catalog, logger):
        before = store.to_dict()
        report = make_remover(store, catalog, logger).remove_adapters([GUID], dry_run=True)
        assert store.to_dict() == before
        assert report.per_guid[0].matches > 0

    def test_dry_run_classifies_like_apply(self, store, catalog, logger):
        remover = make_remover(store, catalog, logger)
        preview = remover.remove_adapters([GUID], dry_run=True).per_guid[0]
        applied = remover.remove_adapters([GUID], dry_run=False).per_guid[0]
        would = {Action.WOULD_DELETE_NODE: Action.DELETED_NODE,
                 Action.WOULD_CLEAR_PROPERTY: Action.CLEARED_PROPERTY,
                 Action.WOULD_REMOVE_LIST_ENTRIES: Action.REMOVED_LIST_ENTRIES}
        predicted = sorted((r.location_id, would[r.action].value) for r in preview.records if r.action in would)
        done = sorted((r.location_id, r.action.value) for r in applied.records)
        assert predicted == done

    def test_second_apply_is_a_no_op(self, store, catalog, logger):
        remover = make_remover(store, catalog, logger)
        first = remover.remove_adapters([GUID], dry_run=False)
        assert any(r.action in MUTATIONS for r in first.per_guid[0].records)
        snapshot = store.to_dict()
        second = remover.remove_adapters([GUID], dry_run=False)
        assert not any(r.action in MUTATIONS for r in second.per_guid[0].records)
        assert store.to_dict() == snapshot
        preview = remover.remove_adapters([GUID], dry_run=True).per_guid[0]
        assert {r.action for r in preview.records} == {Action.NONE_FOUND}

    def test_lowercase_input_matches_everywhere(self, store, catalog, logger):
        remover = make_remover(store, catalog, logger)
        upper = remover.remove_adapters([GUID], dry_run=True).per_guid[0].counts
        lower = remover.remove_adapters([GUID.lower()], dry_run=True).per_guid[0].counts
        assert upper == lower

    def test_guids_are_independent(self, store, catalog, logger):
        populate(store, "SYSTEM\\CurrentControlSet", guid=OTHER)
        remover = make_remover(store, catalog, logger)
        original = store.delete_node

        def flaky(path, recursive=True):
            if GUID in path:
                raise StoreError("registry busy", path=path)
            return original(path, recursive=recursive)

        with patch.object(store, "delete_node", side_effect=flaky):
            report = remover.remove_adapters([GUID, OTHER], dry_run=False)
        first, second = report.per_guid
        assert first.has_errors
        assert not second.has_errors
        assert any(r.action == Action.DELETED_NODE for r in second.records)
        assert report.has_errors

    def test_dry_run_defaults_to_config(self, store, catalog, logger):
        before = store.to_dict()
        report = make_remover(store, catalog, logger).remove_adapters([GUID])
        assert report.dry_run is True
        assert store.to_dict() == before

    def test_none_found_in_apply_setting(self, catalog, logger):
        store = MemoryStore()
        quiet = make_remover(store, catalog, logger).remove_adapters([GUID], dry_run=False)
        assert quiet.per_guid[0].records == []
        loud = make_remover(store, catalog, logger, report__none_found_in_apply=True).remove_adapters([GUID], dry_run=False)
        assert {r.action for r in loud.per_guid[0].records} == {Action.NONE_FOUND}

    def test_pass_is_timed(self, store, catalog, logger):
        make_remover(store, catalog, logger).remove_adapters([GUID, OTHER], dry_run=True)
        assert logger.get_metrics()["remove.guid"]["count"] == 2


class TestReports:
    """Summaries and the JSON report file."""

    def test_summary_counts(self, store, catalog, logger):
        report = make_remover(store, catalog, logger).remove_adapters([GUID], dry_run=False)
        counts = report.per_guid[0].counts
        assert counts["deleted-node"] == 6
        assert counts["removed-list-entries"] == 6
        assert counts["cleared-property"] == 2
        assert not report.has_errors

    def test_write_report(self, store, catalog, logger, tmp_path):
        remover = make_remover(store, catalog, logger, report__dir=str(tmp_path / "reports"))
        report = remover.remove_adapters([GUID], dry_run=True)
        path = remover.write_report(report)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["mode"] == "dry-run"
        assert data["per_guid"][0]["guid"] == GUID
        assert data["has_errors"] is False
        assert data["finished"]
        assert not list((tmp_path / "reports").glob("*.tmp"))


class TestConfigWiring:
    """Store and catalog built from configuration."""

    def test_snapshot_backend(self, store, tmp_path):
        path = store.save(tmp_path / "snap.json")
        cfg = ConfigStore.load(use_system=False)
        cfg.set("store.backend", "snapshot")
        cfg.set("store.snapshot", str(path))
        assert store_from_config(cfg).to_dict() == store.to_dict()

    def test_save_snapshot_only_for_snapshot_backend(self, store, catalog, logger, tmp_path):
        assert make_remover(store, catalog, logger).save_snapshot() is None
        out = tmp_path / "out.json"
        remover = make_remover(
            store, catalog, logger,
            store__backend="snapshot", store__snapshot=str(tmp_path / "in.json"), store__snapshot_out=str(out),
        )
        remover.remove_adapters([GUID], dry_run=False)
        assert remover.save_snapshot() == out
        assert not MemoryStore.load(out).exists(f"{CLASS}\\0001")
        assert not (tmp_path / "in.json").exists()

    def test_snapshot_backend_requires_path(self):
        cfg = ConfigStore.load(use_system=False)
        cfg.set("store.backend", "snapshot")
        with pytest.raises(StoreError):
            store_from_config(cfg)

    def test_unknown_backend(self):
        cfg = ConfigStore.load(use_system=False)
        cfg.set("store.backend", "etcd")
        with pytest.raises(StoreError):
            store_from_config(cfg)

    def test_catalog_from_config(self, tmp_path):
        extra = tmp_path / "extra.toml"
        extra.write_text(
            '[[location]]\nid = "vendor"\nstrategy = "exact-child-path"\npath = \'${root}\\Services\\Vendor\'\n',
            encoding="utf-8",
        )
        cfg = ConfigStore.load(use_system=False)
        cfg.set("catalog.roots", ["SYSTEM\\ControlSet002"])
        cfg.set("catalog.extra", str(extra))
        cfg.set("catalog.class_property", "InstanceGuid")
        catalog = catalog_from_config(cfg)
        ids = [d.id for d in catalog]
        assert "ControlSet002:vendor" in ids
        assert all(i.startswith("ControlSet002:") for i in ids)
        cls = next(d for d in catalog if d.id.endswith("net-class-instance"))
        assert cls.property_name == "InstanceGuid"

    def test_default_catalog_matches_builtin(self):
        cfg = ConfigStore.load(use_system=False)
        assert catalog_from_config(cfg) == build_catalog(ROOTS)


class TestInventory:
    """Listing installed adapters."""

    def test_lists_adapters_with_guid(self, store, catalog, logger):
        store.set_property(CLASS + "\\0001", "DriverDesc", "Intel(R) Ethernet")
        store.create_node(CLASS + "\\Properties")
        adapters = make_remover(store, catalog, logger).inventory()
        assert adapters == [
            {"node": "0001", "guid": GUID, "description": "Intel(R) Ethernet"},
            {"node": "0002", "guid": OTHER, "description": None},
        ]
