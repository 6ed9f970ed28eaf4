#!/usr/bin/env python3
# nicpurge_remove.py
"""
nicpurge_remove.py — removes every trace of decommissioned network adapters

Features:
 - Normalizes user-supplied GUIDs ({braced}, trimmed, blanks dropped, duplicates skipped)
 - Runs the location catalog once per GUID, independently of the other GUIDs
 - Dry-run (preview) and apply modes sharing the same matching code
 - Builds the store from config (Windows registry, or a JSON snapshot)
 - Builds the catalog from config (roots, identifying property, extra TOML locations)
 - Collects a RunSummary per GUID into a BatchReport, optionally written as JSON
 - Adapter inventory (NetCfgInstanceId / DriverDesc of installed adapters)
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from nicpurge.modules.nicpurge_catalog import (
    DEFAULT_CLASS_PROPERTY,
    LOCATIONS,
    NET_CLASS_GUID,
    GuidToken,
    LocationDescriptor,
    NodeNameOrPropertyMatch,
    build_catalog,
    load_locations,
)
from nicpurge.modules.nicpurge_config import ConfigStore
from nicpurge.modules.nicpurge_logger import NicpurgeLogger
from nicpurge.modules.nicpurge_report import BatchReport, RunSummary
from nicpurge.modules.nicpurge_runner import CatalogRunner
from nicpurge.modules.nicpurge_store import MemoryStore, RegistryStore, StoreError, StoreNotFound, ValueKind, WinRegStore


class InvalidInputError(ValueError):
    """No usable GUID was supplied."""


def store_from_config(cfg: ConfigStore) -> RegistryStore:
    backend = str(cfg.get("store.backend", "winreg")).lower()
    if backend == "snapshot":
        snapshot = cfg.get("store.snapshot")
        if not snapshot:
            raise StoreError("store.backend is 'snapshot' but store.snapshot is not set")
        return MemoryStore.load(Path(snapshot))
    if backend == "winreg":
        return WinRegStore(hive=cfg.get("store.hive", "HKEY_LOCAL_MACHINE"))
    raise StoreError(f"unknown store backend: {backend}")


def catalog_from_config(cfg: ConfigStore) -> List[LocationDescriptor]:
    class_property = cfg.get("catalog.class_property", DEFAULT_CLASS_PROPERTY)
    locations: List[LocationDescriptor] = [
        replace(loc, property_name=class_property) if isinstance(loc, NodeNameOrPropertyMatch) else loc
        for loc in LOCATIONS
    ]
    extra = cfg.get("catalog.extra")
    if extra:
        locations.extend(load_locations(Path(extra)))
    return build_catalog(cfg.get_list("catalog.roots") or None, locations)


class NicpurgeRemove:
    """Batch controller: one catalog pass per GUID."""

    def __init__(
        self,
        cfg: Optional[ConfigStore] = None,
        logger: Optional[NicpurgeLogger] = None,
        store: Optional[RegistryStore] = None,
        catalog: Optional[Sequence[LocationDescriptor]] = None,
    ):
        self.cfg = cfg or ConfigStore.load(use_system=False)
        self.logger = logger or NicpurgeLogger.from_config(self.cfg, module="remove")
        self.store = store or store_from_config(self.cfg)
        self.catalog = list(catalog) if catalog is not None else catalog_from_config(self.cfg)
        self.runner = CatalogRunner(
            self.store,
            self.catalog,
            logger=self.logger,
            report_none_found_in_apply=self.cfg.get_bool("report.none_found_in_apply"),
        )
        self.run_guid = self.logger.perf_timer("remove.guid")(self.run_guid)

    # ---------- input ----------
    def normalize_guids(self, raw: Iterable[str]) -> List[GuidToken]:
        tokens: List[GuidToken] = []
        seen = set()
        for item in raw:
            token = GuidToken.normalize(item)
            if token is None:
                continue
            key = token.value.casefold()
            if key in seen:
                self.logger.warning("remove.input.duplicate", f"duplicate GUID {token} skipped", guid=token.value)
                continue
            seen.add(key)
            if not token.well_formed:
                self.logger.warning("remove.input.shape", f"{token} does not look like a GUID, processing anyway", guid=token.value)
            tokens.append(token)
        return tokens

    # ---------- run ----------
    def run_guid(self, token: GuidToken, dry_run: bool) -> RunSummary:
        summary = RunSummary(guid=token.value, dry_run=dry_run)
        self.logger.info("remove.guid.start", f"{'Previewing' if dry_run else 'Removing'} {token}", guid=token.value, locations=len(self.catalog))
        for record in self.runner.run(token, dry_run):
            summary.add(record)
        self.logger.info("remove.guid.done", f"{token}: {summary.counts}", guid=token.value, errors=len(summary.errors))
        return summary

    def remove_adapters(self, guids: Iterable[str], dry_run: Optional[bool] = None) -> BatchReport:
        """
        Run the catalog for every GUID. dry_run defaults to general.dry_run.
        Raises InvalidInputError before touching the store if no GUID remains.
        """
        if dry_run is None:
            dry_run = self.cfg.get_bool("general.dry_run", True)
        tokens = self.normalize_guids(guids)
        if not tokens:
            self.logger.error("remove.input.empty", "no adapter GUID supplied")
            raise InvalidInputError("no adapter GUID supplied")

        report = BatchReport(dry_run=dry_run)
        for token in tokens:
            report.add(self.run_guid(token, dry_run))
        report.finish()
        if report.has_errors:
            self.logger.warning("remove.batch.errors", "some locations could not be processed", guids=len(tokens))
        return report

    def write_report(self, report: BatchReport, report_dir: Optional[str] = None) -> Path:
        target = Path(report_dir or self.cfg.get("report.dir")).expanduser()
        path = report.write(target)
        self.logger.info("remove.report.write", f"Wrote report to {path}", path=str(path))
        return path

    def save_snapshot(self) -> Optional[Path]:
        """Write a snapshot-backed store back to disk (store.snapshot_out, else store.snapshot)."""
        if str(self.cfg.get("store.backend", "winreg")).lower() != "snapshot":
            return None
        if not isinstance(self.store, MemoryStore):
            return None
        target = self.cfg.get("store.snapshot_out") or self.cfg.get("store.snapshot")
        if not target:
            return None
        path = self.store.save(Path(target).expanduser())
        self.logger.info("remove.snapshot.save", f"Saved snapshot to {path}", path=str(path))
        return path

    # ---------- inventory ----------
    def inventory(self, root: Optional[str] = None) -> List[Dict[str, Any]]:
        """List installed network adapters under the class key of one root (read-only)."""
        roots = self.cfg.get_list("catalog.roots") or ["SYSTEM\\CurrentControlSet"]
        class_path = self.store.join_path(root or roots[0], f"Control\\Class\\{NET_CLASS_GUID}")
        class_property = self.cfg.get("catalog.class_property", DEFAULT_CLASS_PROPERTY)
        adapters: List[Dict[str, Any]] = []
        for child in self.store.list_children(class_path):
            entry = {"node": child.name, "guid": None, "description": None}
            for key, prop in (("guid", class_property), ("description", "DriverDesc")):
                try:
                    value = self.store.read_property(child.full_path, prop)
                except StoreNotFound:
                    continue
                if value.kind == ValueKind.SINGLE:
                    entry[key] = value.data
            if entry["guid"]:
                adapters.append(entry)
        return adapters
