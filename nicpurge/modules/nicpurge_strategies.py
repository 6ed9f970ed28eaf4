#!/usr/bin/env python3
# nicpurge_strategies.py
"""
nicpurge_strategies.py — the four removal strategies

Every strategy takes (PassContext, descriptor, resolved path) and returns the
OutcomeRecords for that location. Dry-run and apply share the same matching
code; only the mutation call and the reported action differ.

 - exact_child_path: delete <path>\\<GUID> if present
 - property_scan: filter GUID-bearing entries out of named list properties (substring match)
 - node_property_match: delete every child whose identifying property equals the GUID
 - list_filter: strip the GUID from every string / string-list property of every child

Not-found handling: dry-run reports none-found, apply mode stays silent unless
report_none_found_in_apply is set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from nicpurge.modules.nicpurge_catalog import (
    ExactChildPath,
    GuidToken,
    ListFilter,
    LocationDescriptor,
    NodeNameOrPropertyMatch,
    PropertyScan,
    StrategyKind,
)
from nicpurge.modules.nicpurge_report import Action, Mode, OutcomeRecord
from nicpurge.modules.nicpurge_store import PropertyValue, RegistryStore, StoreError, StoreNotFound, ValueKind

_logger = logging.getLogger("nicpurge.strategies")


@dataclass(frozen=True)
class PassContext:
    """Everything fixed for one GUID pass."""

    store: RegistryStore
    token: GuidToken
    dry_run: bool
    report_none_found_in_apply: bool = False

    @property
    def mode(self) -> Mode:
        return Mode.of(self.dry_run)

    def record(self, descriptor: LocationDescriptor, action: Action, **detail: Any) -> OutcomeRecord:
        return OutcomeRecord(descriptor.id, self.token.value, self.mode, action, detail)

    def none_found(self, descriptor: LocationDescriptor, **detail: Any) -> List[OutcomeRecord]:
        if self.dry_run or self.report_none_found_in_apply:
            return [self.record(descriptor, Action.NONE_FOUND, **detail)]
        return []

    def error(self, descriptor: LocationDescriptor, exc: BaseException, **detail: Any) -> OutcomeRecord:
        return self.record(descriptor, Action.ERROR, error=f"{type(exc).__name__}: {exc}", **detail)


# ---------------- exact child path ----------------
def exact_child_path(ctx: PassContext, descriptor: ExactChildPath, path: str) -> List[OutcomeRecord]:
    if not ctx.token.bare.strip():
        # an empty child name would resolve to the parent key itself
        return [ctx.error(descriptor, ValueError(f"empty GUID token {ctx.token}"), path=path)]
    target = ctx.store.join_path(path, descriptor.child_name(ctx.token))
    if not ctx.store.exists(target):
        return ctx.none_found(descriptor, path=target)
    if ctx.dry_run:
        return [ctx.record(descriptor, Action.WOULD_DELETE_NODE, path=target)]
    ctx.store.delete_node(target, recursive=True)
    return [ctx.record(descriptor, Action.DELETED_NODE, path=target)]


# ---------------- property scan ----------------
def property_scan(ctx: PassContext, descriptor: PropertyScan, path: str) -> List[OutcomeRecord]:
    if not ctx.store.exists(path):
        return ctx.none_found(descriptor, path=path)

    records: List[OutcomeRecord] = []
    for name in descriptor.property_names:
        try:
            records.extend(_scan_property(ctx, descriptor, path, name))
        except StoreNotFound:
            # a linkage key need not carry all of Bind/Export/Route
            _logger.debug("property %s missing at %s, skipped", name, path)
            records.extend(ctx.none_found(descriptor, path=path, property=name, missing=True))
        except StoreError as e:
            records.append(ctx.error(descriptor, e, path=path, property=name))
    return records


def _scan_property(ctx: PassContext, descriptor: PropertyScan, path: str, name: str) -> List[OutcomeRecord]:
    value = ctx.store.read_property(path, name)
    if value.kind == ValueKind.SINGLE:
        if not ctx.token.contained_in(value.data):
            return ctx.none_found(descriptor, path=path, property=name)
        return [_clear(ctx, descriptor, path, name, value.data)]
    if value.kind != ValueKind.LIST:
        return ctx.none_found(descriptor, path=path, property=name)

    matched = [e for e in value.data if ctx.token.contained_in(e)]
    if not matched:
        return ctx.none_found(descriptor, path=path, property=name)
    kept = [e for e in value.data if not ctx.token.contained_in(e)]
    return [_filter(ctx, descriptor, path, name, matched, kept)]


# ---------------- node name / property match ----------------
def node_property_match(ctx: PassContext, descriptor: NodeNameOrPropertyMatch, path: str) -> List[OutcomeRecord]:
    try:
        children = ctx.store.list_children(path)
    except StoreNotFound:
        return ctx.none_found(descriptor, path=path)

    records: List[OutcomeRecord] = []
    skipped: List[str] = []
    for child in children:
        try:
            value = ctx.store.read_property(child.full_path, descriptor.property_name)
        except StoreNotFound:
            skipped.append(child.name)
            continue
        except StoreError as e:
            records.append(ctx.error(descriptor, e, path=child.full_path, property=descriptor.property_name))
            continue
        if value.kind != ValueKind.SINGLE or not ctx.token.equals(value.data):
            skipped.append(child.name)
            continue
        if ctx.dry_run:
            records.append(ctx.record(descriptor, Action.WOULD_DELETE_NODE, path=child.full_path, property=descriptor.property_name))
            continue
        try:
            ctx.store.delete_node(child.full_path, recursive=True)
        except StoreError as e:
            records.append(ctx.error(descriptor, e, path=child.full_path))
            continue
        records.append(ctx.record(descriptor, Action.DELETED_NODE, path=child.full_path, property=descriptor.property_name))

    if not records:
        return ctx.none_found(descriptor, path=path, scanned=len(children), skipped=skipped)
    return records


# ---------------- generic list filter ----------------
def list_filter(ctx: PassContext, descriptor: ListFilter, path: str) -> List[OutcomeRecord]:
    try:
        children = ctx.store.list_children(path)
    except StoreNotFound:
        return ctx.none_found(descriptor, path=path)

    records: List[OutcomeRecord] = []
    for child in children:
        try:
            names = ctx.store.list_properties(child.full_path)
        except StoreError as e:
            records.append(ctx.error(descriptor, e, path=child.full_path))
            continue
        for name in names:
            try:
                record = _filter_exact(ctx, descriptor, child.full_path, name)
            except StoreError as e:
                records.append(ctx.error(descriptor, e, path=child.full_path, property=name))
                continue
            if record is not None:
                records.append(record)

    if not records:
        return ctx.none_found(descriptor, path=path, scanned=len(children))
    return records


def _filter_exact(ctx: PassContext, descriptor: ListFilter, path: str, name: str) -> Optional[OutcomeRecord]:
    value = ctx.store.read_property(path, name)
    if value.kind == ValueKind.SINGLE:
        if ctx.token.equals(value.data):
            return _clear(ctx, descriptor, path, name, value.data)
        return None
    if value.kind == ValueKind.LIST:
        matched = [e for e in value.data if ctx.token.equals(e)]
        if matched:
            kept = [e for e in value.data if not ctx.token.equals(e)]
            return _filter(ctx, descriptor, path, name, matched, kept)
    return None


# ---------------- mutations ----------------
def _clear(ctx: PassContext, descriptor: LocationDescriptor, path: str, name: str, old: str) -> OutcomeRecord:
    if ctx.dry_run:
        return ctx.record(descriptor, Action.WOULD_CLEAR_PROPERTY, path=path, property=name, value=old)
    ctx.store.write_property(path, name, PropertyValue.single(""))
    return ctx.record(descriptor, Action.CLEARED_PROPERTY, path=path, property=name, value=old)


def _filter(ctx: PassContext, descriptor: LocationDescriptor, path: str, name: str, matched: List[str], kept: List[str]) -> OutcomeRecord:
    if ctx.dry_run:
        return ctx.record(descriptor, Action.WOULD_REMOVE_LIST_ENTRIES, path=path, property=name, entries=matched)
    ctx.store.write_property(path, name, PropertyValue.multi(kept))
    return ctx.record(descriptor, Action.REMOVED_LIST_ENTRIES, path=path, property=name, entries=matched)


STRATEGIES: Dict[StrategyKind, Callable[[PassContext, Any, str], List[OutcomeRecord]]] = {
    StrategyKind.EXACT_CHILD_PATH: exact_child_path,
    StrategyKind.PROPERTY_SCAN: property_scan,
    StrategyKind.NODE_PROPERTY_MATCH: node_property_match,
    StrategyKind.LIST_FILTER: list_filter,
}


def apply_strategy(ctx: PassContext, descriptor: LocationDescriptor) -> List[OutcomeRecord]:
    fn = STRATEGIES[descriptor.strategy]
    return fn(ctx, descriptor, descriptor.resolve_path(ctx.token))
