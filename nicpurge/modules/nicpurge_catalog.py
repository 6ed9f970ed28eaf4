#!/usr/bin/env python3
# nicpurge_catalog.py
"""
nicpurge_catalog.py — GUID tokens and the location catalog

Features:
 - GuidToken: canonical braced GUID, case-insensitive equality and literal containment
 - LocationDescriptor variants, one per removal strategy:
   ExactChildPath, PropertyScan, NodeNameOrPropertyMatch, ListFilter
 - built-in catalog of the places a network adapter GUID is left behind,
   expanded under every configuration-set root (CurrentControlSet, ControlSet001)
 - extra descriptors loaded from a TOML file ([[location]] tables)
"""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Optional, Sequence, Tuple

GUID_SHAPE = re.compile(r"^\{[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}\}$")

NET_CLASS_GUID = "{4D36E972-E325-11CE-BFC1-08002BE10318}"
NET_SERVICE_CLASS_GUID = "{4D36E974-E325-11CE-BFC1-08002BE10318}"
NET_TRANS_CLASS_GUID = "{4D36E975-E325-11CE-BFC1-08002BE10318}"

DEFAULT_ROOTS = ["SYSTEM\\CurrentControlSet", "SYSTEM\\ControlSet001"]
LINKAGE_PROPERTIES = ("Bind", "Export", "Route")
DEFAULT_CLASS_PROPERTY = "NetCfgInstanceId"


class CatalogError(Exception):
    pass


# ---------------- GUID token ----------------
@dataclass(frozen=True)
class GuidToken:
    value: str

    @classmethod
    def normalize(cls, raw: Optional[str]) -> Optional["GuidToken"]:
        """Trim and wrap in braces; None for blank input, bare braces included."""
        text = (raw or "").strip()
        if not text.strip("{}").strip():
            return None
        if not text.startswith("{"):
            text = "{" + text
        if not text.endswith("}"):
            text = text + "}"
        return cls(text)

    @property
    def bare(self) -> str:
        return self.value.strip("{}")

    @property
    def well_formed(self) -> bool:
        return bool(GUID_SHAPE.match(self.value))

    def equals(self, text: Optional[str]) -> bool:
        return text is not None and text.strip().casefold() == self.value.casefold()

    def contained_in(self, text: Optional[str]) -> bool:
        # literal substring, pattern characters in the token are escaped
        return text is not None and re.search(re.escape(self.value), text, re.IGNORECASE) is not None

    def __str__(self) -> str:
        return self.value


# ---------------- descriptors ----------------
class StrategyKind(str, Enum):
    EXACT_CHILD_PATH = "exact-child-path"
    PROPERTY_SCAN = "property-scan"
    NODE_PROPERTY_MATCH = "node-property-match"
    LIST_FILTER = "list-filter"


@dataclass(frozen=True)
class LocationDescriptor:
    id: str
    path_template: str

    def resolve_path(self, token: GuidToken) -> str:
        return Template(self.path_template).safe_substitute(guid=token.value, guid_bare=token.bare)

    def under_root(self, root: str) -> "LocationDescriptor":
        label = root.rstrip("\\").split("\\")[-1]
        path = Template(self.path_template).safe_substitute(root=root.rstrip("\\"))
        return replace(self, id=f"{label}:{self.id}", path_template=path)


@dataclass(frozen=True)
class ExactChildPath(LocationDescriptor):
    """Delete the node `<path>\\<prefix><GUID>`."""

    prefix: str = ""
    strip_braces: bool = False

    strategy = StrategyKind.EXACT_CHILD_PATH

    def child_name(self, token: GuidToken) -> str:
        return self.prefix + (token.bare if self.strip_braces else token.value)


@dataclass(frozen=True)
class PropertyScan(LocationDescriptor):
    """Drop list entries containing the GUID from each named property of one node."""

    property_names: Tuple[str, ...] = LINKAGE_PROPERTIES

    strategy = StrategyKind.PROPERTY_SCAN


@dataclass(frozen=True)
class NodeNameOrPropertyMatch(LocationDescriptor):
    """Delete every child whose identifying property equals the GUID."""

    property_name: str = DEFAULT_CLASS_PROPERTY

    strategy = StrategyKind.NODE_PROPERTY_MATCH


@dataclass(frozen=True)
class ListFilter(LocationDescriptor):
    """Remove the GUID from every string or string-list property of every child."""

    strategy = StrategyKind.LIST_FILTER


DESCRIPTOR_TYPES = {
    StrategyKind.EXACT_CHILD_PATH: ExactChildPath,
    StrategyKind.PROPERTY_SCAN: PropertyScan,
    StrategyKind.NODE_PROPERTY_MATCH: NodeNameOrPropertyMatch,
    StrategyKind.LIST_FILTER: ListFilter,
}


# ---------------- built-in catalog ----------------
def _svc(path: str) -> str:
    return "${root}\\Services\\" + path


def _ctl(path: str) -> str:
    return "${root}\\Control\\" + path


LOCATIONS: Tuple[LocationDescriptor, ...] = (
    ExactChildPath("tcpip-interfaces", _svc("Tcpip\\Parameters\\Interfaces")),
    ExactChildPath("tcpip6-interfaces", _svc("Tcpip6\\Parameters\\Interfaces")),
    ExactChildPath("tcpip-adapters", _svc("Tcpip\\Parameters\\Adapters")),
    ExactChildPath("tcpip-dns-registered-adapters", _svc("Tcpip\\Parameters\\DNSRegisteredAdapters")),
    ExactChildPath("netbt-interfaces", _svc("NetBT\\Parameters\\Interfaces"), prefix="Tcpip_"),
    ExactChildPath("psched-adapters", _svc("Psched\\Parameters\\Adapters")),
    ExactChildPath("dnscache-interface-parameters", _svc("Dnscache\\InterfaceSpecificParameters")),
    ExactChildPath("iphlpsvc-isatap", _svc("iphlpsvc\\Parameters\\Isatap")),
    ExactChildPath("vmsmp-nic-list", _svc("VMSMP\\Parameters\\NicList"), strip_braces=True),
    ExactChildPath("adapter-service", "${root}\\Services"),
    ExactChildPath("network-connection", _ctl("Network\\" + NET_CLASS_GUID)),
    ExactChildPath("networksetup2-interfaces", _ctl("NetworkSetup2\\Interfaces")),
    PropertyScan("tcpip-linkage", _svc("Tcpip\\Linkage")),
    PropertyScan("tcpip6-linkage", _svc("Tcpip6\\Linkage")),
    PropertyScan("netbt-linkage", _svc("NetBT\\Linkage")),
    PropertyScan("lanmanserver-linkage", _svc("LanmanServer\\Linkage")),
    PropertyScan("lanmanworkstation-linkage", _svc("LanmanWorkstation\\Linkage")),
    PropertyScan("netbios-linkage", _svc("NetBIOS\\Linkage")),
    PropertyScan("psched-linkage", _svc("Psched\\Linkage")),
    NodeNameOrPropertyMatch("net-class-instance", _ctl("Class\\" + NET_CLASS_GUID)),
    ListFilter("nettrans-components", _ctl("Network\\" + NET_TRANS_CLASS_GUID)),
    ListFilter("netservice-components", _ctl("Network\\" + NET_SERVICE_CLASS_GUID)),
)


def build_catalog(
    roots: Optional[Sequence[str]] = None,
    locations: Sequence[LocationDescriptor] = LOCATIONS,
) -> List[LocationDescriptor]:
    """Expand every location under each root, root-major order.

    A location whose template has no ${root} placeholder is kept once, as is.
    """
    roots = list(roots or DEFAULT_ROOTS)
    catalog: List[LocationDescriptor] = []
    rootless = [loc for loc in locations if "${root}" not in loc.path_template]
    for root in roots:
        catalog.extend(loc.under_root(root) for loc in locations if "${root}" in loc.path_template)
    catalog.extend(rootless)
    return catalog


# ---------------- catalog files ----------------
def descriptor_from_dict(entry: Dict[str, Any]) -> LocationDescriptor:
    try:
        kind = StrategyKind(entry["strategy"])
        loc_id = str(entry["id"])
        path = str(entry["path"])
    except KeyError as e:
        raise CatalogError(f"location entry missing field {e}: {entry}") from e
    except ValueError as e:
        raise CatalogError(f"unknown strategy {entry.get('strategy')!r} in location {entry.get('id')!r}") from e

    options: Dict[str, Any] = {}
    if kind == StrategyKind.EXACT_CHILD_PATH:
        options = {"prefix": str(entry.get("prefix", "")), "strip_braces": bool(entry.get("strip_braces", False))}
    elif kind == StrategyKind.PROPERTY_SCAN:
        names = entry.get("property_names", LINKAGE_PROPERTIES)
        if isinstance(names, str) or not names:
            raise CatalogError(f"property_names must be a non-empty list in location {loc_id!r}")
        options = {"property_names": tuple(str(n) for n in names)}
    elif kind == StrategyKind.NODE_PROPERTY_MATCH:
        options = {"property_name": str(entry.get("property_name", DEFAULT_CLASS_PROPERTY))}
    return DESCRIPTOR_TYPES[kind](loc_id, path, **options)


def load_locations(path: Path) -> List[LocationDescriptor]:
    """Read [[location]] tables from a TOML file."""
    try:
        with Path(path).open("rb") as fh:
            data = tomllib.load(fh)
    except OSError as e:
        raise CatalogError(f"cannot read catalog file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise CatalogError(f"invalid catalog file {path}: {e}") from e
    entries = data.get("location") or []
    if not isinstance(entries, list):
        raise CatalogError(f"{path}: 'location' must be an array of tables")
    return [descriptor_from_dict(e) for e in entries]
