"""Shared fixtures: quiet logger, a populated in-memory registry, a small catalog."""

import pytest

from nicpurge.modules.nicpurge_catalog import (
    ExactChildPath,
    ListFilter,
    NodeNameOrPropertyMatch,
    PropertyScan,
    build_catalog,
)
from nicpurge.modules.nicpurge_logger import NicpurgeLogger
from nicpurge.modules.nicpurge_store import MemoryStore

GUID = "{1234ABCD-0000-0000-0000-000000000001}"
OTHER = "{AAAAAAAA-0000-0000-0000-000000000002}"
CLASS = "SYSTEM\\CurrentControlSet\\Control\\Class\\{4D36E972-E325-11CE-BFC1-08002BE10318}"
ROOTS = ["SYSTEM\\CurrentControlSet", "SYSTEM\\ControlSet001"]


@pytest.fixture
def logger(tmp_path):
    return NicpurgeLogger(module="test", log_dir=str(tmp_path / "logs"), quiet=True)


def populate(store, root="SYSTEM\\CurrentControlSet", guid=GUID):
    """Leave `guid` behind in the places the small catalog looks at."""
    store.set_property(f"{root}\\Services\\Tcpip\\Parameters\\Interfaces\\{guid}", "EnableDHCP", "1")
    store.set_property(f"{root}\\Services\\Tcpip\\Parameters\\Interfaces\\{OTHER}", "EnableDHCP", "1")
    store.create_node(f"{root}\\Services\\NetBT\\Parameters\\Interfaces\\Tcpip_{guid}")
    store.set_property(
        f"{root}\\Services\\Tcpip\\Linkage",
        "Bind",
        [f"\\Device\\{OTHER}", f"\\Device\\{guid}", "\\Device\\NdisWanIp"],
    )
    store.set_property(f"{root}\\Services\\Tcpip\\Linkage", "Export", [f"\\Device\\Tcpip_{guid}"])
    store.set_property(f"{root}\\Control\\Class\\{{4D36E972-E325-11CE-BFC1-08002BE10318}}\\0001", "NetCfgInstanceId", guid)
    store.set_property(f"{root}\\Control\\Class\\{{4D36E972-E325-11CE-BFC1-08002BE10318}}\\0002", "NetCfgInstanceId", OTHER)
    store.set_property(f"{root}\\Control\\Network\\Components\\ms_tcpip", "Adapters", [OTHER, guid])
    store.set_property(f"{root}\\Control\\Network\\Components\\ms_tcpip", "Primary", guid)
    return store


@pytest.fixture
def store():
    s = MemoryStore()
    for root in ROOTS:
        populate(s, root)
    return s


SMALL_LOCATIONS = (
    ExactChildPath("tcpip-interfaces", "${root}\\Services\\Tcpip\\Parameters\\Interfaces"),
    ExactChildPath("netbt-interfaces", "${root}\\Services\\NetBT\\Parameters\\Interfaces", prefix="Tcpip_"),
    PropertyScan("tcpip-linkage", "${root}\\Services\\Tcpip\\Linkage"),
    NodeNameOrPropertyMatch("net-class-instance", "${root}\\Control\\Class\\{4D36E972-E325-11CE-BFC1-08002BE10318}"),
    ListFilter("network-components", "${root}\\Control\\Network\\Components"),
)


@pytest.fixture
def catalog():
    return build_catalog(ROOTS, SMALL_LOCATIONS)
