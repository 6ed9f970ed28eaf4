#!/usr/bin/env python3
# nicpurge_store.py
"""
nicpurge_store.py — hierarchical configuration store adapters for nicpurge

Features:
 - RegistryStore: the small interface the removal engine consumes
   (exists, list_children, list_properties, read/write property, delete_node, join_path)
 - PropertyValue: tagged property value (single string | ordered string list | other)
 - StoreError / StoreNotFound / StoreAccessDenied error taxonomy
 - MemoryStore: in-memory, case-insensitive tree (snapshots in JSON, used by tests and previews)
 - WinRegStore: Windows registry backend built on winreg (only importable on Windows)
"""

from __future__ import annotations

import contextlib
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

SEP = "\\"


# ---------------- errors ----------------
class StoreError(Exception):
    """Any failure raised by a store operation."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class StoreNotFound(StoreError):
    pass


class StoreAccessDenied(StoreError):
    pass


# ---------------- values ----------------
class ValueKind(str, Enum):
    SINGLE = "single"
    LIST = "list"
    OTHER = "other"


@dataclass(frozen=True)
class PropertyValue:
    kind: ValueKind
    data: Any

    @classmethod
    def single(cls, text: str) -> "PropertyValue":
        return cls(ValueKind.SINGLE, str(text))

    @classmethod
    def multi(cls, items) -> "PropertyValue":
        return cls(ValueKind.LIST, tuple(str(i) for i in items))

    @classmethod
    def from_python(cls, value: Any) -> "PropertyValue":
        if isinstance(value, str):
            return cls.single(value)
        if isinstance(value, (list, tuple)):
            return cls.multi(value)
        return cls(ValueKind.OTHER, value)

    def to_python(self) -> Any:
        if self.kind == ValueKind.LIST:
            return list(self.data)
        return self.data


@dataclass(frozen=True)
class ChildNode:
    name: str
    full_path: str


# ---------------- interface ----------------
class RegistryStore(ABC):
    """Operations the removal engine needs from a hierarchical store.

    Paths are backslash separated and relative to the store root.
    """

    @abstractmethod
    def exists(self, path: str) -> bool:
        ...

    @abstractmethod
    def list_children(self, path: str) -> List[ChildNode]:
        """Immediate children of `path`. Raises StoreNotFound if `path` is absent."""

    @abstractmethod
    def list_properties(self, path: str) -> List[str]:
        """Property names on `path`. Raises StoreNotFound if `path` is absent."""

    @abstractmethod
    def read_property(self, path: str, name: str) -> PropertyValue:
        """Raises StoreNotFound if the node or the property is absent."""

    @abstractmethod
    def write_property(self, path: str, name: str, value: PropertyValue) -> None:
        ...

    @abstractmethod
    def delete_node(self, path: str, recursive: bool = True) -> None:
        ...

    def join_path(self, base: str, component: str) -> str:
        base = base.rstrip(SEP)
        if not base:
            return component
        return f"{base}{SEP}{component}"


def split_path(path: str) -> List[str]:
    return [p for p in path.split(SEP) if p]


# ---------------- in-memory store ----------------
class _Node:
    __slots__ = ("name", "props", "children")

    def __init__(self, name: str):
        self.name = name
        # casefolded name -> (display name, value)
        self.props: Dict[str, Tuple[str, PropertyValue]] = {}
        self.children: Dict[str, "_Node"] = {}


class MemoryStore(RegistryStore):
    """
    Case-insensitive in-memory tree with the registry's lookup semantics.

    Snapshot format (JSON / dict):
        {"values": {"Name": "text", "Bind": ["a", "b"]}, "keys": {"Child": {...}}}
    """

    def __init__(self):
        self._root = _Node("")

    # ---------- snapshot helpers ----------
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryStore":
        store = cls()
        store._load_node(store._root, data or {})
        return store

    @classmethod
    def load(cls, path: Path) -> "MemoryStore":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"cannot load snapshot {path}: {e}", path=str(path)) from e
        return cls.from_dict(data)

    def _load_node(self, node: _Node, data: Dict[str, Any]) -> None:
        for name, value in (data.get("values") or {}).items():
            node.props[name.casefold()] = (name, PropertyValue.from_python(value))
        for name, child_data in (data.get("keys") or {}).items():
            child = _Node(name)
            node.children[name.casefold()] = child
            self._load_node(child, child_data or {})

    def to_dict(self) -> Dict[str, Any]:
        def _dump(node: _Node) -> Dict[str, Any]:
            out: Dict[str, Any] = {}
            if node.props:
                out["values"] = {n: v.to_python() for n, v in node.props.values()}
            if node.children:
                out["keys"] = {c.name: _dump(c) for c in node.children.values()}
            return out

        return _dump(self._root)

    def save(self, path: Path) -> Path:
        path = Path(path)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        os.replace(str(tmp), str(path))
        return path

    # ---------- fixture helpers ----------
    def create_node(self, path: str) -> None:
        node = self._root
        for part in split_path(path):
            child = node.children.get(part.casefold())
            if child is None:
                child = _Node(part)
                node.children[part.casefold()] = child
            node = child

    def set_property(self, path: str, name: str, value: Any) -> None:
        """Create `path` if needed and store a plain python value (str or list of str)."""
        self.create_node(path)
        if not isinstance(value, PropertyValue):
            value = PropertyValue.from_python(value)
        self.write_property(path, name, value)

    # ---------- lookup ----------
    def _find(self, path: str) -> Optional[_Node]:
        node = self._root
        for part in split_path(path):
            node = node.children.get(part.casefold())
            if node is None:
                return None
        return node

    def _require(self, path: str) -> _Node:
        node = self._find(path)
        if node is None:
            raise StoreNotFound(f"node not found: {path}", path=path)
        return node

    # ---------- interface ----------
    def exists(self, path: str) -> bool:
        return self._find(path) is not None

    def list_children(self, path: str) -> List[ChildNode]:
        node = self._require(path)
        return [ChildNode(c.name, self.join_path(path, c.name)) for c in node.children.values()]

    def list_properties(self, path: str) -> List[str]:
        node = self._require(path)
        return [name for name, _ in node.props.values()]

    def read_property(self, path: str, name: str) -> PropertyValue:
        node = self._require(path)
        entry = node.props.get(name.casefold())
        if entry is None:
            raise StoreNotFound(f"property not found: {path} [{name}]", path=path)
        return entry[1]

    def write_property(self, path: str, name: str, value: PropertyValue) -> None:
        node = self._require(path)
        existing = node.props.get(name.casefold())
        display = existing[0] if existing else name
        node.props[name.casefold()] = (display, value)

    def delete_node(self, path: str, recursive: bool = True) -> None:
        parts = split_path(path)
        if not parts:
            raise StoreError("refusing to delete the store root", path=path)
        parent = self._require(SEP.join(parts[:-1])) if len(parts) > 1 else self._root
        key = parts[-1].casefold()
        node = parent.children.get(key)
        if node is None:
            raise StoreNotFound(f"node not found: {path}", path=path)
        if node.children and not recursive:
            raise StoreError(f"node has children: {path}", path=path)
        del parent.children[key]


# ---------------- Windows registry ----------------
class WinRegStore(RegistryStore):
    """Registry backend. Paths are relative to `hive` (HKEY_LOCAL_MACHINE by default)."""

    def __init__(self, hive: str = "HKEY_LOCAL_MACHINE", computer: Optional[str] = None):
        import winreg  # Windows only

        self._winreg = winreg
        try:
            self._root = winreg.ConnectRegistry(computer, getattr(winreg, hive))
        except AttributeError as e:
            raise StoreError(f"unknown hive: {hive}") from e
        except OSError as e:
            raise StoreError(f"cannot connect to registry: {e}") from e
        self.hive = hive

    @contextlib.contextmanager
    def _translate(self, path: str) -> Iterator[None]:
        try:
            yield
        except FileNotFoundError as e:
            raise StoreNotFound(f"not found: {path}", path=path) from e
        except PermissionError as e:
            raise StoreAccessDenied(f"access denied: {path}", path=path) from e
        except OSError as e:
            raise StoreError(f"registry error at {path}: {e}", path=path) from e

    def _open(self, path: str, write: bool = False):
        access = self._winreg.KEY_ALL_ACCESS if write else self._winreg.KEY_READ
        return self._winreg.OpenKey(self._root, path, 0, access)

    def exists(self, path: str) -> bool:
        try:
            with self._translate(path):
                self._winreg.CloseKey(self._open(path))
            return True
        except StoreNotFound:
            return False

    def list_children(self, path: str) -> List[ChildNode]:
        with self._translate(path):
            key = self._open(path)
            try:
                num_keys, _, _ = self._winreg.QueryInfoKey(key)
                names = [self._winreg.EnumKey(key, i) for i in range(num_keys)]
            finally:
                self._winreg.CloseKey(key)
        return [ChildNode(n, self.join_path(path, n)) for n in names]

    def list_properties(self, path: str) -> List[str]:
        with self._translate(path):
            key = self._open(path)
            try:
                _, num_values, _ = self._winreg.QueryInfoKey(key)
                names = [self._winreg.EnumValue(key, i)[0] for i in range(num_values)]
            finally:
                self._winreg.CloseKey(key)
        return names

    def read_property(self, path: str, name: str) -> PropertyValue:
        wr = self._winreg
        with self._translate(path):
            key = self._open(path)
            try:
                data, type_ = wr.QueryValueEx(key, name)
            finally:
                wr.CloseKey(key)
        if type_ in (wr.REG_SZ, wr.REG_EXPAND_SZ):
            return PropertyValue.single(data)
        if type_ == wr.REG_MULTI_SZ:
            return PropertyValue.multi(data or [])
        return PropertyValue(ValueKind.OTHER, data)

    def write_property(self, path: str, name: str, value: PropertyValue) -> None:
        wr = self._winreg
        if value.kind == ValueKind.SINGLE:
            type_, data = wr.REG_SZ, value.data
        elif value.kind == ValueKind.LIST:
            type_, data = wr.REG_MULTI_SZ, list(value.data)
        else:
            raise StoreError(f"cannot write non-string value {name} at {path}", path=path)
        with self._translate(path):
            key = self._open(path, write=True)
            try:
                wr.SetValueEx(key, name, 0, type_, data)
            finally:
                wr.CloseKey(key)

    def delete_node(self, path: str, recursive: bool = True) -> None:
        if recursive:
            # DeleteKey only removes leaf keys
            for child in self.list_children(path):
                self.delete_node(child.full_path, recursive=True)
        parts = split_path(path)
        parent, name = SEP.join(parts[:-1]), parts[-1]
        with self._translate(path):
            key = self._open(parent, write=True)
            try:
                self._winreg.DeleteKey(key, name)
            finally:
                self._winreg.CloseKey(key)
