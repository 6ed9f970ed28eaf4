"""
nicpurge.config

Configuration module for `nicpurge`.
- Loads TOML (system file, user file, project nicpurge.toml + config.d fragments)
- Priority: defaults < system < user < project < extra paths < env
- Profiles ([profiles.<name>] overrides)
- Exports ConfigStore and ConfigError
"""

from __future__ import annotations

import copy
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

ENV_PREFIX = "NICPURGE_"


# -------------------------- Utilities --------------------------
def _is_truthy(val: Any) -> bool:
    if isinstance(val, str):
        return val.strip().lower() not in ("", "0", "false", "no", "off")
    return bool(val)


def _read_toml_file(path: Path) -> dict:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e


def _merge_dict(a: dict, b: dict) -> dict:
    """Merge b into a (deep), returning new dict."""
    out = dict(a)
    for k, v in b.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _merge_dict(out[k], v)
        else:
            out[k] = v
    return out


def _default_state_dir() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(base) / "nicpurge"
    return Path(os.environ.get("XDG_STATE_HOME") or Path.home() / ".local" / "state") / "nicpurge"


def system_config_path() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData")) / "nicpurge" / "config.toml"
    return Path("/etc/nicpurge/config.toml")


def default_settings() -> Dict[str, Any]:
    state = _default_state_dir()
    return {
        "general": {"dry_run": True},
        "output": {"quiet": False, "json": False, "use_rich": True},
        "logging": {"dir": str(state / "logs"), "level": "INFO", "max_bytes": 5 * 1024 * 1024, "backups": 3},
        "report": {"dir": str(state / "reports"), "none_found_in_apply": False},
        "store": {"backend": "winreg", "hive": "HKEY_LOCAL_MACHINE", "snapshot": "", "snapshot_out": ""},
        "catalog": {
            "roots": ["SYSTEM\\CurrentControlSet", "SYSTEM\\ControlSet001"],
            "extra": "",
            "class_property": "NetCfgInstanceId",
        },
    }


# ----------------------- ConfigStore ---------------------------
class ConfigError(Exception):
    pass


@dataclass
class ConfigStore:
    _raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(
        cls,
        project_dir: Optional[Path] = None,
        extra_paths: Optional[List[Path]] = None,
        env_prefix: str = ENV_PREFIX,
        use_system: bool = True,
    ) -> "ConfigStore":
        """Load config following priorities and merge into a ConfigStore.

        defaults < system config.toml < ~/.config/nicpurge/config.toml
        < project_dir/nicpurge.toml & config.d/*.toml < extra_paths (ordered) < env vars
        """
        store = cls(default_settings())

        if use_system:
            for conf in (system_config_path(), Path.home() / ".config" / "nicpurge" / "config.toml"):
                if conf.exists():
                    store.merge(_read_toml_file(conf))

        if project_dir:
            project_main = Path(project_dir) / "nicpurge.toml"
            if project_main.exists():
                store.merge(_read_toml_file(project_main))
            configd = Path(project_dir) / "config.d"
            if configd.is_dir():
                for p in sorted(configd.iterdir()):
                    if p.suffix == ".toml" and p.is_file():
                        store.merge(_read_toml_file(p))

        for p in extra_paths or []:
            p = Path(p)
            if not p.exists():
                raise ConfigError(f"config file not found: {p}")
            store.merge(_read_toml_file(p))

        # NICPURGE_OUTPUT__JSON=1 -> output.json
        for k, v in os.environ.items():
            if k.startswith(env_prefix) and "__" in k:
                parts = k[len(env_prefix):].lower().split("__")
                store.set(".".join(parts), v)
        return store

    def merge(self, data: Dict[str, Any]) -> None:
        self._raw = _merge_dict(self._raw, data)

    # -------------------------------
    # Accessors
    # -------------------------------
    def get(self, key: str, default: Any = None) -> Any:
        """Get a dotted key. Example: get('output.json')"""
        node = self._raw
        for p in key.split("."):
            if isinstance(node, dict) and p in node:
                node = node[p]
            else:
                return default
        return node

    def get_bool(self, key: str, default: bool = False) -> bool:
        return _is_truthy(self.get(key, default))

    def get_int(self, key: str, default: int = 0) -> int:
        val = self.get(key, default)
        try:
            return int(val)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be an integer, got {val!r}") from e

    def get_list(self, key: str, default: Optional[List[Any]] = None) -> List[Any]:
        val = self.get(key, default)
        if val is None:
            return []
        if isinstance(val, str):
            # env overrides arrive as comma separated strings
            return [v.strip() for v in val.split(",") if v.strip()]
        if not isinstance(val, list):
            raise ConfigError(f"{key} must be a list, got {val!r}")
        return val

    def set(self, key: str, value: Any) -> None:
        parts = key.split(".")
        node = self._raw
        for p in parts[:-1]:
            node = node.setdefault(p, {})
        node[parts[-1]] = value

    # -------------------------------
    # Profiles
    # -------------------------------
    def profile(self, name: str) -> "ConfigStore":
        # returns a new ConfigStore with profile overrides applied (does not mutate self)
        profs = self._raw.get("profiles") or {}
        if name not in profs:
            raise ConfigError(f"unknown profile: {name}")
        return ConfigStore(_merge_dict(copy.deepcopy(self._raw), copy.deepcopy(profs[name])))
