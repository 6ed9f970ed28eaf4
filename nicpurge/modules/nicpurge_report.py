#!/usr/bin/env python3
# nicpurge_report.py
"""
nicpurge_report.py — outcome records and run reports

Features:
 - OutcomeRecord: one immutable result per (GUID, location)
 - RunSummary: per-GUID aggregate (counts by action, errors)
 - BatchReport: per-GUID summaries for a whole batch + exit signal
 - JSON report written atomically to the report dir
 - rich table rendering for the terminal
"""

from __future__ import annotations

import json
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class Mode(str, Enum):
    DRY_RUN = "dry-run"
    APPLIED = "applied"

    @classmethod
    def of(cls, dry_run: bool) -> "Mode":
        return cls.DRY_RUN if dry_run else cls.APPLIED


class Action(str, Enum):
    NONE_FOUND = "none-found"
    WOULD_DELETE_NODE = "would-delete-node"
    DELETED_NODE = "deleted-node"
    WOULD_CLEAR_PROPERTY = "would-clear-property"
    CLEARED_PROPERTY = "cleared-property"
    WOULD_REMOVE_LIST_ENTRIES = "would-remove-list-entries"
    REMOVED_LIST_ENTRIES = "removed-list-entries"
    ERROR = "error"


MUTATIONS = frozenset({Action.DELETED_NODE, Action.CLEARED_PROPERTY, Action.REMOVED_LIST_ENTRIES})
PREVIEWS = frozenset({Action.WOULD_DELETE_NODE, Action.WOULD_CLEAR_PROPERTY, Action.WOULD_REMOVE_LIST_ENTRIES})

_STYLES = {
    Action.NONE_FOUND: "dim",
    Action.ERROR: "bold red",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class OutcomeRecord:
    location_id: str
    guid: str
    mode: Mode
    action: Action
    detail: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "detail", MappingProxyType(dict(self.detail)))

    @property
    def is_error(self) -> bool:
        return self.action == Action.ERROR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location_id": self.location_id,
            "guid": self.guid,
            "mode": self.mode.value,
            "action": self.action.value,
            "detail": dict(self.detail),
        }


@dataclass
class RunSummary:
    guid: str
    dry_run: bool
    records: List[OutcomeRecord] = field(default_factory=list)

    def add(self, record: OutcomeRecord) -> None:
        self.records.append(record)

    @property
    def counts(self) -> Dict[str, int]:
        return dict(Counter(r.action.value for r in self.records))

    @property
    def errors(self) -> List[OutcomeRecord]:
        return [r for r in self.records if r.is_error]

    @property
    def has_errors(self) -> bool:
        return any(r.is_error for r in self.records)

    @property
    def matches(self) -> int:
        """Records that changed, or would change, the store."""
        return sum(1 for r in self.records if r.action in MUTATIONS or r.action in PREVIEWS)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guid": self.guid,
            "mode": Mode.of(self.dry_run).value,
            "counts": self.counts,
            "errors": [r.to_dict() for r in self.errors],
            "records": [r.to_dict() for r in self.records],
        }


@dataclass
class BatchReport:
    dry_run: bool
    per_guid: List[RunSummary] = field(default_factory=list)
    started: str = field(default_factory=_now_iso)
    finished: Optional[str] = None

    def add(self, summary: RunSummary) -> None:
        self.per_guid.append(summary)

    def finish(self) -> None:
        self.finished = _now_iso()

    @property
    def has_errors(self) -> bool:
        return any(s.has_errors for s in self.per_guid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": Mode.of(self.dry_run).value,
            "started": self.started,
            "finished": self.finished,
            "has_errors": self.has_errors,
            "per_guid": [s.to_dict() for s in self.per_guid],
        }

    # ---------- persistence ----------
    def write(self, report_dir: Path) -> Path:
        """Write the report as JSON into report_dir (tmp file then replace)."""
        report_dir = Path(report_dir)
        report_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        path = report_dir / f"nicpurge-{stamp}.json"
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(str(tmp), str(path))
        return path

    # ---------- terminal ----------
    def render(self, console: Console, show_none_found: bool = True) -> None:
        mode = Mode.of(self.dry_run).value
        for summary in self.per_guid:
            table = Table(title=f"{summary.guid} ({mode})")
            table.add_column("location", no_wrap=True)
            table.add_column("action", no_wrap=True)
            table.add_column("detail", overflow="fold")
            for r in summary.records:
                if r.action == Action.NONE_FOUND and not show_none_found:
                    continue
                detail = ", ".join(f"{k}={v}" for k, v in r.detail.items())
                table.add_row(r.location_id, r.action.value, escape(detail), style=_STYLES.get(r.action))
            console.print(table)
            counts = " ".join(f"{k}={v}" for k, v in sorted(summary.counts.items())) or "no records"
            console.print(f"[bold]{summary.guid}[/bold]: {counts}")
