#!/usr/bin/env python3
# nicpurge_cli.py
"""
nicpurge CLI

Features:
 - `nicpurge remove GUID...` and `nicpurge list`; no command runs an interactive removal
 - GUIDs from arguments, --from-file, or an interactive prompt
   (GUIDs, then a yes/no "test mode" question) when none are given
 - --dry-run / --apply, --json, --quiet, --config, --snapshot, --snapshot-out, --catalog, --report-dir
 - an applied run on a snapshot is saved back to disk
 - rich tables for humans, JSON for scripts
 - exit code: 0 clean, 2 when any location reported an error, 1 on bad input/config
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, Prompt
from rich.table import Table

from nicpurge import __version__
from nicpurge.modules.nicpurge_catalog import CatalogError
from nicpurge.modules.nicpurge_config import ConfigError, ConfigStore
from nicpurge.modules.nicpurge_logger import NicpurgeLogger
from nicpurge.modules.nicpurge_remove import InvalidInputError, NicpurgeRemove
from nicpurge.modules.nicpurge_store import StoreError

EXIT_OK = 0
EXIT_INPUT = 1
EXIT_ERRORS = 2

_SPLIT = re.compile(r"[,;\s]+")


def split_guids(text: str) -> List[str]:
    return [g for g in _SPLIT.split(text or "") if g]


def read_guid_file(path: Path) -> List[str]:
    guids: List[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.split("#", 1)[0]
        guids.extend(split_guids(line))
    return guids


def prompt_guids(console: Console) -> List[str]:
    answer = Prompt.ask("Adapter GUID(s) to remove (comma or space separated)", console=console, default="")
    return split_guids(answer)


def prompt_test_mode(console: Console) -> bool:
    return Confirm.ask("Run in test mode (preview only, nothing is changed)?", console=console, default=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nicpurge", description="Remove leftover network adapter configuration from the registry")
    parser.add_argument("--config", action="append", default=[], metavar="TOML", help="extra config file (repeatable)")
    parser.add_argument("--profile", help="apply [profiles.<name>] from config")
    parser.add_argument("--snapshot", metavar="JSON", help="operate on a JSON snapshot instead of the live registry")
    parser.add_argument("--snapshot-out", metavar="JSON", help="save an applied snapshot here instead of over --snapshot")
    parser.add_argument("--catalog", metavar="TOML", help="additional [[location]] entries")
    parser.add_argument("--report-dir", help="override report directory")
    parser.add_argument("--json", action="store_true", help="print JSON instead of tables")
    parser.add_argument("--quiet", action="store_true", help="suppress log output on the console")
    parser.add_argument("--version", action="version", version=f"nicpurge {__version__}")
    sub = parser.add_subparsers(dest="cmd")

    p_remove = sub.add_parser("remove", aliases=["rm"], help="remove adapter GUID(s)")
    p_remove.add_argument("guids", nargs="*", help="adapter GUIDs, braces optional")
    p_remove.add_argument("--from-file", metavar="FILE", help="read GUIDs from a file, one per line")
    mode = p_remove.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", dest="dry_run", action="store_true", default=None, help="preview only")
    mode.add_argument("--apply", dest="dry_run", action="store_false", help="really delete / rewrite")
    p_remove.add_argument("--no-report", action="store_true", help="do not write the JSON report file")
    p_remove.add_argument("--all", action="store_true", help="also list locations where nothing was found")

    p_list = sub.add_parser("list", aliases=["ls"], help="list installed network adapters")
    p_list.add_argument("--root", help="configuration-set root (default: first catalog root)")
    return parser


def load_config(args: argparse.Namespace) -> ConfigStore:
    cfg = ConfigStore.load(project_dir=Path.cwd(), extra_paths=[Path(p) for p in args.config])
    if args.profile:
        cfg = cfg.profile(args.profile)
    if args.snapshot:
        cfg.set("store.backend", "snapshot")
        cfg.set("store.snapshot", args.snapshot)
    if args.snapshot_out:
        cfg.set("store.snapshot_out", args.snapshot_out)
    if args.catalog:
        cfg.set("catalog.extra", args.catalog)
    if args.report_dir:
        cfg.set("report.dir", args.report_dir)
    if args.json:
        cfg.set("output.json", True)
    if args.quiet:
        cfg.set("output.quiet", True)
    return cfg


def cmd_remove(args: argparse.Namespace, remover: NicpurgeRemove, console: Console) -> int:
    guids = list(getattr(args, "guids", None) or [])
    if getattr(args, "from_file", None):
        guids.extend(read_guid_file(Path(args.from_file)))
    dry_run = getattr(args, "dry_run", None)
    if not guids and sys.stdin.isatty():
        guids = prompt_guids(console)
        if dry_run is None:
            dry_run = prompt_test_mode(console)

    report = remover.remove_adapters(guids, dry_run=dry_run)
    if remover.cfg.get_bool("output.json"):
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    else:
        report.render(console, show_none_found=getattr(args, "all", False))
    rc = EXIT_ERRORS if report.has_errors else EXIT_OK

    if not report.dry_run:
        try:
            remover.save_snapshot()
        except OSError as e:
            remover.logger.error("cli.snapshot.error", f"cannot save snapshot: {e}", exc=e)
            rc = EXIT_ERRORS
    if not getattr(args, "no_report", False):
        try:
            remover.write_report(report)
        except OSError as e:
            remover.logger.error("cli.report.error", f"cannot write report: {e}", exc=e)
    return rc


def cmd_list(args: argparse.Namespace, remover: NicpurgeRemove, console: Console) -> int:
    adapters = remover.inventory(root=args.root)
    if remover.cfg.get_bool("output.json"):
        print(json.dumps(adapters, indent=2, ensure_ascii=False))
        return EXIT_OK
    table = Table(title="Network adapters")
    table.add_column("node")
    table.add_column("guid")
    table.add_column("description")
    for a in adapters:
        table.add_row(a["node"], a["guid"], a["description"] or "")
    console.print(table)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])
    console = Console()
    err_console = Console(stderr=True)

    try:
        cfg = load_config(args)
        logger = NicpurgeLogger.from_config(cfg, module="cli")
        remover = NicpurgeRemove(cfg=cfg, logger=logger)
    except (ConfigError, CatalogError, StoreError, ImportError) as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return EXIT_INPUT

    try:
        if args.cmd in ("list", "ls"):
            return cmd_list(args, remover, console)
        return cmd_remove(args, remover, console)
    except (InvalidInputError, OSError) as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return EXIT_INPUT
    except StoreError as e:
        # only reachable from `list`; removal records store errors per location
        err_console.print(f"[red]Error:[/red] {escape(str(e))}")
        return EXIT_ERRORS


if __name__ == "__main__":
    sys.exit(main())
