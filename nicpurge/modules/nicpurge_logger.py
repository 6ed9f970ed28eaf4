#!/usr/bin/env python3
# nicpurge_logger.py
"""
NicpurgeLogger — structured logger for nicpurge

Features:
 - Colorized terminal output through rich (or plain text when use_rich is off)
 - JSON structured output option (one JSON object per event)
 - Respects config: output.quiet, output.json, output.use_rich, logging.dir,
   logging.level, logging.max_bytes, logging.backups
 - RotatingFileHandler for persistent logs
 - Separate error trace log file (nicpurge-errors.log)
 - perf_timer decorator that aggregates call counts and timings
"""

from __future__ import annotations

import functools
import json
import logging
import sys
import threading
import time
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.markup import escape

DEFAULT_LOG_FILE = "nicpurge.log"
DEFAULT_ERROR_FILE = "nicpurge-errors.log"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_BACKUPS = 3

_LEVELS = {"debug": logging.DEBUG, "info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR, "critical": logging.CRITICAL}
_COLORS = {"info": "green", "warning": "yellow", "error": "bold red", "debug": "cyan"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _safe_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, default=str)


class NicpurgeLogger:
    """
    NicpurgeLogger manages console/file/json logging.
    Use NicpurgeLogger.from_config(cfg) to build from a ConfigStore.
    """

    def __init__(
        self,
        *,
        module: str = "nicpurge",
        log_dir: Optional[str] = None,
        json_out: bool = False,
        quiet: bool = False,
        use_rich: bool = True,
        level: str = "INFO",
        max_bytes: int = DEFAULT_MAX_BYTES,
        backups: int = DEFAULT_BACKUPS,
        console: Optional[Console] = None,
    ):
        self.module = module
        self.json_out = json_out
        self.quiet = quiet
        self.use_rich = use_rich and not json_out
        self.level = _LEVELS.get(str(level).lower(), logging.INFO)
        self._console = console or Console(stderr=True)
        self._lock = threading.RLock()

        self._pylogger = logging.getLogger(f"nicpurge.{self.module}")
        self._pylogger.setLevel(logging.DEBUG)
        self._pylogger.propagate = False
        self.log_path: Optional[Path] = None
        self.error_log_path: Optional[Path] = None
        if log_dir:
            base_dir = Path(log_dir).expanduser()
            base_dir.mkdir(parents=True, exist_ok=True)
            self.log_path = base_dir / DEFAULT_LOG_FILE
            self.error_log_path = base_dir / DEFAULT_ERROR_FILE
            self._configure_file_handler(max_bytes, backups)

        # {name: {"count": N, "total": secs}}
        self._metrics: Dict[str, Dict[str, Any]] = {}

    @classmethod
    def from_config(cls, cfg: Any, module: str = "nicpurge") -> "NicpurgeLogger":
        return cls(
            module=module,
            log_dir=cfg.get("logging.dir"),
            json_out=cfg.get_bool("output.json"),
            quiet=cfg.get_bool("output.quiet"),
            use_rich=cfg.get_bool("output.use_rich", True),
            level=cfg.get("logging.level", "INFO"),
            max_bytes=cfg.get_int("logging.max_bytes", DEFAULT_MAX_BYTES),
            backups=cfg.get_int("logging.backups", DEFAULT_BACKUPS),
        )

    # ----------------- internal file handler -----------------
    def _configure_file_handler(self, max_bytes: int, backups: int) -> None:
        # one set of handlers per logger name, the latest instance wins
        for h in list(self._pylogger.handlers):
            if isinstance(h, RotatingFileHandler):
                self._pylogger.removeHandler(h)
                h.close()
        handler = RotatingFileHandler(str(self.log_path), maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        self._pylogger.addHandler(handler)
        err_handler = RotatingFileHandler(str(self.error_log_path), maxBytes=max_bytes, backupCount=backups, encoding="utf-8")
        err_handler.setLevel(logging.ERROR)
        err_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        self._pylogger.addHandler(err_handler)

    # ----------------- emit helpers -----------------
    def _format_text(self, level: str, message: str, meta: Dict[str, Any]) -> str:
        tail = f" {_safe_json(meta)}" if meta else ""
        if self.use_rich:
            color = _COLORS.get(level, "cyan")
            return f"[{color}][{level.upper()}][/{color}] [{self.module}] {escape(message + tail)}"
        return f"{_now_iso()} [{level.upper()}] [{self.module}] {message}{tail}"

    def _format_json(self, level: str, event: str, message: str, meta: Dict[str, Any]) -> str:
        payload = {
            "ts": _now_iso(),
            "level": level.upper(),
            "module": self.module,
            "event": event,
            "msg": message,
            "meta": meta,
        }
        return _safe_json(payload)

    def _emit(self, level: str, event: str, message: str = "", **meta) -> None:
        exc_text = meta.pop("traceback", None)
        with self._lock:
            if not self.quiet and _LEVELS[level] >= self.level:
                if self.json_out:
                    print(self._format_json(level, event, message, meta), file=sys.stderr)
                elif self.use_rich:
                    self._console.print(self._format_text(level, message, meta))
                else:
                    stream = sys.stderr if level == "error" else sys.stdout
                    print(self._format_text(level, message, meta), file=stream)

            line = f"{event}: {message} {_safe_json(meta) if meta else ''}".rstrip()
            if exc_text:
                line = f"{line}\n{exc_text}"
            self._pylogger.log(_LEVELS[level], line)

    # ------------- public API -------------
    def info(self, event: str, message: str = "", **meta) -> None:
        self._emit("info", event, message, **meta)

    def warning(self, event: str, message: str = "", **meta) -> None:
        self._emit("warning", event, message, **meta)

    def error(self, event: str, message: str = "", exc: Optional[BaseException] = None, **meta) -> None:
        if exc is not None:
            meta["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self._emit("error", event, message, **meta)

    def debug(self, event: str, message: str = "", **meta) -> None:
        self._emit("debug", event, message, **meta)

    # ---------------- perf timer decorator ----------------
    def perf_timer(self, name: Optional[str] = None):
        """
        Decorator to time functions and aggregate metrics in memory.
        Usage:
            @logger.perf_timer("remove.guid")
            def run_guid(...): ...
        """
        def deco(fn: Callable):
            fname = name or f"{fn.__module__}.{fn.__name__}"

            @functools.wraps(fn)
            def wrapper(*args, **kwargs):
                start = time.perf_counter()
                try:
                    return fn(*args, **kwargs)
                finally:
                    duration = time.perf_counter() - start
                    with self._lock:
                        m = self._metrics.setdefault(fname, {"count": 0, "total": 0.0})
                        m["count"] += 1
                        m["total"] += duration
                    self._emit("debug", f"perf.{fname}", f"{fname} took {duration:.3f}s", duration=duration)
            return wrapper
        return deco

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {k: dict(v) for k, v in self._metrics.items()}

    def flush(self) -> None:
        for h in self._pylogger.handlers:
            h.flush()
