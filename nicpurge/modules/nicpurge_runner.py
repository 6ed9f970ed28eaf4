#!/usr/bin/env python3
# nicpurge_runner.py
"""
nicpurge_runner.py — walks the location catalog for one GUID

The runner applies each descriptor's strategy in catalog order and yields the
resulting OutcomeRecords lazily. A failure at one location becomes a single
error record for that location; the walk always continues.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Iterator, Sequence

from nicpurge.modules.nicpurge_catalog import GuidToken, LocationDescriptor
from nicpurge.modules.nicpurge_report import Action, OutcomeRecord
from nicpurge.modules.nicpurge_store import RegistryStore
from nicpurge.modules.nicpurge_strategies import PassContext, apply_strategy

# fallback stdlib logger (used when no NicpurgeLogger is attached)
_logger = logging.getLogger("nicpurge.runner")


class CatalogRunner:
    def __init__(
        self,
        store: RegistryStore,
        catalog: Sequence[LocationDescriptor],
        logger: Any = None,
        report_none_found_in_apply: bool = False,
    ):
        self.store = store
        self.catalog = tuple(catalog)
        self.logger = logger
        self.report_none_found_in_apply = report_none_found_in_apply

    def _log(self, level: str, event: str, msg: str = "", **meta) -> None:
        if self.logger:
            getattr(self.logger, level)(event, msg, **meta)
            return
        getattr(_logger, level, _logger.info)(f"{event}: {msg} - {meta}")

    def run(self, token: GuidToken, dry_run: bool) -> Iterator[OutcomeRecord]:
        """Yield the records for every location, in catalog order. One pass only."""
        ctx = PassContext(self.store, token, dry_run, self.report_none_found_in_apply)
        for descriptor in self.catalog:
            try:
                records = apply_strategy(ctx, descriptor)
            except Exception as e:
                self._log(
                    "error",
                    "runner.location.error",
                    f"{descriptor.id}: {type(e).__name__}: {e}",
                    location=descriptor.id,
                    guid=token.value,
                    traceback="".join(traceback.format_exception(type(e), e, e.__traceback__)),
                )
                yield ctx.error(descriptor, e)
                continue
            for record in records:
                self._emit(record)
                yield record

    def _emit(self, record: OutcomeRecord) -> None:
        if record.action == Action.NONE_FOUND:
            self._log("debug", "runner.location.none", record.location_id, **record.detail)
        elif record.action == Action.ERROR:
            self._log("warning", "runner.location.error", record.location_id, **record.detail)
        else:
            self._log("info", f"runner.{record.action.value}", record.location_id, **record.detail)
