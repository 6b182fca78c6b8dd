"""
Derived-Result Sync
===================

Publishes derived collections to a sheet-like sink with replace-all
semantics. Writes are debounced per sheet: a fixed delay plus random jitter,
and only when the content of the collection actually changed.

Sinks:
    ExcelWorkbookSink - one workbook, one sheet per collection (pandas + openpyxl)
    InMemorySink      - keeps the last payload per sheet
"""

import hashlib
import json
import logging
import random
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd

from .config import Config, default_config
from .models import to_row

logger = logging.getLogger(__name__)

Rows = List[Dict[str, Any]]


# =============================================================================
# SINKS
# =============================================================================

class SheetSink:
    """Anything that accepts ``push(sheet_identifier, rows)``."""

    def push(self, sheet_identifier: str, rows: Rows):
        raise NotImplementedError


class InMemorySink(SheetSink):
    """Keeps the latest rows per sheet plus a log of every push."""

    def __init__(self):
        self.sheets: Dict[str, Rows] = {}
        self.history: List[Tuple[str, int]] = []

    def push(self, sheet_identifier: str, rows: Rows):
        self.sheets[sheet_identifier] = list(rows)
        self.history.append((sheet_identifier, len(rows)))


def _excel_cell(value: Any) -> Any:
    # Spreadsheet cells cannot hold lists or dicts
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    return value


class ExcelWorkbookSink(SheetSink):
    """Replace one sheet at a time inside a single workbook."""

    def __init__(self, output_file: Path):
        self.output_file = Path(output_file)
        self._lock = threading.Lock()

    def push(self, sheet_identifier: str, rows: Rows):
        df = pd.DataFrame([{k: _excel_cell(v) for k, v in row.items()} for row in rows])

        with self._lock:
            self.output_file.parent.mkdir(parents=True, exist_ok=True)
            if self.output_file.exists():
                writer = pd.ExcelWriter(
                    self.output_file, engine="openpyxl", mode="a", if_sheet_exists="replace"
                )
            else:
                writer = pd.ExcelWriter(self.output_file, engine="openpyxl")
            with writer:
                # Excel limits sheet names to 31 characters
                df.to_excel(writer, sheet_name=sheet_identifier[:31], index=False)

        logger.info("Wrote %d rows to %s [%s]", len(rows), self.output_file, sheet_identifier)


# =============================================================================
# DEBOUNCED SYNC
# =============================================================================

def content_hash(rows: Rows) -> str:
    """SHA-256 of the canonical JSON form of ``rows``."""
    canonical = json.dumps(rows, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class SheetSync:
    """
    Debounce pushes to a sink, per sheet.

    ``schedule`` is a no-op when the rows hash the same as the pending or
    last successfully pushed payload for that sheet, and when the rows are
    empty. Otherwise any pending push for the sheet is replaced and a new
    timer started.

    Args:
        sink: Destination for the rows
        delay: Fixed delay in seconds (defaults to config)
        jitter: Upper bound of the random extra delay (defaults to config)
        timer_factory: ``(interval, function, args) -> timer`` with
            ``start()`` and ``cancel()``; defaults to ``threading.Timer``
    """

    def __init__(
        self,
        sink: SheetSink,
        delay: float = None,
        jitter: float = None,
        timer_factory: Callable = None,
        config: Config = None,
        rng: random.Random = None,
    ):
        self.config = config or default_config
        self.sink = sink
        self.delay = self.config.sync_delay_seconds if delay is None else delay
        self.jitter = self.config.sync_jitter_seconds if jitter is None else jitter
        self.timer_factory = timer_factory or threading.Timer
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._pushed: Dict[str, str] = {}
        self._pending: Dict[str, Tuple[str, Rows, Any]] = {}

    @property
    def pending_sheets(self) -> List[str]:
        with self._lock:
            return sorted(self._pending)

    def schedule(self, sheet_identifier: str, rows: Rows) -> bool:
        """Queue a push; returns True when a new timer was started."""
        if not rows:
            logger.debug("Skipping empty payload for %s", sheet_identifier)
            return False

        digest = content_hash(rows)
        with self._lock:
            pending = self._pending.get(sheet_identifier)
            current = pending[0] if pending else self._pushed.get(sheet_identifier)
            if digest == current:
                return False

            if pending:
                pending[2].cancel()

            interval = self.delay + self._rng.uniform(0, self.jitter)
            timer = self.timer_factory(interval, self._fire, args=(sheet_identifier, digest))
            timer.daemon = True
            self._pending[sheet_identifier] = (digest, list(rows), timer)

        timer.start()
        logger.debug("Scheduled push of %d rows to %s in %.1fs", len(rows), sheet_identifier, interval)
        return True

    def _fire(self, sheet_identifier: str, digest: str):
        with self._lock:
            pending = self._pending.get(sheet_identifier)
            # A newer payload replaced this one
            if not pending or pending[0] != digest:
                return
            del self._pending[sheet_identifier]
        self._push(sheet_identifier, digest, pending[1])

    def _push(self, sheet_identifier: str, digest: str, rows: Rows):
        try:
            self.sink.push(sheet_identifier, rows)
        except Exception:
            logger.exception("Failed to push %d rows to %s", len(rows), sheet_identifier)
            return
        with self._lock:
            self._pushed[sheet_identifier] = digest

    def flush(self):
        """Push every pending payload now, in sheet-name order."""
        with self._lock:
            pending = sorted(self._pending.items())
            self._pending.clear()
        for sheet_identifier, (digest, rows, timer) in pending:
            timer.cancel()
            self._push(sheet_identifier, digest, rows)

    def cancel_all(self):
        """Drop every pending payload without pushing."""
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for _, _, timer in pending:
            timer.cancel()


# =============================================================================
# DERIVED COLLECTIONS
# =============================================================================

def derived_sheet_rows(results, config: Config = None) -> Dict[str, Rows]:
    """The five published collections as plain rows, keyed by sheet name."""
    config = config or default_config
    names = config.sheet_names
    return {
        names["inventory"]: [to_row(item) for item in results.inventory],
        names["customers"]: [to_row(customer) for customer in results.customers],
        names["opportunities"]: [to_row(o) for o in results.opportunities],
        names["backorders"]: [to_row(b) for b in results.backorders],
        names["promotions"]: [to_row(p) for p in results.promotions],
    }


def sync_derived_results(sync: SheetSync, results, config: Config = None) -> Dict[str, bool]:
    """Schedule every derived collection; returns which sheets got a new timer."""
    return {
        sheet: sync.schedule(sheet, rows)
        for sheet, rows in derived_sheet_rows(results, config or sync.config).items()
    }
