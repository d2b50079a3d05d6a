"""Persistent, observable library of extracted reports.

The library owns an ordered, newest-first tuple of reports plus an optional
active id, and journals ``{reports, activeReportId, isDarkMode}`` as one JSON
blob under a fixed key. ``add``/``delete`` write through before returning;
other transitions are coalesced to at most one write per event-loop tick (or
written immediately when no loop is running).

Access is assumed cooperative and single-threaded.
"""
from __future__ import annotations

import asyncio
import json
import logging
import warnings
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from finanalyzer.domain.errors import (
    DuplicateIdentity,
    ImmutableFieldMutation,
    MissingIdentity,
    PersistenceCorrupt,
    UnknownReport,
)
from finanalyzer.domain.models.report import ENRICHMENT_FIELDS, FinancialReport, changed_fields
from finanalyzer.infrastructure.db.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "fin-analyzer-storage"
MUTABLE_FIELDS = frozenset(ENRICHMENT_FIELDS) | {"extras"}


@dataclass(frozen=True)
class LibrarySnapshot:
    """Immutable view of the library delivered to observers."""

    reports: Tuple[FinancialReport, ...]
    active_id: Optional[str]
    dark_mode: bool

    @property
    def active(self) -> Optional[FinancialReport]:
        for report in self.reports:
            if report.id == self.active_id:
                return report
        return None


Observer = Callable[[LibrarySnapshot], None]


class ReportLibrary:
    """Single owning aggregate for reports, active selection and theme."""

    def __init__(self, store: KeyValueStore, *, key: str = STORAGE_KEY) -> None:
        self._store = store
        self._key = key
        self._reports: Tuple[FinancialReport, ...] = ()
        self._active_id: Optional[str] = None
        self._dark_mode = False
        self._extra_state: Dict[str, Any] = {}
        self._observers: List[Observer] = []
        self._pending: Deque[LibrarySnapshot] = deque()
        self._delivering = False
        self._dirty = False
        self._flush_handle: Optional[asyncio.Handle] = None
        self.load_warnings: List[str] = []
        self._load()

    # -----
    # Reads
    # -----
    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def dark_mode(self) -> bool:
        return self._dark_mode

    @property
    def active(self) -> Optional[FinancialReport]:
        return self.get(self._active_id) if self._active_id else None

    def get(self, report_id: Optional[str]) -> Optional[FinancialReport]:
        for report in self._reports:
            if report.id == report_id:
                return report
        return None

    def require(self, report_id: Optional[str]) -> FinancialReport:
        report = self.get(report_id)
        if report is None:
            raise UnknownReport(report_id)
        return report

    def list(self) -> List[FinancialReport]:
        return list(self._reports)

    def snapshot(self) -> LibrarySnapshot:
        return LibrarySnapshot(reports=self._reports, active_id=self._active_id, dark_mode=self._dark_mode)

    def __len__(self) -> int:
        return len(self._reports)

    def __contains__(self, report_id: object) -> bool:
        return any(report.id == report_id for report in self._reports)

    # ---------
    # Mutations
    # ---------
    def add(self, report: FinancialReport) -> None:
        """Insert at the head, make it active and write through."""
        if not report.id:
            logger.error("Rejected report without id (%s)", report.label)
            raise MissingIdentity()
        if report.id in self:
            logger.error("Rejected duplicate report id %s", report.id)
            raise DuplicateIdentity(report.id)
        self._commit((report,) + self._reports, report.id, write_through=True)
        logger.info("Added report %s (%s)", report.id, report.label)

    def update(self, report: FinancialReport) -> None:
        """Replace the report with the same id in place; only enrichments may change."""
        index = self._index_of(report.id)
        if index is None:
            logger.error("Update for unknown report %s", report.id)
            raise UnknownReport(report.id)
        current = self._reports[index]
        for name in changed_fields(current, report):
            if name not in MUTABLE_FIELDS:
                logger.error("Rejected mutation of %s on report %s", name, report.id)
                raise ImmutableFieldMutation(report.id, name)
        for name in ENRICHMENT_FIELDS:
            if getattr(current, name) is not None and getattr(report, name) is None:
                logger.error("Rejected removal of enrichment %s on report %s", name, report.id)
                raise ImmutableFieldMutation(report.id, name)
        reports = self._reports[:index] + (report,) + self._reports[index + 1 :]
        self._commit(reports, self._active_id)

    def delete(self, report_id: str) -> None:
        """Remove a report; reassign the active id to the new head when needed."""
        index = self._index_of(report_id)
        if index is None:
            logger.error("Delete for unknown report %s", report_id)
            raise UnknownReport(report_id)
        remaining = self._reports[:index] + self._reports[index + 1 :]
        active_id = self._active_id
        if active_id == report_id:
            active_id = remaining[0].id if remaining else None
        self._commit(remaining, active_id, write_through=True)
        logger.info("Deleted report %s", report_id)

    def set_active(self, report_id: Optional[str]) -> None:
        if report_id is not None and report_id not in self:
            logger.error("Cannot activate unknown report %s", report_id)
            raise UnknownReport(report_id)
        self._commit(self._reports, report_id)

    def set_dark_mode(self, enabled: bool) -> None:
        self._dark_mode = bool(enabled)
        self._commit(self._reports, self._active_id)

    # ---------
    # Observers
    # ---------
    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register an observer; returns a callable that unsubscribes it."""
        self._observers.append(observer)
        return lambda: self.unsubscribe(observer)

    def unsubscribe(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    # -----------
    # Persistence
    # -----------
    def flush(self) -> None:
        """Write pending state now, cancelling any scheduled write."""
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
        if not self._dirty:
            return
        self._store.set(self._key, json.dumps(self._persisted_state(), ensure_ascii=False))
        self._dirty = False
        logger.debug("Library persisted (%d reports)", len(self._reports))

    def close(self) -> None:
        self.flush()

    def _persisted_state(self) -> Dict[str, Any]:
        state = dict(self._extra_state)
        state["reports"] = [report.to_dict() for report in self._reports]
        state["activeReportId"] = self._active_id
        state["isDarkMode"] = self._dark_mode
        return state

    def _load(self) -> None:
        raw = self._store.get(self._key)
        if raw is None:
            return
        try:
            state = json.loads(raw)
        except ValueError as exc:
            self._corrupt(f"Persisted library is not valid JSON ({exc}); starting empty.")
            return
        if not isinstance(state, dict) or not isinstance(state.get("reports", []), list):
            self._corrupt("Persisted library has an unexpected shape; starting empty.")
            return

        reports: List[FinancialReport] = []
        seen = set()
        for position, entry in enumerate(state.get("reports") or []):
            try:
                report = FinancialReport.from_dict(entry)
            except (KeyError, TypeError, ValueError) as exc:
                self._corrupt(f"Skipped unreadable report at position {position}: {exc!r}")
                continue
            if report.id in seen:
                self._corrupt(f"Skipped duplicate report id {report.id} at position {position}")
                continue
            seen.add(report.id)
            reports.append(report)

        active_id = state.get("activeReportId")
        if active_id is not None and active_id not in seen:
            logger.warning("Persisted active report %s is not in the library; clearing selection", active_id)
            active_id = None

        self._reports = tuple(reports)
        self._active_id = active_id
        self._dark_mode = bool(state.get("isDarkMode", False))
        self._extra_state = {
            k: v for k, v in state.items() if k not in ("reports", "activeReportId", "isDarkMode")
        }
        logger.debug("Loaded %d reports from key %s", len(self._reports), self._key)

    def _corrupt(self, message: str) -> None:
        logger.warning(message)
        self.load_warnings.append(message)
        warnings.warn(message, PersistenceCorrupt, stacklevel=3)

    # --------
    # Internal
    # --------
    def _index_of(self, report_id: Optional[str]) -> Optional[int]:
        for index, report in enumerate(self._reports):
            if report.id == report_id:
                return index
        return None

    def _commit(
        self,
        reports: Tuple[FinancialReport, ...],
        active_id: Optional[str],
        *,
        write_through: bool = False,
    ) -> None:
        self._reports = reports
        self._active_id = active_id
        self._dirty = True
        if write_through:
            self.flush()
        else:
            self._schedule_flush()
        self._notify(self.snapshot())

    def _schedule_flush(self) -> None:
        if self._flush_handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.flush()
            return
        self._flush_handle = loop.call_soon(self._run_scheduled_flush)

    def _run_scheduled_flush(self) -> None:
        self._flush_handle = None
        self.flush()

    def _notify(self, snapshot: LibrarySnapshot) -> None:
        # Transitions issued by observers are queued so every observer sees
        # snapshots in issue order.
        self._pending.append(snapshot)
        if self._delivering:
            return
        self._delivering = True
        failures: List[Exception] = []
        try:
            while self._pending:
                current = self._pending.popleft()
                for observer in list(self._observers):
                    try:
                        observer(current)
                    except Exception as exc:  # pylint: disable=broad-except
                        logger.error("Library observer %r failed: %s", observer, exc)
                        failures.append(exc)
        finally:
            self._pending.clear()
            self._delivering = False
        # Every committed snapshot reaches every observer before the first failure surfaces.
        if failures:
            raise failures[0]
