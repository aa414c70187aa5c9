from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from .types import DisplayNames, NameSource

logger = logging.getLogger(__name__)


# returned when neither the static table nor the record can name an entity
UNKNOWN_PRIMARY_NAME = "不明"
UNKNOWN_SECONDARY_NAME = "Unknown"
UNKNOWN_NAMES = DisplayNames(UNKNOWN_PRIMARY_NAME, UNKNOWN_SECONDARY_NAME)


class LoadState(str, Enum):
    not_loaded = "not_loaded"
    loaded = "loaded"
    failed = "failed"


class TableProblem(str, Enum):
    """Why the name table cannot be used."""
    missing = "missing"
    unreadable = "unreadable"
    empty = "empty"
    malformed = "malformed"


class NameTableError(Exception):
    """The name table could not be loaded. Carries the `TableProblem`."""

    def __init__(self, problem: TableProblem, detail: str) -> None:
        super().__init__(detail)
        self.problem = problem
        self.detail = detail


@dataclass(frozen=True, slots=True)
class Availability:
    """Result of `NameResolver.check_availability`."""
    available: bool
    problem: TableProblem | None = None
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class DegradationReport:
    """Operator-facing explanation of why names are degraded. Never alters control flow."""
    item_id: str
    reason: str
    suggestion: str
    mode: str = "degraded"


@dataclass(frozen=True, slots=True)
class NameResolution:
    names: DisplayNames
    source: NameSource
    diagnostic: DegradationReport | None = None


def normalize_id(item_id: str) -> str:
    return item_id.strip().lower()


def _validate_table(doc: Any) -> dict[str, DisplayNames]:
    """
    `{"<id>": {"ja": "...", "en": "..."}}` into normalized `DisplayNames`.
    Raises `NameTableError(malformed)` on the first bad entry.
    """
    if not isinstance(doc, Mapping):
        raise NameTableError(TableProblem.malformed, f"expected a JSON object, got {type(doc).__name__}")

    out: dict[str, DisplayNames] = {}
    for raw_id, entry in doc.items():
        if not isinstance(entry, Mapping):
            raise NameTableError(TableProblem.malformed, f"{raw_id!r}: entry must be an object")
        ja, en = entry.get("ja"), entry.get("en")
        if not isinstance(ja, str) or not ja.strip():
            raise NameTableError(TableProblem.malformed, f"{raw_id!r}: 'ja' must be a non-empty string")
        if not isinstance(en, str) or not en.strip():
            raise NameTableError(TableProblem.malformed, f"{raw_id!r}: 'en' must be a non-empty string")
        extra = sorted(set(entry) - {"ja", "en"})
        if extra:
            logger.warning("name table entry %r has unexpected keys %s", raw_id, extra)
        key = normalize_id(str(raw_id))
        if not key:
            raise NameTableError(TableProblem.malformed, "empty id in name table")
        out[key] = DisplayNames(ja.strip(), en.strip())
    return out


class NameResolver:
    """
    Resolve an entity id to its display names.

    Three paths, each tried only when the previous one fails:
    1. static lookup in the name table file,
    2. the record's own name fields,
    3. a fixed "unknown" placeholder plus a `DegradationReport`.

    The table is loaded lazily through `ensure_loaded()` and only reloaded
    by an explicit `reload()` (or `attempt_error_recovery`).
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._state = LoadState.not_loaded
        self._failure: NameTableError | None = None
        self._table: dict[str, DisplayNames] = {}

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def failure(self) -> NameTableError | None:
        return self._failure

    ## -- loading

    def _read_table(self) -> dict[str, DisplayNames]:
        if not self.path.exists():
            raise NameTableError(TableProblem.missing, f"name table not found: {self.path}")
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise NameTableError(TableProblem.unreadable, f"cannot read {self.path}: {e}") from e
        if not text.strip():
            raise NameTableError(TableProblem.empty, f"name table is empty: {self.path}")
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise NameTableError(TableProblem.malformed, f"invalid JSON in {self.path}: {e}") from e
        return _validate_table(doc)

    def _load_locked(self) -> LoadState:
        try:
            table = self._read_table()
        except NameTableError as e:
            self._table = {}
            self._failure = e
            self._state = LoadState.failed
            logger.error("name table unavailable (%s): %s", e.problem.value, e.detail)
            return self._state
        self._table = table
        self._failure = None
        self._state = LoadState.loaded
        logger.info("loaded %d name mappings from %s", len(table), self.path)
        return self._state

    def ensure_loaded(self) -> LoadState:
        """Load the table on first use. A failed load stays failed until `reload()`."""
        with self._lock:
            if self._state is LoadState.not_loaded:
                return self._load_locked()
            return self._state

    def reload(self) -> LoadState:
        """Re-read the table from disk, replacing whatever was loaded."""
        with self._lock:
            return self._load_locked()

    ## -- path 1: static lookup

    def lookup(self, item_id: str) -> DisplayNames | None:
        """
        Static lookup by normalized id.
        Returns `None` on a miss, raises `NameTableError` if the table failed to load.
        """
        self.ensure_loaded()
        failure = self._failure
        if failure is not None:
            raise failure
        return self._table.get(normalize_id(item_id))

    def has_mapping(self, item_id: str) -> bool:
        try:
            return self.lookup(item_id) is not None
        except NameTableError:
            return False

    def mapping_stats(self) -> dict[str, Any]:
        """Count and ids of the loaded table (empty if it failed to load)."""
        self.ensure_loaded()
        return {"state": self._state.value, "total": len(self._table), "ids": sorted(self._table)}

    ## -- path 2: the record's own names

    @staticmethod
    def fallback_from_record(primary: str | None, secondary: str | None) -> DisplayNames:
        """
        Display names taken from the record itself.

        A blank side is filled from the other one.
        Raises `ValueError` when both are blank: callers must pass at least one name.
        """
        p = (primary or "").strip()
        s = (secondary or "").strip()
        if not p and not s:
            raise ValueError("fallback names are both empty")
        return DisplayNames(p or s, s or p)

    ## -- path 3: diagnostics

    def check_availability(self) -> Availability:
        """Re-inspect the table file without touching the loaded state."""
        try:
            self._read_table()
        except NameTableError as e:
            logger.warning("name table check failed (%s): %s", e.problem.value, e.detail)
            return Availability(available=False, problem=e.problem, detail=e.detail)
        if not os.access(self.path, os.R_OK):
            return Availability(available=False, problem=TableProblem.unreadable, detail=f"no read permission: {self.path}")
        return Availability(available=True)

    def graceful_degradation(self, item_id: str) -> DegradationReport:
        """Name the cause of degraded names and what an operator can do about it."""
        availability = self.check_availability()
        if availability.available:
            reason = f"no name mapping for {item_id!r} and the record carries no name"
            suggestion = f"add {normalize_id(item_id)!r} to {self.path}"
        elif availability.problem is TableProblem.missing:
            reason = "name table file does not exist"
            suggestion = f"create {self.path}"
        elif availability.problem is TableProblem.unreadable:
            reason = "name table file is not readable"
            suggestion = f"check the permissions of {self.path}"
        elif availability.problem is TableProblem.empty:
            reason = "name table file is empty"
            suggestion = f"add mappings to {self.path}"
        else:
            reason = availability.detail or "name table file is malformed"
            suggestion = f"fix the JSON structure of {self.path}"

        report = DegradationReport(item_id=item_id, reason=reason, suggestion=suggestion)
        logger.warning("degraded names for %s: %s (%s)", item_id, reason, suggestion)
        return report

    def attempt_error_recovery(self, error: Exception, item_id: str) -> DisplayNames | None:
        """
        One recovery attempt after a failed static lookup.

        If the table file is usable now (e.g. a concurrent write has finished),
        reload it and retry the lookup once.
        """
        logger.info("attempting name table recovery for %s after: %s", item_id, error)
        if not isinstance(error, NameTableError):
            return None
        if not self.check_availability().available:
            return None
        if self.reload() is not LoadState.loaded:
            return None
        hit = self._table.get(normalize_id(item_id))
        if hit is not None:
            logger.info("name table recovered, resolved %s", item_id)
        return hit

    ## -- the three paths together

    def resolve(
        self,
        item_id: str,
        fallback_primary: str | None = None,
        fallback_secondary: str | None = None,
    ) -> NameResolution:
        """Resolve display names. Never raises."""
        try:
            hit = self.lookup(item_id)
        except NameTableError as e:
            hit = self.attempt_error_recovery(e, item_id)
        if hit is not None:
            return NameResolution(names=hit, source=NameSource.static)

        try:
            names = self.fallback_from_record(fallback_primary, fallback_secondary)
        except ValueError:
            return NameResolution(
                names=UNKNOWN_NAMES,
                source=NameSource.degraded,
                diagnostic=self.graceful_degradation(item_id),
            )
        logger.debug("no static name for %s, using record names", item_id)
        return NameResolution(names=names, source=NameSource.record)
