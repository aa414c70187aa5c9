from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from wiki_pipeline.parsing.types import FailureRecord, NameSource, to_plain


class FieldOutcome(str, Enum):
    """How one field of one record was obtained."""
    success = "success"         # primary path
    fallback = "fallback"       # a later path
    defaulted = "defaulted"     # optional field, default applied
    error = "error"             # essential field, record aborted


@dataclass(frozen=True)
class StatisticsSnapshot:
    """Immutable copy of a collector's counters."""
    total: int = 0
    successful: int = 0
    failed: int = 0
    defaulted: int = 0
    fallbacks: int = 0
    retried: int = 0
    recovered: int = 0
    names_degraded: int = 0
    failure_reasons: Mapping[str, int] = field(default_factory=dict)
    default_reasons: Mapping[str, int] = field(default_factory=dict)
    field_outcomes: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    value_counts: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    name_sources: Mapping[str, int] = field(default_factory=dict)

    def to_mapping(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "defaulted": self.defaulted,
            "fallbacks": self.fallbacks,
            "retried": self.retried,
            "recovered": self.recovered,
            "names_degraded": self.names_degraded,
            "failure_reasons": dict(self.failure_reasons),
            "default_reasons": dict(self.default_reasons),
            "field_outcomes": {k: dict(v) for k, v in self.field_outcomes.items()},
            "value_counts": {k: dict(v) for k, v in self.value_counts.items()},
            "name_sources": dict(self.name_sources),
        }


class StatisticsCollector:
    """
    Append-only counters for one batch run.

    Safe to share between worker threads. Only read through `snapshot()`;
    nothing in the pipeline branches on these numbers.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_locked()

    def _reset_locked(self) -> None:
        self._counts: Counter[str] = Counter()
        self._failure_reasons: Counter[str] = Counter()
        self._default_reasons: Counter[str] = Counter()
        self._field_outcomes: dict[str, Counter[str]] = {}
        self._value_counts: dict[str, Counter[str]] = {}
        self._name_sources: Counter[str] = Counter()

    @classmethod
    def from_snapshot(cls, snap: StatisticsSnapshot) -> StatisticsCollector:
        """A collector that keeps counting from `snap` (used by retry passes)."""
        c = cls()
        for key in ("total", "successful", "failed", "defaulted", "fallbacks", "retried", "recovered", "names_degraded"):
            c._counts[key] = getattr(snap, key)
        c._failure_reasons.update(snap.failure_reasons)
        c._default_reasons.update(snap.default_reasons)
        for name, outcomes in snap.field_outcomes.items():
            c._field_outcomes[name] = Counter(outcomes)
        for name, values in snap.value_counts.items():
            c._value_counts[name] = Counter(values)
        c._name_sources.update(snap.name_sources)
        return c

    ## -- item level

    def record_item(self) -> None:
        with self._lock:
            self._counts["total"] += 1

    def record_success(self) -> None:
        with self._lock:
            self._counts["successful"] += 1

    def record_failure(self, failure: FailureRecord) -> None:
        with self._lock:
            self._counts["failed"] += 1
            self._failure_reasons[f"{failure.stage.value}:{failure.reason.value}"] += 1

    def record_retry(self) -> None:
        with self._lock:
            self._counts["retried"] += 1

    def record_recovered(self) -> None:
        """An item that failed earlier and succeeded in a retry pass."""
        with self._lock:
            self._counts["recovered"] += 1
            self._counts["successful"] += 1

    ## -- field level

    def record_field(self, name: str, outcome: FieldOutcome) -> None:
        with self._lock:
            self._field_outcomes.setdefault(name, Counter())[outcome.value] += 1
            if outcome is FieldOutcome.fallback:
                self._counts["fallbacks"] += 1

    def record_default(self, name: str, reason: str) -> None:
        with self._lock:
            self._field_outcomes.setdefault(name, Counter())[FieldOutcome.defaulted.value] += 1
            self._counts["defaulted"] += 1
            self._default_reasons[f"{name}:{reason}"] += 1

    def record_value(self, name: str, value: Any) -> None:
        """Frequency of a canonical (or unmodeled) value seen for `name`."""
        with self._lock:
            self._value_counts.setdefault(name, Counter())[str(to_plain(value))] += 1

    def record_name(self, source: NameSource) -> None:
        with self._lock:
            self._name_sources[source.value] += 1
            if source is NameSource.degraded:
                self._counts["names_degraded"] += 1

    ## -- reading

    def snapshot(self) -> StatisticsSnapshot:
        with self._lock:
            return StatisticsSnapshot(
                total=self._counts["total"],
                successful=self._counts["successful"],
                failed=self._counts["failed"],
                defaulted=self._counts["defaulted"],
                fallbacks=self._counts["fallbacks"],
                retried=self._counts["retried"],
                recovered=self._counts["recovered"],
                names_degraded=self._counts["names_degraded"],
                failure_reasons=MappingProxyType(dict(self._failure_reasons)),
                default_reasons=MappingProxyType(dict(self._default_reasons)),
                field_outcomes=MappingProxyType({k: MappingProxyType(dict(v)) for k, v in self._field_outcomes.items()}),
                value_counts=MappingProxyType({k: MappingProxyType(dict(v)) for k, v in self._value_counts.items()}),
                name_sources=MappingProxyType(dict(self._name_sources)),
            )

    def reset(self) -> None:
        with self._lock:
            self._reset_locked()
