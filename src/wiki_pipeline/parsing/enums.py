from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Iterable, Mapping, TypeVar

from .types import ErrorKind, FailureReason, PipelineError

V = TypeVar("V")


@dataclass(frozen=True)
class EnumTable(Generic[V]):
    """A named, exact-match table from source labels to canonical values."""
    name: str
    entries: Mapping[str, V]


@dataclass(frozen=True, slots=True)
class MappingFailure:
    """One label of a list that could not be mapped."""
    index: int
    label: Any
    detail: str


def map_enum(label: Any, table: EnumTable[V]) -> V:
    """
    Translate a source label into its canonical value.

    Only surrounding whitespace is trimmed, there is no case folding or fuzzy
    matching: an unmodeled label raises a `mapping` `PipelineError` carrying it.
    """
    if not isinstance(label, str):
        raise PipelineError(
            ErrorKind.mapping,
            f"{table.name}: expected a text label, got {type(label).__name__}",
            reason=FailureReason.unknown_label,
            label=repr(label),
        )
    key = label.strip()
    try:
        return table.entries[key]
    except KeyError:
        raise PipelineError(
            ErrorKind.mapping,
            f"{table.name}: unknown label {key!r}",
            reason=FailureReason.unknown_label,
            label=key,
        ) from None


def map_enum_many(labels: Iterable[Any], table: EnumTable[V]) -> tuple[list[V], list[MappingFailure]]:
    """
    Map every label, collecting failures instead of stopping at the first one.
    Returns the mapped subset (in input order) and the per-index failures.
    """
    mapped: list[V] = []
    failures: list[MappingFailure] = []
    for i, label in enumerate(labels):
        try:
            mapped.append(map_enum(label, table))
        except PipelineError as e:
            failures.append(MappingFailure(index=i, label=label, detail=e.detail))
    return mapped, failures
