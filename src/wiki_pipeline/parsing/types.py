from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping


class ErrorKind(str, Enum):
    """Typed failure classifications. Also used as the `stage` of a `FailureRecord`."""
    fetch = "fetch"
    extraction = "extraction"
    mapping = "mapping"
    validation = "validation"


class FailureReason(str, Enum):
    """Finer grained reason codes carried alongside an `ErrorKind`."""
    not_found = "not_found"                 # no extraction path produced a usable value
    bad_document = "bad_document"           # embedded component document is not valid JSON
    unknown_label = "unknown_label"         # label has no exact entry in an enum table
    invalid_value = "invalid_value"         # value was found but could not be parsed
    structure = "structure"                 # assembled record failed a structural check
    rate_limited = "rate_limited"
    http_error = "http_error"
    timeout = "timeout"
    connection = "connection"
    bad_payload = "bad_payload"             # upstream answered, but not with a usable page
    cancelled = "cancelled"
    unexpected = "unexpected"               # bug or unclassified exception


class PipelineError(Exception):
    """
    The single error type raised inside the pipeline.

    Callers switch on `kind` (and `reason` where finer detail matters),
    never on exception subclasses.

    Not a frozen dataclass: the interpreter assigns `__traceback__` and
    `__context__` on raised exceptions.
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        *,
        reason: FailureReason | None = None,
        label: str | None = None,
        retryable: bool = False,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(detail)
        self.kind = ErrorKind(kind)
        self.detail = detail
        self.reason = reason if reason is not None else _DEFAULT_REASONS[self.kind]
        self.label = label                  # offending source label, for mapping failures
        self.retryable = retryable          # only ever `True` for fetch failures
        self.retry_after = retry_after      # seconds, when upstream told us how long to wait

    @property
    def stage(self) -> ErrorKind:
        return self.kind

    def __str__(self) -> str:
        return f"{self.kind.value}/{self.reason.value}: {self.detail}"


_DEFAULT_REASONS: dict[ErrorKind, FailureReason] = {
    ErrorKind.fetch: FailureReason.http_error,
    ErrorKind.extraction: FailureReason.not_found,
    ErrorKind.mapping: FailureReason.unknown_label,
    ErrorKind.validation: FailureReason.invalid_value,
}


class FieldSource(str, Enum):
    """Where an assembled field's value came from."""
    primary = "primary"         # first declared extraction path
    fallback = "fallback"       # a later extraction path
    default = "default"         # nothing usable found, documented default applied


@dataclass(frozen=True, slots=True)
class FieldProvenance:
    """Per-field provenance flag on a `ProcessedRecord`."""
    source: FieldSource
    path_index: int | None = None       # index of the path that produced the value
    reason: str | None = None           # why the default was used

    def to_mapping(self) -> dict[str, Any]:
        return {"source": self.source.value, "path_index": self.path_index, "reason": self.reason}


class NameSource(str, Enum):
    """Which of the name resolver's three paths produced the display names."""
    static = "static"
    record = "record"
    degraded = "degraded"


@dataclass(frozen=True, slots=True)
class DisplayNames:
    """A (primary-language, secondary-language) display name pair."""
    primary: str
    secondary: str

    def to_mapping(self) -> dict[str, str]:
        return {"ja": self.primary, "en": self.secondary}


@dataclass(frozen=True, slots=True)
class FetchedPayload:
    """
    Raw records fetched for one item.
    `primary` (ja-jp page) feeds every field, `secondary` (en-us page) only the secondary name.
    """
    primary: Mapping[str, Any]
    secondary: Mapping[str, Any] | None = None


def to_plain(v: Any) -> Any:
    """Convert enums, tuples and read-only mappings into JSON-ready values."""
    if isinstance(v, Enum):
        return v.value
    if isinstance(v, Mapping):
        return {str(k): to_plain(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [to_plain(x) for x in v]
    return v


@dataclass(frozen=True, slots=True)
class ProcessedRecord:
    """
    An assembled, validated output record.

    `name` is the resolved display pair, `full_name` is the record's own
    label pair (kept even when a static mapping overrides it).
    Mappings are read-only views; lists are stored as tuples.
    """
    id: str
    kind: str
    name: DisplayNames
    full_name: DisplayNames
    name_source: NameSource
    enums: Mapping[str, Any]
    fields: Mapping[str, Any]
    provenance: Mapping[str, FieldProvenance]

    @property
    def used_fallback(self) -> bool:
        """`True` if any field came from a fallback path or a default."""
        return any(p.source is not FieldSource.primary for p in self.provenance.values())

    def to_mapping(self) -> dict[str, Any]:
        """JSON-ready view, handed to whatever writes records out."""
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name.to_mapping(),
            "full_name": self.full_name.to_mapping(),
            "name_source": self.name_source.value,
            **{k: to_plain(v) for k, v in self.enums.items()},
            **{k: to_plain(v) for k, v in self.fields.items()},
            "provenance": {k: p.to_mapping() for k, p in self.provenance.items()},
        }


@dataclass(frozen=True, slots=True)
class FailureRecord:
    """One per item that did not produce a `ProcessedRecord`."""
    item_id: str
    stage: ErrorKind
    reason: FailureReason
    detail: str
    original_error: str | None = None   # repr of the underlying exception, if any
    attempts: int = 1
    retryable: bool = False

    @classmethod
    def from_error(cls, item_id: str, err: PipelineError, *, attempts: int = 1) -> FailureRecord:
        """Build a failure from a raised `PipelineError`, keeping its cause."""
        cause = err.__cause__
        return cls(
            item_id=item_id,
            stage=err.kind,
            reason=err.reason,
            detail=err.detail,
            original_error=repr(cause) if cause is not None else None,
            attempts=attempts,
            retryable=err.retryable,
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "stage": self.stage.value,
            "reason": self.reason.value,
            "detail": self.detail,
            "original_error": self.original_error,
            "attempts": self.attempts,
            "retryable": self.retryable,
        }
