from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from wiki_pipeline.batch.statistics import FieldOutcome, StatisticsCollector

from .enums import EnumTable, map_enum, map_enum_many
from .extractor import Extracted, Location, PageField, ValueType, extract
from .names import NameResolver
from .types import (
    ErrorKind,
    FailureReason,
    FailureRecord,
    FetchedPayload,
    FieldProvenance,
    FieldSource,
    PipelineError,
    ProcessedRecord,
)

logger = logging.getLogger(__name__)

# Typing:
# Parser turns an extracted value into the output value, raising `PipelineError` when it can't.
# Validator inspects the assembled values and returns a problem description (or `None`).
Parser = Callable[[Any], Any]
Validator = Callable[[Mapping[str, Any]], "str | None"]


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Any given field's configurable expectations."""
    out_name: str                       # output name of this field.
    paths: Sequence[Location]           # where to look, most authoritative first.
    expect: ValueType = ValueType.text  # basic type the located value must have.
    parser: Parser | None = None        # how to turn the located value into the output value.
    table: EnumTable[Any] | None = None # enum table, for canonical enum fields.
    many: bool = False                  # enum field holds a list of values.
    essential: bool = True              # a miss aborts the whole record.
    default: Any = None                 # used when an optional field can't be produced.
    default_reason: str = "not_found"

    def __post_init__(self) -> None:
        if not self.paths:
            raise ValueError(f"{self.out_name}: at least one extraction path is required")

    @property
    def is_enum(self) -> bool:
        return self.table is not None


@dataclass(frozen=True)
class RecordProfile:
    """The fields, checks and name location of one record kind."""
    kind: str
    fields: Sequence[FieldSpec]
    validators: Sequence[Validator] = ()
    name_paths: Sequence[Location] = field(default_factory=lambda: (PageField("name"),))


class _FieldFailed(Exception):
    """Internal: an essential field could not be produced."""

    def __init__(self, err: PipelineError) -> None:
        super().__init__(str(err))
        self.err = err


@dataclass
class RecordAssembler:
    """
    Assemble one record kind from fetched payloads.

    Either:
    - return the assembled record as a `ProcessedRecord`,
    - or return it as a `FailureRecord`.

    Failure order follows the profile's field order; validators run after every field.
    Name resolution always runs and never fails the record.
    """
    profile: RecordProfile
    resolver: NameResolver

    def _map(self, spec: FieldSpec, value: Any, stats: StatisticsCollector) -> Any:
        """Enum mapping for one field. Raises `PipelineError(mapping)` when nothing maps."""
        if spec.table is None:
            raise ValueError(f"{spec.out_name}: not an enum field")
        if not spec.many:
            label = value[0] if isinstance(value, tuple) else value
            mapped = map_enum(label, spec.table)
            stats.record_value(spec.out_name, mapped)
            return mapped

        labels = value if isinstance(value, tuple) else (value,)
        mapped_list, failures = map_enum_many(labels, spec.table)
        for f in failures:
            # unmodeled labels are surfaced in the value counts for out-of-band review
            stats.record_value(f"{spec.out_name}:unmapped", f.label)
        if failures and (spec.essential or not mapped_list):
            first = failures[0]
            raise PipelineError(ErrorKind.mapping, first.detail, reason=FailureReason.unknown_label, label=str(first.label))
        if failures:
            logger.warning("%s: dropped unmapped labels %s", spec.out_name, [f.label for f in failures])
        for m in mapped_list:
            stats.record_value(spec.out_name, m)
        return tuple(mapped_list)

    def _produce(self, spec: FieldSpec, record: Mapping[str, Any], stats: StatisticsCollector) -> tuple[Any, Extracted]:
        """Extract, map and parse one field, raising `PipelineError` on any failure."""
        hit = extract(record, spec.paths, expect=spec.expect)
        if not isinstance(hit, Extracted):
            raise PipelineError(ErrorKind.extraction, f"{spec.out_name}: not found via any of {len(spec.paths)} paths")
        value = hit.value
        if spec.is_enum:
            value = self._map(spec, value, stats)
        if spec.parser is not None:
            value = spec.parser(value)
        return value, hit

    def _field(
        self,
        spec: FieldSpec,
        record: Mapping[str, Any],
        stats: StatisticsCollector,
    ) -> tuple[Any, FieldProvenance]:
        try:
            value, hit = self._produce(spec, record, stats)
        except PipelineError as e:
            if spec.essential:
                stats.record_field(spec.out_name, FieldOutcome.error)
                raise _FieldFailed(e) from e
            reason = spec.default_reason if e.kind is ErrorKind.extraction else f"{e.kind.value}_{e.reason.value}"
            logger.warning("%s: using default %r (%s)", spec.out_name, spec.default, e)
            stats.record_default(spec.out_name, reason)
            return spec.default, FieldProvenance(FieldSource.default, None, reason)

        if hit.used_fallback:
            stats.record_field(spec.out_name, FieldOutcome.fallback)
            return value, FieldProvenance(FieldSource.fallback, hit.path_index)
        stats.record_field(spec.out_name, FieldOutcome.success)
        return value, FieldProvenance(FieldSource.primary, hit.path_index)

    def _record_name(self, record: Mapping[str, Any] | None) -> str | None:
        if record is None:
            return None
        hit = extract(record, self.profile.name_paths, expect=ValueType.text)
        return hit.value if isinstance(hit, Extracted) else None

    def assemble(
        self,
        item_id: str,
        payload: FetchedPayload,
        statistics: StatisticsCollector,
    ) -> ProcessedRecord | FailureRecord:
        """
        Build one record from `payload`.
        Does not raise on bad data: bad data becomes a `FailureRecord`.
        """
        enums: dict[str, Any] = {}
        fields: dict[str, Any] = {}
        provenance: dict[str, FieldProvenance] = {}

        for spec in self.profile.fields:
            try:
                value, prov = self._field(spec, payload.primary, statistics)
            except _FieldFailed as ff:
                logger.info("%s: %s", item_id, ff.err)
                return FailureRecord.from_error(item_id, ff.err)
            (enums if spec.is_enum else fields)[spec.out_name] = value
            provenance[spec.out_name] = prov

        values = {**enums, **fields}
        for check in self.profile.validators:
            problem = check(values)
            if problem:
                err = PipelineError(ErrorKind.validation, problem, reason=FailureReason.structure)
                logger.info("%s: %s", item_id, err)
                return FailureRecord.from_error(item_id, err)

        primary_name = self._record_name(payload.primary)
        secondary_name = self._record_name(payload.secondary)
        resolution = self.resolver.resolve(item_id, primary_name, secondary_name)
        statistics.record_name(resolution.source)
        try:
            full_name = NameResolver.fallback_from_record(primary_name, secondary_name)
        except ValueError:
            full_name = resolution.names

        return ProcessedRecord(
            id=item_id,
            kind=self.profile.kind,
            name=resolution.names,
            full_name=full_name,
            name_source=resolution.source,
            enums=MappingProxyType(enums),
            fields=MappingProxyType(fields),
            provenance=MappingProxyType(provenance),
        )
