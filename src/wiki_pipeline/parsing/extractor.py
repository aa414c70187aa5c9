from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from .primitives import clean_markup
from .types import ErrorKind, FailureReason, PipelineError

logger = logging.getLogger(__name__)


class ValueType(str, Enum):
    """Basic type a located value must have before it is accepted."""
    text = "text"
    array = "array"
    number = "number"
    mapping = "mapping"


class _NotFound:
    """Sentinel returned by `extract` when no path produced a usable value."""
    _instance: _NotFound | None = None

    def __new__(cls) -> _NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


@dataclass(frozen=True, slots=True)
class Extracted:
    """A located value and the index of the path that produced it."""
    value: Any
    path_index: int

    @property
    def used_fallback(self) -> bool:
        return self.path_index > 0


## -- Page lookup

def page_of(record: Any) -> Mapping[str, Any] | None:
    """
    The page object of a raw wiki record.

    Accepts the full API envelope (`{"data": {"page": {...}}}`) or a bare page,
    since some dumps store pages without the envelope.
    """
    if not isinstance(record, Mapping):
        return None
    data = record.get("data")
    if isinstance(data, Mapping) and isinstance(data.get("page"), Mapping):
        return data["page"]
    if "modules" in record or "filter_values" in record:
        return record
    return None


def _load_component_data(component: Mapping[str, Any], component_id: str) -> Any:
    """Parse a component's embedded serialized document."""
    data = component.get("data")
    if isinstance(data, (Mapping, list)):
        return data
    if not isinstance(data, str) or not data.strip():
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        raise PipelineError(
            ErrorKind.extraction,
            f"component {component_id!r}: embedded document is not valid JSON",
            reason=FailureReason.bad_document,
        ) from e


def find_component_document(
    page: Mapping[str, Any],
    component_id: str,
    module_hint: Sequence[str] = (),
) -> Any:
    """
    The parsed document of the first component with `component_id`.

    With a `module_hint`, only modules whose name contains one of the hints are searched.
    Returns `None` when the component does not exist, raises `PipelineError` if its document is broken.
    """
    modules = page.get("modules")
    if not isinstance(modules, list):
        return None
    for module in modules:
        if not isinstance(module, Mapping):
            continue
        if module_hint:
            name = str(module.get("name") or "")
            if not any(h in name for h in module_hint):
                continue
        components = module.get("components")
        if not isinstance(components, list):
            continue
        for component in components:
            if isinstance(component, Mapping) and component.get("component_id") == component_id:
                return _load_component_data(component, component_id)
    return None


## -- Locations: one step of an extraction path

class Location(Protocol):
    def resolve(self, page: Mapping[str, Any]) -> Any: ...
    def describe(self) -> str: ...


@dataclass(frozen=True, slots=True)
class PageField:
    """A top level field of the page, e.g. `name`."""
    name: str

    def resolve(self, page: Mapping[str, Any]) -> Any:
        return page.get(self.name)

    def describe(self) -> str:
        return f"page.{self.name}"


@dataclass(frozen=True, slots=True)
class FilterValues:
    """The label list of one `filter_values` entry."""
    key: str

    def resolve(self, page: Mapping[str, Any]) -> Any:
        filters = page.get("filter_values")
        if not isinstance(filters, Mapping):
            return None
        entry = filters.get(self.key)
        if not isinstance(entry, Mapping):
            return None
        return entry.get("values")

    def describe(self) -> str:
        return f"filter_values.{self.key}"


@dataclass(frozen=True, slots=True)
class ComponentField:
    """A field of a component's embedded document (the whole document when `field` is `None`)."""
    component_id: str
    field: str | None = None
    module_hint: tuple[str, ...] = ()

    def resolve(self, page: Mapping[str, Any]) -> Any:
        doc = find_component_document(page, self.component_id, self.module_hint)
        if self.field is None:
            return doc
        if not isinstance(doc, Mapping):
            return None
        return doc.get(self.field)

    def describe(self) -> str:
        return f"component[{self.component_id}].{self.field or '*'}"


@dataclass(frozen=True, slots=True)
class ComponentListItem:
    """
    One keyed item of a component document's list.

    `baseInfo` stores `{"list": [{"key": "実装バージョン", "value": [...]}, ...]}`.
    """
    component_id: str
    key: str
    value_field: str = "value"
    key_field: str = "key"
    list_field: str = "list"

    def resolve(self, page: Mapping[str, Any]) -> Any:
        doc = find_component_document(page, self.component_id)
        if not isinstance(doc, Mapping):
            return None
        items = doc.get(self.list_field)
        if not isinstance(items, list):
            return None
        for item in items:
            if isinstance(item, Mapping) and item.get(self.key_field) == self.key:
                return item.get(self.value_field)
        return None

    def describe(self) -> str:
        return f"component[{self.component_id}].{self.list_field}[{self.key}].{self.value_field}"


@dataclass(frozen=True, slots=True)
class Derived:
    """Post-process another location's value, e.g. infer a category from free text."""
    source: Location
    fn: Callable[[Any], Any]
    label: str = "derived"

    def resolve(self, page: Mapping[str, Any]) -> Any:
        v = self.source.resolve(page)
        if v is None:
            return None
        return self.fn(v)

    def describe(self) -> str:
        return f"{self.label}({self.source.describe()})"


## -- Type validation

def _clean(v: Any) -> Any:
    if isinstance(v, str):
        return clean_markup(v)
    return v


def _accept(raw: Any, expect: ValueType) -> Any:
    """Normalize then type-check a located value. Returns `NOT_FOUND` on rejection."""
    if raw is None:
        return NOT_FOUND

    if expect is ValueType.text:
        if isinstance(raw, str):
            s = clean_markup(raw)
            return s if s else NOT_FOUND
        return NOT_FOUND

    if expect is ValueType.array:
        if not isinstance(raw, (list, tuple)):
            return NOT_FOUND
        items = [_clean(x) for x in raw]
        items = [x for x in items if x is not None and x != ""]
        # an empty list is "nothing here", not a valid empty value
        return tuple(items) if items else NOT_FOUND

    if expect is ValueType.number:
        if isinstance(raw, bool):
            return NOT_FOUND
        if isinstance(raw, (int, float)):
            return raw
        if isinstance(raw, str):
            try:
                return float(clean_markup(raw))
            except ValueError:
                return NOT_FOUND
        return NOT_FOUND

    if expect is ValueType.mapping:
        if isinstance(raw, Mapping) and raw:
            return raw
        return NOT_FOUND

    raise ValueError(f"Unknown value type: {expect}")


def extract(record: Any, paths: Sequence[Location], *, expect: ValueType = ValueType.text) -> Extracted | _NotFound:
    """
    Walk `paths` in priority order and return the first usable value.

    A path whose embedded document fails to parse, or whose data has an
    unexpected shape, is skipped, not fatal.
    Returns `NOT_FOUND` when every path fails; whether that matters is the caller's call.
    Pure: the same record and paths always give the same value and path index.
    """
    if not paths:
        raise ValueError("at least one extraction path is required")

    page = page_of(record)
    if page is None:
        return NOT_FOUND

    for i, loc in enumerate(paths):
        try:
            raw = loc.resolve(page)
        except PipelineError as e:
            logger.debug("extraction path %d (%s) skipped: %s", i, loc.describe(), e)
            continue
        except (TypeError, AttributeError, ValueError) as e:
            # upstream shape drift, e.g. a number where a list was expected
            logger.debug("extraction path %d (%s) skipped, unexpected shape: %r", i, loc.describe(), e)
            continue
        value = _accept(raw, expect)
        if value is NOT_FOUND:
            continue
        if i > 0:
            logger.debug("used fallback path %d (%s)", i, loc.describe())
        return Extracted(value=value, path_index=i)

    return NOT_FOUND
