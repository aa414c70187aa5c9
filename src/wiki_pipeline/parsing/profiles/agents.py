from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Sequence

from wiki_pipeline.parsing.extractor import ComponentField, ComponentListItem, Derived, FilterValues, ValueType
from wiki_pipeline.parsing.listing import EntryListIndex, ListEntryValues
from wiki_pipeline.parsing.patterns import ASSIST_PATTERNS, first_hit
from wiki_pipeline.parsing.primitives import parse_stat_float, parse_stat_int, parse_stat_percent, parse_version_number
from wiki_pipeline.parsing.schema import FieldSpec, RecordProfile
from wiki_pipeline.parsing.tables import (
    AGENT_RARITY_TABLE,
    ASCENSION_LEVELS,
    ASSIST_TYPE_TABLE,
    ATTACK_TYPE_TABLE,
    FACTION_TABLE,
    SPECIALTY_TABLE,
    STAT_NAMES,
    STATS_TABLE,
    AttackType,
    AssistType,
)
from wiki_pipeline.parsing.types import ErrorKind, PipelineError


# Fallback values for optional fields. Product defaults as far as anyone knows,
# overridable through `build_agent_profile`.
DEFAULT_ATTACK_TYPE: tuple[AttackType, ...] = (AttackType.strike,)
DEFAULT_FACTION_ID = 0
DEFAULT_ASSIST_TYPE: AssistType | None = None
DEFAULT_RELEASE_VERSION = 0.0

VERSION_KEY = "実装バージョン"

_LEVEL_STATS = ("hp", "atk", "def")
_FIXED_PARSERS = {
    "impact": parse_stat_int,
    "critRate": parse_stat_percent,
    "critDmg": parse_stat_percent,
    "anomalyMastery": parse_stat_int,
    "anomalyProficiency": parse_stat_int,
    "penRatio": parse_stat_percent,
    "energy": parse_stat_float,
}


## -- assist type from the talent component

def _list_of(doc: Mapping[str, Any], key: str) -> list[Any]:
    v = doc.get(key)
    return v if isinstance(v, list) else []


def infer_assist_labels(talent_doc: Any) -> list[str] | None:
    """
    Find the assist skill in the `agent_talent` document and return the
    assist label found in its children titles (then its attribute keys).
    """
    if not isinstance(talent_doc, Mapping):
        return None
    for item in _list_of(talent_doc, "list"):
        if not isinstance(item, Mapping):
            continue
        title = str(item.get("title") or "")
        if "支援" not in title and "Support" not in title:
            continue

        texts = [str(c.get("title") or "") for c in _list_of(item, "children") if isinstance(c, Mapping)]
        texts += [str(a.get("key") or "") for a in _list_of(item, "attributes") if isinstance(a, Mapping)]
        for text in texts:
            hit = first_hit(text, ASSIST_PATTERNS)
            if hit is not None:
                return [hit.text]
        return None
    return None


## -- ascension stats

def _after_value(stat: Mapping[str, Any], level: str) -> Any:
    """`values` is `[before, after]` promotion, the post-promotion value is used."""
    values = stat.get("values")
    if not isinstance(values, list) or len(values) < 2:
        raise PipelineError(ErrorKind.validation, f"attributes: level {level} {stat.get('key')!r} has malformed values")
    return values[1]


def parse_ascension(levels: Sequence[Any]) -> Mapping[str, Any]:
    """
    `ascension.list` into the attribute block.

    hp/atk/def are collected per ascension level (levels missing from the
    page are skipped and caught by the validator), fixed stats come from level "1".
    """
    by_level: dict[str, Mapping[str, Any]] = {}
    for entry in levels:
        if isinstance(entry, Mapping) and isinstance(entry.get("combatList"), list):
            by_level.setdefault(str(entry.get("key")), entry)

    per_level: dict[str, list[int]] = {k: [] for k in _LEVEL_STATS}
    for level in ASCENSION_LEVELS:
        entry = by_level.get(level)
        if entry is None:
            continue
        for stat in entry["combatList"]:
            if not isinstance(stat, Mapping):
                continue
            key = STAT_NAMES.get(str(stat.get("key")))
            if key in per_level:
                per_level[key].append(parse_stat_int(_after_value(stat, level), field=key))

    fixed: dict[str, Any] = {k: (0.0 if p is not parse_stat_int else 0) for k, p in _FIXED_PARSERS.items()}
    first = by_level.get(ASCENSION_LEVELS[0])
    if first is not None:
        for stat in first["combatList"]:
            if not isinstance(stat, Mapping):
                continue
            key = STAT_NAMES.get(str(stat.get("key")))
            parser = _FIXED_PARSERS.get(key or "")
            if parser is None:
                continue
            values = stat.get("values")
            if not isinstance(values, list) or len(values) < 2:
                # a fixed stat without a value pair keeps its zero
                continue
            fixed[key] = parser(values[1], field=key)

    return MappingProxyType({**{k: tuple(v) for k, v in per_level.items()}, **fixed})


def check_ascension_levels(values: Mapping[str, Any]) -> str | None:
    """hp/atk/def must have one value per ascension level."""
    attrs = values.get("attributes")
    if not isinstance(attrs, Mapping):
        return "attributes: missing attribute block"
    expected = len(ASCENSION_LEVELS)
    for key in _LEVEL_STATS:
        got = len(attrs.get(key) or ())
        if got != expected:
            return f"attributes: {key} has {got} levels, expected {expected}"
    return None


## -- profile

def build_agent_profile(
    *,
    default_attack_type: tuple[AttackType, ...] = DEFAULT_ATTACK_TYPE,
    default_faction_id: int = DEFAULT_FACTION_ID,
    default_assist_type: AssistType | None = DEFAULT_ASSIST_TYPE,
    default_release_version: float = DEFAULT_RELEASE_VERSION,
    list_index: EntryListIndex | None = None,
) -> RecordProfile:
    """
    The agent (playable character) profile, with overridable defaults.

    Attack type falls back to the saved list document (`list_index`, by
    default the file named by `WIKI_LIST_DOCUMENT`) when the entry page has none.
    """
    if list_index is None:
        list_index = EntryListIndex()
    return RecordProfile(
        kind="agents",
        fields=[
            FieldSpec(
                out_name="specialty",
                paths=[FilterValues("agent_specialties")],
                expect=ValueType.array,
                table=SPECIALTY_TABLE,
            ),
            FieldSpec(
                out_name="stats",
                paths=[FilterValues("agent_stats")],
                expect=ValueType.array,
                table=STATS_TABLE,
            ),
            FieldSpec(
                out_name="rarity",
                paths=[FilterValues("agent_rarity")],
                expect=ValueType.array,
                table=AGENT_RARITY_TABLE,
            ),
            FieldSpec(
                out_name="attack_type",
                paths=[
                    FilterValues("agent_attack_type"),
                    ListEntryValues(list_index, "agent_attack_type"),
                ],
                expect=ValueType.array,
                table=ATTACK_TYPE_TABLE,
                many=True,
                essential=False,
                default=default_attack_type,
            ),
            FieldSpec(
                out_name="faction",
                paths=[FilterValues("agent_faction")],
                expect=ValueType.array,
                table=FACTION_TABLE,
                essential=False,
                default=default_faction_id,
            ),
            FieldSpec(
                out_name="assist_type",
                paths=[
                    FilterValues("agent_assist_type"),
                    Derived(
                        ComponentField("agent_talent", module_hint=("スキル", "Skills")),
                        infer_assist_labels,
                        label="assist_from_talent",
                    ),
                ],
                expect=ValueType.array,
                table=ASSIST_TYPE_TABLE,
                essential=False,
                default=default_assist_type,
            ),
            FieldSpec(
                out_name="release_version",
                paths=[
                    ComponentListItem("baseInfo", VERSION_KEY, value_field="value"),
                    ComponentListItem("baseInfo", VERSION_KEY, value_field="values"),
                ],
                expect=ValueType.array,
                parser=parse_version_number,
                essential=False,
                default=default_release_version,
            ),
            FieldSpec(
                out_name="attributes",
                paths=[ComponentField("ascension", "list")],
                expect=ValueType.array,
                parser=parse_ascension,
            ),
        ],
        validators=[check_ascension_levels],
    )


AGENT_PROFILE = build_agent_profile()
