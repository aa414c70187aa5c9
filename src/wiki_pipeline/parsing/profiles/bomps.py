from __future__ import annotations

from typing import Any, Mapping

from wiki_pipeline.parsing.extractor import ComponentField, ComponentListItem, Derived, FilterValues, ValueType
from wiki_pipeline.parsing.primitives import clean_markup, parse_version_number
from wiki_pipeline.parsing.profiles.agents import VERSION_KEY, check_ascension_levels, parse_ascension
from wiki_pipeline.parsing.schema import FieldSpec, RecordProfile
from wiki_pipeline.parsing.tables import FACTION_TABLE, STATS_TABLE, Stats


DEFAULT_BOMP_STATS = Stats.physical
DEFAULT_BOMP_FACTIONS: tuple[int, ...] = ()
DEFAULT_EXTRA_ABILITY = ""
DEFAULT_RELEASE_VERSION = 0.0


def ability_text(talent_doc: Any) -> str | None:
    """First description in a bomp's talent document: a child's `desc`, else the item's own."""
    if not isinstance(talent_doc, Mapping):
        return None
    items = talent_doc.get("list")
    if not isinstance(items, list):
        return None
    for item in items:
        if not isinstance(item, Mapping):
            continue
        children = item.get("children")
        for child in children if isinstance(children, list) else ():
            if isinstance(child, Mapping) and isinstance(child.get("desc"), str):
                return clean_markup(child["desc"])
        if isinstance(item.get("desc"), str):
            return clean_markup(item["desc"])
    return None


def build_bomp_profile(
    *,
    default_stats: Stats = DEFAULT_BOMP_STATS,
    default_release_version: float = DEFAULT_RELEASE_VERSION,
) -> RecordProfile:
    """
    The bomp profile.

    Bomps share the agents' ascension table, so the attribute block and its
    seven-level check are the same. The attribute falls back to the baseInfo
    `属性` item, then to physical.
    """
    return RecordProfile(
        kind="bomps",
        fields=[
            FieldSpec(
                out_name="stats",
                paths=[
                    FilterValues("agent_stats"),
                    ComponentListItem("baseInfo", "属性", value_field="value"),
                ],
                expect=ValueType.array,
                table=STATS_TABLE,
                essential=False,
                default=default_stats,
            ),
            FieldSpec(
                out_name="faction",
                paths=[FilterValues("agent_faction")],
                expect=ValueType.array,
                table=FACTION_TABLE,
                many=True,
                essential=False,
                default=DEFAULT_BOMP_FACTIONS,
            ),
            FieldSpec(
                out_name="attributes",
                paths=[ComponentField("ascension", "list")],
                expect=ValueType.array,
                parser=parse_ascension,
            ),
            FieldSpec(
                out_name="extra_ability",
                paths=[
                    Derived(ComponentField("talent"), ability_text, label="ability_from_talent"),
                    Derived(ComponentField("skill"), ability_text, label="ability_from_skill"),
                ],
                essential=False,
                default=DEFAULT_EXTRA_ABILITY,
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
        ],
        validators=[check_ascension_levels],
    )


BOMP_PROFILE = build_bomp_profile()
