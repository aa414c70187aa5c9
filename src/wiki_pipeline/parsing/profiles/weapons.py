from __future__ import annotations

from typing import Any

from wiki_pipeline.parsing.extractor import ComponentField, ComponentListItem, Derived, FilterValues, ValueType
from wiki_pipeline.parsing.patterns import ATTRIBUTE_PATTERNS, find_all
from wiki_pipeline.parsing.primitives import clean_markup, parse_version_number
from wiki_pipeline.parsing.schema import FieldSpec, RecordProfile
from wiki_pipeline.parsing.tables import SPECIALTY_TABLE, WEAPON_RARITY_TABLE, Specialty, Stats


DEFAULT_WEAPON_SPECIALTY: Specialty | None = None
DEFAULT_WEAPON_STATS: tuple[Stats, ...] = ()
DEFAULT_SKILL_TEXT = ""
DEFAULT_RELEASE_VERSION = 0.0


def infer_attributes(skill_desc: Any) -> list[str] | None:
    """Damage attributes mentioned by a w-engine's skill description, in table order."""
    if not isinstance(skill_desc, str):
        return None
    return [s.value for s in find_all(clean_markup(skill_desc), ATTRIBUTE_PATTERNS)] or None


def _to_stats(values: Any) -> tuple[Stats, ...]:
    return tuple(Stats(v) for v in values)


def build_weapon_profile(
    *,
    default_specialty: Specialty | None = DEFAULT_WEAPON_SPECIALTY,
    default_release_version: float = DEFAULT_RELEASE_VERSION,
) -> RecordProfile:
    """The w-engine profile."""
    return RecordProfile(
        kind="weapons",
        fields=[
            FieldSpec(
                out_name="rarity",
                paths=[FilterValues("w_engine_rarity")],
                expect=ValueType.array,
                table=WEAPON_RARITY_TABLE,
            ),
            FieldSpec(
                out_name="specialty",
                paths=[FilterValues("filter_key_13")],
                expect=ValueType.array,
                table=SPECIALTY_TABLE,
                essential=False,
                default=default_specialty,
            ),
            FieldSpec(
                out_name="skill_name",
                paths=[ComponentField("equipment_skill", "skill_name")],
                essential=False,
                default=DEFAULT_SKILL_TEXT,
            ),
            FieldSpec(
                out_name="skill_desc",
                paths=[ComponentField("equipment_skill", "skill_desc")],
                essential=False,
                default=DEFAULT_SKILL_TEXT,
            ),
            FieldSpec(
                out_name="stats",
                paths=[
                    Derived(
                        ComponentField("equipment_skill", "skill_desc"),
                        infer_attributes,
                        label="attributes_from_skill",
                    ),
                ],
                expect=ValueType.array,
                parser=_to_stats,
                essential=False,
                default=DEFAULT_WEAPON_STATS,
            ),
            FieldSpec(
                out_name="release_version",
                paths=[
                    ComponentListItem("baseInfo", "実装バージョン", value_field="value"),
                    ComponentListItem("baseInfo", "実装バージョン", value_field="values"),
                ],
                expect=ValueType.array,
                parser=parse_version_number,
                essential=False,
                default=default_release_version,
            ),
        ],
    )


WEAPON_PROFILE = build_weapon_profile()
