from __future__ import annotations

from typing import Any, Callable, Mapping

from wiki_pipeline.parsing.extractor import ComponentField, ComponentListItem, Derived, Location, PageField, ValueType
from wiki_pipeline.parsing.patterns import SPECIALTY_PATTERNS, first_match
from wiki_pipeline.parsing.primitives import clean_markup, parse_version_number
from wiki_pipeline.parsing.schema import FieldSpec, RecordProfile
from wiki_pipeline.parsing.tables import Specialty


DEFAULT_DISC_SPECIALTY = Specialty.attack
DEFAULT_RELEASE_VERSION = 0.0

# baseInfo list keys seen for the set effects, newest first
FOUR_SET_KEYS = ("4セット効果", "four_set_effect", "4セット")
TWO_SET_KEYS = ("2セット効果", "two_set_effect", "2セット")


def _key_of(name: str) -> Callable[[Any], Any]:
    def get(doc: Any) -> Any:
        return doc.get(name) if isinstance(doc, Mapping) else None
    return get


def _first_text(values: Any) -> Any:
    if isinstance(values, list) and values and isinstance(values[0], str):
        return values[0]
    return None


def set_effect_paths(field: str, list_keys: tuple[str, ...]) -> list[Location]:
    """
    Where a set effect text lives, most authoritative first:
    the page's `display_field`, the set effect component, a `display_field`
    component, then the baseInfo list.
    """
    paths: list[Location] = [
        Derived(PageField("display_field"), _key_of(field), label="display_field"),
        ComponentField("reliquary_set_effect", field),
        ComponentField("display_field", field),
    ]
    for key in list_keys:
        for value_field in ("value", "values"):
            paths.append(Derived(ComponentListItem("baseInfo", key, value_field=value_field), _first_text, label="first"))
    return paths


def infer_specialty(text: Any) -> str | None:
    """The specialty a four-piece effect is built for, or `None` when it names none."""
    if not isinstance(text, str):
        return None
    found = first_match(clean_markup(text), SPECIALTY_PATTERNS)
    return found.value if found is not None else None


def build_driver_disc_profile(
    *,
    default_specialty: Specialty = DEFAULT_DISC_SPECIALTY,
    default_release_version: float = DEFAULT_RELEASE_VERSION,
) -> RecordProfile:
    """The driver disc profile: both set effects are required, specialty is read from the four-piece text."""
    four_set = set_effect_paths("four_set_effect", FOUR_SET_KEYS)
    return RecordProfile(
        kind="driver_discs",
        fields=[
            FieldSpec(
                out_name="four_set_effect",
                paths=four_set,
            ),
            FieldSpec(
                out_name="two_set_effect",
                paths=set_effect_paths("two_set_effect", TWO_SET_KEYS),
            ),
            FieldSpec(
                out_name="specialty",
                paths=[Derived(p, infer_specialty, label="specialty_from_text") for p in four_set],
                parser=Specialty,
                essential=False,
                default=default_specialty,
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


DRIVER_DISC_PROFILE = build_driver_disc_profile()
