from __future__ import annotations

import pytest

from wiki_pipeline.parsing.enums import map_enum, map_enum_many
from wiki_pipeline.parsing.tables import (
    ATTACK_TYPE_TABLE,
    FACTION_TABLE,
    SPECIALTY_TABLE,
    STATS_TABLE,
    AttackType,
    Specialty,
    Stats,
)
from wiki_pipeline.parsing.types import ErrorKind, FailureReason, PipelineError


def test_known_label_maps_to_canonical_value() -> None:
    """`炎属性` -> `fire`."""
    assert map_enum("炎属性", STATS_TABLE) is Stats.fire
    assert map_enum("霜烈属性", STATS_TABLE).value == "frostAttribute"


def test_every_table_label_maps() -> None:
    """Each documented label maps to its own entry."""
    for table in (SPECIALTY_TABLE, STATS_TABLE, ATTACK_TYPE_TABLE, FACTION_TABLE):
        for label, value in table.entries.items():
            assert map_enum(label, table) == value


def test_unknown_label_raises_mapping_failure_with_label() -> None:
    """Unmodeled labels never default: `未知属性` -> mapping failure carrying the label."""
    with pytest.raises(PipelineError) as e:
        map_enum("未知属性", STATS_TABLE)
    assert e.value.kind is ErrorKind.mapping
    assert e.value.reason is FailureReason.unknown_label
    assert e.value.label == "未知属性"
    assert "未知属性" in str(e.value)


def test_only_whitespace_is_trimmed() -> None:
    """Surrounding whitespace is ignored, case is not folded."""
    assert map_enum("  撃破 ", SPECIALTY_TABLE) is Specialty.stun
    assert map_enum("Slash", ATTACK_TYPE_TABLE) is AttackType.slash
    with pytest.raises(PipelineError):
        map_enum("slash", ATTACK_TYPE_TABLE)


def test_non_text_label_is_a_mapping_failure() -> None:
    """Numbers or `None` in a label list are unmodeled values too."""
    with pytest.raises(PipelineError) as e:
        map_enum(None, SPECIALTY_TABLE)
    assert e.value.kind is ErrorKind.mapping


def test_map_many_collects_failures_without_aborting() -> None:
    """Mapped subset in order, plus per-index failures."""
    mapped, failures = map_enum_many(["斬撃", "未知", "刺突", "  "], ATTACK_TYPE_TABLE)
    assert mapped == [AttackType.slash, AttackType.pierce]
    assert [f.index for f in failures] == [1, 3]
    assert failures[0].label == "未知"
    assert "未知" in failures[0].detail
