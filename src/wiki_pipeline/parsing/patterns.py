from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from .tables import AssistType, Specialty, Stats

C = TypeVar("C")


@dataclass(frozen=True)
class CategoryPatterns(Generic[C]):
    """The patterns that put a piece of free text into `category`."""
    category: C
    patterns: tuple[re.Pattern[str], ...]

    def search(self, text: str) -> str | None:
        """The matched text of the first matching pattern."""
        for p in self.patterns:
            m = p.search(text)
            if m is not None:
                return m.group(0)
        return None

    def matches(self, text: str) -> bool:
        return self.search(text) is not None


@dataclass(frozen=True, slots=True)
class PatternHit(Generic[C]):
    category: C
    text: str


PatternTable = Sequence[CategoryPatterns[C]]


def first_hit(text: str, table: PatternTable[C]) -> PatternHit[C] | None:
    """
    The first category (in table order) with a matching pattern, and the matched text.
    When several categories match the same text, table order decides.
    """
    for entry in table:
        found = entry.search(text)
        if found is not None:
            return PatternHit(entry.category, found)
    return None


def first_match(text: str, table: PatternTable[C]) -> C | None:
    hit = first_hit(text, table)
    return hit.category if hit is not None else None


def find_all(text: str, table: PatternTable[C]) -> list[C]:
    """Every matching category, in table order, without duplicates."""
    return [entry.category for entry in table if entry.matches(text)]


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p) for p in patterns)


def _attribute(label: str) -> tuple[re.Pattern[str], ...]:
    # "炎属性ダメージ", "炎属性の", "炎属性を与え", "炎属性で", "炎属性による"
    return _compile(rf"{label}属性(?:ダメージ|の|を与え|で|による)")


ASSIST_PATTERNS: tuple[CategoryPatterns[AssistType], ...] = (
    CategoryPatterns(AssistType.defensive, _compile(r"パリィ支援", r"Defensive Assist")),
    CategoryPatterns(AssistType.evasive, _compile(r"回避支援", r"Evasive Assist")),
)

ATTRIBUTE_PATTERNS: tuple[CategoryPatterns[Stats], ...] = (
    CategoryPatterns(Stats.fire, _attribute("炎")),
    CategoryPatterns(Stats.ice, _attribute("氷")),
    CategoryPatterns(Stats.electric, _attribute("電気")),
    CategoryPatterns(Stats.physical, _attribute("物理")),
    CategoryPatterns(Stats.ether, _attribute("エーテル") + _compile(r"エーテル透徹ダメージ")),
)

# driver disc four-piece texts name the specialty they are built for;
# Japanese labels are tried before the English fallbacks.
SPECIALTY_PATTERNS: tuple[CategoryPatterns[Specialty], ...] = (
    CategoryPatterns(Specialty.stun, _compile(r"撃破")),
    CategoryPatterns(Specialty.attack, _compile(r"強攻")),
    CategoryPatterns(Specialty.anomaly, _compile(r"異常")),
    CategoryPatterns(Specialty.support, _compile(r"支援")),
    CategoryPatterns(Specialty.defense, _compile(r"防護")),
    CategoryPatterns(Specialty.rupture, _compile(r"命破")),
    CategoryPatterns(Specialty.stun, _compile(r"(?i)stun")),
    CategoryPatterns(Specialty.attack, _compile(r"(?i)attack")),
    CategoryPatterns(Specialty.anomaly, _compile(r"(?i)anomaly")),
    CategoryPatterns(Specialty.support, _compile(r"(?i)support")),
    CategoryPatterns(Specialty.defense, _compile(r"(?i)defense")),
    CategoryPatterns(Specialty.rupture, _compile(r"(?i)rupture")),
)
