from __future__ import annotations

from enum import Enum

from .enums import EnumTable


## -- Canonical values

class Specialty(str, Enum):
    stun = "stun"
    attack = "attack"
    anomaly = "anomaly"
    support = "support"
    defense = "defense"
    rupture = "rupture"


class Stats(str, Enum):
    """Damage attribute."""
    ice = "ice"
    fire = "fire"
    electric = "electric"
    physical = "physical"
    ether = "ether"
    frost_attribute = "frostAttribute"
    auric_ink = "auricInk"


class AttackType(str, Enum):
    strike = "strike"
    slash = "slash"
    pierce = "pierce"


class Rarity(str, Enum):
    S = "S"
    A = "A"
    B = "B"     # w-engines only


class AssistType(str, Enum):
    defensive = "defensive"
    evasive = "evasive"


## -- Source label tables (exact match, see `map_enum`)

SPECIALTY_TABLE: EnumTable[Specialty] = EnumTable("specialty", {
    "撃破": Specialty.stun,
    "強攻": Specialty.attack,
    "異常": Specialty.anomaly,
    "支援": Specialty.support,
    "防護": Specialty.defense,
    "命破": Specialty.rupture,
})

STATS_TABLE: EnumTable[Stats] = EnumTable("stats", {
    "氷属性": Stats.ice,
    "炎属性": Stats.fire,
    "電気属性": Stats.electric,
    "物理属性": Stats.physical,
    "エーテル属性": Stats.ether,
    "霜烈属性": Stats.frost_attribute,
    "玄墨属性": Stats.auric_ink,
    # some pages drop the 属性 suffix
    "氷": Stats.ice,
    "炎": Stats.fire,
    "電気": Stats.electric,
    "物理": Stats.physical,
    "エーテル": Stats.ether,
    "霜烈": Stats.frost_attribute,
    "玄墨": Stats.auric_ink,
})

ATTACK_TYPE_TABLE: EnumTable[AttackType] = EnumTable("attack_type", {
    "打撃": AttackType.strike,
    "斬撃": AttackType.slash,
    "刺突": AttackType.pierce,
    # en-us pages
    "Strike": AttackType.strike,
    "Slash": AttackType.slash,
    "Pierce": AttackType.pierce,
})

AGENT_RARITY_TABLE: EnumTable[Rarity] = EnumTable("rarity", {
    "S": Rarity.S,
    "A": Rarity.A,
})

WEAPON_RARITY_TABLE: EnumTable[Rarity] = EnumTable("rarity", {
    "S": Rarity.S,
    "A": Rarity.A,
    "B": Rarity.B,
})

ASSIST_TYPE_TABLE: EnumTable[AssistType] = EnumTable("assist_type", {
    "パリィ支援": AssistType.defensive,
    "回避支援": AssistType.evasive,
    "Defensive Assist": AssistType.defensive,
    "Evasive Assist": AssistType.evasive,
})

FACTION_TABLE: EnumTable[int] = EnumTable("faction", {
    "邪兎屋": 1,
    "ヴィクトリア家政": 2,
    "白祇重工": 3,
    "防衛軍・オボルス小隊": 4,
    "対ホロウ特別行動部第六課": 5,
    "特務捜査班": 6,
    "カリュドーンの子": 7,
    "スターズ・オブ・リラ": 8,
    "防衛軍・シルバー小隊": 9,
    "モッキンバード": 10,
    "雲嶽山": 11,
    "怪啖屋": 12,
})

# ascension stat labels -> output attribute keys
STAT_NAMES: dict[str, str] = {
    "HP": "hp",
    "攻撃力": "atk",
    "防御力": "def",
    "衝撃力": "impact",
    "会心率": "critRate",
    "会心ダメージ": "critDmg",
    "異常マスタリー": "anomalyMastery",
    "異常掌握": "anomalyProficiency",
    "貫通率": "penRatio",
    "エネルギー自動回復": "energy",
}

ASCENSION_LEVELS: tuple[str, ...] = ("1", "10", "20", "30", "40", "50", "60")
