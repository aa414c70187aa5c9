from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Sequence

import pytest


ASCENSION_LEVELS = ("1", "10", "20", "30", "40", "50", "60")

# promoted (after) values per level, as the wiki shows them
_HP = ("677", "1967", "3350", "4732", "6114", "7496", "8872")
_ATK = ("105", "197", "296", "394", "493", "592", "690")
_DEF = ("49", "141", "227", "318", "406", "493", "580")


def component(component_id: str, data: Any) -> dict[str, Any]:
    """A page component with its document serialized the way the API does it."""
    return {"component_id": component_id, "data": json.dumps(data, ensure_ascii=False)}


def ascension_doc(levels: Sequence[str] = ASCENSION_LEVELS) -> dict[str, Any]:
    rows = []
    for level in levels:
        i = ASCENSION_LEVELS.index(level)
        combat = [
            {"key": "HP", "values": ["-", _HP[i]]},
            {"key": "攻撃力", "values": ["-", _ATK[i]]},
            {"key": "防御力", "values": ["-", _DEF[i]]},
        ]
        if level == "1":
            combat += [
                {"key": "衝撃力", "values": ["-", "118"]},
                {"key": "会心率", "values": ["-", "5%"]},
                {"key": "会心ダメージ", "values": ["-", "50%"]},
                {"key": "異常マスタリー", "values": ["-", "94"]},
                {"key": "異常掌握", "values": ["-", "93"]},
                {"key": "貫通率", "values": ["-", "0%"]},
                {"key": "エネルギー自動回復", "values": ["-", "1.2"]},
            ]
        rows.append({"key": level, "combatList": combat})
    return {"list": rows}


def talent_doc(assist_title: str | None = "パリィ支援") -> dict[str, Any]:
    items: list[dict[str, Any]] = [{"title": "通常攻撃", "children": [{"title": "通常攻撃：ターボボルト"}]}]
    if assist_title is not None:
        items.append({"title": "支援スキル", "children": [{"title": "クイック支援"}, {"title": assist_title}]})
    return {"list": items}


def make_agent_record(
    *,
    page_id: str = "2",
    name: str = "アンビー・デマラ",
    specialty: Sequence[str] | None = ("撃破",),
    stats: Sequence[str] | None = ("電気属性",),
    rarity: Sequence[str] | None = ("A",),
    attack_type: Sequence[str] | None = ("斬撃",),
    faction: Sequence[str] | None = ("邪兎屋",),
    assist_type: Sequence[str] | None = None,
    version: Any = ("<p>Ver.1.0</p>「新エリー都」",),
    ascension: Any = None,
    talent: Any = None,
) -> dict[str, Any]:
    """A ja-jp `entry_page` envelope for one agent. `None` leaves a part out."""
    filters: dict[str, Any] = {}
    for key, values in (
        ("agent_specialties", specialty),
        ("agent_stats", stats),
        ("agent_rarity", rarity),
        ("agent_attack_type", attack_type),
        ("agent_faction", faction),
        ("agent_assist_type", assist_type),
    ):
        if values is not None:
            filters[key] = {"values": list(values)}

    base_info = {"list": [{"key": "陣営", "value": ["邪兎屋"]}]}
    if version is not None:
        base_info["list"].append({"key": "実装バージョン", "value": list(version)})

    modules = [
        {"name": "基本情報", "components": [component("baseInfo", base_info)]},
        {"name": "ステータス", "components": [component("ascension", ascension if ascension is not None else ascension_doc())]},
        {"name": "スキル", "components": [component("agent_talent", talent if talent is not None else talent_doc())]},
    ]
    return {
        "retcode": 0,
        "message": "OK",
        "data": {"page": {"id": page_id, "name": name, "filter_values": filters, "modules": modules}},
    }


def make_secondary_record(name: str = "Anby Demara") -> dict[str, Any]:
    """An en-us envelope; only its name is read."""
    return {"retcode": 0, "message": "OK", "data": {"page": {"id": "2", "name": name, "filter_values": {}, "modules": []}}}


def make_weapon_record(
    *,
    name: str = "鋼の肉球",
    rarity: Sequence[str] | None = ("S",),
    specialty: Sequence[str] | None = ("撃破",),
    skill_name: str | None = "猫の一撃",
    skill_desc: str | None = "<p>装備者の<span>氷属性ダメージ</span>&nbsp;+15%。</p>",
) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    if rarity is not None:
        filters["w_engine_rarity"] = {"values": list(rarity)}
    if specialty is not None:
        filters["filter_key_13"] = {"values": list(specialty)}
    skill: dict[str, Any] = {}
    if skill_name is not None:
        skill["skill_name"] = skill_name
    if skill_desc is not None:
        skill["skill_desc"] = skill_desc
    modules = [{"name": "スキル", "components": [component("equipment_skill", skill)]}]
    return {"retcode": 0, "message": "OK", "data": {"page": {"id": "900", "name": name, "filter_values": filters, "modules": modules}}}


def make_bomp_record(
    *,
    name: str = "ペンギンブー",
    stats: Sequence[str] | None = ("氷属性",),
    faction: Sequence[str] | None = ("邪兎屋",),
    base_attribute: str | None = None,
    version: Any = ("<p>Ver.1.0</p>",),
    ascension: Any = None,
    talent: Any = None,
) -> dict[str, Any]:
    """A ja-jp envelope for one bomp. `None` leaves a part out."""
    filters: dict[str, Any] = {}
    if stats is not None:
        filters["agent_stats"] = {"values": list(stats)}
    if faction is not None:
        filters["agent_faction"] = {"values": list(faction)}

    base_info: dict[str, Any] = {"list": []}
    if base_attribute is not None:
        base_info["list"].append({"key": "属性", "value": [base_attribute]})
    if version is not None:
        base_info["list"].append({"key": "実装バージョン", "value": list(version)})
    if talent is None:
        talent = {"list": [{"title": "追加能力", "children": [{"desc": "<p>味方の<b>氷属性</b>ダメージ+10%</p>"}]}]}

    modules = [
        {"name": "ステータス", "components": [component("baseInfo", base_info)]},
        {"name": "突破", "components": [component("ascension", ascension if ascension is not None else ascension_doc())]},
        {"name": "talent", "components": [component("talent", talent)]},
    ]
    return {"retcode": 0, "message": "OK", "data": {"page": {"id": "912", "name": name, "filter_values": filters, "modules": modules}}}


def make_driver_disc_record(
    *,
    name: str = "ウッドペッカー・エレクトロ",
    four_set: str | None = "<p>装備者の<span>強攻</span>エージェントの会心率+8%。</p>",
    two_set: str | None = "会心率+8%",
    on_page: bool = True,
    version: Any = ("Ver.1.0",),
) -> dict[str, Any]:
    """
    A ja-jp envelope for one driver disc set. With `on_page` the set effects
    sit in the page's `display_field`, otherwise only in the baseInfo list.
    """
    effects: dict[str, Any] = {}
    if four_set is not None:
        effects["four_set_effect"] = four_set
    if two_set is not None:
        effects["two_set_effect"] = two_set

    base_info: dict[str, Any] = {"list": []}
    if not on_page:
        if four_set is not None:
            base_info["list"].append({"key": "4セット効果", "value": [four_set]})
        if two_set is not None:
            base_info["list"].append({"key": "2セット効果", "value": [two_set]})
    if version is not None:
        base_info["list"].append({"key": "実装バージョン", "value": list(version)})

    page: dict[str, Any] = {
        "id": "950",
        "name": name,
        "filter_values": {},
        "modules": [{"name": "ステータス", "components": [component("baseInfo", base_info)]}],
    }
    if on_page:
        page["display_field"] = effects
    return {"retcode": 0, "message": "OK", "data": {"page": page}}


@pytest.fixture()
def agent_record() -> Callable[..., dict[str, Any]]:
    """Factory for agent payloads, see `make_agent_record`."""
    return make_agent_record


@pytest.fixture()
def weapon_record() -> Callable[..., dict[str, Any]]:
    """Factory for w-engine payloads, see `make_weapon_record`."""
    return make_weapon_record


@pytest.fixture()
def names_file(tmp_path: Path) -> Path:
    """A valid name table with two entries."""
    path = tmp_path / "name-mappings.json"
    path.write_text(
        json.dumps(
            {
                "anby": {"ja": "アンビー", "en": "Anby"},
                "Nicole ": {"ja": "ニコ", "en": "Nicole"},
            },
            ensure_ascii=False,
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def ascension() -> Callable[..., dict[str, Any]]:
    """Factory for `ascension` component documents, see `ascension_doc`."""
    return ascension_doc


@pytest.fixture()
def talent() -> Callable[..., dict[str, Any]]:
    """Factory for `agent_talent` component documents, see `talent_doc`."""
    return talent_doc


@pytest.fixture()
def secondary_record() -> Callable[..., dict[str, Any]]:
    return make_secondary_record


@pytest.fixture()
def bomp_record() -> Callable[..., dict[str, Any]]:
    """Factory for bomp payloads, see `make_bomp_record`."""
    return make_bomp_record


@pytest.fixture()
def driver_disc_record() -> Callable[..., dict[str, Any]]:
    """Factory for driver disc payloads, see `make_driver_disc_record`."""
    return make_driver_disc_record
