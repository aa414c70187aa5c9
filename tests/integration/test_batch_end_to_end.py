from __future__ import annotations

import threading
from collections import Counter
from pathlib import Path
from typing import Any, Callable

import pytest

from wiki_pipeline.batch.orchestrator import BatchItem
from wiki_pipeline.cli.runner import run_entries, write_jsonl
from wiki_pipeline.config import BatchConfig
from wiki_pipeline.parsing.types import ErrorKind, FailureReason, FetchedPayload, NameSource, PipelineError


class FakeWiki:
    """
    In-memory stand-in for the wiki API, keyed by page id.
    `flaky` pages time out that many times before answering.
    """

    def __init__(self, pages: dict[int, tuple[dict[str, Any], dict[str, Any] | None]], flaky: dict[int, int] | None = None) -> None:
        self.pages = pages
        self.flaky = dict(flaky or {})
        self.calls: Counter[int] = Counter()
        self._lock = threading.Lock()

    def fetch(self, item: BatchItem) -> FetchedPayload:
        with self._lock:
            self.calls[item.page_id] += 1
            if self.flaky.get(item.page_id, 0) > 0:
                self.flaky[item.page_id] -= 1
                raise PipelineError(ErrorKind.fetch, "read timed out", reason=FailureReason.timeout, retryable=True)
        if item.page_id not in self.pages:
            raise PipelineError(ErrorKind.fetch, f"page {item.page_id}: retcode=-1", reason=FailureReason.bad_payload)
        primary, secondary = self.pages[item.page_id]
        return FetchedPayload(primary=primary, secondary=secondary)


CONFIG = BatchConfig(batch_size=3, delay_ms=0, max_retries=3, retry_delay_ms=0, min_success_rate=0.5)


@pytest.fixture()
def agent_entries(tmp_path: Path) -> Path:
    p = tmp_path / "agents.csv"
    p.write_text(
        "id,page_id\n"
        "anby,2\n"
        "nicole,3\n"
        "billy,7\n"
        "ellen,41\n"
        "lycaon,42\n"
        "ghost,999\n",
        encoding="utf-8",
    )
    return p


def test_agent_batch_end_to_end(
    tmp_path: Path,
    agent_entries: Path,
    names_file: Path,
    agent_record: Callable[..., dict[str, Any]],
    secondary_record: Callable[..., dict[str, Any]],
) -> None:
    """
    Six entries against a fake wiki:
      - anby/nicole resolve through the name table,
      - billy has no table entry and no secondary page,
      - ellen times out twice and recovers in the retry passes,
      - lycaon carries an unmodeled attribute,
      - ghost does not exist upstream.
    """
    wiki = FakeWiki(
        {
            2: (agent_record(page_id="2"), secondary_record("Anby Demara")),
            3: (agent_record(page_id="3", name="ニコ・デマラ", specialty=["異常"], stats=["エーテル属性"]), secondary_record("Nicole Demara")),
            7: (agent_record(page_id="7", name="ビリー・キッド", specialty=["強攻"], stats=["物理属性"]), None),
            41: (agent_record(page_id="41", name="エレン・ジョー", specialty=["強攻"], stats=["氷属性"], faction=["ヴィクトリア家政"]), secondary_record("Ellen Joe")),
            42: (agent_record(page_id="42", stats=["未知属性"]), None),
        },
        flaky={41: 2},
    )

    result, summary = run_entries(
        input_path=agent_entries,
        kind="agents",
        names_path=names_file,
        config=CONFIG,
        fetcher=wiki,
    )

    # every entry accounted for exactly once, in input order
    assert result.total == 6
    assert [r.id for r in result.successful] == ["anby", "nicole", "billy", "ellen"]
    assert result.failed_ids() == ["lycaon", "ghost"]
    assert {f.item_id: f.stage for f in result.failed} == {"lycaon": ErrorKind.mapping, "ghost": ErrorKind.fetch}

    by_id = {r.id: r for r in result.successful}
    assert by_id["nicole"].name.primary == "ニコ"
    assert by_id["nicole"].name_source is NameSource.static
    assert by_id["billy"].name_source is NameSource.record
    assert by_id["billy"].name.secondary == "ビリー・キッド"
    assert by_id["ellen"].full_name.secondary == "Ellen Joe"

    # ellen: first run + two retry passes; ghost is not retried
    assert wiki.calls[41] == 3
    assert wiki.calls[999] == 1
    assert summary.retried == 2
    assert summary.recovered == 1
    assert summary.successful == 4
    assert summary.failed == 2
    assert summary.success_rate == pytest.approx(4 / 6)
    # failure events, including ellen's first-pass timeout
    assert summary.failure_reasons == {"mapping:unknown_label": 1, "fetch:timeout": 1, "fetch:bad_payload": 1}

    out = tmp_path / "agents.jsonl"
    assert write_jsonl(out, (r.to_mapping() for r in result.successful)) == 4
    assert "アンビー" in out.read_text(encoding="utf-8")


def test_weapon_batch_end_to_end(tmp_path: Path, names_file: Path, weapon_record: Callable[..., dict[str, Any]]) -> None:
    """W-engines run through the same pipeline with their own profile."""
    entries = tmp_path / "weapons.md"
    entries.write_text(
        "- [steel-cushion](https://wiki.hoyolab.com/pc/zzz/entry/900) - pageId: 900\n"
        "- [unknown-engine](https://wiki.hoyolab.com/pc/zzz/entry/901) - pageId: 901\n",
        encoding="utf-8",
    )
    wiki = FakeWiki({900: (weapon_record(), None), 901: (weapon_record(rarity=None), None)})

    result, summary = run_entries(
        input_path=entries,
        kind="weapons",
        names_path=names_file,
        config=CONFIG,
        fetcher=wiki,
    )

    assert [r.id for r in result.successful] == ["steel-cushion"]
    assert result.successful[0].to_mapping()["stats"] == ["ice"]
    (failure,) = result.failed
    assert failure.stage is ErrorKind.extraction
    assert summary.render_one_line().startswith("weapons: total=2 succeeded=1 failed=1")


def test_bomp_and_driver_disc_batches(
    tmp_path: Path,
    names_file: Path,
    bomp_record: Callable[..., dict[str, Any]],
    driver_disc_record: Callable[..., dict[str, Any]],
) -> None:
    """Bomps and driver discs share the batch machinery, each with its own profile."""
    bomps = tmp_path / "bomps.csv"
    bomps.write_text("id,page_id\npenguinboo,912\nbroken,913\n", encoding="utf-8")
    wiki = FakeWiki({912: (bomp_record(), None), 913: (bomp_record(ascension={"list": [{"key": "1", "combatList": []}]}), None)})
    result, summary = run_entries(input_path=bomps, kind="bomps", names_path=names_file, config=CONFIG, fetcher=wiki)
    assert [r.id for r in result.successful] == ["penguinboo"]
    assert result.successful[0].to_mapping()["stats"] == "ice"
    assert {f.item_id: f.stage for f in result.failed} == {"broken": ErrorKind.validation}
    assert summary.render_one_line().startswith("bomps: total=2 succeeded=1 failed=1")

    discs = tmp_path / "discs.jsonl"
    discs.write_text('{"id": "woodpecker-electro", "page_id": 950}\n', encoding="utf-8")
    wiki = FakeWiki({950: (driver_disc_record(on_page=False), None)})
    result, _ = run_entries(input_path=discs, kind="driver_discs", names_path=names_file, config=CONFIG, fetcher=wiki)
    (disc,) = result.successful
    row = disc.to_mapping()
    assert row["specialty"] == "attack"
    assert row["two_set_effect"] == "会心率+8%"
