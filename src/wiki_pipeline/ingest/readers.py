from __future__ import annotations

import csv
import json
import logging
import re
from pathlib import Path
from typing import Any, Collection, Iterable, Iterator, Mapping

from wiki_pipeline.batch.orchestrator import BatchItem
from wiki_pipeline.parsing.primitives import parse_int
from wiki_pipeline.parsing.types import PipelineError

logger = logging.getLogger(__name__)

# `- [anby](https://wiki.hoyolab.com/pc/zzz/entry/2) - pageId: 2`
_MARKDOWN_ENTRY = re.compile(r"- \[([^\]]+)\]\(([^)]+)\) - pageId: (\d+)")


def stream_csv_dict_rows(path: Path) -> Iterator[tuple[int, Mapping[str, Any]]]:
    """
    Yields `(source_row, dict)` for CSV data rows.

    `source_row` is 1-based for the first real data row encountered, header is not counted.
    """
    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        for i, row in enumerate(reader, start=1):
            yield i, row


def stream_jsonl_dict_rows(path: Path) -> Iterator[tuple[int, Mapping[str, Any]]]:
    """
    Yields `(source_row, dict)` for JSONL lines.

    `source_row` is 1-based by physical line number (blank lines skipped but still counted).
    """
    with path.open("r", encoding="utf-8") as f:
        for i, line in enumerate(f, start=1):
            s = line.strip()
            if not s:
                continue
            obj = json.loads(s)
            if not isinstance(obj, dict):
                raise ValueError(f"JSONL line {i} is not an object")
            yield i, obj


def stream_markdown_entries(path: Path) -> Iterator[tuple[int, Mapping[str, Any]]]:
    """Yields `(line_no, {"id", "page_id", "url"})` for `- [id](url) - pageId: N` list lines."""
    with path.open("r", encoding="utf-8") as f:
        for i, line in enumerate(f, start=1):
            for m in _MARKDOWN_ENTRY.finditer(line):
                yield i, {"id": m.group(1), "url": m.group(2), "page_id": m.group(3)}


def _to_item(row: Mapping[str, Any]) -> BatchItem | None:
    item_id = str(row.get("id") or "").strip()
    try:
        page_id = parse_int(row.get("page_id", row.get("pageId")), field="page_id")
    except PipelineError:
        return None
    if not item_id or page_id <= 0:
        return None
    return BatchItem(id=item_id, page_id=page_id)


def read_entries(path: Path) -> list[BatchItem]:
    """
    Entry list (`.csv`, `.jsonl` or a markdown link list) into batch items.

    Invalid rows are skipped with a warning, duplicate ids keep the first row.
    Raises `ValueError` when nothing usable is found.
    """
    suffix = path.suffix.lower()
    if suffix == ".csv":
        rows: Iterable[tuple[int, Mapping[str, Any]]] = stream_csv_dict_rows(path)
    elif suffix in (".jsonl", ".ndjson"):
        rows = stream_jsonl_dict_rows(path)
    elif suffix == ".md":
        rows = stream_markdown_entries(path)
    else:
        raise ValueError(f"Unsupported entry list format: {path}")

    items: list[BatchItem] = []
    seen: set[str] = set()
    for source_row, row in rows:
        item = _to_item(row)
        if item is None:
            logger.warning("%s:%d: skipped invalid entry %r", path, source_row, dict(row))
            continue
        if item.id in seen:
            logger.warning("%s:%d: skipped duplicate id %r", path, source_row, item.id)
            continue
        seen.add(item.id)
        items.append(item)

    if not items:
        raise ValueError(f"No entries found in {path}")
    logger.info("read %d entries from %s", len(items), path)
    return items


def select_items(
    items: Iterable[BatchItem],
    *,
    include: Collection[str] = (),
    exclude: Collection[str] = (),
    limit: int | None = None,
) -> list[BatchItem]:
    """
    Narrow an entry list: keep only `include` ids (when given), drop `exclude` ids, then cap at `limit`.
    Ids compare case-insensitively.
    """
    items = list(items)
    inc = {i.strip().lower() for i in include}
    exc = {i.strip().lower() for i in exclude}
    out = [
        item for item in items
        if (not inc or item.id.lower() in inc) and item.id.lower() not in exc
    ]
    missing = inc - {item.id.lower() for item in items}
    if missing:
        logger.warning("requested ids not in entry list: %s", sorted(missing))
    if limit is not None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        out = out[:limit]
    return out
