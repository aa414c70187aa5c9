from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Collection, Iterable, Mapping

from wiki_pipeline.batch.orchestrator import BatchOrchestrator, BatchResult, Fetcher
from wiki_pipeline.batch.summary import BatchSummary
from wiki_pipeline.config import BatchConfig
from wiki_pipeline.fetch.client import WikiClient
from wiki_pipeline.ingest.readers import read_entries, select_items
from wiki_pipeline.parsing.names import NameResolver
from wiki_pipeline.parsing.registry import get_profile
from wiki_pipeline.parsing.schema import RecordAssembler

logger = logging.getLogger(__name__)


def write_jsonl(path: Path, rows: Iterable[Mapping[str, Any]]) -> int:
    """Write one JSON object per line. Returns the number of lines written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    n = 0
    with path.open("w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False, sort_keys=True))
            f.write("\n")
            n += 1
    return n


def run_entries(
    *,
    input_path: Path,
    kind: str,
    names_path: Path,
    config: BatchConfig,
    list_path: Path | None = None,
    include: Collection[str] = (),
    exclude: Collection[str] = (),
    limit: int | None = None,
    retry: bool = True,
    fetcher: Fetcher | None = None,
) -> tuple[BatchResult, BatchSummary]:
    """
    End-to-end batch run:
      - read and filter the entry list,
      - fetch, extract and assemble every entry,
      - re-run retryable fetch failures (unless `retry=False`).

    Raises only on infra related problems (unreadable entry list, bad arguments).
    Bad records never raise, they end up in `result.failed`.
    """
    profile = get_profile(kind, list_path=list_path)
    items = select_items(read_entries(input_path), include=include, exclude=exclude, limit=limit)

    resolver = NameResolver(names_path)
    resolver.ensure_loaded()
    assembler = RecordAssembler(profile=profile, resolver=resolver)

    owns_client = fetcher is None
    client = fetcher if fetcher is not None else WikiClient()
    try:
        orchestrator = BatchOrchestrator(client, assembler, config)
        result = orchestrator.run(items)
        if retry and result.failed:
            result = orchestrator.retry_failed(result)
    finally:
        if owns_client and isinstance(client, WikiClient):
            client.close()

    summary = BatchSummary.from_result(result, kind=kind, input_path=str(input_path))
    return result, summary
