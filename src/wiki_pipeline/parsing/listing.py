from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from wiki_pipeline.config import get_list_document_path

logger = logging.getLogger(__name__)


def _index_list(doc: Any) -> dict[str, Mapping[str, Any]]:
    """`{"data": {"list": [{"entry_page_id": "2", "filter_values": {...}}, ...]}}` keyed by page id."""
    data = doc.get("data") if isinstance(doc, Mapping) else None
    entries = data.get("list") if isinstance(data, Mapping) else None
    if not isinstance(entries, list):
        raise ValueError("missing data.list array")

    out: dict[str, Mapping[str, Any]] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        page_id = str(entry.get("entry_page_id") or "").strip()
        filters = entry.get("filter_values")
        if page_id and isinstance(filters, Mapping):
            # first entry wins, like the wiki's own list ordering
            out.setdefault(page_id, filters)
    return out


class EntryListIndex:
    """
    Filter values from a saved wiki list page, keyed by entry page id.

    The list page carries some filters (attack type in English) that entry
    pages occasionally leave out. The file is optional: a missing or broken
    file is logged once and every lookup returns `None`.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._loaded = False
        self._entries: dict[str, Mapping[str, Any]] = {}

    @property
    def path(self) -> Path:
        return self._path if self._path is not None else get_list_document_path()

    def _load_locked(self) -> None:
        path = self.path
        self._loaded = True
        if not path.exists():
            logger.info("list document not found, list fallback disabled: %s", path)
            return
        try:
            self._entries = _index_list(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.warning("list document unusable, list fallback disabled: %s: %s", path, e)
            self._entries = {}
            return
        logger.info("indexed %d list entries from %s", len(self._entries), path)

    def ensure_loaded(self) -> int:
        """Load the list on first use. Returns the number of indexed entries."""
        with self._lock:
            if not self._loaded:
                self._load_locked()
            return len(self._entries)

    def filter_values(self, page_id: Any) -> Mapping[str, Any] | None:
        if page_id is None:
            return None
        self.ensure_loaded()
        return self._entries.get(str(page_id).strip())


@dataclass(frozen=True, slots=True)
class ListEntryValues:
    """The label list of one filter, looked up in the list document by the page's id."""
    index: EntryListIndex
    key: str

    def resolve(self, page: Mapping[str, Any]) -> Any:
        filters = self.index.filter_values(page.get("id"))
        if filters is None:
            return None
        entry = filters.get(self.key)
        if not isinstance(entry, Mapping):
            return None
        return entry.get("values")

    def describe(self) -> str:
        return f"list[{self.key}]"
