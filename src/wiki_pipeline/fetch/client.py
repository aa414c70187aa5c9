from __future__ import annotations

import logging
from typing import Any, Mapping

import requests

from wiki_pipeline.batch.orchestrator import BatchItem
from wiki_pipeline.config import get_api_base_url
from wiki_pipeline.parsing.types import ErrorKind, FailureReason, FetchedPayload, PipelineError

logger = logging.getLogger(__name__)


PRIMARY_LANG = "ja-jp"
SECONDARY_LANG = "en-us"
DEFAULT_TIMEOUT_S = 10.0
DEFAULT_HEADERS = {
    "Accept": "application/json",
    "x-rpc-wiki_app": "zzz",
}

# statuses worth another try later
_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


def _retry_after(resp: requests.Response) -> float | None:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except ValueError:
        return None


class WikiClient:
    """
    Thin HoYoWiki `entry_page` client.

    No retry logic of its own: every failure is classified into a
    `PipelineError(kind=fetch)` and the batch orchestrator decides what to retry.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        fetch_secondary: bool = True,
    ) -> None:
        self.base_url = base_url or get_api_base_url()
        self.session = session or requests.Session()
        self.session.headers.update(DEFAULT_HEADERS)
        self.timeout_s = timeout_s
        self.fetch_secondary = fetch_secondary

    def get_entry_page(self, page_id: int, lang: str) -> Mapping[str, Any]:
        """One page in one language, as the raw API envelope."""
        where = f"page {page_id} ({lang})"
        try:
            resp = self.session.get(
                self.base_url,
                params={"entry_page_id": page_id, "lang": lang},
                headers={"x-rpc-language": lang},
                timeout=self.timeout_s,
            )
        except requests.Timeout as e:
            raise PipelineError(ErrorKind.fetch, f"{where}: timed out", reason=FailureReason.timeout, retryable=True) from e
        except requests.ConnectionError as e:
            raise PipelineError(ErrorKind.fetch, f"{where}: connection failed", reason=FailureReason.connection, retryable=True) from e
        except requests.RequestException as e:
            raise PipelineError(ErrorKind.fetch, f"{where}: request failed: {e}", reason=FailureReason.http_error) from e

        if resp.status_code == 429:
            raise PipelineError(
                ErrorKind.fetch,
                f"{where}: HTTP 429",
                reason=FailureReason.rate_limited,
                retryable=True,
                retry_after=_retry_after(resp),
            )
        if resp.status_code >= 400:
            raise PipelineError(
                ErrorKind.fetch,
                f"{where}: HTTP {resp.status_code}",
                reason=FailureReason.http_error,
                retryable=resp.status_code in _RETRYABLE_STATUS,
                retry_after=_retry_after(resp),
            )

        try:
            body = resp.json()
        except ValueError as e:
            raise PipelineError(ErrorKind.fetch, f"{where}: response is not JSON", reason=FailureReason.bad_payload) from e

        if not isinstance(body, Mapping):
            raise PipelineError(ErrorKind.fetch, f"{where}: response is not an object", reason=FailureReason.bad_payload)
        if body.get("retcode") != 0:
            raise PipelineError(
                ErrorKind.fetch,
                f"{where}: retcode={body.get('retcode')!r} message={body.get('message')!r}",
                reason=FailureReason.bad_payload,
            )
        data = body.get("data")
        if not isinstance(data, Mapping) or not isinstance(data.get("page"), Mapping):
            raise PipelineError(ErrorKind.fetch, f"{where}: response has no page", reason=FailureReason.bad_payload)

        logger.debug("fetched %s", where)
        return body

    def fetch(self, item: BatchItem) -> FetchedPayload:
        """Primary-language page, plus the secondary-language page for display names."""
        primary = self.get_entry_page(item.page_id, PRIMARY_LANG)
        secondary = None
        if self.fetch_secondary:
            try:
                secondary = self.get_entry_page(item.page_id, SECONDARY_LANG)
            except PipelineError as e:
                # transient problems are retried with the item, a page missing in
                # the secondary language only costs us the secondary name
                if e.retryable:
                    raise
                logger.warning("%s: no %s page, names fall back to %s: %s", item.id, SECONDARY_LANG, PRIMARY_LANG, e)
        return FetchedPayload(primary=primary, secondary=secondary)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> WikiClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
