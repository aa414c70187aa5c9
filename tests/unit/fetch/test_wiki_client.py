from __future__ import annotations

from typing import Any

import pytest
import requests

from wiki_pipeline.batch.orchestrator import BatchItem
from wiki_pipeline.fetch.client import PRIMARY_LANG, SECONDARY_LANG, WikiClient
from wiki_pipeline.parsing.types import ErrorKind, FailureReason, PipelineError


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, headers: dict[str, str] | None = None) -> None:
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Answers by `lang` param; values are responses or exceptions to raise."""

    def __init__(self, by_lang: dict[str, Any]) -> None:
        self.by_lang = by_lang
        self.headers: dict[str, str] = {}
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, *, params: dict[str, Any], headers: dict[str, str], timeout: float) -> FakeResponse:
        self.calls.append({"url": url, "params": params, "headers": headers, "timeout": timeout})
        answer = self.by_lang[params["lang"]]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def close(self) -> None:
        self.closed = True


def _ok(name: str = "アンビー・デマラ") -> FakeResponse:
    return FakeResponse(body={"retcode": 0, "message": "OK", "data": {"page": {"id": "2", "name": name}}})


def _client(session: FakeSession, **kwargs: Any) -> WikiClient:
    return WikiClient(base_url="https://wiki.test/entry_page", session=session, **kwargs)  # type: ignore[arg-type]


def test_fetch_gets_both_languages() -> None:
    """Primary page for the fields, secondary page for the display name."""
    session = FakeSession({PRIMARY_LANG: _ok(), SECONDARY_LANG: _ok("Anby Demara")})
    payload = _client(session).fetch(BatchItem("anby", 2))

    assert payload.primary["data"]["page"]["name"] == "アンビー・デマラ"
    assert payload.secondary is not None
    assert payload.secondary["data"]["page"]["name"] == "Anby Demara"
    assert [c["params"] for c in session.calls] == [
        {"entry_page_id": 2, "lang": "ja-jp"},
        {"entry_page_id": 2, "lang": "en-us"},
    ]
    assert session.calls[0]["headers"] == {"x-rpc-language": "ja-jp"}
    assert session.headers["x-rpc-wiki_app"] == "zzz"


def test_secondary_can_be_skipped() -> None:
    session = FakeSession({PRIMARY_LANG: _ok()})
    payload = _client(session, fetch_secondary=False).fetch(BatchItem("anby", 2))
    assert payload.secondary is None
    assert len(session.calls) == 1


def test_rate_limit_carries_retry_after() -> None:
    session = FakeSession({PRIMARY_LANG: FakeResponse(429, headers={"Retry-After": "3"})})
    with pytest.raises(PipelineError) as e:
        _client(session).get_entry_page(2, PRIMARY_LANG)
    assert e.value.reason is FailureReason.rate_limited
    assert e.value.retryable
    assert e.value.retry_after == 3.0


@pytest.mark.parametrize(
    ("status", "retryable"),
    [(404, False), (400, False), (500, True), (503, True)],
)
def test_http_errors_are_classified(status: int, retryable: bool) -> None:
    session = FakeSession({PRIMARY_LANG: FakeResponse(status)})
    with pytest.raises(PipelineError) as e:
        _client(session).get_entry_page(2, PRIMARY_LANG)
    assert e.value.kind is ErrorKind.fetch
    assert e.value.reason is FailureReason.http_error
    assert e.value.retryable is retryable
    assert str(status) in e.value.detail


@pytest.mark.parametrize(
    ("exc", "reason"),
    [
        (requests.Timeout("slow"), FailureReason.timeout),
        (requests.ConnectionError("refused"), FailureReason.connection),
    ],
)
def test_transport_errors_are_retryable(exc: Exception, reason: FailureReason) -> None:
    session = FakeSession({PRIMARY_LANG: exc})
    with pytest.raises(PipelineError) as e:
        _client(session).get_entry_page(2, PRIMARY_LANG)
    assert e.value.reason is reason
    assert e.value.retryable
    assert e.value.__cause__ is exc


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(body=ValueError("not json")),
        FakeResponse(body=["not", "an", "object"]),
        FakeResponse(body={"retcode": -1, "message": "entry not found"}),
        FakeResponse(body={"retcode": 0, "data": {}}),
    ],
)
def test_unusable_bodies_are_bad_payloads(response: FakeResponse) -> None:
    """Upstream answered, but not with a page: not retried."""
    session = FakeSession({PRIMARY_LANG: response})
    with pytest.raises(PipelineError) as e:
        _client(session).get_entry_page(2, PRIMARY_LANG)
    assert e.value.reason is FailureReason.bad_payload
    assert not e.value.retryable


def test_missing_secondary_page_degrades_names_only() -> None:
    """A permanent secondary failure keeps the item, without a secondary page."""
    session = FakeSession({PRIMARY_LANG: _ok(), SECONDARY_LANG: FakeResponse(404)})
    payload = _client(session).fetch(BatchItem("anby", 2))
    assert payload.secondary is None


def test_transient_secondary_failure_fails_the_item() -> None:
    session = FakeSession({PRIMARY_LANG: _ok(), SECONDARY_LANG: requests.Timeout("slow")})
    with pytest.raises(PipelineError) as e:
        _client(session).fetch(BatchItem("anby", 2))
    assert e.value.retryable


def test_context_manager_closes_session() -> None:
    session = FakeSession({})
    with _client(session):
        pass
    assert session.closed
