from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Protocol, Sequence

from wiki_pipeline.batch.pacing import DispatchPacer
from wiki_pipeline.batch.statistics import StatisticsCollector, StatisticsSnapshot
from wiki_pipeline.config import BatchConfig
from wiki_pipeline.parsing.schema import RecordAssembler
from wiki_pipeline.parsing.types import (
    ErrorKind,
    FailureReason,
    FailureRecord,
    FetchedPayload,
    PipelineError,
    ProcessedRecord,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BatchItem:
    """One entry to process: our id plus the wiki page it lives on."""
    id: str
    page_id: int


class Fetcher(Protocol):
    """Fetches the raw records of one item, raising `PipelineError(kind=fetch)` on failure."""
    def fetch(self, item: BatchItem) -> FetchedPayload: ...


class ItemState(str, Enum):
    pending = "pending"
    fetching = "fetching"
    extracting = "extracting"
    succeeded = "succeeded"
    failed = "failed"


@dataclass(frozen=True)
class BatchResult:
    """Everything a batch produced, partial or not."""
    successful: Sequence[ProcessedRecord]
    failed: Sequence[FailureRecord]
    statistics: StatisticsSnapshot
    items: Sequence[BatchItem] = ()
    states: Mapping[str, ItemState] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)

    @property
    def success_rate(self) -> float:
        """`1.0` for an empty batch."""
        return len(self.successful) / self.total if self.total else 1.0

    def failed_ids(self) -> list[str]:
        return [f.item_id for f in self.failed]


class BatchGateError(Exception):
    """
    The batch finished below the minimum success rate.
    `result` is the complete, untouched batch result.
    """

    def __init__(self, result: BatchResult, min_success_rate: float) -> None:
        self.result = result
        self.min_success_rate = min_success_rate
        self.failed_ids = result.failed_ids()
        super().__init__(
            f"success rate {result.success_rate:.1%} below minimum {min_success_rate:.1%} "
            f"({len(result.successful)}/{result.total} succeeded, failed: {self.failed_ids})"
        )


def validate_result(result: BatchResult, min_success_rate: float) -> None:
    """
    Post-hoc success-rate gate: raise `BatchGateError` iff `successful / total < min_success_rate`.
    An empty batch passes. The result itself is never modified.
    """
    if result.total == 0:
        return
    if result.success_rate < min_success_rate:
        logger.error("success rate gate failed: %.1f%% < %.1f%%", result.success_rate * 100, min_success_rate * 100)
        raise BatchGateError(result, min_success_rate)


def _cancelled_error() -> PipelineError:
    return PipelineError(
        ErrorKind.fetch,
        "batch cancelled before dispatch",
        reason=FailureReason.cancelled,
        retryable=True,
    )


class BatchOrchestrator:
    """
    Drive a `RecordAssembler` over a list of items.

    - at most `batch_size` items in flight, every upstream dispatch paced by `delay_ms`,
    - each item ends as exactly one `ProcessedRecord` or `FailureRecord`, one bad item never stops the batch,
    - rate-limited fetches back off and retry in place,
    - `cancel()` stops dispatching; items already in flight finish normally.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        assembler: RecordAssembler,
        config: BatchConfig | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetcher = fetcher
        self.assembler = assembler
        self.config = config or BatchConfig()
        self._sleep = sleep
        self._pacer = DispatchPacer(self.config.delay_s, clock=clock, sleep=sleep)
        self._cancel = threading.Event()
        self._states_lock = threading.Lock()
        self._states: dict[str, ItemState] = {}

    ## -- cancellation / state

    def cancel(self) -> None:
        """Stop dispatching new items. In-flight items complete or fail normally."""
        logger.info("batch cancellation requested")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def _set_state(self, item_id: str, state: ItemState) -> None:
        with self._states_lock:
            self._states[item_id] = state

    def states(self) -> Mapping[str, ItemState]:
        with self._states_lock:
            return MappingProxyType(dict(self._states))

    ## -- one item

    def _fetch(self, item: BatchItem) -> FetchedPayload:
        """Paced fetch, retried in place while upstream keeps rate limiting us."""
        backoffs = 0
        while True:
            self._pacer.wait()
            if self.cancelled:
                # cancelled while waiting for a dispatch slot
                raise _cancelled_error()
            try:
                return self.fetcher.fetch(item)
            except PipelineError as e:
                if e.reason is not FailureReason.rate_limited or backoffs >= self.config.max_retries or self.cancelled:
                    raise
                backoffs += 1
                delay = e.retry_after if e.retry_after is not None else self.config.retry_delay_s * 2 ** (backoffs - 1)
                logger.warning("%s: rate limited, backing off %.2fs (%d/%d)", item.id, delay, backoffs, self.config.max_retries)
                self._pacer.defer(delay)

    def _process_one(self, item: BatchItem, stats: StatisticsCollector, attempt: int) -> ProcessedRecord | FailureRecord:
        if self.cancelled:
            self._set_state(item.id, ItemState.failed)
            return FailureRecord.from_error(item.id, _cancelled_error(), attempts=attempt)

        self._set_state(item.id, ItemState.fetching)
        try:
            payload = self._fetch(item)
        except PipelineError as e:
            if e.reason is FailureReason.cancelled:
                logger.info("%s: %s", item.id, e)
            else:
                logger.warning("%s: fetch failed: %s", item.id, e)
            self._set_state(item.id, ItemState.failed)
            return FailureRecord.from_error(item.id, e, attempts=attempt)
        except Exception as e:
            logger.exception("%s: unexpected error while fetching", item.id)
            self._set_state(item.id, ItemState.failed)
            return FailureRecord(item.id, ErrorKind.fetch, FailureReason.unexpected, str(e), repr(e), attempt)

        self._set_state(item.id, ItemState.extracting)
        try:
            out = self.assembler.assemble(item.id, payload, stats)
        except Exception as e:
            logger.exception("%s: unexpected error while assembling", item.id)
            out = FailureRecord(item.id, ErrorKind.extraction, FailureReason.unexpected, str(e), repr(e), attempt)

        if isinstance(out, FailureRecord):
            if out.attempts != attempt:
                out = replace(out, attempts=attempt)
            self._set_state(item.id, ItemState.failed)
        else:
            self._set_state(item.id, ItemState.succeeded)
        return out

    def _process_all(
        self,
        items: Sequence[BatchItem],
        stats: StatisticsCollector,
        attempts: Mapping[str, int],
    ) -> list[ProcessedRecord | FailureRecord]:
        """Outcomes in input order."""
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=self.config.batch_size, thread_name_prefix="wiki-batch") as pool:
            futures = [pool.submit(self._process_one, item, stats, attempts.get(item.id, 1)) for item in items]
            return [f.result() for f in futures]

    ## -- public API

    def run(self, items: Iterable[BatchItem]) -> BatchResult:
        """Process every item once. Never raises on bad items."""
        items = list(items)
        ids = [i.id for i in items]
        if len(set(ids)) != len(ids):
            raise ValueError("batch items must have unique ids")

        stats = StatisticsCollector()
        with self._states_lock:
            self._states.clear()
        for item in items:
            self._set_state(item.id, ItemState.pending)
            stats.record_item()

        logger.info("batch started: %d items, window=%d, delay=%dms", len(items), self.config.batch_size, self.config.delay_ms)
        outcomes = self._process_all(items, stats, {})

        successful: list[ProcessedRecord] = []
        failed: list[FailureRecord] = []
        for out in outcomes:
            if isinstance(out, FailureRecord):
                stats.record_failure(out)
                failed.append(out)
            else:
                stats.record_success()
                successful.append(out)

        logger.info("batch finished: %d succeeded, %d failed", len(successful), len(failed))
        return BatchResult(successful, failed, stats.snapshot(), tuple(items), self.states())

    def retry_failed(self, previous: BatchResult) -> BatchResult:
        """
        Re-run only the retryable fetch failures of `previous`, up to `max_retries` passes.

        Extraction, mapping and validation failures are deterministic for the
        same payload and are carried over untouched.
        """
        stats = StatisticsCollector.from_snapshot(previous.statistics)
        by_id = {item.id: item for item in previous.items}
        order = {item.id: i for i, item in enumerate(previous.items)}
        successful = list(previous.successful)
        failed = list(previous.failed)

        for retry_pass in range(1, self.config.max_retries + 1):
            pending = [f for f in failed if f.stage is ErrorKind.fetch and f.retryable and f.item_id in by_id]
            if not pending or self.cancelled:
                break

            logger.info("retry pass %d/%d: %d items", retry_pass, self.config.max_retries, len(pending))
            self._sleep(self.config.retry_delay_s)

            items = [by_id[f.item_id] for f in pending]
            attempts = {f.item_id: f.attempts + 1 for f in pending}
            for _ in items:
                stats.record_retry()
            outcomes = self._process_all(items, stats, attempts)

            retried = {item.id for item in items}
            failed = [f for f in failed if f.item_id not in retried]
            for out in outcomes:
                if isinstance(out, FailureRecord):
                    failed.append(out)
                else:
                    stats.record_recovered()
                    successful.append(out)
            failed.sort(key=lambda f: order.get(f.item_id, len(order)))
            successful.sort(key=lambda r: order.get(r.id, len(order)))

        return BatchResult(successful, failed, stats.snapshot(), previous.items, self.states())

    def validate_result(self, result: BatchResult, min_success_rate: float | None = None) -> None:
        """
        Raise `BatchGateError` iff `successful / total < min_success_rate`.
        An empty batch passes. The result itself is never modified.
        """
        threshold = self.config.min_success_rate if min_success_rate is None else min_success_rate
        validate_result(result, threshold)
