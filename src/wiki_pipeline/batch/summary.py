from __future__ import annotations

from dataclasses import dataclass, field

from wiki_pipeline.batch.orchestrator import BatchResult


@dataclass(frozen=True)
class BatchSummary:
    """Schema for all summary data that will be reported."""
    kind: str
    input_path: str
    total: int
    successful: int
    failed: int
    defaulted: int
    retried: int
    recovered: int
    names_degraded: int
    success_rate: float
    failure_reasons: dict[str, int] = field(default_factory=dict)
    default_reasons: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_result(cls, result: BatchResult, *, kind: str, input_path: str) -> BatchSummary:
        snap = result.statistics
        return cls(
            kind=kind,
            input_path=input_path,
            total=result.total,
            successful=len(result.successful),
            failed=len(result.failed),
            defaulted=snap.defaulted,
            retried=snap.retried,
            recovered=snap.recovered,
            names_degraded=snap.names_degraded,
            success_rate=result.success_rate,
            failure_reasons=dict(snap.failure_reasons),
            default_reasons=dict(snap.default_reasons),
        )

    def render_one_line(self) -> str:
        """How the summary is formatted for the terminal."""
        return (
            f"{self.kind}: total={self.total} succeeded={self.successful} failed={self.failed} "
            f"defaulted={self.defaulted} retried={self.retried} recovered={self.recovered} "
            f"rate={self.success_rate:.1%}"
        )

    def render_report(self) -> list[str]:
        """Multi-line breakdown: failure reasons, then defaults applied."""
        lines = [self.render_one_line()]
        if self.names_degraded:
            lines.append(f"  degraded names: {self.names_degraded}")
        for reason, n in sorted(self.failure_reasons.items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"  failed {reason}: {n}")
        for reason, n in sorted(self.default_reasons.items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"  default {reason}: {n}")
        return lines
