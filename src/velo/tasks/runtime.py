"""Shared runtime dataclasses for scheduled jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

StageStatus = Literal["success", "failed", "partial", "skipped"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class StageContext:
    """Runtime context passed to each job handler."""

    run_id: str
    stage_name: str
    started_at: datetime
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class StageResult:
    """Normalized result returned by a job handler."""

    stage_name: str
    status: StageStatus
    started_at: datetime
    ended_at: datetime
    metrics: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def from_counts(
        cls,
        ctx: StageContext,
        metrics: dict[str, Any],
        skipped: int,
    ) -> StageResult:
        """Build a finished result: 'partial' if any record was skipped."""
        return cls(
            stage_name=ctx.stage_name,
            status="partial" if skipped else "success",
            started_at=ctx.started_at,
            ended_at=utc_now(),
            metrics=metrics,
        )

    @property
    def duration_s(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage_name": self.stage_name,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_s": self.duration_s,
            "metrics": self.metrics,
            "error": self.error,
        }
