from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


DECISION_EXCLUDED = "EXCLUDED"
DECISION_PASS = "PASS"
DECISION_REJECT = "REJECT"

TRIGGER_SCHEDULED = "scheduled"
TRIGGER_MANUAL = "manual"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Article:
    title: str
    url: str
    published_at: Optional[datetime]
    raw_text: str
    source: str
    summary: str = ""


@dataclass(frozen=True)
class ScoreResult:
    score: float
    admitted: bool
    decision: str
    breakdown: dict[str, float] = field(default_factory=dict)
    reason: Optional[str] = None


@dataclass(frozen=True)
class DeliveryResult:
    channel: str
    success: bool
    error_message: Optional[str] = None
    response_excerpt: Optional[str] = None


@dataclass
class RunStats:
    total_runs: int = 0
    successful_runs: int = 0
    failed_runs: int = 0
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    articles_processed: int = 0

    def success_rate(self) -> Optional[float]:
        if self.total_runs == 0:
            return None
        return self.successful_runs / self.total_runs * 100


@dataclass(frozen=True)
class RunResult:
    source: str
    success: bool
    articles_found: int = 0
    messages_sent: int = 0
    failed: int = 0
    skipped: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class SourceResult:
    source: str
    success: bool
    articles_found: int
    messages_sent: int
    failed: int
    duration_sec: float
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchResult:
    total: int
    succeeded: int
    failed: int
    articles_found: int
    messages_sent: int
    details: tuple[SourceResult, ...] = ()

    def failures(self) -> list[SourceResult]:
        return [item for item in self.details if not item.success]
