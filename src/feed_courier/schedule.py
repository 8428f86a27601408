from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from .batch import BatchRunner, format_summary
from .dates import DEFAULT_TIMEZONE
from .dispatcher import SourceDispatcher
from .models import TRIGGER_SCHEDULED, BatchResult, utc_now
from .store import DedupCache

TIME_RE = re.compile(r"(\d{1,2})(?::(\d{1,2}))?")


def parse_times(value: str) -> list[tuple[int, int]]:
    """Parse "9,12:30,18" into sorted (hour, minute) pairs."""
    slots: set[tuple[int, int]] = set()
    for part in (value or "").split(","):
        text = part.strip()
        if not text:
            continue
        match = TIME_RE.fullmatch(text)
        if not match:
            raise ValueError(f"invalid time '{text}', expected HH or HH:MM")
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if hour > 23:
            raise ValueError(f"hour must be between 0 and 23: {text}")
        if minute > 59:
            raise ValueError(f"minute must be between 0 and 59: {text}")
        slots.add((hour, minute))
    if not slots:
        raise ValueError("at least one run time is required")
    return sorted(slots)


def hourly_times(start_hour: int, end_hour: int, interval_hours: int) -> list[tuple[int, int]]:
    if not 0 <= start_hour <= 23:
        raise ValueError("start hour must be between 0 and 23")
    if not 0 <= end_hour <= 23:
        raise ValueError("end hour must be between 0 and 23")
    if not 1 <= interval_hours <= 24:
        raise ValueError("interval must be between 1 and 24 hours")
    if start_hour >= end_hour:
        raise ValueError("start hour must be earlier than end hour")
    return [(hour, 0) for hour in range(start_hour, end_hour + 1, interval_hours)]


def next_run(now: datetime, times: Sequence[tuple[int, int]]) -> datetime:
    if not times:
        raise ValueError("at least one run time is required")
    candidates = []
    for hour, minute in times:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        candidates.append(candidate)
    return min(candidates)


def describe_times(times: Iterable[tuple[int, int]]) -> str:
    return ",".join(f"{hour:02d}:{minute:02d}" for hour, minute in times)


def purge_caches(caches: Iterable[DedupCache]) -> int:
    return sum(cache.purge_stale_days() for cache in caches)


async def run_schedule(
    runner: BatchRunner,
    dispatchers: Sequence[SourceDispatcher],
    caches: Sequence[DedupCache],
    times: Sequence[tuple[int, int]],
    tz: str = DEFAULT_TIMEZONE,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Optional[Callable[[], datetime]] = None,
    max_ticks: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> list[BatchResult]:
    logger = logger or logging.getLogger(__name__)
    clock = clock or utc_now
    zone = ZoneInfo(tz)
    # only kept when the loop is bounded
    results: list[BatchResult] = []

    purged = purge_caches(caches)
    logger.info(
        "schedule enabled: times=%s tz=%s sources=%s purged_days=%s",
        describe_times(times),
        tz,
        len(dispatchers),
        purged,
    )

    ticks = 0
    while max_ticks is None or ticks < max_ticks:
        now = clock().astimezone(zone)
        upcoming = next_run(now, times)
        wait_seconds = max((upcoming - now).total_seconds(), 0.0)
        logger.info(
            "next run at %s (in %.0f seconds)",
            upcoming.strftime("%Y-%m-%d %H:%M:%S %Z"),
            wait_seconds,
        )
        await sleep(wait_seconds)

        purge_caches(caches)
        result = await runner.run_all(dispatchers, trigger=TRIGGER_SCHEDULED)
        logger.info("scheduled run finished:\n%s", format_summary(result))
        if max_ticks is not None:
            results.append(result)
        ticks += 1
    return results
