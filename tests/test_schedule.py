import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from feed_courier.models import BatchResult
from feed_courier.schedule import hourly_times, next_run, parse_times, run_schedule
from feed_courier.store import DedupCache

SEOUL = ZoneInfo("Asia/Seoul")


def test_parse_times_sorts_and_accepts_hours_and_minutes() -> None:
    assert parse_times("18, 9,12:30") == [(9, 0), (12, 30), (18, 0)]
    assert parse_times("6:05,6:05") == [(6, 5)]


@pytest.mark.parametrize("value", ["24", "12:60", "4pm", "", "9:00:00"])
def test_parse_times_rejects_bad_values(value: str) -> None:
    with pytest.raises(ValueError):
        parse_times(value)


def test_hourly_times_is_inclusive_of_end_hour() -> None:
    assert hourly_times(9, 18, 3) == [(9, 0), (12, 0), (15, 0), (18, 0)]
    assert hourly_times(9, 18, 2) == [(9, 0), (11, 0), (13, 0), (15, 0), (17, 0)]


@pytest.mark.parametrize("start,end,interval", [(-1, 18, 2), (9, 24, 2), (9, 18, 0), (18, 9, 2), (9, 9, 1)])
def test_hourly_times_validation(start: int, end: int, interval: int) -> None:
    with pytest.raises(ValueError):
        hourly_times(start, end, interval)


def test_next_run_same_day() -> None:
    now = datetime(2026, 2, 7, 10, 0, tzinfo=SEOUL)
    assert next_run(now, [(9, 0), (12, 30)]) == datetime(2026, 2, 7, 12, 30, tzinfo=SEOUL)


def test_next_run_rolls_to_tomorrow_when_passed_or_equal() -> None:
    now_equal = datetime(2026, 2, 7, 18, 0, tzinfo=SEOUL)
    assert next_run(now_equal, [(9, 0), (18, 0)]) == datetime(2026, 2, 8, 9, 0, tzinfo=SEOUL)


class FakeRunner:
    def __init__(self):
        self.calls: list[str] = []

    async def run_all(self, dispatchers, trigger: str = "manual", bypass_dedup: bool = False) -> BatchResult:
        self.calls.append(trigger)
        count = len(dispatchers)
        return BatchResult(total=count, succeeded=count, failed=0, articles_found=0, messages_sent=0)


def test_run_schedule_sleeps_until_slot_and_purges_caches() -> None:
    clock_values = [datetime(2026, 2, 7, 8, 0, tzinfo=SEOUL)]
    cache = DedupCache("toss", clock=lambda: clock_values[0])
    cache.mark_seen("https://example.com/old")
    waits: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        waits.append(seconds)
        clock_values[0] = datetime(2026, 2, 8, 9, 0, tzinfo=SEOUL)

    runner = FakeRunner()
    results = asyncio.run(
        run_schedule(
            runner,
            ["dispatcher"],
            [cache],
            [(9, 0)],
            sleep=fake_sleep,
            clock=lambda: clock_values[0],
            max_ticks=1,
        )
    )

    assert waits == [3600.0]
    assert runner.calls == ["scheduled"]
    assert len(results) == 1
    assert cache.status()["days"] == []


def test_run_schedule_returns_one_result_per_bounded_tick() -> None:
    clock_values = [datetime(2026, 2, 7, 8, 0, tzinfo=SEOUL)]

    async def fake_sleep(seconds: float) -> None:
        clock_values[0] = clock_values[0].replace(hour=clock_values[0].hour + 1)

    runner = FakeRunner()
    results = asyncio.run(
        run_schedule(
            runner,
            ["dispatcher"],
            [],
            [(9, 0), (10, 0), (11, 0)],
            sleep=fake_sleep,
            clock=lambda: clock_values[0],
            max_ticks=3,
        )
    )

    assert runner.calls == ["scheduled"] * 3
    assert [result.total for result in results] == [1, 1, 1]
