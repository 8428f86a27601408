from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from feed_courier.dates import filter_window, resolve_lookback, validate_lookback_days, window_start
from feed_courier.models import Article

SEOUL = ZoneInfo("Asia/Seoul")
# 2026-02-07 12:00 in Seoul
NOW = datetime(2026, 2, 7, 3, 0, tzinfo=timezone.utc)


def _article(published_at, url: str = "https://example.com/a") -> Article:
    return Article(title="t", url=url, published_at=published_at, raw_text="t", source="test")


def test_one_day_window_starts_at_local_midnight_today() -> None:
    assert window_start(1, now=NOW) == datetime(2026, 2, 7, 0, 0, tzinfo=SEOUL)


def test_two_day_window_includes_yesterday() -> None:
    assert window_start(2, now=NOW) == datetime(2026, 2, 6, 0, 0, tzinfo=SEOUL)


def test_filter_window_boundaries() -> None:
    midnight = datetime(2026, 2, 7, 0, 0, tzinfo=SEOUL)
    articles = [
        _article(midnight, "https://example.com/at-midnight"),
        _article(midnight - timedelta(seconds=1), "https://example.com/yesterday"),
        _article(NOW + timedelta(minutes=5), "https://example.com/future"),
        _article(None, "https://example.com/undated"),
    ]

    today = filter_window(articles, 1, now=NOW)
    two_days = filter_window(articles, 2, now=NOW)

    assert [item.url for item in today] == ["https://example.com/at-midnight"]
    assert [item.url for item in two_days] == [
        "https://example.com/at-midnight",
        "https://example.com/yesterday",
    ]


def test_naive_timestamps_are_read_as_utc() -> None:
    naive = datetime(2026, 2, 6, 16, 0)

    assert len(filter_window([_article(naive)], 1, now=NOW)) == 1


@pytest.mark.parametrize("days", [0, 31, -1])
def test_out_of_range_lookback_is_rejected(days: int) -> None:
    with pytest.raises(ValueError):
        validate_lookback_days(days)


def test_resolve_lookback_accepts_named_periods_and_numbers() -> None:
    assert resolve_lookback(None) == 1
    assert resolve_lookback("yesterday") == 2
    assert resolve_lookback("last7days") == 7
    assert resolve_lookback("14") == 14
    with pytest.raises(ValueError):
        resolve_lookback("fortnight")
