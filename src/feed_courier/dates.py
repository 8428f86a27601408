from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from .models import Article, utc_now

DEFAULT_LOOKBACK_DAYS = 1
MIN_LOOKBACK_DAYS = 1
MAX_LOOKBACK_DAYS = 30
DEFAULT_TIMEZONE = "Asia/Seoul"

NAMED_PERIODS = {
    "today": 1,
    "yesterday": 2,
    "last3days": 3,
    "last7days": 7,
}


def validate_lookback_days(days: int) -> int:
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValueError(f"lookback days must be an integer, got: {days!r}")
    if days < MIN_LOOKBACK_DAYS or days > MAX_LOOKBACK_DAYS:
        raise ValueError(
            f"lookback days must be between {MIN_LOOKBACK_DAYS} and {MAX_LOOKBACK_DAYS}, got: {days}"
        )
    return days


def resolve_lookback(value: Union[int, str, None]) -> int:
    if value is None:
        return DEFAULT_LOOKBACK_DAYS
    if isinstance(value, str):
        text = value.strip().lower()
        if text in NAMED_PERIODS:
            return NAMED_PERIODS[text]
        try:
            value = int(text)
        except ValueError:
            raise ValueError(f"invalid lookback value: {value!r}") from None
    return validate_lookback_days(value)


def window_start(days: int, now: Optional[datetime] = None, tz: str = DEFAULT_TIMEZONE) -> datetime:
    validate_lookback_days(days)
    zone = ZoneInfo(tz)
    local_now = (now or utc_now()).astimezone(zone)
    first_day = local_now.date() - timedelta(days=days - 1)
    return datetime.combine(first_day, time.min, tzinfo=zone)


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def within_window(article: Article, start: datetime, end: datetime) -> bool:
    published = getattr(article, "published_at", None)
    if not isinstance(published, datetime):
        return False
    published = _as_aware(published)
    return start <= published <= end


def filter_window(
    articles: Iterable[Article],
    days: int,
    now: Optional[datetime] = None,
    tz: str = DEFAULT_TIMEZONE,
) -> list[Article]:
    end = _as_aware(now) if now else utc_now()
    start = window_start(days, now=end, tz=tz)
    return [article for article in articles if within_window(article, start, end)]
