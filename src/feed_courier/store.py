from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Optional, TypeVar
from zoneinfo import ZoneInfo

from .models import utc_now

CACHE_MODE_BYPASS = "bypass"
CACHE_MODE_MEMORY = "memory"
CACHE_MODE_FILE = "file"
CACHE_MODES = (CACHE_MODE_BYPASS, CACHE_MODE_MEMORY, CACHE_MODE_FILE)

DEFAULT_CACHE_PATH = Path(".cache") / "daily-cache.json"
DEFAULT_CACHE_TIMEZONE = "Asia/Seoul"

T = TypeVar("T")


def _default_identify(item) -> str:
    return str(item.url)


class DedupCache:
    def __init__(
        self,
        name: str,
        mode: str = CACHE_MODE_MEMORY,
        cache_path: Optional[Path] = None,
        timezone: str = DEFAULT_CACHE_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        normalized = (mode or "").strip().lower()
        if normalized not in CACHE_MODES:
            options = ", ".join(CACHE_MODES)
            raise ValueError(f"Unsupported cache mode '{mode}'. Available: {options}")

        self.name = name
        self.mode = normalized
        self.cache_path = Path(cache_path) if cache_path else DEFAULT_CACHE_PATH
        self.tz = ZoneInfo(timezone)
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger(__name__)
        self._buckets: dict[str, set[str]] = {}

        self.logger.info("dedup cache ready: name=%s mode=%s", self.name, self.mode)
        if self.mode == CACHE_MODE_FILE:
            self._load()

    def today_key(self) -> str:
        return self.clock().astimezone(self.tz).strftime("%Y-%m-%d")

    def _today_bucket(self) -> set[str]:
        today = self.today_key()
        bucket = self._buckets.get(today)
        if bucket is None:
            bucket = set()
            self._buckets[today] = bucket
            self.logger.info("daily bucket created: name=%s date=%s", self.name, today)
        return bucket

    def has_seen(self, identifier: str) -> bool:
        if self.mode == CACHE_MODE_BYPASS:
            return False
        return identifier in self._today_bucket()

    def mark_seen(self, identifier: str) -> None:
        if self.mode == CACHE_MODE_BYPASS:
            self.logger.debug("bypass mode, not recording: name=%s id=%s", self.name, identifier)
            return
        self._today_bucket().add(identifier)
        self._persist()

    def filter_unseen(
        self,
        candidates: Iterable[T],
        identify: Callable[[T], str] = _default_identify,
        mark_seen: bool = True,
        bypass: bool = False,
    ) -> list[T]:
        items = list(candidates)
        if bypass:
            self.logger.warning(
                "per-call cache bypass is deprecated, build the cache with mode=%s instead: name=%s",
                CACHE_MODE_BYPASS,
                self.name,
            )
        if self.mode == CACHE_MODE_BYPASS or bypass:
            self.logger.info("dedup bypassed: name=%s items=%s", self.name, len(items))
            return items

        bucket = self._today_bucket()
        unseen: list[T] = []
        pending: set[str] = set()
        for item in items:
            identifier = identify(item)
            if identifier in bucket or identifier in pending:
                continue
            pending.add(identifier)
            unseen.append(item)

        if mark_seen and unseen:
            bucket.update(pending)
            self._persist()

        self.logger.info(
            "dedup filtered: name=%s mode=%s before=%s after=%s",
            self.name,
            self.mode,
            len(items),
            len(unseen),
        )
        return unseen

    def purge_stale_days(self) -> int:
        today = self.today_key()
        stale = [day for day in self._buckets if day != today]
        for day in stale:
            removed = self._buckets.pop(day)
            self.logger.info("stale bucket purged: name=%s date=%s items=%s", self.name, day, len(removed))
        if stale:
            self._persist()
        return len(stale)

    def today_stats(self) -> dict[str, object]:
        today = self.today_key()
        bucket = self._buckets.get(today)
        return {
            "name": self.name,
            "date": today,
            "cached": len(bucket) if bucket else 0,
            "mode": self.mode,
        }

    def status(self) -> dict[str, object]:
        today = self.today_key()
        return {
            "name": self.name,
            "mode": self.mode,
            "days": [
                {"date": day, "count": len(bucket), "is_today": day == today}
                for day, bucket in sorted(self._buckets.items())
            ],
        }

    def _load(self) -> None:
        if not self.cache_path.exists():
            self.logger.info("cache file missing, starting empty: name=%s path=%s", self.name, self.cache_path)
            return
        try:
            payload = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.logger.warning("cache file load failed: name=%s path=%s error=%s", self.name, self.cache_path, exc)
            return
        if not isinstance(payload, dict):
            self.logger.warning("cache file has unexpected shape: name=%s path=%s", self.name, self.cache_path)
            return

        today = self.today_key()
        entries = payload.get(today)
        if isinstance(entries, list):
            self._buckets[today] = {str(entry) for entry in entries}
            self.logger.info("cache file loaded: name=%s date=%s items=%s", self.name, today, len(entries))

    def _persist(self) -> None:
        if self.mode != CACHE_MODE_FILE:
            return
        payload = {day: sorted(bucket) for day, bucket in self._buckets.items()}
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            self.logger.warning("cache file write failed: name=%s path=%s error=%s", self.name, self.cache_path, exc)
            return
        self.logger.debug("cache file written: name=%s path=%s", self.name, self.cache_path)
