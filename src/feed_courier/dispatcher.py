from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Optional

from .dates import DEFAULT_LOOKBACK_DAYS, DEFAULT_TIMEZONE, filter_window, validate_lookback_days
from .fetchers.base import FeedSource
from .message import format_article_message
from .models import TRIGGER_MANUAL, TRIGGER_SCHEDULED, Article, RunResult, RunStats, utc_now
from .scoring import RelevanceScorer
from .senders.router import SenderRouter
from .sources import SourceConfig
from .store import DedupCache

ALREADY_RUNNING = "run already in progress"


class SourceDispatcher:
    """Runs the fetch, filter and deliver cycle for one source.

    At most one run is in flight per instance. A scheduled trigger that finds
    a run in flight is skipped; a manual trigger waits for it to finish.
    """

    def __init__(
        self,
        source: SourceConfig,
        fetcher: FeedSource,
        router: SenderRouter,
        cache: DedupCache,
        scorer: Optional[RelevanceScorer] = None,
        renderer: Callable[..., str] = format_article_message,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        timezone: str = DEFAULT_TIMEZONE,
        target: str = "",
        delivery_delay_sec: float = 1.0,
        manual_poll_sec: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.source = source
        self.fetcher = fetcher
        self.router = router
        self.cache = cache
        self.scorer = scorer
        self.renderer = renderer
        self.lookback_days = validate_lookback_days(source.lookback_days or lookback_days)
        self.timezone = timezone
        self.target = target
        self.delivery_delay_sec = delivery_delay_sec
        self.manual_poll_sec = manual_poll_sec
        self.sleep = sleep
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger(__name__)

        self.stats = RunStats()
        self.is_running = False
        self.is_manual_running = False

    @property
    def key(self) -> str:
        return self.source.key

    async def run_scheduled(self) -> RunResult:
        return await self.run_once(trigger=TRIGGER_SCHEDULED)

    async def run_manual(self, bypass_dedup: bool = False) -> RunResult:
        return await self.run_once(trigger=TRIGGER_MANUAL, bypass_dedup=bypass_dedup)

    async def run_once(self, trigger: str = TRIGGER_MANUAL, bypass_dedup: bool = False) -> RunResult:
        if trigger == TRIGGER_MANUAL:
            while self.is_running:
                self.logger.info("waiting for in-flight run: source=%s", self.key)
                await self.sleep(self.manual_poll_sec)
        elif self.is_running:
            self.logger.info("run skipped, already in progress: source=%s trigger=%s", self.key, trigger)
            return RunResult(source=self.key, success=False, skipped=True, error=ALREADY_RUNNING)

        self.is_running = True
        self.is_manual_running = trigger == TRIGGER_MANUAL
        self.stats.total_runs += 1
        self.stats.last_run_at = self.clock()
        self.logger.info(
            "run started: source=%s trigger=%s bypass_dedup=%s lookback_days=%s",
            self.key,
            trigger,
            bypass_dedup,
            self.lookback_days,
        )
        try:
            return await self._run(bypass_dedup)
        finally:
            self.is_running = False
            self.is_manual_running = False

    async def _run(self, bypass_dedup: bool) -> RunResult:
        try:
            candidates = await self._select(bypass_dedup)
        except Exception as exc:
            self.stats.failed_runs += 1
            self.logger.exception("run failed: source=%s", self.key)
            return RunResult(source=self.key, success=False, error=str(exc) or exc.__class__.__name__)

        sent, failed = await self._deliver(candidates, record_seen=not bypass_dedup)

        self.stats.successful_runs += 1
        self.stats.last_success_at = self.clock()
        self.stats.articles_processed += sent
        self.logger.info(
            "run complete: source=%s found=%s sent=%s failed=%s",
            self.key,
            len(candidates),
            sent,
            failed,
        )
        return RunResult(
            source=self.key,
            success=True,
            articles_found=len(candidates),
            messages_sent=sent,
            failed=failed,
        )

    async def _select(self, bypass_dedup: bool) -> list[Article]:
        fetched = await asyncio.to_thread(self.fetcher.fetch_candidates)
        in_window = filter_window(fetched, self.lookback_days, now=self.clock(), tz=self.timezone)
        self.logger.info(
            "date window applied: source=%s fetched=%s in_window=%s days=%s",
            self.key,
            len(fetched),
            len(in_window),
            self.lookback_days,
        )

        if self.source.max_items is not None:
            in_window = in_window[: self.source.max_items]

        if self.scorer is not None and self.source.scoring:
            admitted = [article for article in in_window if self.scorer.is_admitted(article)]
            self.logger.info(
                "relevance filter applied: source=%s before=%s after=%s",
                self.key,
                len(in_window),
                len(admitted),
            )
        else:
            admitted = in_window

        if bypass_dedup:
            self.logger.info("dedup skipped: source=%s items=%s", self.key, len(admitted))
            return admitted
        return self.cache.filter_unseen(admitted, mark_seen=False)

    async def _deliver(self, articles: list[Article], record_seen: bool = True) -> tuple[int, int]:
        sent = 0
        failed = 0
        for index, article in enumerate(articles):
            if index > 0 and self.delivery_delay_sec > 0:
                await self.sleep(self.delivery_delay_sec)
            try:
                message = self.renderer(article, source_label=self.source.name)
                routed = await asyncio.to_thread(self.router.send, self.target, message)
            except Exception:
                failed += 1
                self.logger.exception("delivery raised: source=%s url=%s", self.key, article.url)
                continue

            result = routed.final_result
            if result.success:
                sent += 1
                if record_seen:
                    self.cache.mark_seen(article.url)
                self.logger.info("delivered: source=%s channel=%s url=%s", self.key, result.channel, article.url)
            else:
                failed += 1
                self.logger.warning(
                    "delivery failed: source=%s url=%s attempts=%s error=%s",
                    self.key,
                    article.url,
                    len(routed.attempts),
                    result.error_message,
                )
        return sent, failed

    def status(self) -> dict[str, object]:
        rate = self.stats.success_rate()
        return {
            "source": self.key,
            "name": self.source.name,
            "is_running": self.is_running,
            "is_manual_running": self.is_manual_running,
            "total_runs": self.stats.total_runs,
            "successful_runs": self.stats.successful_runs,
            "failed_runs": self.stats.failed_runs,
            "success_rate": None if rate is None else round(rate, 1),
            "articles_processed": self.stats.articles_processed,
            "last_run_at": self.stats.last_run_at.isoformat() if self.stats.last_run_at else None,
            "last_success_at": self.stats.last_success_at.isoformat() if self.stats.last_success_at else None,
            "cache": self.cache.today_stats(),
        }
