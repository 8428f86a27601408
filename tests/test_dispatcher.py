import asyncio
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from feed_courier.dispatcher import ALREADY_RUNNING, SourceDispatcher
from feed_courier.fetchers.base import FeedSource
from feed_courier.models import Article, DeliveryResult
from feed_courier.scoring import RelevanceScorer
from feed_courier.senders.base import Sender
from feed_courier.senders.router import SenderRouter
from feed_courier.sources import SourceConfig
from feed_courier.store import DedupCache

NOW = datetime(2026, 2, 7, 3, 0, tzinfo=timezone.utc)


class FakeFetcher(FeedSource):
    name = "fake"

    def __init__(self, articles: Optional[list[Article]] = None, error: Optional[Exception] = None):
        self.articles = articles or []
        self.error = error
        self.calls = 0

    def fetch_candidates(self) -> list[Article]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.articles)


class GatedFetcher(FeedSource):
    name = "gated"

    def __init__(self, gates: list[threading.Event]):
        self.gates = gates
        self.calls: list[int] = []

    def fetch_candidates(self) -> list[Article]:
        index = len(self.calls)
        self.calls.append(index)
        self.gates[index].wait(5)
        return []


class CapturingSender(Sender):
    name = "capturing"

    def __init__(self, fail_urls: tuple[str, ...] = ()):
        self.fail_urls = fail_urls
        self.calls: list[tuple[str, str]] = []

    def send(self, target: str, message: str) -> DeliveryResult:
        self.calls.append((target, message))
        failed = any(url in message for url in self.fail_urls)
        return DeliveryResult(
            channel=self.name,
            success=not failed,
            error_message="send failed" if failed else None,
        )


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _article(title: str, url: str, age: timedelta = timedelta(hours=1), body: str = "") -> Article:
    return Article(
        title=title,
        url=url,
        published_at=NOW - age,
        raw_text=f"{title}\n{body}",
        source="toss",
    )


def _dispatcher(
    fetcher: FeedSource,
    sender: CapturingSender,
    source: Optional[SourceConfig] = None,
    sleep=None,
    **kwargs,
) -> SourceDispatcher:
    source = source or SourceConfig("toss", "Toss", feed_url="https://toss.tech/rss.xml")
    return SourceDispatcher(
        source=source,
        fetcher=fetcher,
        router=SenderRouter(sender, max_attempts=1),
        cache=DedupCache(source.key, clock=lambda: NOW),
        scorer=RelevanceScorer(lenient=source.lenient),
        target="-100",
        sleep=sleep or SleepRecorder(),
        clock=lambda: NOW,
        **kwargs,
    )


def test_run_filters_scores_and_delivers_in_order() -> None:
    fetcher = FakeFetcher(
        [
            _article("React 18 Concurrent Features Tutorial", "https://example.com/react", body="react hooks"),
            _article("모바일 앱 개발 신기술", "https://example.com/mobile", body="react typescript"),
            _article("Old TypeScript tips", "https://example.com/old", age=timedelta(days=3)),
            _article("TypeScript and Vite setup", "https://example.com/vite", body="typescript vite"),
        ]
    )
    sender = CapturingSender()
    sleep = SleepRecorder()
    dispatcher = _dispatcher(fetcher, sender, sleep=sleep)

    result = asyncio.run(dispatcher.run_scheduled())

    assert result.success is True
    assert result.articles_found == 2
    assert result.messages_sent == 2
    assert result.failed == 0
    assert [target for target, _ in sender.calls] == ["-100", "-100"]
    assert "https://example.com/react" in sender.calls[0][1]
    assert "https://example.com/vite" in sender.calls[1][1]
    assert sender.calls[0][1].startswith("[ Toss ]")
    assert sleep.delays == [1.0]


def test_second_run_same_day_skips_delivered_urls() -> None:
    fetcher = FakeFetcher([_article("React hooks guide", "https://example.com/react", body="react")])
    sender = CapturingSender()
    dispatcher = _dispatcher(fetcher, sender)

    first = asyncio.run(dispatcher.run_scheduled())
    second = asyncio.run(dispatcher.run_scheduled())

    assert first.messages_sent == 1
    assert second.articles_found == 0
    assert second.messages_sent == 0
    assert len(sender.calls) == 1
    assert dispatcher.stats.total_runs == 2
    assert dispatcher.stats.successful_runs == 2
    assert dispatcher.stats.articles_processed == 1


def test_failed_delivery_is_counted_and_not_marked_seen() -> None:
    fetcher = FakeFetcher(
        [
            _article("React hooks guide", "https://example.com/broken", body="react"),
            _article("TypeScript patterns", "https://example.com/ok", body="typescript"),
        ]
    )
    sender = CapturingSender(fail_urls=("https://example.com/broken",))
    dispatcher = _dispatcher(fetcher, sender)

    result = asyncio.run(dispatcher.run_manual())

    assert result.success is True
    assert result.messages_sent == 1
    assert result.failed == 1
    assert dispatcher.cache.has_seen("https://example.com/ok") is True
    assert dispatcher.cache.has_seen("https://example.com/broken") is False


def test_fetch_error_is_a_failed_run() -> None:
    fetcher = FakeFetcher(error=ConnectionError("feed unreachable"))
    sender = CapturingSender()
    dispatcher = _dispatcher(fetcher, sender)

    result = asyncio.run(dispatcher.run_scheduled())

    assert result.success is False
    assert result.error == "feed unreachable"
    assert sender.calls == []
    assert dispatcher.stats.total_runs == 1
    assert dispatcher.stats.failed_runs == 1
    assert dispatcher.stats.success_rate() == 0
    assert dispatcher.is_running is False


def test_bypass_dedup_redelivers_without_recording() -> None:
    fetcher = FakeFetcher([_article("React hooks guide", "https://example.com/react", body="react")])
    sender = CapturingSender()
    dispatcher = _dispatcher(fetcher, sender)

    asyncio.run(dispatcher.run_manual(bypass_dedup=True))
    asyncio.run(dispatcher.run_manual(bypass_dedup=True))

    assert len(sender.calls) == 2
    assert dispatcher.cache.has_seen("https://example.com/react") is False


def test_unscored_source_keeps_window_and_caps_items() -> None:
    source = SourceConfig(
        "naverfenews",
        "Naver FE News",
        feed_url="https://example.com/atom",
        scoring=False,
        max_items=2,
    )
    fetcher = FakeFetcher([_article(f"commit {index}", f"https://example.com/{index}") for index in range(4)])
    sender = CapturingSender()
    dispatcher = _dispatcher(fetcher, sender, source=source)

    result = asyncio.run(dispatcher.run_scheduled())

    assert result.articles_found == 2
    assert result.messages_sent == 2


def test_source_lookback_override_widens_window() -> None:
    source = SourceConfig("toss", "Toss", feed_url="https://toss.tech/rss.xml", lookback_days=7)
    fetcher = FakeFetcher(
        [_article("React hooks guide", "https://example.com/react", age=timedelta(days=3), body="react")]
    )
    dispatcher = _dispatcher(fetcher, CapturingSender(), source=source)

    assert dispatcher.lookback_days == 7
    assert asyncio.run(dispatcher.run_scheduled()).messages_sent == 1


def test_manual_run_waits_and_scheduled_runs_are_skipped() -> None:
    gates = [threading.Event(), threading.Event()]
    fetcher = GatedFetcher(gates)
    dispatcher = _dispatcher(fetcher, CapturingSender(), sleep=asyncio.sleep, manual_poll_sec=0.01)

    async def scenario():
        scheduled = asyncio.ensure_future(dispatcher.run_scheduled())
        await asyncio.sleep(0)
        assert dispatcher.is_running is True

        manual = asyncio.ensure_future(dispatcher.run_manual())
        await asyncio.sleep(0.05)
        skipped_during_scheduled = await dispatcher.run_scheduled()
        assert manual.done() is False

        gates[0].set()
        first = await scheduled

        while not dispatcher.is_manual_running:
            await asyncio.sleep(0.01)
        skipped_during_manual = await dispatcher.run_scheduled()

        gates[1].set()
        second = await manual
        return first, second, skipped_during_scheduled, skipped_during_manual

    first, second, skipped_a, skipped_b = asyncio.run(scenario())

    assert first.success is True
    assert second.success is True
    assert skipped_a.skipped is True
    assert skipped_a.error == ALREADY_RUNNING
    assert skipped_b.skipped is True
    assert fetcher.calls == [0, 1]
    assert dispatcher.stats.total_runs == 2
    assert dispatcher.is_running is False


def test_status_reports_flags_and_stats() -> None:
    fetcher = FakeFetcher([_article("React hooks guide", "https://example.com/react", body="react")])
    dispatcher = _dispatcher(fetcher, CapturingSender())

    asyncio.run(dispatcher.run_scheduled())
    status = dispatcher.status()

    assert status["source"] == "toss"
    assert status["is_running"] is False
    assert status["total_runs"] == 1
    assert status["success_rate"] == 100.0
    assert status["articles_processed"] == 1
    assert status["last_run_at"] == NOW.isoformat()
    assert status["cache"]["cached"] == 1


def test_render_error_fails_one_item_and_keeps_stats_consistent() -> None:
    fetcher = FakeFetcher(
        [
            _article("React hooks guide", "https://example.com/bad", body="react"),
            _article("TypeScript patterns", "https://example.com/ok", body="typescript"),
        ]
    )
    sender = CapturingSender()

    def renderer(article: Article, source_label: str) -> str:
        if article.url.endswith("/bad"):
            raise ValueError("cannot render")
        return f"{source_label}\n{article.url}"

    dispatcher = _dispatcher(fetcher, sender, renderer=renderer)

    result = asyncio.run(dispatcher.run_scheduled())

    assert result.success is True
    assert result.messages_sent == 1
    assert result.failed == 1
    assert [message for _, message in sender.calls] == ["Toss\nhttps://example.com/ok"]
    assert dispatcher.stats.total_runs == 1
    assert dispatcher.stats.successful_runs + dispatcher.stats.failed_runs == 1
    assert dispatcher.cache.has_seen("https://example.com/bad") is False
