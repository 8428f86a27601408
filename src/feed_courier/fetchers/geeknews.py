from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup

from ..models import Article, utc_now
from .base import FeedSource

DEFAULT_BASE_URL = "https://news.hada.io"
TOPIC_SELECTOR = 'a[href*="topic?id="]'
MIN_TITLE_LEN = 5
SKIP_TITLE_MARKERS = ("더 불러오기", "댓글")

RELATIVE_TIME_RE = re.compile(r"(\d+)\s*(분|시간|일)\s*전")
POINTS_RE = re.compile(r"(\d+)\s*포인트")


class GeekNewsFetcher(FeedSource):
    def __init__(
        self,
        source_key: str = "geeknews",
        base_url: str = DEFAULT_BASE_URL,
        timeout_sec: float = 10.0,
        user_agent: str = "Mozilla/5.0",
        session: Optional[requests.Session] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.name = source_key
        self.base_url = base_url
        self.timeout_sec = timeout_sec
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.clock = clock or utc_now
        self.logger = logger or logging.getLogger(__name__)

    def fetch_candidates(self) -> list[Article]:
        response = self.session.get(
            self.base_url,
            timeout=self.timeout_sec,
            headers={"User-Agent": self.user_agent},
        )
        response.raise_for_status()
        articles = self.parse(response.text)
        self.logger.info("geeknews scraped: source=%s items=%s", self.name, len(articles))
        return articles

    def parse(self, html: str) -> list[Article]:
        soup = BeautifulSoup(html, "html.parser")
        now = self.clock()
        seen: set[str] = set()
        articles: list[Article] = []

        for link in soup.select(TOPIC_SELECTOR):
            title = " ".join(link.get_text(" ", strip=True).split())
            href = (link.get("href") or "").strip()
            if not title or len(title) < MIN_TITLE_LEN or not href:
                continue
            if any(marker in title for marker in SKIP_TITLE_MARKERS):
                continue
            url = urljoin(self.base_url + "/", href)
            if url in seen:
                continue
            seen.add(url)

            parent_text = link.parent.get_text(" ", strip=True) if link.parent else ""
            articles.append(
                Article(
                    title=title,
                    url=url,
                    published_at=self._parse_relative_time(parent_text, now),
                    raw_text=title,
                    source=self.name,
                    summary=self._points_label(parent_text),
                )
            )
        return articles

    def _parse_relative_time(self, text: str, now: datetime) -> Optional[datetime]:
        compact = text.replace(" ", "")
        match = RELATIVE_TIME_RE.search(text) or RELATIVE_TIME_RE.search(compact)
        if match:
            amount = int(match.group(1))
            unit = match.group(2)
            if unit == "분":
                return now - timedelta(minutes=amount)
            if unit == "시간":
                return now - timedelta(hours=amount)
            return now - timedelta(days=amount)
        if "방금" in compact:
            return now
        if "어제" in compact:
            return now - timedelta(days=1)
        if "오늘" in compact:
            return now
        return None

    def _points_label(self, text: str) -> str:
        match = POINTS_RE.search(text)
        if not match:
            return ""
        return f"{match.group(1)} points"
