from __future__ import annotations

import html as html_lib
import logging
from datetime import datetime, timezone
from typing import Optional

import feedparser
import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from ..models import Article
from .base import FeedSource

SUMMARY_MAX_CHARS = 300
BODY_MAX_CHARS = 5000
ACCEPT_HEADER = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"


class RSSFetcher(FeedSource):
    def __init__(
        self,
        source_key: str,
        feed_url: str,
        timeout_sec: float,
        user_agent: str,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not feed_url:
            raise ValueError(f"feed_url is required for source '{source_key}'")
        self.name = source_key
        self.feed_url = feed_url
        self.timeout_sec = timeout_sec
        self.user_agent = user_agent
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def fetch_candidates(self) -> list[Article]:
        response = self.session.get(
            self.feed_url,
            timeout=self.timeout_sec,
            headers={"User-Agent": self.user_agent, "Accept": ACCEPT_HEADER},
        )
        response.raise_for_status()
        articles = self.parse(response.content)
        self.logger.info("feed fetched: source=%s url=%s items=%s", self.name, self.feed_url, len(articles))
        return articles

    def parse(self, payload: bytes | str) -> list[Article]:
        feed = feedparser.parse(payload)
        entries = list(feed.get("entries") or [])
        if feed.get("bozo") and not entries:
            raise ValueError(f"malformed feed for source '{self.name}': {feed.get('bozo_exception')}")

        articles: list[Article] = []
        for entry in entries:
            article = self._entry_to_article(entry)
            if article:
                articles.append(article)
        return articles

    def _entry_to_article(self, entry) -> Optional[Article]:
        title = self._clean_text(entry.get("title"))
        url = (entry.get("link") or entry.get("id") or "").strip()
        if not title or not url:
            return None

        body = self._extract_body(entry)
        raw_text = f"{title}\n{body}" if body else title
        return Article(
            title=title,
            url=url,
            published_at=self._extract_datetime(entry),
            raw_text=raw_text[:BODY_MAX_CHARS],
            source=self.name,
            summary=self._summarize(body),
        )

    def _extract_body(self, entry) -> str:
        contents = entry.get("content") or []
        for item in contents:
            value = item.get("value") if isinstance(item, dict) else None
            text = self._clean_text(value)
            if text:
                return text
        for key in ("summary", "description"):
            text = self._clean_text(entry.get(key))
            if text:
                return text
        return ""

    def _extract_datetime(self, entry) -> Optional[datetime]:
        for key in ("published_parsed", "updated_parsed", "created_parsed"):
            parsed = entry.get(key)
            if parsed:
                try:
                    return datetime(*parsed[:6], tzinfo=timezone.utc)
                except (TypeError, ValueError):
                    continue
        for key in ("published", "updated", "created", "date"):
            value = entry.get(key)
            if not value:
                continue
            try:
                parsed_dt = date_parser.parse(value)
            except (ValueError, TypeError, OverflowError):
                continue
            if parsed_dt.tzinfo is None:
                parsed_dt = parsed_dt.replace(tzinfo=timezone.utc)
            return parsed_dt
        return None

    def _summarize(self, body: str) -> str:
        if len(body) <= SUMMARY_MAX_CHARS:
            return body
        return body[:SUMMARY_MAX_CHARS].rstrip() + "..."

    def _clean_text(self, value: object) -> str:
        if not isinstance(value, str):
            return ""
        text = html_lib.unescape(value)
        text = BeautifulSoup(text, "html.parser").get_text(" ", strip=True)
        return " ".join(text.split())
