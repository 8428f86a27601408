from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

KIND_RSS = "rss"
KIND_GEEKNEWS = "geeknews"
SOURCE_KINDS = (KIND_RSS, KIND_GEEKNEWS)


@dataclass(frozen=True)
class SourceConfig:
    key: str
    name: str
    kind: str = KIND_RSS
    feed_url: Optional[str] = None
    lenient: bool = False
    scoring: bool = True
    lookback_days: Optional[int] = None
    enabled: bool = True
    max_items: Optional[int] = None


DEFAULT_SOURCES: dict[str, SourceConfig] = {
    source.key: source
    for source in (
        SourceConfig("toss", "Toss", feed_url="https://toss.tech/rss.xml", lenient=True),
        SourceConfig("kofearticle", "Korean FE Article", feed_url="https://kofearticle.substack.com/feed", lenient=True),
        SourceConfig("woowahan", "우아한형제들", feed_url="https://techblog.woowahan.com/feed/"),
        SourceConfig("kakaoenterprise", "카카오엔터프라이즈", feed_url="https://tech.kakaoenterprise.com/feed"),
        SourceConfig("banksalad", "뱅크샐러드", feed_url="https://blog.banksalad.com/rss.xml"),
        SourceConfig("naverd2", "Naver D2", feed_url="https://d2.naver.com/d2.atom"),
        SourceConfig("lycorp", "LY Corporation", feed_url="https://techblog.lycorp.co.jp/ko/feed/index.xml"),
        SourceConfig("hyperconnect", "Hyperconnect", feed_url="https://hyperconnect.github.io/feed.xml"),
        SourceConfig("44bits", "44BITS", feed_url="https://www.44bits.io/ko/feed/all"),
        SourceConfig(
            "naverfenews",
            "Naver FE News",
            feed_url="https://github.com/naver/fe-news/commits/master.atom",
            scoring=False,
            max_items=10,
        ),
        SourceConfig("geeknews", "GeekNews", kind=KIND_GEEKNEWS, feed_url="https://news.hada.io", max_items=10),
    )
}


def env_key(source_key: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in source_key).upper()
