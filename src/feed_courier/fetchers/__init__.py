"""Feed collaborators: RSS/Atom feeds and the GeekNews front page scraper."""

from .base import FeedSource
from .geeknews import GeekNewsFetcher
from .rss import RSSFetcher

__all__ = ["FeedSource", "GeekNewsFetcher", "RSSFetcher"]
