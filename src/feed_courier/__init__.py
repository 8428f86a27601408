"""Collect posts from tech blog feeds, keep the relevant ones and deliver them to Telegram."""

__version__ = "0.1.0"
