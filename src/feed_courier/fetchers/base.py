from __future__ import annotations

from abc import ABC, abstractmethod

from ..models import Article


class FeedSource(ABC):
    name: str

    @abstractmethod
    def fetch_candidates(self) -> list[Article]:
        raise NotImplementedError
