from __future__ import annotations

import html
import re
from typing import Optional

from .models import Article

TELEGRAM_MAX_CHARS = 4096

TITLE_PREFIX_PATTERNS = (
    re.compile(r"^\[.*?\]\s*"),
    re.compile(r"^【.*?】\s*"),
    re.compile(r"^〔.*?〕\s*"),
    re.compile(r"^<.*?>\s*"),
    re.compile(r"^［.*?］\s*"),
    re.compile(r"^\(.*?\)\s*"),
)


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max_chars - 3].rstrip() + "..."


def _fit_escaped(text: str, budget: int) -> str:
    limit = budget
    while limit > 3:
        escaped = html.escape(_truncate(text, limit), quote=False)
        if len(escaped) <= budget:
            return escaped
        limit -= len(escaped) - budget
    return ""


def clean_title(title: Optional[str]) -> str:
    cleaned = (title or "").strip()
    for pattern in TITLE_PREFIX_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def format_article_message(
    article: Article,
    source_label: Optional[str] = None,
    max_chars: int = TELEGRAM_MAX_CHARS,
) -> str:
    label = (source_label or article.source or "").strip()
    head = f"[ {html.escape(label, quote=False)} ]" if label else ""
    url = article.url or ""

    # the title is cut before escaping so an entity is never split
    overhead = (len(head) + 1 if head else 0) + (len(url) + 2 if url else 0)
    title = _fit_escaped(clean_title(article.title), max_chars - overhead)

    message = "\n".join(part for part in (head, title) if part)
    if url:
        message = f"{message}\n\n{url}" if message else url
    return _truncate(message, max_chars)
