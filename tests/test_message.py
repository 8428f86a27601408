import re
from datetime import datetime, timezone

from feed_courier.message import clean_title, format_article_message
from feed_courier.models import Article


def _article(title: str, url: str = "https://toss.tech/article/1") -> Article:
    return Article(
        title=title,
        url=url,
        published_at=datetime(2026, 2, 7, tzinfo=timezone.utc),
        raw_text=title,
        source="toss",
    )


def test_clean_title_strips_bracketed_prefixes() -> None:
    assert clean_title("[공지] 새 글") == "새 글"
    assert clean_title("【Event】 Meetup") == "Meetup"
    assert clean_title("  (번역) React 19  ") == "React 19"
    assert clean_title(None) == ""


def test_format_article_message_has_label_title_and_url() -> None:
    message = format_article_message(_article("[Tech] A < B & C"), source_label="Toss")

    assert message == "[ Toss ]\nA &lt; B &amp; C\n\nhttps://toss.tech/article/1"


def test_format_article_message_defaults_label_to_source() -> None:
    message = format_article_message(_article("Hello"))

    assert message.startswith("[ toss ]\nHello")


def test_format_article_message_truncates_title_and_keeps_url() -> None:
    message = format_article_message(_article("x" * 5000), source_label="Toss", max_chars=100)

    assert len(message) == 100
    assert message.split("\n")[1].endswith("...")
    assert message.endswith("\n\nhttps://toss.tech/article/1")


def test_format_article_message_never_splits_html_entities() -> None:
    for offset in range(6):
        title = "a" * offset + "Q&A " * 40
        message = format_article_message(_article(title), source_label="Toss", max_chars=120)

        assert len(message) <= 120
        assert re.search(r"&(?!amp;)", message) is None
        assert message.endswith("https://toss.tech/article/1")
