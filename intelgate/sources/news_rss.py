"""News headlines from crypto RSS feeds, filtered to the subject."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import feedparser

from intelgate.domain import DataKind
from intelgate.sources.base import SourceUnavailable
from intelgate.sources.http import COINGECKO_IDS, HttpSourceAdapter

logger = logging.getLogger(__name__)

_MAX_ARTICLES = 10


def subject_keywords(subject: str) -> list[str]:
    words = [subject.lower()]
    name = COINGECKO_IDS.get(subject)
    if name:
        words.append(name.split("-")[0])
    return words


def matches_subject(text: str, keywords: list[str]) -> bool:
    lowered = f" {text.lower()} "
    return any(f" {kw} " in lowered or f"{kw}'" in lowered or f"${kw}" in lowered for kw in keywords)


class NewsRSSAdapter(HttpSourceAdapter):
    def __init__(self, feeds: list[str], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._feeds = list(feeds)

    @property
    def kind(self) -> DataKind:
        return DataKind.NEWS

    @property
    def name(self) -> str:
        return "news_rss"

    async def _fetch_feed(self, url: str) -> list[dict[str, Any]]:
        try:
            text = await self._get_text(url)
        except Exception as exc:
            logger.debug("[news_rss] feed %s failed: %s", url, exc)
            return []
        parsed = feedparser.parse(text)
        return [
            {
                "title": (entry.get("title") or "").strip(),
                "summary": (entry.get("summary") or "")[:300],
                "url": entry.get("link"),
                "published": entry.get("published"),
                "feed": url,
            }
            for entry in parsed.entries
        ]

    async def _fetch(self, subject: str) -> dict[str, Any]:
        batches = await asyncio.gather(*(self._fetch_feed(u) for u in self._feeds))
        keywords = subject_keywords(subject)
        articles = [
            a for batch in batches for a in batch
            if matches_subject(f"{a['title']} {a['summary']}", keywords)
        ]
        if not any(batches):
            raise SourceUnavailable("all news feeds failed")
        feeds_ok = sum(1 for b in batches if b)
        return {
            "symbol": subject,
            "articles": articles[:_MAX_ARTICLES],
            "article_count": len(articles),
            "feeds_ok": feeds_ok,
            "feeds_total": len(self._feeds),
            "data_quality": round(100 * feeds_ok / max(len(self._feeds), 1)),
        }
