"""
News generation: RSS headlines rewritten into full articles by Claude.

Flow per run:
1. Fetch every configured RSS feed (a failing feed is logged and skipped).
2. Newest items first; skip items already stored (same original link).
3. Rewrite each item through the LLM and insert an Article.
4. Top up from a fixed topic list when the feeds did not yield enough.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from matchday.jobs.runner import TaskOutcome
from matchday.llm.claude_client import ClaudeClient, parse_article_sections
from matchday.models import Article, utcnow
from matchday.store import RecordFilter, RecordStore

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "AI Generated"


class NewsGenerationError(RuntimeError):
    """Every LLM call of a run failed."""


@dataclass(frozen=True)
class RssSource:
    name: str
    url: str
    category: str = "general"


@dataclass
class FeedItem:
    title: str
    description: str
    link: str
    source: str
    category: str
    image: Optional[str] = None
    pub_date: Optional[datetime] = None


DEFAULT_RSS_SOURCES = [
    RssSource("VnExpress", "https://vnexpress.net/rss/bong-da.rss"),
    RssSource("Bóng Đá 24h", "https://bongda24h.vn/feed"),
    RssSource("24h Sport", "https://www.24h.com.vn/upload/rss/bongda.rss"),
    RssSource("Thể Thao 247", "https://thethao247.vn/rss/bong-da.rss"),
    RssSource("Bóng Đá Plus", "https://bongdaplus.vn/rss/tin-tuc.rss", "analysis"),
]

FALLBACK_TOPICS = [
    ("Phân tích chiến thuật Premier League mùa giải mới", "analysis"),
    ("Top 10 cầu thủ xuất sắc nhất Champions League", "general"),
    ("Chuyển nhượng: Những thương vụ đình đám nhất hè này", "transfer"),
    ("Real Madrid vs Barcelona: El Clasico kinh điển sắp tới", "analysis"),
    ("Erling Haaland: Cỗ máy ghi bàn của Manchester City", "general"),
    ("Serie A: AC Milan và Inter tranh ngôi vương", "general"),
    ("Bundesliga: Bayern Munich có tiếp tục thống trị?", "analysis"),
    ("La Liga: Cuộc đua tam mã giữa Real, Barca và Atletico", "general"),
    ("Lịch sử các trận chung kết Champions League kinh điển", "general"),
    ("Thế hệ tài năng trẻ đang lên của bóng đá Anh", "general"),
    ("Chiến thuật pressing hiện đại trong bóng đá", "analysis"),
    ("Son Heung-min: Niềm tự hào của bóng đá châu Á", "general"),
]

FALLBACK_IMAGES = [
    "https://images.unsplash.com/photo-1579952363873-27f3bade9f55?w=800",
    "https://images.unsplash.com/photo-1522778119026-d647f0596c20?w=800",
    "https://images.unsplash.com/photo-1560272564-c83b66b1ad12?w=800",
    "https://images.unsplash.com/photo-1574629810360-7efbbe195018?w=800",
    "https://images.unsplash.com/photo-1508098682722-e99c43a406b2?w=800",
    "https://images.unsplash.com/photo-1431324155629-1a6deb1dec8d?w=800",
]

ARTICLE_PROMPT = """You are a professional football analyst writing for a Vietnamese sports news site.

Task: based on the headline below, write a DETAILED, PROFESSIONAL news article in Vietnamese.

Headline: "{title}"
{description_line}{source_line}
Requirements:
1. Title: rewrite the headline to be more engaging (50-70 characters)
2. Description: short summary (120-160 characters) for the meta description
3. Content: full article in markdown with an engaging intro, 3-5 analysis paragraphs,
   the teams and players involved, tactical analysis where relevant, and a conclusion
4. Tags: 5-7 related tags

Return EXACTLY this format:
---TITLE---
[new title]

---DESCRIPTION---
[short description]

---CONTENT---
[full content]

---TAGS---
tag1, tag2, tag3, tag4, tag5

Do not invent facts; keep an objective, analytical tone."""

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_IMG_RE = re.compile(r'<img[^>]+src="([^">]+)"')


def build_article_prompt(title: str, description: str = "", source: str = "") -> str:
    return ARTICLE_PROMPT.format(
        title=title,
        description_line=f'Original summary: "{description}"\n' if description else "",
        source_line=f"Source: {source}\n" if source else "",
    )


def _parse_pub_date(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _extract_image(item, description_html: str) -> Optional[str]:
    for tag_name in ("media:content", "media:thumbnail", "enclosure"):
        tag = item.find(tag_name)
        if tag is not None and tag.get("url"):
            return tag["url"]
    match = _IMG_RE.search(description_html or "")
    return match.group(1) if match else None


def parse_feed(xml_text: str, source: RssSource) -> list[FeedItem]:
    """Parse an RSS 2.0 document into feed items."""
    soup = BeautifulSoup(xml_text, "xml")
    items = []

    for item in soup.find_all("item"):
        title_tag = item.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        if not title:
            continue

        description_tag = item.find("description")
        description_html = description_tag.get_text() if description_tag else ""
        link_tag = item.find("link")
        date_tag = item.find("pubDate")

        items.append(
            FeedItem(
                title=title,
                description=BeautifulSoup(description_html, "html.parser").get_text(" ", strip=True),
                link=link_tag.get_text(strip=True) if link_tag else "",
                source=source.name,
                category=source.category,
                image=_extract_image(item, description_html),
                pub_date=_parse_pub_date(date_tag.get_text(strip=True) if date_tag else None),
            )
        )

    return items


class NewsGenerator:
    """Task body for the news generation job."""

    def __init__(
        self,
        llm: ClaudeClient,
        store: RecordStore,
        sources: Optional[list[RssSource]] = None,
        max_articles: int = 5,
        request_delay: float = 2.0,
        feed_timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        rng: Optional[random.Random] = None,
    ):
        self.llm = llm
        self.store = store
        self.sources = DEFAULT_RSS_SOURCES if sources is None else sources
        self.max_articles = max_articles
        self.request_delay = request_delay
        self._rng = rng or random.Random()
        self._http = httpx.AsyncClient(
            timeout=feed_timeout,
            follow_redirects=True,
            headers={"User-Agent": "Mozilla/5.0 (compatible; matchday-news/1.0)"},
            transport=transport,
        )

    async def close(self) -> None:
        await self._http.aclose()

    async def fetch_feed(self, source: RssSource) -> list[FeedItem]:
        """Fetch and parse one feed; any failure yields an empty list."""
        try:
            response = await self._http.get(source.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[NEWS] Failed to fetch RSS from {source.name}: {e}")
            return []

        items = parse_feed(response.text, source)
        logger.info(f"[NEWS] Fetched {len(items)} items from {source.name}")
        return items

    async def fetch_all_feeds(self) -> list[FeedItem]:
        """All feed items, newest first (undated items last)."""
        results = await asyncio.gather(*(self.fetch_feed(source) for source in self.sources))
        items = [item for feed_items in results for item in feed_items]
        items.sort(key=lambda item: item.pub_date or _EPOCH, reverse=True)
        return items

    async def _already_stored(self, link: str, title: str) -> bool:
        if link:
            record_filter = RecordFilter(equals={"original_link": link})
        else:
            record_filter = RecordFilter(equals={"original_title": title})
        return await self.store.count(record_filter) > 0

    async def _rewrite(self, title: str, description: str, source: str):
        """LLM rewrite of one headline. Returns (sections, error)."""
        result = await self.llm.generate(build_article_prompt(title, description, source))
        if not result.ok:
            return None, result.error or result.status
        sections = parse_article_sections(result.text)
        if sections is None:
            return None, "LLM response missing TITLE or CONTENT section"
        return sections, None

    async def __call__(self, max_units: Optional[int] = None) -> TaskOutcome:
        target = max_units if max_units is not None else self.max_articles
        generated = 0
        attempts = 0
        llm_failures = 0
        skipped_existing = 0
        last_error = None

        feed_items = await self.fetch_all_feeds()
        logger.info(f"[NEWS] {len(feed_items)} RSS items, target {target} articles")

        for item in feed_items:
            if generated >= target:
                break
            if await self._already_stored(item.link, item.title):
                skipped_existing += 1
                continue

            attempts += 1
            sections, error = await self._rewrite(item.title, item.description, item.source)
            if sections is None:
                llm_failures += 1
                last_error = error
                logger.warning(f"[NEWS] Generation failed for {item.title[:50]!r}: {error}")
            else:
                article = await self.store.insert(
                    Article(
                        original_title=item.title,
                        original_description=item.description,
                        original_link=item.link or None,
                        source=item.source,
                        title=sections.title,
                        description=sections.description or item.description,
                        content=sections.content,
                        tags=sections.tags,
                        image=item.image or self._rng.choice(FALLBACK_IMAGES),
                        category=item.category,
                        pub_date=item.pub_date,
                    )
                )
                generated += 1
                logger.info(f"[NEWS] Saved: {article.title!r}")

            if generated < target and self.request_delay:
                await asyncio.sleep(self.request_delay)

        fallback_generated = 0
        if generated < target:
            logger.warning(
                f"[NEWS] RSS yielded {generated}/{target} articles, using fallback topics"
            )
            topics = list(FALLBACK_TOPICS)
            self._rng.shuffle(topics)

            for title, category in topics:
                if generated >= target:
                    break
                if await self._already_stored("", title):
                    continue

                attempts += 1
                sections, error = await self._rewrite(title, "", "")
                if sections is None:
                    llm_failures += 1
                    last_error = error
                    logger.warning(f"[NEWS] Fallback generation failed for {title[:50]!r}: {error}")
                else:
                    await self.store.insert(
                        Article(
                            original_title=title,
                            original_description="AI Generated Content",
                            source=FALLBACK_SOURCE,
                            title=sections.title,
                            description=sections.description,
                            content=sections.content,
                            tags=sections.tags,
                            image=self._rng.choice(FALLBACK_IMAGES),
                            category=category,
                            pub_date=utcnow(),
                        )
                    )
                    generated += 1
                    fallback_generated += 1

                if generated < target and self.request_delay:
                    await asyncio.sleep(self.request_delay)

        if attempts and llm_failures == attempts:
            raise NewsGenerationError(f"All {attempts} LLM calls failed: {last_error}")

        return TaskOutcome(
            items_processed=generated,
            details={
                "target": target,
                "rss_items": len(feed_items),
                "skipped_existing": skipped_existing,
                "llm_failures": llm_failures,
                "fallback_generated": fallback_generated,
            },
        )
