"""
Blog detection and article listing.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import clean_text, dedupe, meta_content, page_title, parse_html

BLOG_PATH_PATTERN = re.compile(r"/(blog|news|articles?|posts?|journal|stories|insights)(/|$)", re.IGNORECASE)
MAX_ARTICLES = 100
EXCERPT_CHARS = 280


class BlogExtractor(BaseExtractor):
    kind = ExtractorKind.BLOG
    section = "blog"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        result = self.default(context)
        articles: list[dict[str, Any]] = []
        blog_roots: list[str] = []

        for page in pages:
            path = urlparse(page.url).path
            match = BLOG_PATH_PATTERN.search(path)
            soup = parse_html(page.content)
            has_article = soup.find("article") is not None

            if match and len(path.rstrip("/")) == match.end(1):
                # Listing page such as /blog or /news/.
                blog_roots.append(page.url)
                continue
            if not match and not self._looks_like_post(soup, has_article):
                continue
            articles.append(self._article(page, soup))

        articles = dedupe(articles, key=lambda item: item["url"], limit=MAX_ARTICLES)
        result["hasBlog"] = bool(blog_roots or articles)
        result["blogUrl"] = blog_roots[0] if blog_roots else None
        result["articles"] = articles
        return result

    @staticmethod
    def _looks_like_post(soup: BeautifulSoup, has_article: bool) -> bool:
        if meta_content(soup, "og:type") == "article":
            return True
        return has_article and soup.find("time") is not None

    @staticmethod
    def _article(page: Page, soup: BeautifulSoup) -> dict[str, Any]:
        published = meta_content(soup, "article:published_time", "date", "pubdate")
        if published is None:
            time_tag = soup.find("time")
            if time_tag is not None:
                published = time_tag.get("datetime") or clean_text(time_tag.get_text(" ", strip=True)) or None

        body = soup.find("article") or soup.find("main") or soup.body or soup
        paragraph = body.find("p")
        excerpt = clean_text(paragraph.get_text(" ", strip=True)) if paragraph is not None else ""
        return {
            "title": page.title or page_title(soup) or page.url,
            "url": page.url,
            "publishedAt": published,
            "excerpt": excerpt[:EXCERPT_CHARS],
        }
