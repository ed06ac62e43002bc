"""
Site-level metadata: title, description, navigation and structure.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import (
    absolute_url,
    clean_text,
    dedupe,
    meta_content,
    page_title,
    parse_html,
)

MAX_MENU_ITEMS = 50
MAX_PROMINENT_LINKS = 20


class GeneralExtractor(BaseExtractor):
    kind = ExtractorKind.GENERAL
    section = "general"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        result = self.default(context)
        if not pages:
            return result

        root = min(pages, key=lambda page: page.depth)
        soup = parse_html(root.content)

        result["title"] = root.title or page_title(soup) or context.domain
        result["description"] = (
            meta_content(soup, "description", "og:description", "twitter:description")
            or result["description"]
        )
        html_tag = soup.find("html")
        if html_tag is not None and html_tag.get("lang"):
            result["language"] = str(html_tag.get("lang")).strip()
        icon = soup.find("link", rel=lambda value: value and "icon" in value)
        if icon is not None:
            result["favicon"] = absolute_url(root.url, icon.get("href"))

        result["navigationStructure"] = {
            "mainMenu": self._links_within(soup, root.url, ["nav", "header"]),
            "footerLinks": self._links_within(soup, root.url, ["footer"]),
        }
        result["prominentLinks"] = self._prominent_links(pages, context)
        result["siteStructure"] = self._site_structure(pages)
        return result

    @staticmethod
    def _links_within(soup: BeautifulSoup, base_url: str, containers: list[str]) -> list[dict[str, str]]:
        items: list[dict[str, str]] = []
        for container in soup.find_all(containers):
            for anchor in container.find_all("a", href=True):
                url = absolute_url(base_url, anchor.get("href"))
                text = clean_text(anchor.get_text(" ", strip=True))
                if url and text:
                    items.append({"text": text[:120], "url": url})
        return dedupe(items, key=lambda item: item["url"], limit=MAX_MENU_ITEMS)

    @staticmethod
    def _prominent_links(pages: Sequence[Page], context: ExtractionContext) -> list[dict[str, Any]]:
        """
        Internal links referenced from the most pages.
        """

        counts: Counter[str] = Counter()
        labels: dict[str, str] = {}
        for page in pages:
            soup = parse_html(page.content)
            seen_on_page: set[str] = set()
            for anchor in soup.find_all("a", href=True):
                url = absolute_url(page.url, anchor.get("href"))
                if not url or not urlparse(url).netloc.endswith(context.domain):
                    continue
                if url in seen_on_page:
                    continue
                seen_on_page.add(url)
                counts[url] += 1
                text = clean_text(anchor.get_text(" ", strip=True))
                if text and url not in labels:
                    labels[url] = text[:120]
        return [
            {"url": url, "text": labels.get(url, ""), "references": count}
            for url, count in counts.most_common(MAX_PROMINENT_LINKS)
        ]

    @staticmethod
    def _site_structure(pages: Sequence[Page]) -> dict[str, Any]:
        sections: Counter[str] = Counter()
        for page in pages:
            segments = [segment for segment in urlparse(page.url).path.split("/") if segment]
            sections["/" + segments[0] if segments else "/"] += 1
        return {
            "sections": [{"path": path, "pages": count} for path, count in sorted(sections.items())],
            "pageCount": len(pages),
        }
