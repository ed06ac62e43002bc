"""
Image inventory grouped into hero, logo and content categories.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from bs4 import Tag

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import absolute_url, clean_text, dedupe, meta_content, parse_html

MAX_IMAGES_PER_CATEGORY = 200
HERO_HINTS = ("hero", "banner", "masthead", "jumbotron", "carousel", "slider")


class ImageExtractor(BaseExtractor):
    kind = ExtractorKind.IMAGES
    section = "images"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        result = self.default(context)
        for page in pages:
            soup = parse_html(page.content)

            og_image = absolute_url(page.url, meta_content(soup, "og:image"))
            if og_image:
                item = {"url": og_image, "alt": "", "page": page.url}
                result["all"].append(item)
                result["heroImages"].append(item)

            for img in soup.find_all("img"):
                src = img.get("src") or img.get("data-src")
                url = absolute_url(page.url, src)
                if not url:
                    continue
                item = {
                    "url": url,
                    "alt": clean_text(img.get("alt"))[:200],
                    "page": page.url,
                }
                result["all"].append(item)
                if self._is_logo(img, url):
                    result["logoImages"].append(item)
                elif self._is_hero(img):
                    result["heroImages"].append(item)
                elif img.find_parent(["article", "main"]) is not None:
                    result["contentImages"].append(item)

        for category, items in result.items():
            result[category] = dedupe(items, key=lambda item: item["url"], limit=MAX_IMAGES_PER_CATEGORY)
        return result

    @staticmethod
    def _is_logo(img: Tag, url: str) -> bool:
        haystack = " ".join(
            [
                url.lower(),
                str(img.get("alt") or "").lower(),
                " ".join(img.get("class") or []).lower(),
                str(img.get("id") or "").lower(),
            ]
        )
        return "logo" in haystack

    @staticmethod
    def _is_hero(img: Tag) -> bool:
        for parent in img.parents:
            if not isinstance(parent, Tag):
                continue
            markers = " ".join(parent.get("class") or []) + " " + str(parent.get("id") or "")
            if any(hint in markers.lower() for hint in HERO_HINTS):
                return True
        return False
