"""
Social profile links.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import absolute_url, parse_html

SOCIAL_HOSTS: dict[str, tuple[str, ...]] = {
    "facebook": ("facebook.com", "fb.com"),
    "twitter": ("twitter.com", "x.com"),
    "instagram": ("instagram.com",),
    "linkedin": ("linkedin.com",),
    "youtube": ("youtube.com",),
    "tiktok": ("tiktok.com",),
    "pinterest": ("pinterest.com",),
    "github": ("github.com",),
    "threads": ("threads.net",),
}

# Share/intent endpoints point at the platform, not at the site's profile.
SHARE_PATH_HINTS = ("/sharer", "/share", "/intent/", "/shareArticle", "/pin/create")


class SocialMediaExtractor(BaseExtractor):
    kind = ExtractorKind.SOCIAL
    section = "socialMedia"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        links: dict[str, str] = {}
        for page in pages:
            soup = parse_html(page.content)
            for anchor in soup.find_all("a", href=True):
                url = absolute_url(page.url, anchor.get("href"))
                if not url:
                    continue
                platform = self._platform(url)
                if platform and platform not in links:
                    links[platform] = url
        return {"links": links}

    @staticmethod
    def _platform(url: str) -> str | None:
        parsed = urlparse(url)
        host = parsed.netloc.lower().split(":")[0]
        if any(hint.lower() in parsed.path.lower() for hint in SHARE_PATH_HINTS):
            return None
        if parsed.path in {"", "/"}:
            return None
        for platform, hosts in SOCIAL_HOSTS.items():
            if any(host == candidate or host.endswith("." + candidate) for candidate in hosts):
                return platform
        return None
