"""
Embedded and native video discovery.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any
from urllib.parse import urlparse

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import absolute_url, dedupe, parse_html

PLATFORM_HOSTS: dict[str, tuple[str, ...]] = {
    "youtube": ("youtube.com", "youtu.be", "youtube-nocookie.com"),
    "vimeo": ("vimeo.com",),
    "wistia": ("wistia.com", "wistia.net"),
    "dailymotion": ("dailymotion.com",),
}


def _platform(url: str) -> str | None:
    host = urlparse(url).netloc.lower()
    for platform, hosts in PLATFORM_HOSTS.items():
        if any(host == candidate or host.endswith("." + candidate) for candidate in hosts):
            return platform
    return None


class VideoExtractor(BaseExtractor):
    kind = ExtractorKind.VIDEOS
    section = "videos"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        videos: list[dict[str, Any]] = []
        for page in pages:
            soup = parse_html(page.content)
            for frame in soup.find_all("iframe"):
                url = absolute_url(page.url, frame.get("src") or frame.get("data-src"))
                platform = _platform(url) if url else None
                if url and platform:
                    videos.append({"url": url, "platform": platform, "page": page.url})
            for video in soup.find_all("video"):
                sources = [video.get("src")] + [source.get("src") for source in video.find_all("source")]
                for src in sources:
                    url = absolute_url(page.url, src)
                    if url:
                        videos.append({"url": url, "platform": "native", "page": page.url})

        return {"videos": dedupe(videos, key=lambda item: item["url"])}
