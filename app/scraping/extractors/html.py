"""
BeautifulSoup helpers shared by the extractors.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import Any, TypeVar
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


def parse_html(content: str) -> BeautifulSoup:
    return BeautifulSoup(content or "", "html.parser")


def clean_text(value: str | None) -> str:
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def absolute_url(base_url: str, href: str | None) -> str | None:
    """
    Resolve `href` against `base_url`; None for non-HTTP targets.
    """

    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("mailto:", "tel:", "javascript:", "data:", "#")):
        return None
    resolved, _ = urldefrag(urljoin(base_url, href))
    if urlparse(resolved).scheme not in {"http", "https"}:
        return None
    return resolved


def meta_content(soup: BeautifulSoup, *names: str) -> str | None:
    """
    Return the first non-empty `<meta name|property=...>` content.
    """

    for name in names:
        tag = soup.find("meta", attrs={"name": name}) or soup.find("meta", attrs={"property": name})
        if tag is not None:
            content = clean_text(tag.get("content"))
            if content:
                return content
    return None


def page_title(soup: BeautifulSoup) -> str | None:
    if soup.title is not None:
        title = clean_text(soup.title.get_text(" ", strip=True))
        if title:
            return title
    heading = soup.find("h1")
    if heading is not None:
        text = clean_text(heading.get_text(" ", strip=True))
        return text or None
    return None


def dedupe(items: Iterable[T], key: Callable[[T], Any], limit: int = 500) -> list[T]:
    seen: set[Any] = set()
    unique: list[T] = []
    for item in items:
        marker = key(item)
        if marker in seen:
            continue
        seen.add(marker)
        unique.append(item)
        if len(unique) >= limit:
            break
    return unique
