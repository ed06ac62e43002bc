"""
ISBN-10 / ISBN-13 detection in page text and image references.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Any

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import absolute_url, dedupe, parse_html

# 13 digits starting 978/979, or 10 characters ending in a digit or X,
# optionally split by hyphens or spaces.
ISBN_CANDIDATE = re.compile(
    r"(?<![\dX])(97[89](?:[- ]?\d){10}|\d(?:[- ]?\d){8}[- ]?[\dXx])(?![\dX])"
)


def _is_valid_isbn13(digits: str) -> bool:
    total = sum(int(char) * (1 if index % 2 == 0 else 3) for index, char in enumerate(digits[:12]))
    return (10 - total % 10) % 10 == int(digits[12])


def _is_valid_isbn10(digits: str) -> bool:
    total = 0
    for index, char in enumerate(digits):
        value = 10 if char in "Xx" else int(char)
        total += value * (10 - index)
    return total % 11 == 0


def find_isbns(text: str) -> list[tuple[str, str]]:
    """
    Return `(isbn, type)` pairs with valid checksums, in order of appearance.
    """

    found: list[tuple[str, str]] = []
    for match in ISBN_CANDIDATE.finditer(text or ""):
        digits = re.sub(r"[- ]", "", match.group(1)).upper()
        if len(digits) == 13 and digits.isdigit() and _is_valid_isbn13(digits):
            found.append((digits, "ISBN-13"))
        elif len(digits) == 10 and _is_valid_isbn10(digits):
            found.append((digits, "ISBN-10"))
    return found


class ISBNExtractor(BaseExtractor):
    kind = ExtractorKind.ISBN
    section = "isbn"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        isbns: list[dict[str, Any]] = []
        images: list[dict[str, Any]] = []
        for page in pages:
            soup = parse_html(page.content)
            for isbn, isbn_type in find_isbns(soup.get_text(" ", strip=True)):
                isbns.append({"isbn": isbn, "type": isbn_type, "page": page.url})

            for img in soup.find_all("img"):
                image_url = absolute_url(page.url, img.get("src") or img.get("data-src"))
                if not image_url:
                    continue
                for isbn, isbn_type in find_isbns(f"{image_url} {img.get('alt') or ''}"):
                    images.append(
                        {"isbn": isbn, "type": isbn_type, "imageUrl": image_url, "page": page.url}
                    )

        return {
            "isbns": dedupe(isbns, key=lambda item: item["isbn"]),
            "isbnImages": dedupe(images, key=lambda item: (item["isbn"], item["imageUrl"])),
        }
