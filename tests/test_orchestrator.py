"""
tests/test_orchestrator.py

Extractor isolation, selection, defaults and the zero-pages fallback.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from app.domain.scrape_job import Page
from app.scraping.errors import JobCancelled
from app.scraping.extractors import (
    SECTION_KEYS,
    BaseExtractor,
    ExtractionContext,
    ExtractorRegistry,
    builtin_extractors,
    default_section,
)
from app.scraping.extractors.general import GeneralExtractor
from app.scraping.orchestrator import ExtractionOrchestrator
from conftest import FakeFetcher, html_page

CONTEXT = ExtractionContext(domain="shop.test", job_id="job-1")

HOME = Page(
    url="https://shop.test/",
    depth=0,
    title="Shop Co",
    content=html_page(
        "Shop Co",
        "<a href='https://twitter.com/shopco'>tw</a>",
        "<meta name='description' content='Gear for makers'>",
    ),
)


class BoomExtractor(BaseExtractor):
    kind = "blog"
    section = "blog"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        raise RuntimeError("unexpected markup")


class NotADictExtractor(BaseExtractor):
    kind = "videos"
    section = "videos"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> Any:
        return ["not", "a", "dict"]


class PartialExtractor(BaseExtractor):
    kind = "blog"
    section = "blog"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        return {"hasBlog": True}


# ---------------------------------------------------------------------------
# Result shape
# ---------------------------------------------------------------------------


def test_result_contains_every_section() -> None:
    result = ExtractionOrchestrator().run([HOME], CONTEXT)

    payload = result.to_dict()
    assert list(payload) == ["domain", "scrapedAt", "pageCount", *SECTION_KEYS]
    assert payload["domain"] == "shop.test"
    assert payload["pageCount"] == 1
    assert payload["general"]["title"] == "Shop Co"
    assert payload["general"]["description"] == "Gear for makers"
    assert payload["socialMedia"]["links"] == {"twitter": "https://twitter.com/shopco"}
    assert result.failed_sections == []
    assert result.is_minimal is False


def test_zero_pages_returns_documented_defaults() -> None:
    reported: list[tuple[int, str]] = []

    result = ExtractionOrchestrator().run([], CONTEXT, progress=lambda value, message: reported.append((value, message)))

    assert result.is_minimal is True
    assert result.page_count == 0
    for section in SECTION_KEYS:
        assert result.sections[section] == default_section(section, "shop.test")
    assert result.sections["colors"]["primaryColor"] == "#333333"
    assert reported[-1][0] == 80


# ---------------------------------------------------------------------------
# Isolation
# ---------------------------------------------------------------------------


def test_failing_extractor_falls_back_to_default() -> None:
    registry = ExtractorRegistry([GeneralExtractor(), BoomExtractor(), NotADictExtractor()])

    result = ExtractionOrchestrator(registry=registry).run([HOME], CONTEXT)

    assert result.sections["blog"] == default_section("blog", "shop.test")
    assert result.sections["videos"] == {"videos": []}
    assert result.sections["general"]["title"] == "Shop Co"
    assert result.failed_sections == ["blog", "videos"]


def test_partial_section_is_merged_over_default() -> None:
    registry = ExtractorRegistry([PartialExtractor()])

    result = ExtractionOrchestrator(registry=registry).run([HOME], CONTEXT)

    assert result.sections["blog"] == {"hasBlog": True, "blogUrl": None, "articles": []}


def test_cancellation_is_not_swallowed() -> None:
    def cancelled(value: int, message: str) -> None:
        if value > 60:
            raise JobCancelled("job-1")

    with pytest.raises(JobCancelled):
        ExtractionOrchestrator().run([HOME], CONTEXT, progress=cancelled)


# ---------------------------------------------------------------------------
# Selection and page preparation
# ---------------------------------------------------------------------------


def test_unselected_extractors_keep_defaults() -> None:
    result = ExtractionOrchestrator().run([HOME], CONTEXT, extractors=["general"])

    assert result.sections["general"]["title"] == "Shop Co"
    assert result.sections["socialMedia"] == {"links": {}}


def test_empty_pages_are_fetched_and_unfetchable_ones_dropped() -> None:
    fetcher = FakeFetcher({"https://shop.test/about": html_page("About us")})
    pages = [
        Page(url="https://shop.test/about", depth=1),
        Page(url="https://shop.test/gone", depth=1),
    ]

    result = ExtractionOrchestrator(fetcher=fetcher).run(pages, CONTEXT, extractors=["general"])

    assert result.page_count == 1
    assert result.sections["general"]["title"] == "About us"


def test_progress_moves_from_extraction_start_to_assembly() -> None:
    reported: list[int] = []

    ExtractionOrchestrator().run([HOME, HOME], CONTEXT, progress=lambda value, _message: reported.append(value))

    assert reported[0] == 30
    assert reported == sorted(reported)
    assert reported[-1] == 80
    assert 60 in reported


def test_registry_resolves_in_fixed_order() -> None:
    registry = ExtractorRegistry(builtin_extractors())

    kinds = [extractor.kind for extractor in registry.resolve(["isbn", "general", "colors"])]

    assert kinds == ["general", "colors", "isbn"]
    assert len(registry.resolve(None)) == len(SECTION_KEYS)
