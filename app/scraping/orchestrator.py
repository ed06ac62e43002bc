"""
Extraction orchestrator: runs every selected extractor over a job's pages and
assembles the aggregate result.

Each extractor is isolated. A failure is logged and its section replaced with
the documented default, so one brittle heuristic never fails a crawl.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from app.domain.scrape_job import Page, utc_now
from app.scraping.errors import DiscoveryError, ExtractorError, JobCancelled
from app.scraping.extractors import (
    SECTION_KEYS,
    ExtractionContext,
    ExtractorRegistry,
    default_section,
    default_sections,
)
from app.scraping.fetcher import PageFetcher
from app.scraping.logging_utils import log_event, truncate_error

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

EXTRACTION_START_PROGRESS = 30
PAGES_DONE_PROGRESS = 60
ASSEMBLING_PROGRESS = 80


@dataclass
class AggregateResult:
    """
    Per-domain output. Every section key is always present.
    """

    domain: str
    page_count: int
    sections: dict[str, dict[str, Any]]
    scraped_at: datetime = field(default_factory=utc_now)
    failed_sections: list[str] = field(default_factory=list)

    @property
    def is_minimal(self) -> bool:
        return self.page_count == 0

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "domain": self.domain,
            "scrapedAt": self.scraped_at.isoformat(),
            "pageCount": self.page_count,
        }
        for key in SECTION_KEYS:
            payload[key] = self.sections[key]
        return payload


class ExtractionOrchestrator:
    def __init__(
        self,
        *,
        registry: ExtractorRegistry | None = None,
        fetcher: PageFetcher | None = None,
    ) -> None:
        self._registry = registry or ExtractorRegistry()
        self._fetcher = fetcher

    def run(
        self,
        pages: Sequence[Page],
        context: ExtractionContext,
        *,
        extractors: Sequence[str] | None = None,
        progress: ProgressCallback | None = None,
    ) -> AggregateResult:
        report = progress or (lambda _value, _message: None)
        report(EXTRACTION_START_PROGRESS, "Extracting content")

        prepared = self._prepare_pages(pages, context, report)
        if not prepared:
            log_event(
                logger,
                logging.WARNING,
                "extraction_minimal_results",
                job_id=context.job_id,
                domain=context.domain,
            )
            report(ASSEMBLING_PROGRESS, "No pages found; assembling minimal results")
            return AggregateResult(
                domain=context.domain,
                page_count=0,
                sections=default_sections(context.domain),
            )

        sections = default_sections(context.domain)
        failed: list[str] = []
        selected = self._registry.resolve(extractors)
        for index, extractor in enumerate(selected):
            try:
                sections[extractor.section] = self._run_one(extractor, prepared, context)
            except JobCancelled:
                raise
            except Exception as exc:  # noqa: BLE001
                failed.append(extractor.section)
                sections[extractor.section] = default_section(extractor.section, context.domain)
                log_event(
                    logger,
                    logging.ERROR,
                    "extractor_failed",
                    job_id=context.job_id,
                    domain=context.domain,
                    extractor=extractor.kind,
                    error=truncate_error(exc),
                )
            report(
                PAGES_DONE_PROGRESS + (ASSEMBLING_PROGRESS - PAGES_DONE_PROGRESS) * (index + 1) // len(selected),
                f"Extracted {extractor.kind}",
            )

        report(ASSEMBLING_PROGRESS, "Assembling results")
        return AggregateResult(
            domain=context.domain,
            page_count=len(prepared),
            sections=sections,
            failed_sections=failed,
        )

    @staticmethod
    def _run_one(extractor: Any, pages: list[Page], context: ExtractionContext) -> dict[str, Any]:
        section = extractor.extract(pages, context)
        if not isinstance(section, dict):
            raise ExtractorError(extractor.kind, f"returned {type(section).__name__}, expected dict")
        # Keys the extractor left out keep their defaults.
        return {**extractor.default(context), **section}

    def _prepare_pages(
        self,
        pages: Sequence[Page],
        context: ExtractionContext,
        report: ProgressCallback,
    ) -> list[Page]:
        """
        Make sure every page has content, fetching the ones discovery left empty.
        """

        prepared: list[Page] = []
        total = len(pages)
        for index, page in enumerate(pages):
            if page.content:
                prepared.append(page)
            elif self._fetcher is not None:
                try:
                    fetched = self._fetcher.fetch(page.url)
                    prepared.append(replace(page, content=fetched.html))
                except DiscoveryError as exc:
                    log_event(
                        logger,
                        logging.WARNING,
                        "page_content_fetch_failed",
                        job_id=context.job_id,
                        url=page.url,
                        error=str(exc),
                    )
            report(
                EXTRACTION_START_PROGRESS
                + (PAGES_DONE_PROGRESS - EXTRACTION_START_PROGRESS) * (index + 1) // total,
                f"Processed page {index + 1} of {total}",
            )
        return prepared
