"""
Extractor contract and registry.

Every extractor turns the full page set of one job into one named section of
the aggregate result. Extractors hold no state between calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from app.domain.scrape_job import Page
from app.scraping.extractors.defaults import default_section


class ExtractorKind:
    GENERAL = "general"
    BLOG = "blog"
    IMAGES = "images"
    VIDEOS = "videos"
    COLORS = "colors"
    SOCIAL = "social"
    ISBN = "isbn"


# Fixed execution order; also the set of names accepted on submission.
ALL_EXTRACTOR_KINDS: tuple[str, ...] = (
    ExtractorKind.GENERAL,
    ExtractorKind.BLOG,
    ExtractorKind.IMAGES,
    ExtractorKind.VIDEOS,
    ExtractorKind.COLORS,
    ExtractorKind.SOCIAL,
    ExtractorKind.ISBN,
)


@dataclass(frozen=True)
class ExtractionContext:
    """
    Job-level inputs available to every extractor.
    """

    domain: str
    job_id: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def base_url(self) -> str:
        return f"https://{self.domain}/"


class BaseExtractor(ABC):
    """
    One content category. `section` is the aggregate result key it fills.
    """

    kind: str
    section: str

    @abstractmethod
    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        """
        Return this extractor's section. May raise; the orchestrator isolates it.
        """

    def default(self, context: ExtractionContext) -> dict[str, Any]:
        return default_section(self.section, context.domain)


def normalize_extractor_kinds(kinds: Iterable[str] | None) -> list[str]:
    """
    Validate requested extractor names. Empty or None selects all.

    Accepts `socialMedia` as an alias of `social`.
    """

    if not kinds:
        return []
    normalized: list[str] = []
    unknown: list[str] = []
    for raw in kinds:
        name = str(raw).strip().lower()
        if name == "socialmedia":
            name = ExtractorKind.SOCIAL
        if name not in ALL_EXTRACTOR_KINDS:
            unknown.append(str(raw))
        elif name not in normalized:
            normalized.append(name)
    if unknown:
        allowed = ", ".join(ALL_EXTRACTOR_KINDS)
        raise ValueError(f"Unknown extractors: {', '.join(unknown)}. Allowed: {allowed}.")
    return normalized


class ExtractorRegistry:
    """
    Extractors registered at startup, one per kind.
    """

    def __init__(self, extractors: Iterable[BaseExtractor] | None = None) -> None:
        self._extractors: dict[str, BaseExtractor] = {}
        for extractor in extractors if extractors is not None else builtin_extractors():
            self.register(extractor)

    def register(self, extractor: BaseExtractor) -> None:
        if extractor.kind not in ALL_EXTRACTOR_KINDS:
            raise ValueError(f"Unsupported extractor kind '{extractor.kind}'.")
        self._extractors[extractor.kind] = extractor

    def get(self, kind: str) -> BaseExtractor | None:
        return self._extractors.get(kind)

    def resolve(self, kinds: Sequence[str] | None = None) -> list[BaseExtractor]:
        """
        Return registered extractors for `kinds` (all when empty) in fixed order.
        """

        selected = set(kinds) if kinds else set(ALL_EXTRACTOR_KINDS)
        return [
            self._extractors[kind]
            for kind in ALL_EXTRACTOR_KINDS
            if kind in selected and kind in self._extractors
        ]


def builtin_extractors() -> list[BaseExtractor]:
    from app.scraping.extractors.blog import BlogExtractor
    from app.scraping.extractors.colors import ColorExtractor
    from app.scraping.extractors.general import GeneralExtractor
    from app.scraping.extractors.images import ImageExtractor
    from app.scraping.extractors.isbn import ISBNExtractor
    from app.scraping.extractors.social import SocialMediaExtractor
    from app.scraping.extractors.videos import VideoExtractor

    return [
        GeneralExtractor(),
        BlogExtractor(),
        ImageExtractor(),
        VideoExtractor(),
        ColorExtractor(),
        SocialMediaExtractor(),
        ISBNExtractor(),
    ]
