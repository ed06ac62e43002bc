"""
Content extractor exports.
"""

from app.scraping.extractors.base import (
    ALL_EXTRACTOR_KINDS,
    BaseExtractor,
    ExtractionContext,
    ExtractorKind,
    ExtractorRegistry,
    builtin_extractors,
    normalize_extractor_kinds,
)
from app.scraping.extractors.defaults import (
    DEFAULT_COLOR_PALETTE,
    SECTION_KEYS,
    default_section,
    default_sections,
)

__all__ = [
    "ALL_EXTRACTOR_KINDS",
    "BaseExtractor",
    "DEFAULT_COLOR_PALETTE",
    "ExtractionContext",
    "ExtractorKind",
    "ExtractorRegistry",
    "SECTION_KEYS",
    "builtin_extractors",
    "default_section",
    "default_sections",
    "normalize_extractor_kinds",
]
