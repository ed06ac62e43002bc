"""
Documented default values for every aggregate result section.

A section falls back to its default when its extractor fails, was not
selected, or when no pages were discovered at all.
"""

from __future__ import annotations

from typing import Any

SECTION_KEYS: tuple[str, ...] = (
    "general",
    "blog",
    "images",
    "videos",
    "colors",
    "socialMedia",
    "isbn",
)

DEFAULT_COLOR_PALETTE: dict[str, Any] = {
    "primaryColor": "#333333",
    "secondaryColors": ["#666666", "#999999", "#CCCCCC"],
    "backgroundColor": "#FFFFFF",
    "textColor": "#222222",
    "palette": ["#333333", "#666666", "#999999", "#CCCCCC", "#FFFFFF"],
}

IMAGE_CATEGORIES: tuple[str, ...] = ("all", "heroImages", "logoImages", "contentImages")


def _general_default(domain: str) -> dict[str, Any]:
    return {
        "title": domain,
        "description": f"Website content for {domain}",
        "language": None,
        "favicon": None,
        "navigationStructure": {"mainMenu": [], "footerLinks": []},
        "prominentLinks": [],
        "siteStructure": {"sections": [], "pageCount": 0},
    }


def default_section(section: str, domain: str) -> dict[str, Any]:
    """
    Return a fresh default for `section`.
    """

    if section == "general":
        return _general_default(domain)
    if section == "blog":
        return {"hasBlog": False, "blogUrl": None, "articles": []}
    if section == "images":
        return {category: [] for category in IMAGE_CATEGORIES}
    if section == "videos":
        return {"videos": []}
    if section == "colors":
        return {
            **DEFAULT_COLOR_PALETTE,
            "secondaryColors": list(DEFAULT_COLOR_PALETTE["secondaryColors"]),
            "palette": list(DEFAULT_COLOR_PALETTE["palette"]),
        }
    if section == "socialMedia":
        return {"links": {}}
    if section == "isbn":
        return {"isbns": [], "isbnImages": []}
    raise KeyError(f"Unknown result section '{section}'.")


def default_sections(domain: str) -> dict[str, dict[str, Any]]:
    return {section: default_section(section, domain) for section in SECTION_KEYS}
