"""
Brand color palette inferred from theme metadata and inline CSS.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from typing import Any

from app.domain.scrape_job import Page
from app.scraping.extractors.base import BaseExtractor, ExtractionContext, ExtractorKind
from app.scraping.extractors.html import meta_content, parse_html

HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{3})\b")
RGB_COLOR = re.compile(r"rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})")
BACKGROUND_RULE = re.compile(r"background(?:-color)?\s*:\s*([^;}{]+)", re.IGNORECASE)
MAX_PALETTE = 8


def normalize_hex(value: str) -> str:
    """
    Expand `#abc` to `#AABBCC`.
    """

    digits = value.lstrip("#")
    if len(digits) == 3:
        digits = "".join(char * 2 for char in digits)
    return "#" + digits.upper()


def _rgb_to_hex(red: str, green: str, blue: str) -> str:
    channels = [min(255, int(channel)) for channel in (red, green, blue)]
    return "#" + "".join(f"{channel:02X}" for channel in channels)


def is_neutral(hex_color: str) -> bool:
    """
    True for greys, black and white, which say little about a brand.
    """

    red, green, blue = (int(hex_color[index : index + 2], 16) for index in (1, 3, 5))
    return max(red, green, blue) - min(red, green, blue) < 16


def colors_in(css: str) -> list[str]:
    found = [normalize_hex(match) for match in HEX_COLOR.findall(css)]
    found.extend(_rgb_to_hex(*match) for match in RGB_COLOR.findall(css))
    return found


class ColorExtractor(BaseExtractor):
    kind = ExtractorKind.COLORS
    section = "colors"

    def extract(self, pages: Sequence[Page], context: ExtractionContext) -> dict[str, Any]:
        result = self.default(context)
        counts: Counter[str] = Counter()
        backgrounds: Counter[str] = Counter()
        theme_color: str | None = None

        for page in pages:
            soup = parse_html(page.content)
            if theme_color is None:
                declared = meta_content(soup, "theme-color", "msapplication-TileColor")
                if declared and HEX_COLOR.fullmatch(declared):
                    theme_color = normalize_hex(declared)

            css_chunks = [style.get_text() for style in soup.find_all("style")]
            css_chunks.extend(str(tag.get("style")) for tag in soup.find_all(style=True))
            for css in css_chunks:
                counts.update(colors_in(css))
                for rule in BACKGROUND_RULE.findall(css):
                    backgrounds.update(colors_in(rule))

        if not counts and theme_color is None:
            return result

        brand = [color for color, _ in counts.most_common() if not is_neutral(color)]
        primary = theme_color or (brand[0] if brand else counts.most_common(1)[0][0])
        secondary = [color for color in brand if color != primary][:4]
        palette = [primary, *[color for color, _ in counts.most_common() if color != primary]][:MAX_PALETTE]

        result["primaryColor"] = primary
        if secondary:
            result["secondaryColors"] = secondary
        if backgrounds:
            result["backgroundColor"] = backgrounds.most_common(1)[0][0]
        result["palette"] = palette
        return result
