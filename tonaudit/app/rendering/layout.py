"""
Page layout planning.

Card heights are ESTIMATED from text length, not measured: a fixed
characters-per-line constant turns string length into a line count, and
a fixed line height turns that into points. Page-break decisions are made
per card from the estimate, before anything is drawn, so a card never
splits across pages.

Replacing the estimate with real glyph measurement only requires a new
`estimate_*` implementation; the pagination below is unaffected.

All vertical positions are measured downward from the top of the page.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence

from reportlab.lib.pagesizes import A4

from tonaudit.app.schemas.findings import Finding


PAGE_WIDTH, PAGE_HEIGHT = A4

MARGIN_X = 52
CONTENT_WIDTH = PAGE_WIDTH - 2 * MARGIN_X

# Lowest point a findings card may reach
PAGE_BOTTOM = PAGE_HEIGHT - 60

# Findings pages
FINDINGS_FIRST_PAGE_TOP = 92
FINDINGS_CONTINUATION_TOP = 40
CARD_GAP = 10

# Height heuristic
LINE_HEIGHT = 13
FINDING_CHARS_PER_LINE = 90
ANALYSIS_CHARS_PER_LINE = 88

CARD_HEADER_HEIGHT = 16 + 20
CARD_SECTION_GAP = 8
CARD_FOOTER_PADDING = 20
LOCATION_LINE_HEIGHT = 14
SNIPPET_BLOCK_HEIGHT = 28

ANALYSIS_CARD_PADDING = 8 + 40


def estimate_lines(text: str, chars_per_line: int) -> int:
    """
    Wrapped line count. Every explicit line break starts a new line, as
    it does when the paragraph is drawn.
    """
    return sum(
        max(1, math.ceil(len(line) / chars_per_line))
        for line in text.splitlines()
    )


def estimate_card_height(finding: Finding) -> float:
    """
    Estimated vertical extent of one finding card.

    Description and recommendation each reserve one extra line for
    their label.
    """
    description_lines = estimate_lines(finding.description, FINDING_CHARS_PER_LINE) + 1
    recommendation_lines = estimate_lines(finding.recommendation, FINDING_CHARS_PER_LINE) + 1

    height = (
        CARD_HEADER_HEIGHT
        + description_lines * LINE_HEIGHT
        + CARD_SECTION_GAP
        + recommendation_lines * LINE_HEIGHT
        + CARD_FOOTER_PADDING
    )
    if finding.location:
        height += LOCATION_LINE_HEIGHT
    if finding.code_snippet:
        height += SNIPPET_BLOCK_HEIGHT
    return height


def estimate_analysis_card_height(text: str) -> float:
    return ANALYSIS_CARD_PADDING + estimate_lines(text, ANALYSIS_CHARS_PER_LINE) * LINE_HEIGHT


@dataclass(frozen=True)
class CardPlacement:
    finding: Finding
    top: float
    height: float


def paginate_findings(
    findings: Sequence[Finding],
    *,
    first_top: float = FINDINGS_FIRST_PAGE_TOP,
    continuation_top: float = FINDINGS_CONTINUATION_TOP,
    bottom: float = PAGE_BOTTOM,
) -> List[List[CardPlacement]]:
    """
    Assign every finding card to a page and a vertical position.

    Returns one list of placements per findings page; the first page
    always exists, even when there are no findings. A card whose
    estimated bottom would pass `bottom` starts a new page. A card
    taller than a whole page is still placed (and overflows) rather
    than looping.
    """
    pages: List[List[CardPlacement]] = [[]]
    y = first_top

    for finding in findings:
        height = estimate_card_height(finding)

        if y + height > bottom:
            pages.append([])
            y = continuation_top

        pages[-1].append(CardPlacement(finding=finding, top=y, height=height))
        y += height + CARD_GAP

    return pages
