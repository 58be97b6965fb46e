"""
Audit report PDF rendering.

Renders one AuditReport into an A4 document:

    1. Cover page      fixed layout, never paginates
    2. Findings pages  one card per finding, paginated by estimated height
    3. Analysis page   gas analysis and architecture notes, plus footer

Rendering is a pure function of the report. All text is treated as
opaque strings; nothing is validated here.

Known limitation: the footer is drawn only on the analysis page, not
repeated on every page.

Batches are not merged into one document. A batch renders either as its
single worst report or as one independent document per report.
"""

from __future__ import annotations

import io
import logging
from typing import Dict, List

from reportlab.lib.colors import Color
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen.canvas import Canvas

from tonaudit.app.rendering import palette
from tonaudit.app.rendering.layout import (
    CONTENT_WIDTH,
    LINE_HEIGHT,
    MARGIN_X,
    PAGE_HEIGHT,
    PAGE_WIDTH,
    CardPlacement,
    estimate_analysis_card_height,
    paginate_findings,
)
from tonaudit.app.schemas.audit_report import AuditReport
from tonaudit.app.schemas.batch_report import BatchReport
from tonaudit.app.schemas.findings import MAX_CODE_SNIPPET_CHARS, Severity

logger = logging.getLogger(__name__)


DEFAULT_MODEL_LABEL = "Claude Opus"
PRODUCT_NAME = "TonAudit AI"
FOOTER_TEXT = f"{PRODUCT_NAME}  ·  Smart Contract Security Audit Report"

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_MONO = "Courier"

# Distance from the top of a text line to its baseline, as a fraction
# of the font size
_BASELINE_RATIO = 0.8


# ----------------------------------------------------------------------
# Drawing primitives (top-down coordinates)
# ----------------------------------------------------------------------

class _Painter:
    """
    Thin wrapper over a reportlab canvas using top-left page coordinates.
    """

    def __init__(self, canvas: Canvas) -> None:
        self.canvas = canvas

    def _y(self, top: float) -> float:
        return PAGE_HEIGHT - top

    def rect(
        self,
        x: float,
        top: float,
        width: float,
        height: float,
        color: Color,
        radius: float = 0,
    ) -> None:
        self.canvas.setFillColor(color)
        y = self._y(top + height)
        if radius:
            self.canvas.roundRect(x, y, width, height, radius, stroke=0, fill=1)
        else:
            self.canvas.rect(x, y, width, height, stroke=0, fill=1)

    def rule(self, top: float) -> None:
        self.canvas.setStrokeColor(palette.BORDER)
        self.canvas.setLineWidth(1)
        self.canvas.line(MARGIN_X, self._y(top), PAGE_WIDTH - MARGIN_X, self._y(top))

    def text(
        self,
        value: str,
        x: float,
        top: float,
        *,
        font: str = FONT,
        size: float = 10,
        color: Color = palette.TEXT,
        width: float | None = None,
        align: str = "left",
    ) -> None:
        self.canvas.setFillColor(color)
        self.canvas.setFont(font, size)
        baseline = self._y(top + size * _BASELINE_RATIO)

        if align == "center" and width is not None:
            self.canvas.drawCentredString(x + width / 2, baseline, value)
        else:
            self.canvas.drawString(x, baseline, value)

    def paragraph(
        self,
        value: str,
        x: float,
        top: float,
        *,
        width: float,
        font: str = FONT,
        size: float = 9,
        color: Color = palette.TEXT,
        leading: float = LINE_HEIGHT,
    ) -> float:
        """Draw wrapped text and return the height it used."""
        lines: List[str] = []
        for block in value.splitlines() or [""]:
            lines.extend(simpleSplit(block, font, size, width) or [""])

        for index, line in enumerate(lines):
            self.text(line, x, top + index * leading, font=font, size=size, color=color)

        return len(lines) * leading

    def page_background(self, accent_height: float) -> None:
        self.rect(0, 0, PAGE_WIDTH, PAGE_HEIGHT, palette.BACKGROUND)
        self.rect(0, 0, PAGE_WIDTH, accent_height, palette.ACCENT)


def _fit_line(value: str, font: str, size: float, width: float) -> str:
    """Truncate a single line so it fits within `width`."""
    if stringWidth(value, font, size) <= width:
        return value

    # Binary search for the longest prefix that fits with the ellipsis
    ellipsis = "..."
    low, high = 0, len(value)
    while low < high:
        middle = (low + high + 1) // 2
        if stringWidth(value[:middle] + ellipsis, font, size) <= width:
            low = middle
        else:
            high = middle - 1
    return value[:low] + ellipsis


def _format_date(report: AuditReport) -> str:
    audited = report.audited_at
    return f"{audited:%B} {audited.day}, {audited.year}"


# ----------------------------------------------------------------------
# Pages
# ----------------------------------------------------------------------

def _draw_cover(painter: _Painter, report: AuditReport, model_label: str) -> None:
    painter.page_background(accent_height=6)

    painter.text(PRODUCT_NAME.upper(), MARGIN_X, 80, font=FONT_BOLD, size=11, color=palette.ACCENT)
    painter.text("Smart Contract Security Auditor", MARGIN_X, 96, size=9, color=palette.MUTED)
    painter.rule(116)

    painter.text("Security Audit Report", MARGIN_X, 148, font=FONT_BOLD, size=28, color=palette.WHITE)
    painter.text(
        _fit_line(report.contract_name, FONT_BOLD, 18, CONTENT_WIDTH),
        MARGIN_X, 190, font=FONT_BOLD, size=18, color=palette.ACCENT,
    )

    # Metadata grid, two columns
    meta_top = 250
    meta_items = [
        ("Audit Date", _format_date(report)),
        ("Language", report.language.display_name),
        ("Lines of Code", str(report.lines_of_code)),
        ("AI Model", model_label),
    ]
    cell_width = CONTENT_WIDTH / 2 - 10
    for index, (label, value) in enumerate(meta_items):
        x = MARGIN_X + (index % 2) * (CONTENT_WIDTH / 2 + 10)
        top = meta_top + (index // 2) * 54
        painter.rect(x, top, cell_width, 44, palette.SURFACE, radius=6)
        painter.text(label.upper(), x + 12, top + 9, size=8, color=palette.MUTED)
        painter.text(
            _fit_line(value, FONT_BOLD, 12, cell_width - 24),
            x + 12, top + 21, font=FONT_BOLD, size=12,
        )

    # Risk and score badges
    badge_top = meta_top + 130
    painter.rect(MARGIN_X, badge_top, 180, 52, palette.risk_color(report.overall_risk), radius=8)
    painter.text(
        "OVERALL RISK", MARGIN_X, badge_top + 9,
        font=FONT_BOLD, size=11, color=palette.BACKGROUND, width=180, align="center",
    )
    painter.text(
        report.overall_risk.value.upper(), MARGIN_X, badge_top + 24,
        font=FONT_BOLD, size=20, color=palette.BACKGROUND, width=180, align="center",
    )

    score_x = MARGIN_X + 196
    painter.rect(score_x, badge_top, 120, 52, palette.SURFACE, radius=8)
    painter.text(
        "SECURITY SCORE", score_x, badge_top + 9,
        size=8, color=palette.MUTED, width=120, align="center",
    )
    painter.text(
        f"{report.score}/100", score_x, badge_top + 22,
        font=FONT_BOLD, size=22, color=palette.score_color(report.score),
        width=120, align="center",
    )

    # Severity strip
    counts = report.severity_counts()
    strip_top = badge_top + 72
    cell = CONTENT_WIDTH / len(Severity)
    for index, severity in enumerate(Severity):
        x = MARGIN_X + index * cell
        painter.rect(x, strip_top, cell - 6, 44, palette.SURFACE, radius=6)
        painter.text(
            str(counts[severity]), x, strip_top + 6,
            font=FONT_BOLD, size=18, color=palette.severity_color(severity),
            width=cell - 6, align="center",
        )
        painter.text(
            severity.value.upper(), x, strip_top + 28,
            size=7, color=palette.MUTED, width=cell - 6, align="center",
        )

    # Executive summary
    summary_top = strip_top + 64
    painter.rect(MARGIN_X, summary_top, CONTENT_WIDTH, 90, palette.SURFACE, radius=8)
    painter.text("EXECUTIVE SUMMARY", MARGIN_X + 12, summary_top + 12, font=FONT_BOLD, size=9, color=palette.ACCENT)
    painter.paragraph(
        report.summary, MARGIN_X + 12, summary_top + 26,
        width=CONTENT_WIDTH - 24, size=10, leading=14,
    )


def _draw_findings_header(painter: _Painter, report: AuditReport) -> None:
    painter.page_background(accent_height=6)
    painter.text("Security Findings", MARGIN_X, 32, font=FONT_BOLD, size=20, color=palette.WHITE)
    painter.text(
        f"{len(report.findings)} issues identified  ·  {report.contract_name}",
        MARGIN_X, 56, size=10, color=palette.MUTED,
    )
    painter.rule(76)


def _draw_card(painter: _Painter, placement: CardPlacement) -> None:
    finding = placement.finding
    top = placement.top
    color = palette.severity_color(finding.severity)
    inner_x = MARGIN_X + 12
    inner_width = CONTENT_WIDTH - 28

    painter.rect(MARGIN_X, top, CONTENT_WIDTH, placement.height, palette.SURFACE, radius=8)
    painter.rect(MARGIN_X, top, 4, placement.height, color, radius=2)

    # Header row: id, severity pill, category
    header_top = top + 12
    pill_x = inner_x + 38
    pill_width = 58
    painter.text(finding.id, inner_x, header_top, font=FONT_BOLD, size=8, color=palette.MUTED)
    painter.rect(pill_x, header_top - 2, pill_width, 14, color, radius=4)
    painter.text(
        finding.severity.value.upper(), pill_x, header_top + 2,
        font=FONT_BOLD, size=7, color=palette.BACKGROUND, width=pill_width, align="center",
    )
    category_x = pill_x + pill_width + 8
    painter.text(
        _fit_line(finding.category, FONT, 8, MARGIN_X + CONTENT_WIDTH - 12 - category_x),
        category_x, header_top, size=8, color=palette.MUTED,
    )

    painter.text(
        _fit_line(finding.title, FONT_BOLD, 11, inner_width),
        inner_x, header_top + 16, font=FONT_BOLD, size=11, color=palette.WHITE,
    )

    body_top = header_top + 32
    if finding.location:
        painter.text(
            _fit_line(f"Location: {finding.location}", FONT, 8, inner_width),
            inner_x, body_top, size=8, color=palette.severity_color(Severity.INFO),
        )
        body_top += 14

    painter.text("DESCRIPTION", inner_x, body_top, size=8, color=palette.MUTED)
    body_top += 11
    body_top += painter.paragraph(finding.description, inner_x, body_top, width=inner_width) + 2

    if finding.code_snippet:
        painter.rect(inner_x, body_top, inner_width, 20, palette.BACKGROUND, radius=4)
        painter.text(
            _fit_line(finding.code_snippet[:MAX_CODE_SNIPPET_CHARS], FONT_MONO, 7.5, inner_width - 16),
            inner_x + 8, body_top + 6, font=FONT_MONO, size=7.5, color=palette.CODE,
        )
        body_top += 26

    painter.text(
        "RECOMMENDATION", inner_x, body_top,
        font=FONT_BOLD, size=8, color=palette.severity_color(Severity.LOW),
    )
    body_top += 11
    painter.paragraph(finding.recommendation, inner_x, body_top, width=inner_width)


def _draw_findings(painter: _Painter, report: AuditReport) -> None:
    pages = paginate_findings(report.findings)

    for page_number, placements in enumerate(pages):
        if page_number == 0:
            _draw_findings_header(painter, report)
        else:
            painter.page_background(accent_height=4)

        for placement in placements:
            _draw_card(painter, placement)

        painter.canvas.showPage()


def _draw_analysis(painter: _Painter, report: AuditReport) -> None:
    painter.page_background(accent_height=4)
    painter.text("Analysis", MARGIN_X, 32, font=FONT_BOLD, size=20, color=palette.WHITE)
    painter.rule(62)

    top = 76
    for label, body in (
        ("GAS ANALYSIS", report.gas_analysis),
        ("ARCHITECTURE NOTES", report.architecture_notes),
    ):
        height = estimate_analysis_card_height(body)
        painter.rect(MARGIN_X, top, CONTENT_WIDTH, height, palette.SURFACE, radius=8)
        painter.text(label, MARGIN_X + 12, top + 14, font=FONT_BOLD, size=10, color=palette.ACCENT)
        painter.paragraph(
            body, MARGIN_X + 12, top + 32,
            width=CONTENT_WIDTH - 24, size=10, leading=LINE_HEIGHT,
        )
        top += height + 16

    painter.text(
        FOOTER_TEXT, MARGIN_X, PAGE_HEIGHT - 36,
        size=8, color=palette.MUTED, width=CONTENT_WIDTH, align="center",
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def render_report_pdf(
    report: AuditReport,
    *,
    model_label: str = DEFAULT_MODEL_LABEL,
) -> bytes:
    """Render one report into PDF bytes."""
    buffer = io.BytesIO()
    canvas = Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    canvas.setTitle(f"{PRODUCT_NAME} - {report.contract_name}")
    canvas.setAuthor(PRODUCT_NAME)
    canvas.setSubject("Smart Contract Security Audit Report")

    painter = _Painter(canvas)

    _draw_cover(painter, report, model_label)
    canvas.showPage()

    _draw_findings(painter, report)

    _draw_analysis(painter, report)
    canvas.showPage()

    canvas.save()
    pdf_bytes = buffer.getvalue()

    logger.debug(
        "Rendered %s: %d finding(s), %d bytes",
        report.contract_name,
        len(report.findings),
        len(pdf_bytes),
    )
    return pdf_bytes


def select_worst_report(batch: BatchReport) -> AuditReport:
    """Lowest-scoring report; the first one in input order on ties."""
    return min(batch.reports, key=lambda report: report.score)


def render_batch_pdf(
    batch: BatchReport,
    *,
    model_label: str = DEFAULT_MODEL_LABEL,
) -> bytes:
    """Render the single most vulnerable report of a batch."""
    return render_report_pdf(select_worst_report(batch), model_label=model_label)


def render_batch_pdfs(
    batch: BatchReport,
    *,
    model_label: str = DEFAULT_MODEL_LABEL,
) -> Dict[str, bytes]:
    """
    Render every report of a batch as an independent document, keyed by
    contract name. Repeated names are suffixed with their position.
    """
    documents: Dict[str, bytes] = {}
    for position, report in enumerate(batch.reports, start=1):
        key = report.contract_name
        if key in documents:
            key = f"{key} ({position})"
        documents[key] = render_report_pdf(report, model_label=model_label)
    return documents
