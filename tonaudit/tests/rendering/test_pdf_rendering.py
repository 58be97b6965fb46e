import io

from pypdf import PdfReader

from tonaudit.app.rendering import palette, pdf_renderer
from tonaudit.app.rendering.pdf_renderer import (
    PRODUCT_NAME,
    render_batch_pdf,
    render_batch_pdfs,
    render_report_pdf,
    select_worst_report,
)
from tonaudit.app.coordinator.batch import compare_reports
from tonaudit.app.schemas.audit_report import RiskLevel
from tonaudit.app.schemas.batch_report import BatchReport
from tonaudit.app.schemas.findings import Severity
from tonaudit.tests.fixtures.reports import FIXED_TIME, make_finding, make_report


def _reader(pdf_bytes):
    return PdfReader(io.BytesIO(pdf_bytes))


def _batch(reports):
    return BatchReport(
        audited_at=FIXED_TIME,
        total_contracts=len(reports),
        reports=reports,
        comparison=compare_reports(reports),
    )


def _long_finding(sequence):
    return make_finding(
        sequence,
        severity=Severity.HIGH,
        description="d" * 900,
        recommendation="r" * 50,
    )


# ---------------------------------------------------------------------------
# Single report
# ---------------------------------------------------------------------------

def test_report_without_findings_has_cover_findings_and_analysis_pages():
    pdf_bytes = render_report_pdf(make_report("wallet"))

    assert pdf_bytes.startswith(b"%PDF")
    assert len(_reader(pdf_bytes).pages) == 3


def test_findings_overflow_onto_continuation_pages():
    report = make_report("vault", findings=[_long_finding(i) for i in range(1, 6)])

    reader = _reader(render_report_pdf(report))

    # cover + two findings pages + analysis
    assert len(reader.pages) == 4
    assert "TON-001" in reader.pages[1].extract_text()
    assert "TON-005" in reader.pages[2].extract_text()


def test_document_metadata_names_the_contract():
    reader = _reader(render_report_pdf(make_report("jetton-minter")))

    assert reader.metadata.title == f"{PRODUCT_NAME} - jetton-minter"


def test_unknown_severity_and_clean_risk_colours():
    assert palette.severity_color("bogus") is palette.MUTED
    assert palette.risk_color(RiskLevel.CLEAN) is palette.severity_color(Severity.LOW)
    assert palette.score_color(95) is palette.severity_color(Severity.LOW)
    assert palette.score_color(10) is palette.severity_color(Severity.CRITICAL)


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

def test_worst_report_is_lowest_score_first_on_ties():
    batch = _batch([
        make_report("safe", score=90),
        make_report("weak", score=30),
        make_report("also-weak", score=30),
    ])

    assert select_worst_report(batch).contract_name == "weak"

    reader = _reader(render_batch_pdf(batch))
    assert reader.metadata.title == f"{PRODUCT_NAME} - weak"


def test_every_batch_report_renders_independently():
    batch = _batch([
        make_report("wallet", score=70),
        make_report("wallet", score=40),
        make_report("minter", score=55),
    ])

    documents = render_batch_pdfs(batch)

    assert list(documents) == ["wallet", "wallet (2)", "minter"]
    assert all(len(_reader(pdf).pages) == 3 for pdf in documents.values())


# ---------------------------------------------------------------------------
# Long single-line fields
# ---------------------------------------------------------------------------

def test_long_single_line_fields_are_truncated_with_few_measurements(monkeypatch):
    calls = []
    measure = pdf_renderer.stringWidth

    def counting_width(value, font, size):
        calls.append(len(value))
        return measure(value, font, size)

    monkeypatch.setattr(pdf_renderer, "stringWidth", counting_width)

    fitted = pdf_renderer._fit_line("W" * 16_000, "Helvetica", 11, 200)

    assert fitted.endswith("...")
    assert measure(fitted, "Helvetica", 11) <= 200
    assert measure(fitted[:-3] + "W...", "Helvetica", 11) > 200
    assert len(calls) < 40


def test_report_with_huge_single_line_fields_renders():
    long_text = "x" * 16_000
    report = make_report(
        long_text,
        findings=[
            make_finding(1, category=long_text, location=long_text).model_copy(
                update={"title": long_text}
            )
        ],
    )

    assert len(_reader(render_report_pdf(report)).pages) == 3
