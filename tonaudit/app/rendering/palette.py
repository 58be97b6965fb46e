"""
Report colour scheme.

Severity and risk labels map to fixed colours. Labels outside the known
set fall back to the muted text colour rather than failing.
"""

from __future__ import annotations

from typing import Union

from reportlab.lib.colors import Color, HexColor

from tonaudit.app.schemas.audit_report import RiskLevel
from tonaudit.app.schemas.findings import Severity


BACKGROUND = HexColor("#0a0b0f")
SURFACE = HexColor("#13151f")
BORDER = HexColor("#252840")
ACCENT = HexColor("#4f7fff")
TEXT = HexColor("#e4e6f0")
MUTED = HexColor("#6b7298")
WHITE = HexColor("#ffffff")
CODE = HexColor("#a8b4ff")

SEVERITY_COLORS = {
    Severity.CRITICAL.value: HexColor("#ff4d6a"),
    Severity.HIGH.value: HexColor("#ff7d3b"),
    Severity.MEDIUM.value: HexColor("#f5c542"),
    Severity.LOW.value: HexColor("#4ade80"),
    Severity.INFO.value: HexColor("#60c4ff"),
}


def severity_color(severity: Union[Severity, str]) -> Color:
    key = severity.value if isinstance(severity, Severity) else str(severity)
    return SEVERITY_COLORS.get(key, MUTED)


def risk_color(risk: RiskLevel) -> Color:
    # A clean contract shares the low-severity colour
    if risk == RiskLevel.CLEAN:
        return severity_color(Severity.LOW)
    return severity_color(risk.value)


def score_color(score: int) -> Color:
    if score >= 80:
        return severity_color(Severity.LOW)
    if score >= 60:
        return severity_color(Severity.MEDIUM)
    if score >= 40:
        return severity_color(Severity.HIGH)
    return severity_color(Severity.CRITICAL)
