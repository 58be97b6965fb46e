"""
AuditReport schema.

Defines the canonical single-contract report produced by the report
assembler. The report captures:
- input-derived, trustworthy metadata (name, language, line count, time),
- advisory model conclusions (risk, summary, findings, notes, score).

Input-derived fields are computed from the submitted source and filename
and are never taken from model output.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tonaudit.app.schemas.findings import Finding, Severity


UNKNOWN_CONTRACT_NAME = "Unknown Contract"


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------

class RiskLevel(str, Enum):
    """Overall risk classification of an audited contract."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    CLEAN = "clean"


class ContractLanguage(str, Enum):
    """
    Source language tag of the audited contract.

    Determined upstream from the filename or content heuristics and
    stored as an immutable attribute of the report.
    """

    FUNC = "func"
    TACT = "tact"
    UNKNOWN = "unknown"

    @property
    def display_name(self) -> str:
        return {
            ContractLanguage.FUNC: "FunC",
            ContractLanguage.TACT: "Tact",
        }.get(self, "Unknown")


# ---------------------------------------------------------------------------
# Canonical Audit Report (PUBLIC, FROZEN)
# ---------------------------------------------------------------------------

class AuditReport(BaseModel):
    """
    Canonical security report for a single contract.

    Constructed atomically by the assembler from one repaired payload.
    Re-auditing produces a new report; reports are never mutated.
    """

    # ------------------------------------------------------------------
    # Input-derived (authoritative)
    # ------------------------------------------------------------------

    contract_name: str = Field(
        ...,
        description="Filename without its last extension, or a placeholder",
    )

    language: ContractLanguage = Field(
        ...,
        description="Detected source language",
    )

    lines_of_code: int = Field(
        ...,
        ge=0,
        description="Number of non-blank lines in the submitted source",
    )

    audited_at: datetime = Field(
        ...,
        description="Timestamp of report assembly (UTC)",
    )

    # ------------------------------------------------------------------
    # Model-derived (advisory)
    # ------------------------------------------------------------------

    overall_risk: RiskLevel = Field(
        RiskLevel.MEDIUM,
        description="Overall risk classification",
    )

    summary: str = Field(
        "",
        description="Executive summary",
    )

    findings: List[Finding] = Field(
        default_factory=list,
        description="Findings in payload order",
    )

    gas_analysis: str = Field(
        "",
        description="Plain-text gas analysis",
    )

    architecture_notes: str = Field(
        "",
        description="Plain-text architecture notes",
    )

    score: int = Field(
        50,
        ge=0,
        le=100,
        description="Security score, higher is more secure",
    )

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def severity_counts(self) -> Dict[Severity, int]:
        """Count findings per severity, including zero counts."""
        counts = {severity: 0 for severity in Severity}
        for finding in self.findings:
            counts[finding.severity] += 1
        return counts

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )
