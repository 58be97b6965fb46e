"""
BatchReport schema.

A batch report aggregates the successful single-contract reports of one
batch operation together with cross-contract comparison statistics and
a record of the contracts that failed.

`total_contracts` always reflects the number of contracts submitted, so
consumers can detect the gap between attempts and successes.
"""

from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from tonaudit.app.schemas.audit_report import AuditReport, RiskLevel


NO_CONTRACT_PLACEHOLDER = "N/A"
MAX_COMMON_CATEGORIES = 5


_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class RankingEntry(BaseModel):
    """Summary of one report as it appears in the risk ranking."""

    contract_name: str
    score: int = Field(..., ge=0, le=100)
    overall_risk: RiskLevel
    findings_count: int = Field(..., ge=0)

    model_config = _MODEL_CONFIG


class CategoryCount(BaseModel):
    category: str
    count: int = Field(..., ge=1)

    model_config = _MODEL_CONFIG


class Comparison(BaseModel):
    """
    Cross-contract statistics over the successful reports of a batch.
    """

    risk_ranking: List[RankingEntry] = Field(
        default_factory=list,
        description="Report summaries sorted ascending by score (most vulnerable first)",
    )

    total_findings: int = Field(0, ge=0)
    critical_count: int = Field(0, ge=0)
    high_count: int = Field(0, ge=0)

    most_vulnerable: str = Field(
        NO_CONTRACT_PLACEHOLDER,
        description="Name of the lowest-scoring report",
    )

    safest: str = Field(
        NO_CONTRACT_PLACEHOLDER,
        description="Name of the highest-scoring report",
    )

    common_categories: List[CategoryCount] = Field(
        default_factory=list,
        description=(
            "Most frequent finding categories across all reports, "
            f"at most {MAX_COMMON_CATEGORIES}, ties in first-seen order"
        ),
    )

    model_config = _MODEL_CONFIG


class BatchItemFailure(BaseModel):
    """Diagnostic record of a contract that produced no report."""

    filename: str
    error_type: str
    message: str

    model_config = _MODEL_CONFIG


class BatchReport(BaseModel):
    audited_at: datetime
    total_contracts: int = Field(..., ge=0)

    reports: List[AuditReport] = Field(
        ...,
        min_length=1,
        description="Successful reports in input order",
    )

    comparison: Comparison
    failures: List[BatchItemFailure] = Field(default_factory=list)

    model_config = _MODEL_CONFIG
