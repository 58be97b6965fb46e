"""
Model payload schema.

This schema defines the structured object the model is asked to embed
in its free-text answer, after extraction and repair.

IMPORTANT:
- This schema is advisory and probabilistic.
- Missing or null fields are NOT errors: defaults substitute.
- Wrongly shaped fields (e.g. findings that is not a list) ARE errors
  and are surfaced as MalformedPayloadError by the assembler.
- Unknown keys are dropped and never reach the canonical report.
- All fields must be interpreted via the report assembler.
"""

from __future__ import annotations

import logging
import math
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from tonaudit.app.schemas.audit_report import RiskLevel
from tonaudit.app.schemas.findings import MAX_CODE_SNIPPET_CHARS, Severity

logger = logging.getLogger(__name__)


DEFAULT_CATEGORY = "Uncategorized"


def _drop_nulls(data: Any) -> Any:
    # JSON null means "absent" for every payload field
    if isinstance(data, dict):
        return {key: value for key, value in data.items() if value is not None}
    return data


def _normalize_enum_text(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# ----------------------------------------------------------------------
# Individual Finding
# ----------------------------------------------------------------------

class PayloadFinding(BaseModel):
    """
    A single finding as emitted by the model, before identifier assignment.
    """

    severity: Severity = Field(
        Severity.INFO,
        description="Severity label (case-insensitive)",
    )

    category: str = Field(
        DEFAULT_CATEGORY,
        description="Free-text vulnerability category",
    )

    title: str = Field("", description="Short title")
    description: str = Field("", description="Detailed description")

    location: Optional[str] = Field(
        None,
        description="Function name or line reference",
    )

    recommendation: str = Field("", description="Actionable fix")

    code_snippet: Optional[str] = Field(
        None,
        description="Single short line of vulnerable code",
    )

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return _drop_nulls(data)

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        v = _normalize_enum_text(v)
        if v in {s.value for s in Severity}:
            return v
        logger.warning("Unrecognized finding severity %r, treating as info", v)
        return Severity.INFO

    @field_validator("category", mode="before")
    @classmethod
    def default_blank_category(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return DEFAULT_CATEGORY
        return v

    @field_validator("location", mode="before")
    @classmethod
    def blank_location_is_absent(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("code_snippet", mode="before")
    @classmethod
    def single_line_snippet(cls, v: Any) -> Any:
        if not isinstance(v, str):
            return v
        collapsed = " ".join(v.split())
        if not collapsed:
            return None
        return collapsed[:MAX_CODE_SNIPPET_CHARS]

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ----------------------------------------------------------------------
# Payload
# ----------------------------------------------------------------------

class AuditPayload(BaseModel):
    """
    Structured object embedded in the model's answer.
    """

    overall_risk: RiskLevel = Field(
        RiskLevel.MEDIUM,
        description="Overall risk label (case-insensitive)",
    )

    summary: str = Field("", description="Executive summary")

    score: Optional[Union[int, float]] = Field(
        None,
        description=(
            "Raw security score. None when absent or non-numeric; "
            "clamping happens at assembly."
        ),
    )

    findings: List[PayloadFinding] = Field(default_factory=list)

    gas_analysis: str = Field("", description="Gas analysis")
    architecture_notes: str = Field("", description="Architecture notes")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        return _drop_nulls(data)

    @field_validator("overall_risk", mode="before")
    @classmethod
    def normalize_risk(cls, v: Any) -> Any:
        v = _normalize_enum_text(v)
        if v in {r.value for r in RiskLevel}:
            return v
        logger.warning("Unrecognized overall risk %r, treating as medium", v)
        return RiskLevel.MEDIUM

    @field_validator("score", mode="before")
    @classmethod
    def numeric_score_only(cls, v: Any) -> Any:
        # bool is an int subclass but not a score
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return None
        if isinstance(v, float) and math.isnan(v):
            return None
        return v

    model_config = ConfigDict(
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )
