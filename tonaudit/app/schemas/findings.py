"""
Canonical finding schema.

Defines the structure used to report a single security issue identified
in an audited contract. Findings are constructed by the report assembler
from a validated model payload and are immutable thereafter.

The finding identifier is assigned by the assembler, never by the model:
"TON-" followed by a zero-padded sequence number in payload order.
Identifiers carry no severity meaning.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


FINDING_ID_PREFIX = "TON"
FINDING_ID_WIDTH = 3
MAX_CODE_SNIPPET_CHARS = 120


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class Severity(str, Enum):
    """
    Severity level of a finding.

    Declaration order is display order (descending urgency) and MUST
    remain stable.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


def format_finding_id(sequence: int) -> str:
    """Return the finding identifier for a 1-based sequence number."""
    return f"{FINDING_ID_PREFIX}-{sequence:0{FINDING_ID_WIDTH}d}"


# ---------------------------------------------------------------------------
# Canonical Finding Object (PUBLIC, FROZEN)
# ---------------------------------------------------------------------------


class Finding(BaseModel):
    """
    Canonical audit finding.

    Represents one discrete issue reported for an audited contract.
    Content fields are advisory model output; only `id` is authoritative.
    """

    id: str = Field(
        ...,
        description="Sequential identifier assigned at assembly (e.g. 'TON-001')",
    )

    severity: Severity = Field(
        ...,
        description="Severity level of the finding",
    )

    category: str = Field(
        ...,
        description="Free-text vulnerability category",
    )

    title: str = Field(
        ...,
        description="Short human-readable summary of the finding",
    )

    description: str = Field(
        ...,
        description="Explanation of the vulnerability",
    )

    location: Optional[str] = Field(
        None,
        description="Optional function name or line reference",
    )

    recommendation: str = Field(
        ...,
        description="Actionable remediation advice",
    )

    code_snippet: Optional[str] = Field(
        None,
        max_length=MAX_CODE_SNIPPET_CHARS,
        description="Optional single-line excerpt of the vulnerable code",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )
