"""
Report assembly.

Maps a repaired, untrusted payload object onto the canonical AuditReport.
This is the ONLY place allowed to:
- assign finding identifiers
- clamp the security score
- set input-derived report fields
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError

from tonaudit.app.errors import MalformedPayloadError
from tonaudit.app.schemas.audit_report import AuditReport, ContractLanguage
from tonaudit.app.schemas.findings import Finding, format_finding_id
from tonaudit.app.schemas.payload import AuditPayload, PayloadFinding
from tonaudit.app.synthesis.source_metrics import (
    count_lines_of_code,
    derive_contract_name,
)

logger = logging.getLogger(__name__)


DEFAULT_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100


def clamp_score(raw: Optional[Union[int, float]]) -> int:
    if raw is None:
        return DEFAULT_SCORE
    return int(max(MIN_SCORE, min(MAX_SCORE, raw)))


def assign_finding_ids(raw_findings: List[PayloadFinding]) -> List[Finding]:
    return [
        Finding(
            id=format_finding_id(sequence),
            severity=raw.severity,
            category=raw.category,
            title=raw.title,
            description=raw.description,
            location=raw.location,
            recommendation=raw.recommendation,
            code_snippet=raw.code_snippet,
        )
        for sequence, raw in enumerate(raw_findings, start=1)
    ]


class ReportAssembler:
    """
    Builds AuditReport objects from parsed model payloads.

    The clock is injectable so that tests can pin `audited_at`.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._clock = clock

    def assemble(
        self,
        parsed: Dict[str, Any],
        *,
        code: str,
        language: ContractLanguage,
        filename: Optional[str] = None,
    ) -> AuditReport:
        try:
            payload = AuditPayload.model_validate(parsed)
        except ValidationError as exc:
            raise MalformedPayloadError(
                f"Payload does not match the audit schema: "
                f"{exc.error_count()} validation error(s)",
                raw_excerpt=str(exc)[:500],
            ) from exc

        findings = assign_finding_ids(payload.findings)

        report = AuditReport(
            contract_name=derive_contract_name(filename),
            language=language,
            lines_of_code=count_lines_of_code(code),
            audited_at=self._clock(),
            overall_risk=payload.overall_risk,
            summary=payload.summary,
            findings=findings,
            gas_analysis=payload.gas_analysis,
            architecture_notes=payload.architecture_notes,
            score=clamp_score(payload.score),
        )

        logger.info(
            "Assembled report for %s: %d finding(s), score %d, risk %s",
            report.contract_name,
            len(findings),
            report.score,
            report.overall_risk.value,
        )
        return report
