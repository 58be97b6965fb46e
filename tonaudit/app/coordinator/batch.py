"""
Batch comparison coordinator.

Audits several contracts as one logical operation and compares them.

IMPORTANT:
- Contracts are audited strictly sequentially: one model interaction
  completes (successfully or not) before the next one starts. This keeps
  at most one in-flight request against the upstream model endpoint.
- A failing contract is recorded and skipped; it never aborts the batch.
- Only a batch in which every contract failed is an error.
- Batch size bounds are enforced by the caller, not here.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from tonaudit.app.coordinator.auditor import ContractAuditor
from tonaudit.app.errors import AuditPipelineError, BatchExhaustedError
from tonaudit.app.events import (
    AuditEvent,
    AuditEventEmitter,
    AuditEventType,
    NullEventEmitter,
)
from tonaudit.app.schemas.audit_report import AuditReport
from tonaudit.app.schemas.batch_report import (
    MAX_COMMON_CATEGORIES,
    NO_CONTRACT_PLACEHOLDER,
    BatchItemFailure,
    BatchReport,
    CategoryCount,
    Comparison,
    RankingEntry,
)
from tonaudit.app.schemas.findings import Severity

logger = logging.getLogger(__name__)


class ContractSource(BaseModel):
    """One contract submitted for auditing."""

    code: str = Field(..., description="Contract source code")
    filename: Optional[str] = Field(None, description="Original filename, if any")

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


# ----------------------------------------------------------------------
# Comparison statistics (pure)
# ----------------------------------------------------------------------

def rank_by_risk(reports: Sequence[AuditReport]) -> List[RankingEntry]:
    """Ascending by score; equal scores keep input order."""
    ordered = sorted(reports, key=lambda report: report.score)
    return [
        RankingEntry(
            contract_name=report.contract_name,
            score=report.score,
            overall_risk=report.overall_risk,
            findings_count=len(report.findings),
        )
        for report in ordered
    ]


def most_common_categories(
    reports: Sequence[AuditReport],
    limit: int = MAX_COMMON_CATEGORIES,
) -> List[CategoryCount]:
    # Counter preserves first-seen order and sorted() is stable,
    # so equal counts stay in first-seen order.
    tally = Counter(
        finding.category
        for report in reports
        for finding in report.findings
    )
    ordered = sorted(tally.items(), key=lambda item: -item[1])
    return [
        CategoryCount(category=category, count=count)
        for category, count in ordered[:limit]
    ]


def compare_reports(reports: Sequence[AuditReport]) -> Comparison:
    ranking = rank_by_risk(reports)
    all_findings = [f for report in reports for f in report.findings]

    return Comparison(
        risk_ranking=ranking,
        total_findings=len(all_findings),
        critical_count=sum(1 for f in all_findings if f.severity == Severity.CRITICAL),
        high_count=sum(1 for f in all_findings if f.severity == Severity.HIGH),
        most_vulnerable=ranking[0].contract_name if ranking else NO_CONTRACT_PLACEHOLDER,
        safest=ranking[-1].contract_name if ranking else NO_CONTRACT_PLACEHOLDER,
        common_categories=most_common_categories(reports),
    )


# ----------------------------------------------------------------------
# Coordinator
# ----------------------------------------------------------------------

class BatchComparator:
    """
    Sequential multi-contract audit with partial-failure tolerance.
    """

    def __init__(
        self,
        auditor: ContractAuditor,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._auditor = auditor
        self._clock = clock

    async def run(
        self,
        contracts: Sequence[ContractSource],
        *,
        batch_id: Optional[str] = None,
        emitter: Optional[AuditEventEmitter] = None,
    ) -> BatchReport:
        """
        Audit every contract in order and build the batch report.

        Raises:
            BatchExhaustedError: no contract produced a report.
        """
        emitter = emitter or NullEventEmitter()
        batch_id = batch_id or str(uuid4())

        await emitter.emit(
            AuditEvent(
                audit_id=batch_id,
                event_type=AuditEventType.BATCH_STARTED,
                details={"total_contracts": len(contracts)},
            )
        )

        reports: List[AuditReport] = []
        failures: List[BatchItemFailure] = []

        for index, contract in enumerate(contracts, start=1):
            label = contract.filename or f"contract-{index}"

            await emitter.emit(
                AuditEvent(
                    audit_id=batch_id,
                    event_type=AuditEventType.BATCH_ITEM_STARTED,
                    details={"index": index, "filename": label},
                )
            )

            try:
                report = await self._auditor.audit(
                    contract.code,
                    contract.filename,
                    audit_id=f"{batch_id}:{index}",
                    emitter=emitter,
                )
            except AuditPipelineError as exc:
                logger.warning(
                    "Batch %s: contract %d/%d (%s) failed: %s",
                    batch_id,
                    index,
                    len(contracts),
                    label,
                    exc,
                )
                failures.append(
                    BatchItemFailure(
                        filename=label,
                        error_type=type(exc).__name__,
                        message=str(exc),
                    )
                )
                await emitter.emit(
                    AuditEvent(
                        audit_id=batch_id,
                        event_type=AuditEventType.BATCH_ITEM_FAILED,
                        details={
                            "index": index,
                            "filename": label,
                            "error_type": type(exc).__name__,
                        },
                    )
                )
                continue

            reports.append(report)

        if not reports:
            raise BatchExhaustedError(
                f"All {len(contracts)} contract audits failed",
                attempted=len(contracts),
            )

        batch = BatchReport(
            audited_at=self._clock(),
            total_contracts=len(contracts),
            reports=reports,
            comparison=compare_reports(reports),
            failures=failures,
        )

        logger.info(
            "Batch %s complete: %d/%d succeeded, most vulnerable %s",
            batch_id,
            len(reports),
            len(contracts),
            batch.comparison.most_vulnerable,
        )

        await emitter.emit(
            AuditEvent(
                audit_id=batch_id,
                event_type=AuditEventType.BATCH_COMPLETED,
                details={
                    "succeeded": len(reports),
                    "failed": len(failures),
                },
            )
        )
        return batch
