"""
Single-contract audit coordinator.

Runs one contract through the full pipeline:

    prompt -> stream aggregation -> extraction/repair -> assembly

The coordinator owns ordering and event emission only. It does not
interpret findings and performs no retries.
"""

from __future__ import annotations

import inspect
import logging
from typing import Optional
from uuid import uuid4

from tonaudit.app.errors import AuditPipelineError
from tonaudit.app.events import (
    AuditEvent,
    AuditEventEmitter,
    AuditEventType,
    NullEventEmitter,
)
from tonaudit.app.schemas.audit_report import AuditReport
from tonaudit.app.streaming.aggregator import FragmentObserver, StreamAggregator
from tonaudit.app.streaming.prompts import build_audit_prompt
from tonaudit.app.synthesis.assembler import ReportAssembler
from tonaudit.app.synthesis.extraction import extract_payload
from tonaudit.app.synthesis.source_metrics import detect_language

logger = logging.getLogger(__name__)


class ContractAuditor:
    """
    Single-contract audit pipeline.

    Execution order:
        1. Language detection and prompt construction
        2. Stream aggregation (one model interaction)
        3. Payload extraction and repair
        4. Report assembly
    """

    def __init__(
        self,
        aggregator: StreamAggregator,
        assembler: Optional[ReportAssembler] = None,
        progress_every: int = 10,
    ) -> None:
        self._aggregator = aggregator
        self._assembler = assembler if assembler is not None else ReportAssembler()
        self._progress_every = max(1, progress_every)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def audit(
        self,
        code: str,
        filename: Optional[str] = None,
        *,
        on_fragment: Optional[FragmentObserver] = None,
        audit_id: Optional[str] = None,
        emitter: Optional[AuditEventEmitter] = None,
    ) -> AuditReport:
        """
        Audit one contract and return its canonical report.

        Pipeline failures are emitted as AUDIT_FAILED and re-raised.
        """
        emitter = emitter or NullEventEmitter()
        audit_id = audit_id or str(uuid4())

        language = detect_language(code, filename)

        await emitter.emit(
            AuditEvent(
                audit_id=audit_id,
                event_type=AuditEventType.AUDIT_STARTED,
                details={
                    "filename": filename,
                    "language": language.value,
                },
            )
        )

        fragment_count = 0

        async def _observe(fragment: str) -> None:
            nonlocal fragment_count
            fragment_count += 1

            if on_fragment is not None:
                outcome = on_fragment(fragment)
                if inspect.isawaitable(outcome):
                    await outcome

            if fragment_count % self._progress_every == 0:
                await emitter.emit(
                    AuditEvent(
                        audit_id=audit_id,
                        event_type=AuditEventType.MODEL_STREAM_PROGRESS,
                        details={"fragments": fragment_count},
                    )
                )

        try:
            prompt = build_audit_prompt(code, language, filename)

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.MODEL_STREAM_STARTED,
                    details={
                        "model": self._aggregator.model_label,
                        "prompt_id": prompt.prompt_id,
                    },
                )
            )

            buffer = await self._aggregator.aggregate(prompt, _observe)

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.MODEL_STREAM_COMPLETED,
                    details={
                        "fragments": fragment_count,
                        "characters": len(buffer),
                    },
                )
            )

            parsed = extract_payload(buffer)

            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.PAYLOAD_EXTRACTED,
                    details={"keys": sorted(parsed)},
                )
            )

            report = self._assembler.assemble(
                parsed,
                code=code,
                language=language,
                filename=filename,
            )

        except AuditPipelineError as exc:
            logger.warning(
                "Audit %s failed for %s: %s",
                audit_id,
                filename or "<unnamed>",
                exc,
            )
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.AUDIT_FAILED,
                    details={
                        "error_type": type(exc).__name__,
                        "message": str(exc),
                        "raw_excerpt": exc.raw_excerpt,
                    },
                )
            )
            raise

        await emitter.emit(
            AuditEvent(
                audit_id=audit_id,
                event_type=AuditEventType.AUDIT_COMPLETED,
                details={
                    "report": report.model_dump(mode="json", by_alias=True),
                },
            )
        )
        return report
