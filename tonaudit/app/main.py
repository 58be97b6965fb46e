"""
FastAPI entrypoint for the TonAudit service.

This module defines the public HTTP interface: single-contract audits
streamed as Server-Sent Events, batch audits with comparison statistics,
and PDF rendering of finished reports.

The application is stateless: every request produces a fresh report and
nothing is persisted. The model transport is chosen once at startup from
configuration and injected into the pipeline explicitly.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Set
from uuid import uuid4

from fastapi import Body, FastAPI, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.responses import Response

from tonaudit.app.config import TonAuditConfig
from tonaudit.app.coordinator.auditor import ContractAuditor
from tonaudit.app.coordinator.batch import BatchComparator, ContractSource
from tonaudit.app.errors import AuditPipelineError, BatchExhaustedError
from tonaudit.app.events import (
    AuditEvent,
    AuditEventType,
    MemoryQueueEventEmitter,
)
from tonaudit.app.events.models import format_sse_frame
from tonaudit.app.rendering.pdf_renderer import render_batch_pdf, render_report_pdf
from tonaudit.app.schemas.audit_report import AuditReport
from tonaudit.app.schemas.batch_report import BatchReport
from tonaudit.app.streaming.aggregator import StreamAggregator
from tonaudit.app.streaming.transport import StreamingModelTransport, build_transport

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class AuditRequest(BaseModel):
    code: str = Field("", description="Contract source code")
    filename: Optional[str] = Field(None, description="Original filename, if any")


class BatchAuditRequest(BaseModel):
    contracts: List[ContractSource] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Application setup
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TonAudit AI",
    description="Streaming security audits of TON smart contracts",
    version="1.0.0",
)

# Strong references to in-flight audit tasks
_background_tasks: Set[asyncio.Task] = set()


def configure(
    application: FastAPI,
    config: TonAuditConfig,
    transport: Optional[StreamingModelTransport] = None,
) -> None:
    """
    Wire the pipeline into application state.

    `transport` overrides the configured one (used by tests and by
    alternative hosts).
    """
    transport = transport if transport is not None else build_transport(config)

    auditor = ContractAuditor(
        StreamAggregator(transport),
        progress_every=config.PROGRESS_EVERY_N_FRAGMENTS,
    )

    application.state.config = config
    application.state.transport = transport
    application.state.auditor = auditor
    application.state.batch_comparator = BatchComparator(auditor)


@app.on_event("startup")
def startup_event() -> None:
    """
    Application startup hook.

    Configuration is loaded once and treated as immutable for the
    lifetime of the process.
    """
    if getattr(app.state, "auditor", None) is not None:
        return

    config = TonAuditConfig.from_env()
    configure(app, config)

    logger.info(
        "TonAudit ready: provider=%s model=%s",
        config.MODEL_PROVIDER,
        config.MODEL_NAME,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _config() -> TonAuditConfig:
    return app.state.config


def _validate_code(code: str, config: TonAuditConfig) -> None:
    if len(code.strip()) < config.MIN_SOURCE_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Contract code is required (min {config.MIN_SOURCE_CHARS} chars)",
        )
    if len(code) > config.MAX_SOURCE_CHARS:
        raise HTTPException(
            status_code=400,
            detail=f"Contract too large (max {config.MAX_SOURCE_CHARS} chars)",
        )


def _translate(event: AuditEvent) -> List[str]:
    """Map pipeline events onto the client-facing SSE vocabulary."""
    details = event.details or {}

    if event.event_type == AuditEventType.AUDIT_STARTED:
        name = details.get("filename")
        target = name if name else "contract structure"
        return [format_sse_frame("status", {"message": f"Analyzing {target}..."})]

    if event.event_type == AuditEventType.MODEL_STREAM_PROGRESS:
        return [
            format_sse_frame(
                "progress",
                {
                    "message": "Running security checks...",
                    "fragments": details.get("fragments"),
                },
            )
        ]

    if event.event_type == AuditEventType.AUDIT_COMPLETED:
        return [
            format_sse_frame("status", {"message": "Audit complete"}),
            format_sse_frame("report", details.get("report", {})),
            format_sse_frame("done", {}),
        ]

    if event.event_type == AuditEventType.AUDIT_FAILED:
        return [
            format_sse_frame(
                "error",
                {
                    "message": details.get("message", "Audit failed"),
                    "rawExcerpt": details.get("raw_excerpt"),
                },
            )
        ]

    return []


def _stream_audit(code: str, filename: Optional[str]) -> StreamingResponse:
    auditor: ContractAuditor = app.state.auditor
    audit_id = str(uuid4())
    emitter = MemoryQueueEventEmitter()

    # --------------------------------------------------------------
    # Background audit execution
    # --------------------------------------------------------------
    async def run_audit_task() -> None:
        try:
            await auditor.audit(
                code,
                filename,
                audit_id=audit_id,
                emitter=emitter,
            )
        except AuditPipelineError:
            # Auditor already emitted AUDIT_FAILED
            return
        except Exception as exc:
            logger.exception("Audit %s crashed", audit_id)
            await emitter.emit(
                AuditEvent(
                    audit_id=audit_id,
                    event_type=AuditEventType.AUDIT_FAILED,
                    details={"message": f"Audit failed: {exc}"},
                )
            )

    task = asyncio.create_task(run_audit_task())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    # --------------------------------------------------------------
    # SSE event stream
    # --------------------------------------------------------------
    async def event_stream() -> AsyncIterator[str]:
        try:
            async for event in emitter.stream():
                for frame in _translate(event):
                    yield frame
        except asyncio.CancelledError:
            # Client disconnected; audit continues
            logger.info("Client disconnected from audit %s", audit_id)
            raise

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


def _download_name(contract_name: str) -> str:
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", contract_name).strip("._") or "contract"
    return f"{safe}-audit.pdf"


def _pdf_response(pdf_bytes: bytes, contract_name: str) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f'attachment; filename="{_download_name(contract_name)}"',
        },
    )


def _list_samples(config: TonAuditConfig) -> Dict[str, Path]:
    if config.SAMPLES_DIR is None:
        return {}
    return {
        path.name: path
        for path in sorted(config.SAMPLES_DIR.iterdir())
        if path.is_file() and path.suffix in config.ALLOWED_EXTENSIONS
    }


# ---------------------------------------------------------------------------
# API Routes
# ---------------------------------------------------------------------------

@app.post(
    "/audit",
    summary="Audit pasted contract code (streaming progress)",
)
async def audit_code(request: AuditRequest = Body(...)) -> StreamingResponse:
    _validate_code(request.code, _config())
    return _stream_audit(request.code, request.filename)


@app.post(
    "/audit/upload",
    summary="Audit an uploaded contract file (streaming progress)",
)
async def audit_upload(
    contract: UploadFile = File(..., description="FunC or Tact source file"),
) -> StreamingResponse:
    config = _config()
    filename = contract.filename or ""
    extension = Path(filename).suffix.lower()

    if extension not in config.ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Only {', '.join(config.ALLOWED_EXTENSIONS)} files allowed",
        )

    try:
        raw = await contract.read()
    except Exception as exc:
        raise HTTPException(
            status_code=400,
            detail="Failed to read uploaded file",
        ) from exc

    if len(raw) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds maximum allowed size of {config.MAX_UPLOAD_BYTES} bytes",
        )

    code = raw.decode("utf-8", errors="replace")
    _validate_code(code, config)
    return _stream_audit(code, filename)


@app.post(
    "/audit/batch",
    response_model=BatchReport,
    summary="Audit and compare several contracts",
)
async def audit_batch(request: BatchAuditRequest = Body(...)) -> BatchReport:
    config = _config()
    count = len(request.contracts)

    if not config.BATCH_MIN_CONTRACTS <= count <= config.BATCH_MAX_CONTRACTS:
        raise HTTPException(
            status_code=400,
            detail=(
                f"Batch audits require between {config.BATCH_MIN_CONTRACTS} "
                f"and {config.BATCH_MAX_CONTRACTS} contracts"
            ),
        )

    for contract in request.contracts:
        _validate_code(contract.code, config)

    comparator: BatchComparator = app.state.batch_comparator
    try:
        return await comparator.run(request.contracts)
    except BatchExhaustedError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@app.post(
    "/report/pdf",
    summary="Render an audit report as PDF",
)
def report_pdf(report: AuditReport = Body(...)) -> Response:
    pdf_bytes = render_report_pdf(report, model_label=_config().MODEL_LABEL)
    return _pdf_response(pdf_bytes, report.contract_name)


@app.post(
    "/report/batch/pdf",
    summary="Render the most vulnerable report of a batch as PDF",
)
def batch_report_pdf(batch: BatchReport = Body(...)) -> Response:
    pdf_bytes = render_batch_pdf(batch, model_label=_config().MODEL_LABEL)
    return _pdf_response(pdf_bytes, batch.comparison.most_vulnerable)


# ---------------------------------------------------------------------------
# Samples
# ---------------------------------------------------------------------------

@app.get("/samples", summary="List sample contracts")
def list_samples() -> JSONResponse:
    samples = _list_samples(_config())
    listing = []
    for name, path in samples.items():
        lines = path.read_text(encoding="utf-8").split("\n")
        listing.append(
            {
                "name": name,
                "lines": len(lines),
                "preview": "\n".join(lines[:3]),
            }
        )
    return JSONResponse(content={"samples": listing})


@app.get("/samples/{name}", summary="Fetch one sample contract")
def get_sample(name: str) -> JSONResponse:
    path = _list_samples(_config()).get(name)
    if path is None:
        raise HTTPException(status_code=404, detail="Sample not found")
    return JSONResponse(
        content={"name": name, "code": path.read_text(encoding="utf-8")}
    )


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------

@app.get(
    "/health",
    summary="Service health check",
)
def health_check() -> JSONResponse:
    """Simple health check endpoint."""
    transport: StreamingModelTransport = app.state.transport
    return JSONResponse(
        content={
            "status": "ok",
            "service": "tonaudit",
            "model": transport.model_label,
        }
    )
