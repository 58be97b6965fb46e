from __future__ import annotations

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# ----------------------------------------------------------------------
# Event Types (Finite and Versioned)
# ----------------------------------------------------------------------
class AuditEventType(str, Enum):
    """
    Progression events emitted during the audit lifecycle.

    NOTE:
    This enum is finite and versioned.
    New entries must preserve observational semantics.
    """

    # ------------------------------------------------------------------
    # Single-contract lifecycle
    # ------------------------------------------------------------------
    AUDIT_STARTED = "audit_started"
    AUDIT_COMPLETED = "audit_completed"
    AUDIT_FAILED = "audit_failed"

    # ------------------------------------------------------------------
    # Model stream (Observational, Non-Authoritative)
    # ------------------------------------------------------------------
    MODEL_STREAM_STARTED = "model_stream_started"
    MODEL_STREAM_PROGRESS = "model_stream_progress"
    MODEL_STREAM_COMPLETED = "model_stream_completed"

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------
    PAYLOAD_EXTRACTED = "payload_extracted"

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------
    BATCH_STARTED = "batch_started"
    BATCH_ITEM_STARTED = "batch_item_started"
    BATCH_ITEM_FAILED = "batch_item_failed"
    BATCH_COMPLETED = "batch_completed"


def format_sse_frame(event_name: str, data: Dict[str, Any]) -> str:
    payload = json.dumps(data, ensure_ascii=False, default=str)
    return f"event: {event_name}\ndata: {payload}\n\n"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class AuditEvent(BaseModel):
    """
    An immutable observation of a phase transition within an audit.

    Events are:
    - strictly observational
    - transport-agnostic
    - not authoritative
    """

    event_id: UUID = Field(default_factory=uuid4)
    audit_id: str = Field(..., description="The global audit identifier")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: AuditEventType

    # Optional contextual metadata (filename, counts, error type, etc.)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
