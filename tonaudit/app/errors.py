"""
Pipeline error taxonomy.

Every failure raised by the report synthesis pipeline derives from
AuditPipelineError. The HTTP layer reports these as user-facing
"analysis failed" conditions; anything else is a programming error and
propagates unchanged.

No error in this module is retried locally. Retry policy, if any,
belongs to the transport collaborator.
"""

from __future__ import annotations

from typing import Optional


class AuditPipelineError(RuntimeError):
    """Base class for all report synthesis failures."""

    def __init__(self, message: str, *, raw_excerpt: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_excerpt = raw_excerpt


class TransportError(AuditPipelineError):
    """Raised when the model stream fails before completion."""


class ExtractionError(AuditPipelineError):
    """Raised when no JSON-like region exists in the model output."""


class MalformedPayloadError(AuditPipelineError):
    """
    Raised when a JSON-like region was found but could not be parsed
    after both repair stages, or when the parsed object does not match
    the payload schema.
    """


class BatchExhaustedError(AuditPipelineError):
    """Raised when every contract in a batch failed."""

    def __init__(self, message: str, *, attempted: int) -> None:
        super().__init__(message)
        self.attempted = attempted
