"""
Payload extraction and repair.

The model is asked for strict JSON but routinely wraps it in prose or
markdown fences, and multi-line string values often arrive with literal
newlines or tabs. This module recovers the embedded object through
staged fallbacks, each attempted only when the previous stage failed:

    1. Locate      first '{' to last '}', inclusive
    2. Escape      literal \\n \\r \\t inside string literals only
    3. Parse       strict JSON
    4. Cleanup     escape \\n \\r \\t and delete every other control
                   character across the whole candidate, parse once more
    5. Give up     MalformedPayloadError with a raw excerpt

Stage 2 never touches whitespace between tokens. Stage 4 does, and may
drop information, so it runs last.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict

from tonaudit.app.errors import ExtractionError, MalformedPayloadError

logger = logging.getLogger(__name__)


EXTRACTION_EXCERPT_CHARS = 200
MALFORMED_EXCERPT_CHARS = 500

# A double-quoted span; backslash escapes (including an escaped quote)
# are consumed as a unit.
_STRING_LITERAL = re.compile(r'"(?:[^"\\]|\\.)*"', re.DOTALL)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

_ESCAPES = {
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------

def locate_candidate(buffer: str) -> str:
    start = buffer.find("{")
    end = buffer.rfind("}")

    if start == -1 or end < start:
        raise ExtractionError(
            "No JSON object found in model output",
            raw_excerpt=buffer[:EXTRACTION_EXCERPT_CHARS],
        )

    return buffer[start:end + 1]


def escape_string_controls(candidate: str) -> str:
    def _escape(match: re.Match) -> str:
        literal = match.group(0)
        for raw, escaped in _ESCAPES.items():
            literal = literal.replace(raw, escaped)
        return literal

    return _STRING_LITERAL.sub(_escape, candidate)


def strip_control_characters(candidate: str) -> str:
    return _CONTROL_CHARS.sub(
        lambda match: _ESCAPES.get(match.group(0), ""),
        candidate,
    )


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def extract_payload(buffer: str) -> Dict[str, Any]:
    """
    Recover the JSON object embedded in an aggregated model answer.

    Raises:
        ExtractionError: the buffer holds no JSON-like region.
        MalformedPayloadError: the region could not be parsed after
            both repair stages, including nesting too deep
            for the parser.
    """
    candidate = escape_string_controls(locate_candidate(buffer))

    try:
        parsed = json.loads(candidate)
    except (ValueError, RecursionError) as first_error:
        logger.warning(
            "Payload parse failed (%s); retrying with control characters stripped",
            first_error,
        )
        try:
            parsed = json.loads(strip_control_characters(candidate))
        except (ValueError, RecursionError) as exc:
            raise MalformedPayloadError(
                f"JSON parse failed: {exc}",
                raw_excerpt=buffer[:MALFORMED_EXCERPT_CHARS],
            ) from exc

    # The candidate is brace-delimited, so any successful parse is an object
    return parsed
