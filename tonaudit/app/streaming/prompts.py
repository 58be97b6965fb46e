"""
Audit prompt construction.

The prompt is the only input the model transport receives. It is built
from the submitted source, the detected language and the optional
filename, and is immutable once built.
"""

from __future__ import annotations

import hashlib
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tonaudit.app.schemas.audit_report import ContractLanguage
from tonaudit.app.schemas.findings import MAX_CODE_SNIPPET_CHARS


AUDIT_SYSTEM_PROMPT = """You are TonAudit AI, an expert TON blockchain smart contract security auditor with deep knowledge of:
- FunC language (TON's primary smart contract language)
- Tact language (TON's newer high-level language)
- TON Virtual Machine (TVM) internals and opcodes
- Common TON-specific vulnerabilities and attack vectors
- TON ecosystem standards (TEP-64, TEP-74 Jettons, TEP-62 NFT)
- Gas optimization patterns for TON

Your analysis must be thorough, precise, and actionable. Always respond with valid JSON matching the specified schema exactly."""


_LANGUAGE_DESCRIPTIONS = {
    ContractLanguage.FUNC: "FunC (TON's low-level smart contract language)",
    ContractLanguage.TACT: "Tact (TON's high-level smart contract language)",
    ContractLanguage.UNKNOWN: "TON smart contract (language auto-detected)",
}

_FENCE_TAGS = {
    ContractLanguage.FUNC: "func",
    ContractLanguage.TACT: "tact",
    ContractLanguage.UNKNOWN: "",
}

_CHECKLIST = """Analyze for ALL of the following vulnerability categories:

**TON-Specific Issues:**
- Reentrancy via message chains (TON async model)
- Improper bounce message handling (missing bounce handlers)
- Unauthorized message senders (missing sender validation)
- Wrong workchain assumptions (masterchain vs basechain)
- Storage fee exhaustion (contract death from insufficient balance)
- Jetton standard deviations (TEP-74 compliance)
- NFT standard deviations (TEP-62 compliance)
- Improper use of raw_reserve vs send_raw_message modes

**General Smart Contract Issues:**
- Integer overflow/underflow
- Access control vulnerabilities
- Replay attack vectors
- Front-running vulnerabilities
- Unvalidated external inputs
- Improper state management
- Missing error handling

**Gas & Economic Issues:**
- Gas griefing attacks
- Unpredictable gas consumption
- Inefficient cell/slice operations
- Missing gas fees forwarding"""

_RESPONSE_SCHEMA = f"""Respond ONLY with valid, minified JSON (no extra whitespace or newlines outside string values) in this exact schema:
{{
  "overallRisk": "critical|high|medium|low|clean",
  "summary": "2-3 sentence executive summary",
  "score": <integer 0-100, where 100 is perfectly secure>,
  "findings": [
    {{
      "severity": "critical|high|medium|low|info",
      "category": "category name",
      "title": "short title",
      "description": "detailed description of the vulnerability (plain text, no code blocks)",
      "location": "function name or line reference",
      "recommendation": "specific actionable fix (plain text only, no code blocks or backticks)",
      "codeSnippet": "single short line showing the vulnerable code (optional, max {MAX_CODE_SNIPPET_CHARS} chars, no newlines)"
    }}
  ],
  "gasAnalysis": "plain text gas analysis",
  "architectureNotes": "plain text architecture notes"
}}

IMPORTANT:
- All string values must be single-line (no newlines, no backtick code blocks inside JSON strings)
- Do NOT include code examples with backticks inside JSON string values
- The entire response must be parseable as strict JSON without error
- Order findings by severity (critical first)
- Omit codeSnippet if it would be longer than {MAX_CODE_SNIPPET_CHARS} characters"""


class AuditPrompt(BaseModel):
    """
    Immutable two-part prompt for one contract audit.
    """

    system_text: str = Field(..., description="System instructions")
    user_text: str = Field(..., description="Audit request including the source")

    @property
    def prompt_id(self) -> str:
        """Stable content hash, for diagnostics only."""
        digest = hashlib.sha256(
            (self.system_text + "\x00" + self.user_text).encode("utf-8")
        ).hexdigest()
        return f"audit:{digest[:16]}"

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )


def build_audit_prompt(
    code: str,
    language: ContractLanguage,
    filename: Optional[str] = None,
) -> AuditPrompt:
    subject = _LANGUAGE_DESCRIPTIONS[language]
    named = f" ({filename})" if filename else ""

    user_text = (
        f"Perform a comprehensive security audit of this {subject} contract{named}.\n\n"
        f"```{_FENCE_TAGS[language]}\n{code}\n```\n\n"
        f"{_CHECKLIST}\n\n"
        f"{_RESPONSE_SCHEMA}"
    )

    return AuditPrompt(system_text=AUDIT_SYSTEM_PROMPT, user_text=user_text)
