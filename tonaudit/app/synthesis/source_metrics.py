"""
Input-derived report metadata.

These values come from the submitted source and filename only, never
from model output.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Optional

from tonaudit.app.schemas.audit_report import UNKNOWN_CONTRACT_NAME, ContractLanguage


_TACT_EXTENSIONS = (".tact",)
_FUNC_EXTENSIONS = (".fc", ".func")

_FUNC_MARKERS = ("() impure", "recv_internal", "#include")


def detect_language(code: str, filename: Optional[str] = None) -> ContractLanguage:
    """
    Classify the contract language from its filename, falling back to
    content heuristics.
    """
    if filename:
        if filename.endswith(_TACT_EXTENSIONS):
            return ContractLanguage.TACT
        if filename.endswith(_FUNC_EXTENSIONS):
            return ContractLanguage.FUNC

    if "contract " in code and "fun " in code:
        return ContractLanguage.TACT
    if any(marker in code for marker in _FUNC_MARKERS):
        return ContractLanguage.FUNC

    return ContractLanguage.UNKNOWN


def count_lines_of_code(code: str) -> int:
    return sum(1 for line in code.split("\n") if line.strip())


def derive_contract_name(filename: Optional[str]) -> str:
    """Strip the last extension from the filename's final path component."""
    if not filename:
        return UNKNOWN_CONTRACT_NAME

    name = PurePosixPath(filename.replace("\\", "/")).name
    stem, dot, _ = name.rpartition(".")
    if dot and stem:
        name = stem

    return name or UNKNOWN_CONTRACT_NAME
