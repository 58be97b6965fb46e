"""
Runtime configuration for the TonAudit service.

This module centralizes environment-driven configuration: which model
transport is used and how it is reached, input size limits for the HTTP
surface, and batch bounds.

Configuration is read once at startup and passed explicitly into the
components that need it. No pipeline component reads the environment
on its own.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Tuple

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class TonAuditConfig(BaseModel):
    """
    Runtime configuration for the TonAudit service.

    Configuration is environment-driven and read-only at runtime.
    """

    # ------------------------------------------------------------------
    # Model transport
    # ------------------------------------------------------------------

    MODEL_PROVIDER: str = Field(
        "openai_compatible",
        description="Streaming transport identifier",
    )

    OPENAI_BASE_URL: str = Field(
        "http://localhost:8317/v1",
        description="Base URL of the OpenAI-compatible endpoint",
    )

    OPENAI_API_KEY: str = Field(
        "claude-max",
        description="API key sent to the OpenAI-compatible endpoint",
    )

    MODEL_NAME: str = Field(
        "claude-sonnet-4-5-20250929",
        description="Model (or Azure deployment) used for audits",
    )

    MAX_TOKENS: int = Field(
        4096,
        gt=0,
        description="Upper bound on generated tokens per audit",
    )

    REQUEST_TIMEOUT_SECONDS: float = Field(
        300.0,
        gt=0,
        description="Client-side request timeout for the model transport",
    )

    AZURE_OPENAI_ENDPOINT: str = Field(
        "",
        validate_default=True,
        description="Azure OpenAI endpoint URL",
    )

    AZURE_OPENAI_DEPLOYMENT: str = Field(
        "",
        description="Azure OpenAI deployment name",
    )

    AZURE_OPENAI_API_VERSION: str = Field(
        "",
        description="Azure OpenAI API version",
    )

    # ------------------------------------------------------------------
    # Input limits (HTTP surface)
    # ------------------------------------------------------------------

    MIN_SOURCE_CHARS: int = Field(
        10,
        ge=0,
        description="Minimum length of submitted contract code",
    )

    MAX_SOURCE_CHARS: int = Field(
        80_000,
        gt=0,
        description="Maximum length of submitted contract code",
    )

    MAX_UPLOAD_BYTES: int = Field(
        100 * 1024,
        gt=0,
        description="Maximum size of an uploaded contract file",
    )

    ALLOWED_EXTENSIONS: Tuple[str, ...] = Field(
        (".fc", ".func", ".tact"),
        description="Accepted contract file extensions",
    )

    # ------------------------------------------------------------------
    # Batch and progress
    # ------------------------------------------------------------------

    BATCH_MIN_CONTRACTS: int = Field(2, ge=1)
    BATCH_MAX_CONTRACTS: int = Field(10, ge=1)

    PROGRESS_EVERY_N_FRAGMENTS: int = Field(
        10,
        gt=0,
        description="Emit one progress event per this many stream fragments",
    )

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    MODEL_LABEL: str = Field(
        "Claude Opus",
        description="Model label printed on the report cover page",
    )

    SAMPLES_DIR: Path | None = Field(
        None,
        description="Optional directory of sample contracts",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("MODEL_PROVIDER")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        allowed = {"openai_compatible", "azure_openai"}
        if v not in allowed:
            raise ValueError(
                f"Unsupported MODEL_PROVIDER '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return v

    @field_validator("AZURE_OPENAI_ENDPOINT")
    @classmethod
    def azure_endpoint_required(cls, v: str, info: ValidationInfo) -> str:
        if info.data.get("MODEL_PROVIDER") == "azure_openai" and not v:
            raise ValueError(
                "MODEL_PROVIDER is azure_openai but "
                "AZURE_OPENAI_ENDPOINT is not configured."
            )
        return v

    @field_validator("MAX_SOURCE_CHARS")
    @classmethod
    def max_above_min(cls, v: int, info: ValidationInfo) -> int:
        minimum = info.data.get("MIN_SOURCE_CHARS")
        if minimum is not None and v < minimum:
            raise ValueError("MAX_SOURCE_CHARS must not be below MIN_SOURCE_CHARS.")
        return v

    @field_validator("BATCH_MAX_CONTRACTS")
    @classmethod
    def batch_bounds(cls, v: int, info: ValidationInfo) -> int:
        minimum = info.data.get("BATCH_MIN_CONTRACTS")
        if minimum is not None and v < minimum:
            raise ValueError(
                "BATCH_MAX_CONTRACTS must not be below BATCH_MIN_CONTRACTS."
            )
        return v

    @field_validator("SAMPLES_DIR")
    @classmethod
    def samples_dir_is_directory(cls, v: Path | None) -> Path | None:
        if v is not None and not v.is_dir():
            raise ValueError(f"Configured SAMPLES_DIR is not a directory: {v}")
        return v

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "TonAuditConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """
        samples_env = os.getenv("TONAUDIT_SAMPLES_DIR")

        return cls(
            MODEL_PROVIDER=os.getenv(
                "TONAUDIT_MODEL_PROVIDER", "openai_compatible"
            ),
            OPENAI_BASE_URL=os.getenv(
                "TONAUDIT_OPENAI_BASE_URL", "http://localhost:8317/v1"
            ),
            OPENAI_API_KEY=os.getenv(
                "TONAUDIT_OPENAI_API_KEY", "claude-max"
            ),
            MODEL_NAME=os.getenv(
                "TONAUDIT_MODEL_NAME", "claude-sonnet-4-5-20250929"
            ),
            MAX_TOKENS=int(
                os.getenv("TONAUDIT_MAX_TOKENS", "4096")
            ),
            REQUEST_TIMEOUT_SECONDS=float(
                os.getenv("TONAUDIT_REQUEST_TIMEOUT_SECONDS", "300")
            ),
            AZURE_OPENAI_ENDPOINT=os.getenv(
                "AZURE_OPENAI_ENDPOINT", ""
            ),
            AZURE_OPENAI_DEPLOYMENT=os.getenv(
                "AZURE_OPENAI_DEPLOYMENT", ""
            ),
            AZURE_OPENAI_API_VERSION=os.getenv(
                "AZURE_OPENAI_API_VERSION", ""
            ),
            MIN_SOURCE_CHARS=int(
                os.getenv("TONAUDIT_MIN_SOURCE_CHARS", "10")
            ),
            MAX_SOURCE_CHARS=int(
                os.getenv("TONAUDIT_MAX_SOURCE_CHARS", "80000")
            ),
            MAX_UPLOAD_BYTES=int(
                os.getenv("TONAUDIT_MAX_UPLOAD_BYTES", str(100 * 1024))
            ),
            BATCH_MIN_CONTRACTS=int(
                os.getenv("TONAUDIT_BATCH_MIN_CONTRACTS", "2")
            ),
            BATCH_MAX_CONTRACTS=int(
                os.getenv("TONAUDIT_BATCH_MAX_CONTRACTS", "10")
            ),
            PROGRESS_EVERY_N_FRAGMENTS=int(
                os.getenv("TONAUDIT_PROGRESS_EVERY_N_FRAGMENTS", "10")
            ),
            MODEL_LABEL=os.getenv(
                "TONAUDIT_MODEL_LABEL", "Claude Opus"
            ),
            SAMPLES_DIR=(
                Path(samples_env)
                if samples_env
                else None
            ),
        )

    model_config = {
        "frozen": True,
    }
