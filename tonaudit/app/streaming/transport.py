"""
Streaming model transports.

A transport starts exactly one streamed chat completion per audit and
yields text fragments as they arrive. Two implementations exist, chosen
once at startup from configuration:

- OpenAI-compatible endpoint authenticated with an API key
- Azure OpenAI deployment authenticated through Entra ID
  (DefaultAzureCredential, no API keys)

Upstream failures are logged and re-raised as TransportError. No
retries are performed here.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Protocol

from azure.core.exceptions import ClientAuthenticationError, HttpResponseError
from azure.identity import DefaultAzureCredential, get_bearer_token_provider
from openai import APIError, AsyncAzureOpenAI, AsyncOpenAI

from tonaudit.app.config import TonAuditConfig
from tonaudit.app.errors import TransportError
from tonaudit.app.streaming.prompts import AuditPrompt

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Transport Interface
# ----------------------------------------------------------------------

class StreamingModelTransport(Protocol):
    """
    Capability to start one streamed model completion.

    Implementations yield text fragments in arrival order and raise
    TransportError if the stream fails before completion. They perform
    no retries.
    """

    @property
    def model_label(self) -> str:
        ...

    def start_stream(self, prompt: AuditPrompt) -> AsyncIterator[str]:
        ...


# ----------------------------------------------------------------------
# Shared chat-completions streaming
# ----------------------------------------------------------------------

class _ChatCompletionStreamTransport:
    """
    Streams chat completion deltas from an OpenAI-style async client.
    """

    def __init__(
        self,
        *,
        client: AsyncOpenAI,
        model: str,
        max_tokens: int,
    ) -> None:
        self._client = client
        self._model = model
        self._max_tokens = max_tokens

    @property
    def model_label(self) -> str:
        return self._model

    async def start_stream(self, prompt: AuditPrompt) -> AsyncIterator[str]:
        try:
            stream = await self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                stream=True,
                messages=[
                    {"role": "system", "content": prompt.system_text},
                    {"role": "user", "content": prompt.user_text},
                ],
            )

            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta

        except (APIError, HttpResponseError, ClientAuthenticationError) as exc:
            logger.warning(
                "Model stream failed (model=%s, prompt=%s): %s",
                self._model,
                prompt.prompt_id,
                exc,
            )
            raise TransportError(f"Model stream failed: {exc}") from exc


# ----------------------------------------------------------------------
# OpenAI-compatible endpoint (API key)
# ----------------------------------------------------------------------

class OpenAICompatibleTransport(_ChatCompletionStreamTransport):
    """
    Streams from any OpenAI-compatible chat completions endpoint,
    including local proxies.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        model: str,
        max_tokens: int = 4096,
        timeout_seconds: float = 300.0,
    ) -> None:
        super().__init__(
            client=AsyncOpenAI(
                base_url=base_url,
                api_key=api_key,
                timeout=timeout_seconds,
            ),
            model=model,
            max_tokens=max_tokens,
        )


# ----------------------------------------------------------------------
# Azure OpenAI (Entra ID)
# ----------------------------------------------------------------------

class AzureOpenAITransport(_ChatCompletionStreamTransport):
    """
    Streams from an Azure OpenAI deployment using Entra ID credentials.

    No API key is required; DefaultAzureCredential resolves managed
    identity, workload identity or developer credentials.
    """

    def __init__(
        self,
        *,
        endpoint: str,
        deployment: str,
        api_version: str,
        max_tokens: int = 4096,
        timeout_seconds: float = 300.0,
    ) -> None:
        credential = DefaultAzureCredential()
        token_provider = get_bearer_token_provider(
            credential,
            "https://cognitiveservices.azure.com/.default",
        )

        super().__init__(
            client=AsyncAzureOpenAI(
                azure_endpoint=endpoint,
                azure_ad_token_provider=token_provider,
                api_version=api_version,
                timeout=timeout_seconds,
            ),
            model=deployment,
            max_tokens=max_tokens,
        )


# ----------------------------------------------------------------------
# Composition helper
# ----------------------------------------------------------------------

def build_transport(config: TonAuditConfig) -> StreamingModelTransport:
    """
    Construct the transport named by configuration.

    Called by the composition root only. Pipeline components receive the
    transport explicitly and never select one themselves.
    """
    if config.MODEL_PROVIDER == "azure_openai":
        return AzureOpenAITransport(
            endpoint=config.AZURE_OPENAI_ENDPOINT,
            deployment=config.AZURE_OPENAI_DEPLOYMENT or config.MODEL_NAME,
            api_version=config.AZURE_OPENAI_API_VERSION,
            max_tokens=config.MAX_TOKENS,
            timeout_seconds=config.REQUEST_TIMEOUT_SECONDS,
        )

    return OpenAICompatibleTransport(
        base_url=config.OPENAI_BASE_URL,
        api_key=config.OPENAI_API_KEY,
        model=config.MODEL_NAME,
        max_tokens=config.MAX_TOKENS,
        timeout_seconds=config.REQUEST_TIMEOUT_SECONDS,
    )
