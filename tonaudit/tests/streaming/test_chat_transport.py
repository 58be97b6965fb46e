from types import SimpleNamespace

import httpx
import openai
import pytest

from tonaudit.app.config import TonAuditConfig
from tonaudit.app.errors import TransportError
from tonaudit.app.schemas.audit_report import ContractLanguage
from tonaudit.app.streaming.aggregator import StreamAggregator
from tonaudit.app.streaming.prompts import build_audit_prompt
from tonaudit.app.streaming.transport import (
    AzureOpenAITransport,
    OpenAICompatibleTransport,
    build_transport,
)


PROMPT = build_audit_prompt("() recv_internal() impure { }", ContractLanguage.FUNC)


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class _FakeCompletions:
    def __init__(self, chunks=(), error=None):
        self._chunks = list(chunks)
        self._error = error
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._stream()

    async def _stream(self):
        for chunk in self._chunks:
            yield chunk


def _transport_with(completions):
    transport = OpenAICompatibleTransport(
        base_url="http://localhost:9/v1",
        api_key="test-key",
        model="test-model",
        max_tokens=512,
    )
    transport._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return transport


@pytest.mark.anyio
async def test_stream_yields_non_empty_deltas_only():
    completions = _FakeCompletions([
        _chunk('{"score"'),
        _chunk(None),
        SimpleNamespace(choices=[]),
        _chunk(": 88}"),
    ])

    buffer = await StreamAggregator(_transport_with(completions)).aggregate(PROMPT)

    assert buffer == '{"score": 88}'

    request = completions.requests[0]
    assert request["stream"] is True
    assert request["model"] == "test-model"
    assert request["max_tokens"] == 512
    assert [m["role"] for m in request["messages"]] == ["system", "user"]


@pytest.mark.anyio
async def test_api_errors_become_transport_errors():
    error = openai.APIConnectionError(
        request=httpx.Request("POST", "http://localhost:9/v1/chat/completions"),
    )

    with pytest.raises(TransportError) as exc_info:
        await StreamAggregator(_transport_with(_FakeCompletions(error=error))).aggregate(PROMPT)

    assert exc_info.value.__cause__ is error


def test_openai_compatible_transport_is_the_default():
    transport = build_transport(TonAuditConfig(MODEL_NAME="claude-test"))

    assert isinstance(transport, OpenAICompatibleTransport)
    assert transport.model_label == "claude-test"


def test_azure_transport_builds_without_api_keys(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AZURE_OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("AZURE_CLIENT_SECRET", raising=False)

    config = TonAuditConfig(
        MODEL_PROVIDER="azure_openai",
        AZURE_OPENAI_ENDPOINT="https://example.openai.azure.com",
        AZURE_OPENAI_DEPLOYMENT="audit-deployment",
        AZURE_OPENAI_API_VERSION="2024-02-01",
    )

    transport = build_transport(config)

    assert isinstance(transport, AzureOpenAITransport)
    assert transport.model_label == "audit-deployment"
