import pytest

from tonaudit.app.coordinator.auditor import ContractAuditor
from tonaudit.app.errors import ExtractionError, MalformedPayloadError, TransportError
from tonaudit.app.events import AuditEventType, MemoryQueueEventEmitter
from tonaudit.app.schemas.audit_report import ContractLanguage, RiskLevel
from tonaudit.app.streaming.aggregator import StreamAggregator
from tonaudit.app.synthesis.assembler import ReportAssembler
from tonaudit.tests.fixtures.fake_transport import (
    FakeStreamingTransport,
    StreamScript,
    chunked,
    failing_script,
    payload_script,
)
from tonaudit.tests.fixtures.reports import FIXED_TIME

pytestmark = pytest.mark.anyio


CODE = "() recv_internal(slice in_msg) impure {\n  ;; nothing\n}\n"

PAYLOAD = {
    "overallRisk": "high",
    "summary": "Withdrawals are unprotected.",
    "score": 35,
    "findings": [
        {
            "severity": "critical",
            "category": "Access Control",
            "title": "Unprotected withdraw",
            "description": "Any sender can drain the wallet.",
            "recommendation": "Check the sender address.",
        }
    ],
    "gasAnalysis": "Fine.",
    "architectureNotes": "Minimal.",
}


class RecordingEmitter:
    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)

    def types(self):
        return [event.event_type for event in self.events]


def _auditor(scripts, progress_every=10):
    transport = FakeStreamingTransport(scripts)
    return ContractAuditor(
        StreamAggregator(transport),
        ReportAssembler(clock=lambda: FIXED_TIME),
        progress_every=progress_every,
    )


async def test_successful_audit_emits_lifecycle_in_order():
    emitter = RecordingEmitter()
    auditor = _auditor(payload_script(PAYLOAD))

    report = await auditor.audit(CODE, "wallet.fc", audit_id="a-1", emitter=emitter)

    assert report.contract_name == "wallet"
    assert report.language == ContractLanguage.FUNC
    assert report.overall_risk == RiskLevel.HIGH
    assert report.score == 35
    assert report.findings[0].id == "TON-001"

    types = [t for t in emitter.types() if t != AuditEventType.MODEL_STREAM_PROGRESS]
    assert types == [
        AuditEventType.AUDIT_STARTED,
        AuditEventType.MODEL_STREAM_STARTED,
        AuditEventType.MODEL_STREAM_COMPLETED,
        AuditEventType.PAYLOAD_EXTRACTED,
        AuditEventType.AUDIT_COMPLETED,
    ]
    assert all(event.audit_id == "a-1" for event in emitter.events)

    completed = emitter.events[-1].details["report"]
    assert completed["contractName"] == "wallet"
    assert completed["findings"][0]["id"] == "TON-001"


async def test_progress_is_reported_every_n_fragments():
    text = "prelude " + '{"score": 90}'
    fragments = chunked(text, 2)
    emitter = RecordingEmitter()
    seen = []

    await _auditor(StreamScript(fragments), progress_every=3).audit(
        CODE, on_fragment=seen.append, emitter=emitter,
    )

    progress = [
        event.details["fragments"]
        for event in emitter.events
        if event.event_type == AuditEventType.MODEL_STREAM_PROGRESS
    ]
    assert progress == list(range(3, len(fragments) + 1, 3))
    assert "".join(seen) == text


async def test_transport_failure_emits_audit_failed_and_raises():
    emitter = RecordingEmitter()

    with pytest.raises(TransportError):
        await _auditor(failing_script()).audit(CODE, emitter=emitter)

    assert emitter.types()[-1] == AuditEventType.AUDIT_FAILED
    assert emitter.events[-1].details["error_type"] == "TransportError"
    assert AuditEventType.AUDIT_COMPLETED not in emitter.types()


async def test_extraction_failure_carries_raw_excerpt():
    emitter = RecordingEmitter()

    with pytest.raises(ExtractionError):
        await _auditor(StreamScript(["I refuse ", "to answer."])).audit(
            CODE, emitter=emitter,
        )

    failed = emitter.events[-1]
    assert failed.event_type == AuditEventType.AUDIT_FAILED
    assert failed.details["raw_excerpt"] == "I refuse to answer."


async def test_schema_violation_is_malformed_payload():
    with pytest.raises(MalformedPayloadError):
        await _auditor(StreamScript(['{"findings": "none"}'])).audit(CODE)


async def test_memory_emitter_stream_ends_after_completion():
    emitter = MemoryQueueEventEmitter()

    await _auditor(payload_script(PAYLOAD)).audit(CODE, "wallet.fc", emitter=emitter)

    streamed = [event.event_type async for event in emitter.stream()]
    assert emitter.closed
    assert streamed[0] == AuditEventType.AUDIT_STARTED
    assert streamed[-1] == AuditEventType.AUDIT_COMPLETED


async def test_memory_emitter_drops_events_after_close():
    emitter = MemoryQueueEventEmitter()

    with pytest.raises(TransportError):
        await _auditor(failing_script()).audit(CODE, emitter=emitter)
    await _auditor(payload_script(PAYLOAD)).audit(CODE, emitter=emitter)

    streamed = [event.event_type async for event in emitter.stream()]
    assert streamed[-1] == AuditEventType.AUDIT_FAILED
    assert AuditEventType.AUDIT_COMPLETED not in streamed
