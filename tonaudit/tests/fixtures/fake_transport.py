"""
Scripted streaming transport for pipeline testing.

This transport replays prepared fragment sequences without invoking any
external services.

IMPORTANT:
- Deterministic
- CI-safe
- Each call to start_stream consumes the next script in order
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import anyio

from tonaudit.app.errors import TransportError
from tonaudit.app.streaming.prompts import AuditPrompt


class StreamScript:
    """
    One scripted model interaction.

    `fail_after` raises once that many fragments have been yielded.
    `error` chooses the exception; by default a TransportError.
    """

    def __init__(
        self,
        fragments: Sequence[str],
        *,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.error = error


def chunked(text: str, size: int = 7) -> List[str]:
    """Split text into fixed-size fragments, as a token stream would."""
    return [text[i:i + size] for i in range(0, len(text), size)]


def payload_script(
    payload: Dict[str, Any],
    *,
    preamble: str = "Here is the audit:\n```json\n",
    epilogue: str = "\n```",
    size: int = 7,
) -> StreamScript:
    """Script a well-behaved answer embedding `payload` as JSON."""
    text = preamble + json.dumps(payload) + epilogue
    return StreamScript(chunked(text, size))


def failing_script(message: str = "upstream unavailable") -> StreamScript:
    return StreamScript([], fail_after=0, error=TransportError(message))


class FakeStreamingTransport:
    def __init__(
        self,
        scripts: Union[StreamScript, Sequence[StreamScript]],
        *,
        model_label: str = "fake-model",
    ) -> None:
        if isinstance(scripts, StreamScript):
            scripts = [scripts]
        self._scripts = list(scripts)
        self._model_label = model_label

        # Observability for tests
        self.prompts: List[AuditPrompt] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def model_label(self) -> str:
        return self._model_label

    async def start_stream(self, prompt: AuditPrompt) -> AsyncIterator[str]:
        self.prompts.append(prompt)

        if not self._scripts:
            raise TransportError("No scripted stream left")
        script = self._scripts.pop(0)

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for emitted, fragment in enumerate(script.fragments):
                if script.fail_after is not None and emitted >= script.fail_after:
                    break
                # Yield control so overlapping streams would be observable
                await anyio.sleep(0)
                yield fragment

            if script.fail_after is not None:
                raise script.error or TransportError("Scripted stream failure")
        finally:
            self.in_flight -= 1
