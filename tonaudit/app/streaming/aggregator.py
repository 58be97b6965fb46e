"""
Stream aggregation.

Accumulates the model's incremental text fragments into one buffer.
The aggregator has no JSON awareness: extraction and repair happen only
once the stream has completed.

Each invocation owns its buffer; nothing survives past one call.
"""

from __future__ import annotations

import inspect
import logging
from typing import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, List, Optional, Union

from tonaudit.app.errors import TransportError
from tonaudit.app.streaming.prompts import AuditPrompt
from tonaudit.app.streaming.transport import StreamingModelTransport

logger = logging.getLogger(__name__)


FragmentObserver = Callable[[str], Union[None, Awaitable[None]]]
FragmentSource = Union[AsyncIterable[str], Iterable[str]]


async def _as_async(fragments: FragmentSource) -> AsyncIterator[str]:
    if hasattr(fragments, "__aiter__"):
        async for fragment in fragments:  # type: ignore[union-attr]
            yield fragment
    else:
        for fragment in fragments:  # type: ignore[union-attr]
            yield fragment


async def collect_fragments(
    fragments: FragmentSource,
    on_fragment: Optional[FragmentObserver] = None,
) -> str:
    """
    Concatenate fragments in arrival order.

    The observer is invoked after each non-empty fragment and may be a
    plain or async callable. It signals progress only; its return value
    is ignored.

    Any failure of the fragment source is raised as TransportError and
    no partial buffer is returned.
    """
    parts: List[str] = []
    iterator = _as_async(fragments).__aiter__()

    while True:
        try:
            fragment = await iterator.__anext__()
        except StopAsyncIteration:
            break
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(f"Fragment stream failed: {exc}") from exc

        if not fragment:
            continue

        parts.append(fragment)

        if on_fragment is not None:
            outcome = on_fragment(fragment)
            if inspect.isawaitable(outcome):
                await outcome

    return "".join(parts)


class StreamAggregator:
    """
    Runs one streamed completion on an explicitly injected transport and
    returns the full text.
    """

    def __init__(self, transport: StreamingModelTransport) -> None:
        self._transport = transport

    @property
    def model_label(self) -> str:
        return self._transport.model_label

    async def aggregate(
        self,
        prompt: AuditPrompt,
        on_fragment: Optional[FragmentObserver] = None,
    ) -> str:
        buffer = await collect_fragments(
            self._transport.start_stream(prompt),
            on_fragment,
        )
        logger.debug(
            "Aggregated %d characters for prompt %s",
            len(buffer),
            prompt.prompt_id,
        )
        return buffer
