"""
Unified streaming: transport bytes -> SSE events -> provider deltas.

`stream_deltas` is the one entry point every provider goes through. It is an
async generator, so the caller drives the pace: nothing is read from the
network until the next delta is requested, and closing the generator (or
cancelling the task consuming it) closes the HTTP response immediately.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence

import httpx

from llm_stream.models.request import Request
from llm_stream.models.response import Delta, End, ErrorSignal, RawEvent, Skip
from llm_stream.providers.base import BaseProvider
from llm_stream.providers.registry import provider_registry
from llm_stream.services.transport import iter_bytes
from llm_stream.utils.exceptions import ProviderPayloadError, ProviderSignaledError
from llm_stream.utils.sse import SSEDecoder

logger = logging.getLogger(__name__)


@dataclass
class StreamState:
    """Everything one in-flight stream owns. Never shared between streams."""

    provider: BaseProvider
    decoder: SSEDecoder = field(default_factory=SSEDecoder)
    finished: bool = False
    deltas: int = 0

    @classmethod
    def start(cls, request: Request) -> "StreamState":
        return cls(provider=provider_registry.create(request.provider))

    def apply(self, event: RawEvent) -> Optional[Delta]:
        """Decode one event; return a delta to emit, or None.

        Sets `finished` on End (or a delta that also ends the stream) and
        raises on an error frame.
        """
        result = self.provider.decode(event)

        if isinstance(result, Skip):
            return None
        if isinstance(result, ErrorSignal):
            self.finished = True
            _raise_signal(self.provider.name, result)
        if isinstance(result, End):
            self.finished = True
            return Delta(
                text="",
                is_done=True,
                provider=self.provider.name,
                finish_reason=result.reason,
            )

        self.deltas += 1
        if result.is_done:
            self.finished = True
        return result

    def close(self) -> Delta:
        """Implicit End when the body ends without an end-of-stream frame."""
        self.finished = True
        return Delta(
            text="",
            is_done=True,
            provider=self.provider.name,
            finish_reason=self.provider.finish_reason,
        )


async def stream_deltas(
    request: Request, client: Optional[httpx.AsyncClient] = None
) -> AsyncIterator[Delta]:
    """
    Stream a completion as provider-agnostic deltas.

    Yields text deltas in arrival order. The last delta always has
    `is_done=True`; when the provider sends final text and its end marker
    in the same frame, the text delta comes first and a separate empty
    done delta follows.

    Raises:
        TransportError: connection failure or non-2xx status (before any delta)
        ProviderSignaledError: the provider sent an error frame
        ProviderPayloadError: an event payload was not valid JSON
    """
    state = StreamState.start(request)
    logger.debug(f"Streaming from {request.provider}: {request.method} {request.redacted_url}")

    async with aclosing(iter_bytes(request, client)) as chunks:
        async for chunk in chunks:
            for event in state.decoder.feed(chunk):
                delta = state.apply(event)
                if delta is not None:
                    for out in _split(delta):
                        yield out
                if state.finished:
                    logger.debug(f"{request.provider} stream ended after {state.deltas} deltas")
                    return

    for event in state.decoder.flush():
        delta = state.apply(event)
        if delta is not None:
            for out in _split(delta):
                yield out
        if state.finished:
            return

    logger.debug(f"{request.provider} connection closed without end frame, treating as end")
    yield state.close()


def _split(delta: Delta) -> List[Delta]:
    """Split a final text delta into the text followed by the done marker."""
    if delta.is_done and delta.text:
        return [
            Delta(text=delta.text, provider=delta.provider),
            Delta(text="", is_done=True, provider=delta.provider, finish_reason=delta.finish_reason),
        ]
    return [delta]


async def collect_text(
    request: Request, client: Optional[httpx.AsyncClient] = None
) -> str:
    """Consume a whole stream and return the concatenated text."""
    parts: List[str] = []
    async with aclosing(stream_deltas(request, client)) as deltas:
        async for delta in deltas:
            parts.append(delta.text)
    return "".join(parts)


async def collect_many(
    requests: Sequence[Request], client: Optional[httpx.AsyncClient] = None
) -> List[str | BaseException]:
    """Run several streams concurrently; each has its own StreamState.

    Returns one entry per request, in order: the full text, or the
    exception that ended that stream.
    """
    return await asyncio.gather(
        *(collect_text(request, client) for request in requests),
        return_exceptions=True,
    )


def _raise_signal(provider: str, signal: ErrorSignal) -> None:
    if signal.malformed:
        raise ProviderPayloadError(signal.message, payload=signal.payload)
    logger.warning(f"{provider} stream error: {signal.message}")
    raise ProviderSignaledError(signal.message, code=signal.code, provider=provider)
