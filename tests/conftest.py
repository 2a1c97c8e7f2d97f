"""Shared fakes for streaming tests: a chunked response body and a fake provider server."""

import asyncio
from typing import Iterable, List, Optional

import httpx
import orjson
import pytest

from llm_stream.models.request import Request


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered in the given chunks; records reads and close."""

    def __init__(
        self,
        chunks: Iterable[bytes],
        error: Optional[Exception] = None,
        hang: bool = False,
    ):
        self.chunks = list(chunks)
        self.error = error
        self.hang = hang
        self.yielded = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.yielded += 1
            yield chunk
        if self.error is not None:
            raise self.error
        if self.hang:
            # Provider keeps the connection open without sending anything
            await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FakeProvider:
    """MockTransport handler serving one canned streaming response per request."""

    def __init__(
        self,
        chunks: Iterable[bytes],
        status_code: int = 200,
        error: Optional[Exception] = None,
        hang: bool = False,
    ):
        self.chunks = list(chunks)
        self.status_code = status_code
        self.error = error
        self.hang = hang
        self.requests: List[httpx.Request] = []
        self.streams: List[ChunkedStream] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        stream = ChunkedStream(self.chunks, error=self.error, hang=self.hang)
        self.streams.append(stream)
        return httpx.Response(
            self.status_code,
            headers={"content-type": "text/event-stream"},
            stream=stream,
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def format_sse(data: str | dict, event: Optional[str] = None) -> str:
    """Encode one SSE event the way providers send it (dicts as compact JSON)."""
    if isinstance(data, dict):
        data = orjson.dumps(data).decode()
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


def split_every(body: bytes, size: int) -> List[bytes]:
    return [body[i : i + size] for i in range(0, len(body), size)]


def make_request(provider: str = "openai") -> Request:
    return Request(
        provider=provider,
        url="https://api.example.test/v1/stream",
        headers={"Authorization": "Bearer test"},
        body=b"{}",
    )


@pytest.fixture
def openai_request() -> Request:
    return make_request("openai")
