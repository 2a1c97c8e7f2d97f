"""End-to-end tests for stream_deltas against a fake provider server."""

import asyncio
import random
from contextlib import aclosing
from pathlib import Path

import httpx
import orjson
import pytest

from llm_stream.models.response import Delta
from llm_stream.services.stream import StreamState, collect_many, collect_text, stream_deltas
from llm_stream.utils.exceptions import (
    ProviderPayloadError,
    ProviderSignaledError,
    TransportError,
)

from conftest import FakeProvider, format_sse, make_request, split_every

FIXTURES = Path(__file__).parent / "fixtures"
EXPECTED = orjson.loads((FIXTURES / "completions.json").read_bytes())


def openai_frame(content=None, finish_reason=None):
    delta = {} if content is None else {"content": content}
    return format_sse(
        {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}
    ).encode()


async def collect(request, fake):
    async with fake.client() as client:
        async with aclosing(stream_deltas(request, client)) as deltas:
            return [delta async for delta in deltas]


@pytest.mark.asyncio
async def test_openai_deltas_in_order_with_done_last():
    fake = FakeProvider(
        [
            openai_frame("Hel"),
            openai_frame("lo"),
            openai_frame(finish_reason="stop"),
            b"data: [DONE]\n\n",
        ]
    )
    deltas = await collect(make_request("openai"), fake)

    assert [d.text for d in deltas] == ["Hel", "lo", ""]
    assert [d.is_done for d in deltas] == [False, False, True]
    assert deltas[-1].finish_reason == "stop"
    assert all(d.provider == "openai" for d in deltas)


@pytest.mark.asyncio
async def test_request_is_sent_as_given():
    fake = FakeProvider([b"data: [DONE]\n\n"])
    request = make_request("openai")
    await collect(request, fake)

    assert len(fake.requests) == 1
    sent = fake.requests[0]
    assert sent.method == "POST"
    assert str(sent.url) == request.url
    assert sent.headers["authorization"] == "Bearer test"
    assert sent.content == b"{}"


@pytest.mark.asyncio
async def test_anthropic_single_text_then_stop():
    body = (
        format_sse({"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Hi"}}, "content_block_delta")
        + format_sse({"type": "message_stop"}, "message_stop")
    ).encode()
    deltas = await collect(make_request("anthropic"), FakeProvider([body]))

    assert deltas == [
        Delta(text="Hi", provider="anthropic"),
        Delta(text="", is_done=True, provider="anthropic"),
    ]


@pytest.mark.asyncio
async def test_final_text_and_end_in_same_frame_yields_text_then_done():
    frame = format_sse(
        {"candidates": [{"content": {"parts": [{"text": "bye"}]}, "finishReason": "STOP"}]}
    ).encode()
    deltas = await collect(make_request("google"), FakeProvider([frame]))

    assert deltas == [
        Delta(text="bye", provider="google"),
        Delta(text="", is_done=True, provider="google", finish_reason="STOP"),
    ]


@pytest.mark.asyncio
async def test_nothing_is_read_after_end():
    fake = FakeProvider(
        [b"data: [DONE]\n\n", openai_frame("after end"), openai_frame("more")]
    )
    deltas = await collect(make_request("openai"), fake)

    assert [d.text for d in deltas] == [""]
    assert fake.streams[0].yielded == 1
    assert fake.streams[0].closed


@pytest.mark.asyncio
async def test_error_frame_stops_the_stream():
    chunks = [
        openai_frame("partial"),
        format_sse({"error": {"message": "rate limited", "code": "rate_limit_exceeded"}}).encode(),
        openai_frame("never"),
        b"data: [DONE]\n\n",
    ]
    fake = FakeProvider(chunks)
    received = []

    with pytest.raises(ProviderSignaledError) as exc_info:
        async with fake.client() as client:
            async with aclosing(stream_deltas(make_request("openai"), client)) as deltas:
                async for delta in deltas:
                    received.append(delta)

    assert exc_info.value.message == "rate limited"
    assert exc_info.value.code == "rate_limit_exceeded"
    assert exc_info.value.provider == "openai"
    assert [d.text for d in received] == ["partial"]
    assert fake.streams[0].yielded < len(chunks)
    assert fake.streams[0].closed


@pytest.mark.asyncio
async def test_malformed_payload_raises_payload_error():
    fake = FakeProvider([openai_frame("ok"), b"data: {not json\n\n"])

    with pytest.raises(ProviderPayloadError) as exc_info:
        await collect(make_request("openai"), fake)

    assert exc_info.value.payload == "{not json"


@pytest.mark.asyncio
async def test_non_success_status_raises_before_any_delta():
    body = b'{"error": {"message": "Rate limit reached", "type": "requests"}}'
    fake = FakeProvider([body], status_code=429)
    received = []

    with pytest.raises(TransportError) as exc_info:
        async with fake.client() as client:
            async for delta in stream_deltas(make_request("openai"), client):
                received.append(delta)

    assert received == []
    assert exc_info.value.status_code == 429
    assert exc_info.value.message == "Rate limit reached"
    assert exc_info.value.body == body
    assert str(exc_info.value) == "HTTP 429: Rate limit reached"


@pytest.mark.asyncio
async def test_non_success_status_with_sse_looking_body_is_not_decoded():
    fake = FakeProvider([openai_frame("looks like text"), b"data: [DONE]\n\n"], status_code=500)

    with pytest.raises(TransportError) as exc_info:
        await collect(make_request("openai"), fake)

    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_gemini_error_array_message_is_extracted():
    body = b'[{"error": {"code": 400, "message": "API key not valid.", "status": "INVALID_ARGUMENT"}}]'
    fake = FakeProvider([body], status_code=400)

    with pytest.raises(TransportError) as exc_info:
        await collect(make_request("google"), fake)

    assert exc_info.value.message == "API key not valid."


@pytest.mark.asyncio
async def test_connection_close_without_end_frame_is_implicit_end():
    fake = FakeProvider([openai_frame("Hel"), openai_frame("lo", finish_reason="length")])
    deltas = await collect(make_request("openai"), fake)

    assert [d.text for d in deltas] == ["Hel", "lo", ""]
    assert deltas[-1].is_done
    assert deltas[-1].finish_reason == "length"


@pytest.mark.asyncio
async def test_unterminated_final_event_is_flushed():
    fake = FakeProvider([openai_frame("a"), b"data: [DONE]"])
    deltas = await collect(make_request("openai"), fake)

    assert [(d.text, d.is_done) for d in deltas] == [("a", False), ("", True)]


@pytest.mark.asyncio
async def test_empty_body_yields_single_done():
    deltas = await collect(make_request("anthropic"), FakeProvider([]))

    assert deltas == [Delta(text="", is_done=True, provider="anthropic")]


@pytest.mark.asyncio
async def test_disconnect_mid_body_is_transport_error():
    fake = FakeProvider([openai_frame("partial")], error=httpx.ReadError("connection reset"))
    received = []

    with pytest.raises(TransportError) as exc_info:
        async with fake.client() as client:
            async with aclosing(stream_deltas(make_request("openai"), client)) as deltas:
                async for delta in deltas:
                    received.append(delta)

    assert [d.text for d in received] == ["partial"]
    assert exc_info.value.status_code is None
    assert "ReadError" in exc_info.value.message


@pytest.mark.asyncio
async def test_abandoning_the_stream_closes_the_connection():
    chunks = [openai_frame(str(i)) for i in range(10)] + [b"data: [DONE]\n\n"]
    fake = FakeProvider(chunks)

    async with fake.client() as client:
        deltas = stream_deltas(make_request("openai"), client)
        first = await deltas.__anext__()
        await deltas.aclose()

    assert first.text == "0"
    assert fake.streams[0].closed
    assert fake.streams[0].yielded < len(chunks)


@pytest.mark.asyncio
async def test_deadline_cancels_a_stalled_stream():
    fake = FakeProvider([openai_frame("slow")], hang=True)
    received = []

    async def consume(client):
        async with aclosing(stream_deltas(make_request("openai"), client)) as deltas:
            async for delta in deltas:
                received.append(delta)

    async with fake.client() as client:
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(consume(client), timeout=0.2)

    assert [d.text for d in received] == ["slow"]
    assert fake.streams[0].closed


@pytest.mark.parametrize("name", sorted(EXPECTED))
@pytest.mark.asyncio
async def test_recorded_streams(name):
    expected = EXPECTED[name]
    body = (FIXTURES / name).read_bytes()
    deltas = await collect(make_request(expected["provider"]), FakeProvider([body]))

    assert "".join(d.text for d in deltas) == expected["text"]
    assert all(d.text for d in deltas[:-1])
    assert deltas[-1].is_done and deltas[-1].text == ""
    assert deltas[-1].finish_reason == expected["finish_reason"]
    assert sum(d.is_done for d in deltas) == 1


@pytest.mark.parametrize("name", sorted(EXPECTED))
@pytest.mark.asyncio
async def test_recorded_streams_are_fragmentation_invariant(name):
    expected = EXPECTED[name]
    body = (FIXTURES / name).read_bytes()
    request = make_request(expected["provider"])
    whole = await collect(request, FakeProvider([body]))

    rng = random.Random(name)
    splits = [split_every(body, 1), split_every(body, 7)]
    for _ in range(5):
        cuts = sorted(rng.sample(range(1, len(body)), 12))
        bounds = [0, *cuts, len(body)]
        splits.append([body[a:b] for a, b in zip(bounds, bounds[1:])])

    for chunks in splits:
        assert await collect(request, FakeProvider(chunks)) == whole


@pytest.mark.asyncio
async def test_collect_text():
    fake = FakeProvider([(FIXTURES / "mistral.sse").read_bytes()])
    async with fake.client() as client:
        text = await collect_text(make_request("mistral"), client)

    assert text == EXPECTED["mistral.sse"]["text"]


@pytest.mark.asyncio
async def test_concurrent_streams_do_not_share_state():
    bodies = {
        "https://a.example.test/v1": b"".join([openai_frame("alpha"), b"data: [DONE]\n\n"]),
        "https://b.example.test/v1": format_sse(
            {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "beta"}},
            "content_block_delta",
        ).encode(),
        "https://c.example.test/v1": format_sse(
            {"error": {"message": "boom"}}
        ).encode(),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        body = bodies[str(request.url)]
        return httpx.Response(200, content=body)

    requests = [
        make_request("openai").model_copy(update={"url": "https://a.example.test/v1"}),
        make_request("anthropic").model_copy(update={"url": "https://b.example.test/v1"}),
        make_request("openai").model_copy(update={"url": "https://c.example.test/v1"}),
    ]
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        results = await collect_many(requests, client)

    assert results[0] == "alpha"
    assert results[1] == "beta"
    assert isinstance(results[2], ProviderSignaledError)


def test_stream_state_uses_fresh_adapter_per_request():
    first = StreamState.start(make_request("openai"))
    second = StreamState.start(make_request("openai"))

    assert first.provider is not second.provider
    assert first.decoder is not second.decoder
