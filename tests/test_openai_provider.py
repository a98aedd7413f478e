"""Tests for the OpenAI Responses API provider and its stream decoder."""
from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from wright.engine.cancellation import CancelToken
from wright.engine.errors import (
    ProviderError,
    ProviderHTTPError,
    RunCancelledError,
    StreamFailedError,
)
from wright.engine.providers.base import (
    Request,
    StreamDone,
    StreamError,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
    ToolDefinition,
)
from wright.engine.providers.openai_provider import (
    OpenAIProvider,
    ResponsesStreamDecoder,
    build_input_items,
    build_request_body,
    parse_sse_line,
)
from wright.shared.models.message import (
    Message,
    MessageRole,
    ToolCall,
    ToolResult,
    tool_result_message,
    user_message,
)


def _sse(*payloads: dict) -> bytes:
    return b"".join(
        f"event: {p.get('type', '')}\ndata: {json.dumps(p)}\n\n".encode()
        for p in payloads
    )


def _feed_all(decoder: ResponsesStreamDecoder, *payloads: dict) -> list:
    events = []
    for payload in payloads:
        events.extend(decoder.feed(payload))
    return events


COMPLETED = {
    "type": "response.completed",
    "response": {"usage": {"input_tokens": 10, "output_tokens": 5, "total_tokens": 15}},
}


# ── parse_sse_line ──


def test_parse_sse_line_skips_non_data_lines():
    assert parse_sse_line(b"") is None
    assert parse_sse_line(b": keep-alive") is None
    assert parse_sse_line(b"event: response.completed") is None
    assert parse_sse_line(b"id: 7") is None
    assert parse_sse_line(b"data: [DONE]") is None


def test_parse_sse_line_skips_malformed_json():
    assert parse_sse_line(b"data: {not json") is None
    assert parse_sse_line(b"data: [1, 2]") is None


def test_parse_sse_line_decodes_payload():
    assert parse_sse_line(b'data: {"type": "x"}\r\n') == {"type": "x"}
    assert parse_sse_line('data:{"type": "y"}') == {"type": "y"}


# ── decoder ──


def test_decoder_text_then_completed_reports_usage():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {"type": "response.output_text.delta", "delta": "Hel"},
        {"type": "response.output_text.delta", "delta": "lo"},
        {"type": "response.output_text.delta", "delta": ""},
        COMPLETED,
    )
    assert events[:2] == [TextDelta(text="Hel"), TextDelta(text="lo")]
    assert isinstance(events[2], StreamDone)
    assert events[2].usage.input_tokens == 10
    assert events[2].usage.output_tokens == 5
    assert events[2].usage.total_tokens == 15
    assert len(events) == 3
    assert decoder.finished


def test_decoder_total_tokens_falls_back_to_sum():
    decoder = ResponsesStreamDecoder()
    events = decoder.feed({
        "type": "response.completed",
        "response": {"usage": {"input_tokens": 3, "output_tokens": 4}},
    })
    assert events[-1].usage.total_tokens == 7


def test_decoder_reassembles_tool_call_keyed_by_item_id():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {
            "type": "response.output_item.added",
            "item": {"type": "function_call", "id": "fc_1", "call_id": "call_a", "name": "view"},
        },
        {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": '{"file_'},
        {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": 'path": "a.py"}'},
        {"type": "response.function_call_arguments.done", "item_id": "fc_1"},
        {
            "type": "response.output_item.done",
            "item": {"type": "function_call", "id": "fc_1", "call_id": "call_a", "name": "view"},
        },
        COMPLETED,
    )
    assert events[0] == ToolCallStart(call_id="call_a", name="view")
    assert events[1] == ToolCallDelta(call_id="call_a", delta='{"file_')
    assert events[2] == ToolCallDelta(call_id="call_a", delta='path": "a.py"}')
    assert events[3] == ToolCallEnd(call_id="call_a", name="view", arguments='{"file_path": "a.py"}')
    assert isinstance(events[4], StreamDone)
    assert len(events) == 5


def test_decoder_final_payload_supersedes_buffer():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {
            "type": "response.output_item.added",
            "item": {"type": "function_call", "id": "fc_1", "call_id": "call_a", "name": "ls"},
        },
        {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": '{"pa'},
        {"type": "response.function_call_arguments.done", "item_id": "fc_1", "arguments": '{"path": "src"}'},
    )
    end = [e for e in events if isinstance(e, ToolCallEnd)]
    assert end == [ToolCallEnd(call_id="call_a", name="ls", arguments='{"path": "src"}')]


def test_decoder_done_before_name_waits_for_item_done():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {"type": "response.function_call_arguments.delta", "item_id": "fc_9", "delta": "{}"},
        {"type": "response.function_call_arguments.done", "item_id": "fc_9", "arguments": "{}"},
    )
    assert not any(isinstance(e, ToolCallEnd) for e in events)

    events = decoder.feed({
        "type": "response.output_item.done",
        "item": {"type": "function_call", "id": "fc_9", "call_id": "call_z", "name": "glob"},
    })
    assert events == [
        ToolCallStart(call_id="call_z", name="glob"),
        ToolCallEnd(call_id="call_z", name="glob", arguments="{}"),
    ]


def test_decoder_interleaved_calls_keep_separate_buffers():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {"type": "response.output_item.added",
         "item": {"type": "function_call", "id": "fc_1", "call_id": "c1", "name": "view"}},
        {"type": "response.output_item.added",
         "item": {"type": "function_call", "id": "fc_2", "call_id": "c2", "name": "ls"}},
        {"type": "response.function_call_arguments.delta", "item_id": "fc_2", "delta": '{"path": "b"}'},
        {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": '{"file_path": "a"}'},
        {"type": "response.function_call_arguments.done", "item_id": "fc_1"},
        {"type": "response.function_call_arguments.done", "item_id": "fc_2"},
        COMPLETED,
    )
    ends = [e for e in events if isinstance(e, ToolCallEnd)]
    assert ends == [
        ToolCallEnd(call_id="c1", name="view", arguments='{"file_path": "a"}'),
        ToolCallEnd(call_id="c2", name="ls", arguments='{"path": "b"}'),
    ]


def test_decoder_flushes_open_calls_on_completed():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {"type": "response.output_item.added",
         "item": {"type": "function_call", "id": "fc_1", "call_id": "c1", "name": "grep"}},
        {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": '{"pattern": "x"}'},
        COMPLETED,
    )
    assert events[-2] == ToolCallEnd(call_id="c1", name="grep", arguments='{"pattern": "x"}')
    assert isinstance(events[-1], StreamDone)


def test_decoder_failed_event_reports_api_error():
    decoder = ResponsesStreamDecoder()
    events = decoder.feed({
        "type": "response.failed",
        "response": {"error": {"message": "server overloaded", "code": "server_error"}},
    })
    assert len(events) == 1
    assert isinstance(events[0], StreamError)
    assert isinstance(events[0].error, StreamFailedError)
    assert str(events[0].error) == "OpenAI API error: server overloaded (server_error)"
    assert events[0].error.code == "server_error"


def test_decoder_failed_without_message():
    decoder = ResponsesStreamDecoder()
    events = decoder.feed({"type": "response.failed", "response": {}})
    assert str(events[0].error) == "response failed"


def test_decoder_incomplete_event_carries_reason():
    decoder = ResponsesStreamDecoder()
    events = decoder.feed({
        "type": "response.incomplete",
        "response": {"incomplete_details": {"reason": "max_output_tokens"}},
    })
    assert isinstance(events[0], StreamError)
    assert "response incomplete" in str(events[0].error)
    assert events[0].error.code == "max_output_tokens"


def test_decoder_failed_flushes_open_call_before_error():
    decoder = ResponsesStreamDecoder()
    events = _feed_all(
        decoder,
        {"type": "response.output_item.added",
         "item": {"type": "function_call", "id": "fc_1", "call_id": "c1", "name": "view"}},
        {"type": "response.failed", "response": {}},
    )
    assert isinstance(events[-2], ToolCallEnd)
    assert isinstance(events[-1], StreamError)


def test_decoder_ignores_payloads_after_terminal_event():
    decoder = ResponsesStreamDecoder()
    decoder.feed(COMPLETED)
    assert decoder.feed({"type": "response.output_text.delta", "delta": "late"}) == []
    assert decoder.finish() == []


def test_decoder_finish_without_completion_emits_done():
    decoder = ResponsesStreamDecoder()
    decoder.feed({"type": "response.output_text.delta", "delta": "partial"})
    events = decoder.finish()
    assert len(events) == 1
    assert isinstance(events[0], StreamDone)


def test_decoder_ignores_unknown_event_types():
    decoder = ResponsesStreamDecoder()
    assert decoder.feed({"type": "response.created"}) == []
    assert decoder.feed({"type": "response.reasoning_summary_text.delta", "delta": "x"}) == []


# ── request translation ──


def test_build_input_items_maps_every_role():
    calls_msg = Message(
        role=MessageRole.ASSISTANT,
        content="Looking.",
        tool_calls=[ToolCall(id="c1", name="ls", arguments='{"path": "."}')],
    )
    history = [
        Message(role=MessageRole.SYSTEM, content="be brief", session_id="s"),
        user_message("s", "list files"),
        calls_msg,
        tool_result_message("s", [ToolResult(tool_call_id="c1", name="ls", output="a.py")]),
    ]
    assert build_input_items(history) == [
        {"role": "developer", "content": "be brief"},
        {"role": "user", "content": "list files"},
        {"role": "assistant", "content": "Looking."},
        {"type": "function_call", "call_id": "c1", "name": "ls", "arguments": '{"path": "."}'},
        {"type": "function_call_output", "call_id": "c1", "output": "a.py"},
    ]


def test_build_input_items_skips_empty_assistant_text():
    msg = Message(
        role=MessageRole.ASSISTANT,
        tool_calls=[ToolCall(id="c1", name="ls", arguments="{}")],
    )
    items = build_input_items([msg])
    assert items == [{"type": "function_call", "call_id": "c1", "name": "ls", "arguments": "{}"}]


def test_build_request_body_defaults_and_tools():
    request = Request(
        system_prompt="sys",
        messages=[user_message("s", "hi")],
        tools=[ToolDefinition(name="ls", description="list", parameters={"type": "object"})],
        max_tokens=0,
    )
    body = build_request_body(request, "gpt-4o")
    assert body["model"] == "gpt-4o"
    assert body["instructions"] == "sys"
    assert body["stream"] is True
    assert body["store"] is False
    assert body["max_output_tokens"] == 4096
    assert body["tools"] == [
        {"type": "function", "name": "ls", "description": "list", "parameters": {"type": "object"}},
    ]


def test_build_request_body_omits_empty_tools():
    request = Request(system_prompt="", messages=[], tools=[], max_tokens=128)
    body = build_request_body(request, "gpt-4o")
    assert "tools" not in body
    assert body["max_output_tokens"] == 128


# ── provider against a local server ──


async def _start_server(routes: list[web.RouteDef]) -> TestServer:
    app = web.Application()
    app.add_routes(routes)
    server = TestServer(app)
    await server.start_server()
    return server


def _request() -> Request:
    return Request(system_prompt="sys", messages=[user_message("s", "hi")], tools=[])


async def _collect(stream) -> list:
    return [event async for event in stream]


@pytest.mark.asyncio
async def test_send_message_streams_events_from_server():
    seen: dict = {}

    async def handler(request: web.Request) -> web.StreamResponse:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = await request.json()
        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        await resp.write(_sse({"type": "response.output_text.delta", "delta": "Hi"}))
        await resp.write(b": keep-alive\n\ndata: {broken\n\n")
        await resp.write(_sse(COMPLETED))
        await resp.write_eof()
        return resp

    server = await _start_server([web.post("/v1/responses", handler)])
    try:
        provider = OpenAIProvider(api_key="sk-test", model="gpt-4o", base_url=str(server.make_url("/v1")))
        events = await _collect(await provider.send_message(_request()))
    finally:
        await server.close()

    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o"
    assert seen["body"]["input"] == [{"role": "user", "content": "hi"}]
    assert events[0] == TextDelta(text="Hi")
    assert isinstance(events[1], StreamDone)
    assert events[1].usage.total_tokens == 15
    assert len(events) == 2


@pytest.mark.asyncio
async def test_send_message_handles_lines_split_across_chunks():
    payload = _sse({"type": "response.output_text.delta", "delta": "split"}, COMPLETED)

    async def handler(request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        for i in range(0, len(payload), 7):
            await resp.write(payload[i:i + 7])
            await asyncio.sleep(0)
        await resp.write_eof()
        return resp

    server = await _start_server([web.post("/responses", handler)])
    try:
        provider = OpenAIProvider(api_key="k", base_url=str(server.make_url("")))
        events = await _collect(await provider.send_message(_request()))
    finally:
        await server.close()

    assert events[0] == TextDelta(text="split")
    assert isinstance(events[-1], StreamDone)


@pytest.mark.asyncio
async def test_send_message_early_close_flushes_and_completes():
    async def handler(request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        await resp.write(_sse(
            {"type": "response.output_item.added",
             "item": {"type": "function_call", "id": "fc_1", "call_id": "c1", "name": "ls"}},
            {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": "{}"},
        ))
        await resp.write_eof()
        return resp

    server = await _start_server([web.post("/responses", handler)])
    try:
        provider = OpenAIProvider(api_key="k", base_url=str(server.make_url("")))
        events = await _collect(await provider.send_message(_request()))
    finally:
        await server.close()

    assert events[-2] == ToolCallEnd(call_id="c1", name="ls", arguments="{}")
    assert isinstance(events[-1], StreamDone)


@pytest.mark.asyncio
async def test_send_message_non_2xx_raises_http_error():
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=401, text='{"error": "bad key"}')

    server = await _start_server([web.post("/responses", handler)])
    try:
        provider = OpenAIProvider(api_key="bad", base_url=str(server.make_url("")))
        with pytest.raises(ProviderHTTPError) as exc_info:
            await provider.send_message(_request())
    finally:
        await server.close()

    assert exc_info.value.status == 401
    assert "bad key" in str(exc_info.value)
    assert str(exc_info.value).startswith("OpenAI API error (HTTP 401)")


@pytest.mark.asyncio
async def test_send_message_connection_refused_raises_provider_error():
    provider = OpenAIProvider(api_key="k", base_url="http://127.0.0.1:1")
    with pytest.raises(ProviderError):
        await provider.send_message(_request())


@pytest.mark.asyncio
async def test_send_message_already_cancelled_raises():
    token = CancelToken()
    token.cancel("stop")
    provider = OpenAIProvider(api_key="k", base_url="http://127.0.0.1:1")
    with pytest.raises(RunCancelledError):
        await provider.send_message(_request(), token)


@pytest.mark.asyncio
async def test_cancel_during_stream_yields_single_error():
    release = asyncio.Event()

    async def handler(request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        await resp.write(_sse({"type": "response.output_text.delta", "delta": "a"}))
        await release.wait()
        return resp

    server = await _start_server([web.post("/responses", handler)])
    token = CancelToken()
    try:
        provider = OpenAIProvider(api_key="k", base_url=str(server.make_url("")))
        stream = await provider.send_message(_request(), token)
        events = []
        async for event in stream:
            events.append(event)
            if isinstance(event, TextDelta):
                token.cancel("user pressed escape")
    finally:
        release.set()
        await server.close()

    assert events[0] == TextDelta(text="a")
    assert len(events) == 2
    assert isinstance(events[1], StreamError)
    assert isinstance(events[1].error, RunCancelledError)


@pytest.mark.asyncio
async def test_set_model_does_not_affect_started_request():
    bodies = []

    async def handler(request: web.Request) -> web.StreamResponse:
        bodies.append(await request.json())
        resp = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await resp.prepare(request)
        await resp.write(_sse(COMPLETED))
        await resp.write_eof()
        return resp

    server = await _start_server([web.post("/responses", handler)])
    try:
        provider = OpenAIProvider(api_key="k", model="gpt-4o", base_url=str(server.make_url("")))
        stream = await provider.send_message(_request())
        provider.set_model("gpt-4.1")
        provider.set_api_key("other")
        await _collect(stream)
        await _collect(await provider.send_message(_request()))
    finally:
        await server.close()

    assert [b["model"] for b in bodies] == ["gpt-4o", "gpt-4.1"]
    assert provider.model == "gpt-4.1"


@pytest.mark.asyncio
async def test_list_models_filters_and_sorts():
    async def handler(request: web.Request) -> web.Response:
        return web.json_response({"data": [
            {"id": "gpt-4o"},
            {"id": "dall-e-3"},
            {"id": "o3-mini"},
            {"id": "gpt-4.1"},
            {"id": "text-embedding-3-small"},
            {"id": "chatgpt-4o-latest"},
        ]})

    server = await _start_server([web.get("/models", handler)])
    try:
        provider = OpenAIProvider(api_key="k", base_url=str(server.make_url("")))
        models = await provider.list_models()
    finally:
        await server.close()

    assert models == ["chatgpt-4o-latest", "gpt-4.1", "gpt-4o", "o3-mini"]


@pytest.mark.asyncio
async def test_list_models_non_200_raises():
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=500, text="boom")

    server = await _start_server([web.get("/models", handler)])
    try:
        provider = OpenAIProvider(api_key="k", base_url=str(server.make_url("")))
        with pytest.raises(ProviderHTTPError) as exc_info:
            await provider.list_models()
    finally:
        await server.close()
    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_list_models_bad_json_raises_provider_error():
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=200, text="not json")

    server = await _start_server([web.get("/models", handler)])
    try:
        provider = OpenAIProvider(api_key="k", base_url=str(server.make_url("")))
        with pytest.raises(ProviderError):
            await provider.list_models()
    finally:
        await server.close()
