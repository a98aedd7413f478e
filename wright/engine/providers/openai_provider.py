"""OpenAI provider — Responses API over Server-Sent Events.

Request flow:
    POST {base_url}/responses  (stream: true, store: false)
    -> text/event-stream of ``data: {json}`` lines
    -> ResponsesStreamDecoder
    -> TextDelta / ToolCallStart / ToolCallDelta / ToolCallEnd /
       StreamDone / StreamError

Function calls are reassembled across several wire events. The wire
keys them by an output item id, which differs from the ``call_id`` the
model uses to correlate results, so the decoder keeps one accumulator
per item id for the lifetime of a single response.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

import aiohttp

from wright.engine.cancellation import CancelToken, guarded
from wright.engine.errors import (
    ProviderError,
    ProviderHTTPError,
    RunCancelledError,
    StreamFailedError,
)
from wright.engine.providers.base import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    Provider,
    Request,
    StreamDone,
    StreamError,
    StreamEvent,
    TextDelta,
    ToolCallDelta,
    ToolCallEnd,
    ToolCallStart,
)
from wright.shared.models.message import Message, MessageRole, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Ids that identify models usable for text generation.
SUPPORTED_MODEL_PREFIXES = ("gpt-", "o1", "o3", "o4", "chatgpt-")

_CONNECT_TIMEOUT_SECONDS = 30.0


def is_supported_model(model_id: str) -> bool:
    return model_id.startswith(SUPPORTED_MODEL_PREFIXES)


# ── Request translation ──


def build_input_items(messages: list[Message]) -> list[dict[str, Any]]:
    """Map conversation history onto Responses API input items."""
    items: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == MessageRole.USER:
            items.append({"role": "user", "content": msg.content})
        elif msg.role == MessageRole.ASSISTANT:
            if msg.content:
                items.append({"role": "assistant", "content": msg.content})
            for call in msg.tool_calls:
                items.append({
                    "type": "function_call",
                    "call_id": call.id,
                    "name": call.name,
                    "arguments": call.arguments,
                })
        elif msg.role == MessageRole.TOOL:
            for result in msg.tool_results:
                items.append({
                    "type": "function_call_output",
                    "call_id": result.tool_call_id,
                    "output": result.output,
                })
        elif msg.role == MessageRole.SYSTEM:
            # The top-level "instructions" slot carries the system prompt;
            # history system messages ride the developer channel.
            items.append({"role": "developer", "content": msg.content})
    return items


def build_request_body(request: Request, model: str) -> dict[str, Any]:
    max_tokens = request.max_tokens if request.max_tokens > 0 else DEFAULT_MAX_OUTPUT_TOKENS
    body: dict[str, Any] = {
        "model": model,
        "instructions": request.system_prompt,
        "input": build_input_items(request.messages),
        "stream": True,
        "max_output_tokens": max_tokens,
        "store": False,
    }
    if request.tools:
        body["tools"] = [
            {
                "type": "function",
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.parameters,
            }
            for tool in request.tools
        ]
    return body


# ── Stream decoding ──


def parse_sse_line(raw: bytes | str) -> dict[str, Any] | None:
    """Return the JSON payload of a ``data:`` line, or None to skip it.

    Blank lines, ``:`` comments, ``event:`` announcements (the type is
    repeated inside the JSON) and malformed JSON are all skipped.
    """
    line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    line = line.rstrip("\r\n")
    if not line or line.startswith(":") or line.startswith("event:"):
        return None
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):]
    if data.startswith(" "):
        data = data[1:]
    if not data or data == "[DONE]":
        return None
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE data line: %.200s", data)
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def _parse_usage(raw: Any) -> TokenUsage:
    if not isinstance(raw, dict):
        return TokenUsage()
    input_tokens = int(raw.get("input_tokens") or 0)
    output_tokens = int(raw.get("output_tokens") or 0)
    total_tokens = int(raw.get("total_tokens") or 0) or input_tokens + output_tokens
    return TokenUsage(
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        total_tokens=total_tokens,
    )


@dataclass
class _PendingCall:
    """Accumulator for one function call, keyed by output item id."""
    item_id: str
    call_id: str = ""
    name: str = ""
    arguments: str = ""
    started: bool = False
    ended: bool = False


class ResponsesStreamDecoder:
    """Turns Responses API event payloads into normalized StreamEvents.

    Scoped to one response. After a terminal event (StreamDone or
    StreamError) has been produced every further payload is ignored.
    """

    def __init__(self) -> None:
        self._calls: dict[str, _PendingCall] = {}
        self.finished = False

    def feed(self, payload: dict[str, Any]) -> list[StreamEvent]:
        if self.finished:
            return []
        kind = payload.get("type", "")
        handler = self._HANDLERS.get(kind)
        if handler is None:
            return []
        return handler(self, payload)

    def finish(self) -> list[StreamEvent]:
        """Stream closed without a completion event."""
        if self.finished:
            return []
        logger.warning("Response stream ended without a completion event")
        events = self._flush()
        events.append(StreamDone())
        self.finished = True
        return events

    def fail(self, error: Exception) -> list[StreamEvent]:
        if self.finished:
            return []
        events = self._flush()
        events.append(StreamError(error=error))
        self.finished = True
        return events

    # ── helpers ──

    def _call(self, item_id: str) -> _PendingCall:
        state = self._calls.get(item_id)
        if state is None:
            state = _PendingCall(item_id=item_id)
            self._calls[item_id] = state
        return state

    @staticmethod
    def _start_if_ready(state: _PendingCall) -> list[StreamEvent]:
        if state.started or not state.call_id or not state.name:
            return []
        state.started = True
        return [ToolCallStart(call_id=state.call_id, name=state.name)]

    @staticmethod
    def _end(state: _PendingCall) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        if not state.call_id:
            state.call_id = state.item_id
        if not state.started:
            state.started = True
            events.append(ToolCallStart(call_id=state.call_id, name=state.name))
        state.ended = True
        events.append(ToolCallEnd(
            call_id=state.call_id,
            name=state.name,
            arguments=state.arguments,
        ))
        return events

    def _flush(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for state in self._calls.values():
            if not state.ended:
                logger.debug("Flushing open function call item=%s", state.item_id)
                events.extend(self._end(state))
        return events

    # ── wire event handlers ──

    def _on_text_delta(self, payload: dict[str, Any]) -> list[StreamEvent]:
        delta = payload.get("delta") or ""
        if not delta:
            return []
        return [TextDelta(text=delta)]

    def _on_item_added(self, payload: dict[str, Any]) -> list[StreamEvent]:
        item = payload.get("item") or {}
        if item.get("type") != "function_call":
            return []
        state = self._call(item.get("id", ""))
        state.call_id = item.get("call_id") or state.call_id
        state.name = item.get("name") or state.name
        return self._start_if_ready(state)

    def _on_arguments_delta(self, payload: dict[str, Any]) -> list[StreamEvent]:
        state = self._call(payload.get("item_id", ""))
        if state.ended:
            return []
        delta = payload.get("delta") or ""
        state.arguments += delta
        return [ToolCallDelta(call_id=state.call_id, delta=delta)]

    def _on_arguments_done(self, payload: dict[str, Any]) -> list[StreamEvent]:
        state = self._call(payload.get("item_id", ""))
        if state.ended:
            return []
        final = payload.get("arguments") or payload.get("delta") or ""
        if final:
            state.arguments = final
        events = self._start_if_ready(state)
        if state.started:
            events.extend(self._end(state))
        # Otherwise the id or name is still unknown; output_item.done or
        # the final flush will close the call with these arguments.
        return events

    def _on_item_done(self, payload: dict[str, Any]) -> list[StreamEvent]:
        item = payload.get("item") or {}
        if item.get("type") != "function_call":
            return []
        state = self._call(item.get("id", ""))
        if state.ended:
            return []
        state.call_id = state.call_id or item.get("call_id") or ""
        state.name = state.name or item.get("name") or ""
        if item.get("arguments"):
            state.arguments = item["arguments"]
        events = self._start_if_ready(state)
        events.extend(self._end(state))
        return events

    def _on_completed(self, payload: dict[str, Any]) -> list[StreamEvent]:
        response = payload.get("response") or {}
        events = self._flush()
        events.append(StreamDone(usage=_parse_usage(response.get("usage"))))
        self.finished = True
        return events

    def _on_failed(self, payload: dict[str, Any]) -> list[StreamEvent]:
        response = payload.get("response") or {}
        error = response.get("error") or {}
        if error.get("message"):
            exc = StreamFailedError(
                f"OpenAI API error: {error['message']}", code=error.get("code"),
            )
        else:
            exc = StreamFailedError("response failed")
        return self.fail(exc)

    def _on_incomplete(self, payload: dict[str, Any]) -> list[StreamEvent]:
        response = payload.get("response") or {}
        details = response.get("incomplete_details") or {}
        return self.fail(StreamFailedError(
            "response incomplete (model stopped early)", code=details.get("reason"),
        ))

    def _on_error(self, payload: dict[str, Any]) -> list[StreamEvent]:
        message = payload.get("message") or "stream error"
        return self.fail(StreamFailedError(
            f"OpenAI API error: {message}", code=payload.get("code"),
        ))

    _HANDLERS = {
        "response.output_text.delta": _on_text_delta,
        "response.output_item.added": _on_item_added,
        "response.function_call_arguments.delta": _on_arguments_delta,
        "response.function_call_arguments.done": _on_arguments_done,
        "response.output_item.done": _on_item_done,
        "response.completed": _on_completed,
        "response.failed": _on_failed,
        "response.incomplete": _on_incomplete,
        "error": _on_error,
    }


# ── Provider ──


class OpenAIProvider(Provider):
    """Streams completions from the OpenAI Responses API."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o",
        base_url: str = DEFAULT_BASE_URL,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "openai"

    @property
    def model(self) -> str:
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def set_model(self, model: str) -> None:
        self._model = model

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def _new_session(self) -> aiohttp.ClientSession:
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=_CONNECT_TIMEOUT_SECONDS)
        return aiohttp.ClientSession(timeout=timeout)

    async def list_models(self) -> list[str]:
        url = f"{self._base_url}/models"
        async with self._new_session() as session:
            try:
                async with session.get(url, headers=self._headers(self._api_key)) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise ProviderHTTPError("OpenAI", resp.status, body)
                    try:
                        data = await resp.json(content_type=None)
                    except (json.JSONDecodeError, aiohttp.ContentTypeError) as exc:
                        raise ProviderError(f"decoding models response: {exc}") from exc
            except aiohttp.ClientError as exc:
                raise ProviderError(f"fetching models: {exc}") from exc

        entries = data.get("data") if isinstance(data, dict) else None
        if not isinstance(entries, list):
            raise ProviderError("decoding models response: missing 'data' list")
        models = sorted(
            entry["id"]
            for entry in entries
            if isinstance(entry, dict)
            and isinstance(entry.get("id"), str)
            and is_supported_model(entry["id"])
        )
        logger.info("Fetched %d models from %s", len(models), url)
        return models

    async def send_message(
        self,
        request: Request,
        cancel: CancelToken | None = None,
    ) -> AsyncIterator[StreamEvent]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        # Snapshot the mutable settings; later set_* calls must not leak
        # into this stream.
        api_key, model = self._api_key, self._model
        try:
            body = json.dumps(build_request_body(request, model))
        except (TypeError, ValueError) as exc:
            raise ProviderError(f"encoding request: {exc}") from exc

        url = f"{self._base_url}/responses"
        logger.info(
            "POST %s model=%s items=%d tools=%d",
            url, model, len(request.messages), len(request.tools),
        )
        session = self._new_session()
        try:
            response = await guarded(
                cancel, session.post(url, data=body, headers=self._headers(api_key)),
            )
        except RunCancelledError:
            await session.close()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            await session.close()
            raise ProviderError(f"sending request: {exc}") from exc

        if response.status < 200 or response.status >= 300:
            try:
                text = await response.text()
            finally:
                response.release()
                await session.close()
            logger.warning("OpenAI returned HTTP %d", response.status)
            raise ProviderHTTPError("OpenAI", response.status, text)

        return self._stream(session, response, cancel)

    async def _stream(
        self,
        session: aiohttp.ClientSession,
        response: aiohttp.ClientResponse,
        cancel: CancelToken | None,
    ) -> AsyncIterator[StreamEvent]:
        decoder = ResponsesStreamDecoder()
        buffer = b""
        try:
            while not decoder.finished:
                try:
                    chunk = await guarded(cancel, response.content.readany())
                except RunCancelledError as exc:
                    yield StreamError(error=exc)
                    return
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    for event in decoder.fail(ProviderError(f"reading stream: {exc}")):
                        yield event
                    return
                if not chunk:
                    break
                buffer += chunk
                *lines, buffer = buffer.split(b"\n")
                for raw in lines:
                    payload = parse_sse_line(raw)
                    if payload is None:
                        continue
                    if cancel is not None and cancel.is_cancelled:
                        yield StreamError(error=RunCancelledError(cancel.cause or "cancelled"))
                        return
                    for event in decoder.feed(payload):
                        yield event
                    if decoder.finished:
                        return

            if buffer:
                payload = parse_sse_line(buffer)
                if payload is not None:
                    for event in decoder.feed(payload):
                        yield event
            for event in decoder.finish():
                yield event
        finally:
            response.release()
            await session.close()
