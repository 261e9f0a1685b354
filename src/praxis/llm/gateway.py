"""
LLM gateway for Praxis.

This module is the only place that *directly* talks to a chat-completions endpoint.  Everything
else (role agents, orchestrator, host API) stays transport-agnostic and consumes the typed deltas
defined here.

The wire format is the OpenAI-compatible ``/chat/completions`` schema; streaming responses are
server-sent events carrying ``choices[0].delta``.
"""

import json
import logging
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterator,
    List,
    Sequence,
)

import httpx
from pydantic import (
    BaseModel,
    Field,
)

from praxis.config import LLMConfig
from praxis.core.errors import (
    ApiCallError,
    ApiErrorKind,
    ConfigError,
    InputError,
)

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_DATA_PREFIX = "data: "


# ---------------------------------------------------------------------------
# Stream deltas
# ---------------------------------------------------------------------------
class ContentDelta(BaseModel):
    """A piece of assistant text."""

    content: str


class FunctionFragment(BaseModel):
    """Partial function name / arguments of a streamed tool call."""

    name: str | None = None
    arguments: str | None = None


class ToolCallFragment(BaseModel):
    """One streamed tool-call piece, keyed by the provider-assigned ``index``."""

    index: int
    id: str | None = None
    function: FunctionFragment = Field(default_factory=FunctionFragment)


class ToolCallDelta(BaseModel):
    """All tool-call fragments carried by one stream frame."""

    tool_calls: List[ToolCallFragment]


StreamDelta = ContentDelta | ToolCallDelta


class ChatResult(BaseModel):
    """Final (non-streaming) completion."""

    message: Dict[str, Any] = Field(default_factory=dict)
    usage: Dict[str, Any] | None = None

    @property
    def content(self) -> str:
        """Assistant text, empty when the model only returned tool calls."""
        return self.message.get("content") or ""


# ---------------------------------------------------------------------------
# SSE framing
# ---------------------------------------------------------------------------
class SSEDecoder:
    """
    Incremental decoder for ``data: `` framed server-sent events.

    Chunks may split a frame anywhere, so the trailing partial line is buffered until the next
    :meth:`feed`.  Once ``[DONE]`` is seen, :attr:`done` is set and later input is ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> Iterator[str]:
        """Yield the payload of every complete ``data:`` line contained in *chunk*."""
        if self.done:
            return
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(_DATA_PREFIX):
                continue
            data = line[len(_DATA_PREFIX) :]
            if data.strip() == DONE_SENTINEL:
                self.done = True
                return
            yield data

    def flush(self) -> Iterator[str]:
        """Yield a final unterminated ``data:`` line, if any."""
        if self._buffer and not self.done:
            yield from self.feed("\n")


def parse_frame(data: str) -> List[StreamDelta]:
    """
    Turn one SSE payload into deltas.

    Unparsable frames are logged and dropped; they are never fatal to the stream.
    """
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse stream frame (%s): %.100s", exc, data)
        return []

    choices = parsed.get("choices") if isinstance(parsed, dict) else None
    if not choices:
        logger.debug("Stream frame has no choices: %.100s", data)
        return []

    delta = choices[0].get("delta") or {}
    deltas: List[StreamDelta] = []
    if delta.get("content"):
        deltas.append(ContentDelta(content=delta["content"]))
    if delta.get("tool_calls"):
        try:
            deltas.append(ToolCallDelta.model_validate({"tool_calls": delta["tool_calls"]}))
        except ValueError as exc:
            logger.warning("Dropping malformed tool-call delta: %s", exc)
    return deltas


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------
def _error_detail(response: httpx.Response) -> str:
    """Pull the most useful message out of an error body."""
    text = response.text
    try:
        body = response.json()
    except ValueError:
        return text or response.reason_phrase
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        return str(error.get("message") or error.get("code") or text)
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False)


def classify_response(response: httpx.Response) -> ApiCallError:
    """Map an HTTP error response to a localized :class:`ApiCallError`."""
    status = response.status_code
    detail = _error_detail(response)
    if status == 400:
        return ApiCallError(ApiErrorKind.BAD_REQUEST, f"Bad request: {detail}", status)
    if status == 401:
        return ApiCallError(
            ApiErrorKind.AUTH_FAILURE,
            "Authentication failed: the API key is invalid or has expired",
            status,
        )
    if status == 404:
        return ApiCallError(
            ApiErrorKind.NOT_FOUND, "API endpoint not found: check the API URL setting", status
        )
    if status == 429:
        return ApiCallError(
            ApiErrorKind.RATE_LIMITED, "Too many requests: please retry later", status
        )
    if status >= 500:
        return ApiCallError(ApiErrorKind.SERVER_ERROR, f"Server error ({status}): {detail}", status)
    return ApiCallError(ApiErrorKind.BAD_REQUEST, f"HTTP {status}: {detail}", status)


def _network_error(exc: httpx.RequestError) -> ApiCallError:
    logger.debug("Transport failure: %r", exc)
    return ApiCallError(
        ApiErrorKind.NETWORK_UNREACHABLE,
        "Cannot reach the API server: check the network connection and the API URL setting",
    )


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------
class LLMGateway:
    """Streaming and non-streaming access to one chat-completions endpoint."""

    def __init__(self, config: LLMConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _client(self) -> httpx.AsyncClient:
        """Build a client honouring the HTTPS proxy first, then the HTTP proxy."""
        proxy = self.config.https_proxy or self.config.http_proxy or None
        return httpx.AsyncClient(
            timeout=self.config.timeout,
            proxy=proxy if self._transport is None else None,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Content-Type": "application/json",
            },
        )

    def _validate(self, messages: Sequence[Dict[str, Any]]) -> None:
        if not self.config.api_key:
            raise ConfigError("API key is not set; configure it in the settings")
        if not self.config.model:
            raise ConfigError("Model is not set; choose one in the settings")
        if not messages or not isinstance(messages, (list, tuple)):
            raise InputError("Message list is empty or malformed")
        for message in messages:
            if not isinstance(message, dict) or "role" not in message:
                raise InputError(f"Malformed message: {message!r}")

    def _payload(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]] | None,
        tool_choice: Any,
        stream: bool,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "messages": list(messages),
            "max_tokens": self.config.max_tokens,
        }
        if stream:
            payload["stream"] = True
        if tools:
            payload["tools"] = list(tools)
            if tool_choice:
                payload["tool_choice"] = tool_choice
        return payload

    @property
    def _url(self) -> str:
        return f"{self.config.api_url.rstrip('/')}/chat/completions"

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def stream_chat(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]] | None = None,
        tool_choice: Any = None,
    ) -> AsyncIterator[StreamDelta]:
        """
        Stream a completion as :class:`ContentDelta` / :class:`ToolCallDelta` items.

        Raises
        ------
        ConfigError
            API key or model is unset (checked before any network I/O).
        InputError
            *messages* is empty or malformed.
        ApiCallError
            The request failed; the error carries a classified, human-readable message.
        """
        self._validate(messages)
        payload = self._payload(messages, tools, tool_choice, stream=True)
        logger.debug(
            "stream_chat model=%s messages=%d tools=%d",
            self.config.model,
            len(messages),
            len(tools or []),
        )

        decoder = SSEDecoder()
        frames = 0
        try:
            async with self._client() as client:
                async with client.stream("POST", self._url, json=payload) as response:
                    if response.is_error:
                        await response.aread()
                        raise classify_response(response)
                    async for chunk in response.aiter_text():
                        for data in decoder.feed(chunk):
                            frames += 1
                            for delta in parse_frame(data):
                                yield delta
                        if decoder.done:
                            break
                    for data in decoder.flush():
                        for delta in parse_frame(data):
                            yield delta
        except httpx.RequestError as exc:
            raise _network_error(exc) from exc
        logger.debug("stream_chat finished after %d frames (done=%s)", frames, decoder.done)

    async def call_chat(
        self,
        messages: Sequence[Dict[str, Any]],
        tools: Sequence[Dict[str, Any]] | None = None,
        tool_choice: Any = None,
    ) -> ChatResult:
        """Run a non-streaming completion and return the first choice's message."""
        self._validate(messages)
        payload = self._payload(messages, tools, tool_choice, stream=False)
        logger.debug("call_chat model=%s messages=%d", self.config.model, len(messages))

        try:
            async with self._client() as client:
                response = await client.post(self._url, json=payload)
        except httpx.RequestError as exc:
            raise _network_error(exc) from exc
        if response.is_error:
            raise classify_response(response)

        try:
            body = response.json()
        except ValueError as exc:
            raise ApiCallError(
                ApiErrorKind.SERVER_ERROR, f"Unreadable response body: {exc}", response.status_code
            ) from exc
        choices = body.get("choices") or [{}]
        return ChatResult(message=choices[0].get("message") or {}, usage=body.get("usage"))
