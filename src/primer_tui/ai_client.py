"""aiohttp client for the OpenAI Responses API (blocking and SSE streaming)."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, Optional, Sequence

import aiohttp

from primer_tui.errors import TransportFailure, UpstreamFailure
from primer_tui.prompt import build_input

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5"
# Reasoning models spend output tokens on reasoning as well as on the story text.
DEFAULT_MAX_TOKENS = 4096
DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_S = 120.0

_DELTA_EVENT = "response.output_text.delta"
_STREAM_DONE = "[DONE]"


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def parse_sse_line(line: str) -> tuple[str, str | None]:
    """Classify one SSE line.

    Returns ``("done", None)`` for the end marker, ``("delta", text)`` for an
    output text delta and ``("skip", None)`` for everything else (blank
    lines, comments, ``event:`` lines, other event types, bad JSON).
    """

    text = line.rstrip("\r\n")
    if not text or text.startswith(":"):
        return "skip", None
    if not text.startswith("data:"):
        return "skip", None
    data = text[len("data:") :].strip()
    if data == _STREAM_DONE:
        return "done", None
    try:
        event = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("failed to parse stream event data=%s", data[:200])
        return "skip", None
    if not isinstance(event, dict) or event.get("type") != _DELTA_EVENT:
        return "skip", None
    delta = event.get("delta")
    if not isinstance(delta, str) or delta == "":
        return "skip", None
    return "delta", delta


def extract_output_text(payload: Dict[str, Any]) -> str:
    for output in payload.get("output") or []:
        if not isinstance(output, dict) or output.get("type") != "message":
            continue
        for content in output.get("content") or []:
            if isinstance(content, dict) and content.get("type") in {"output_text", "text"}:
                return str(content.get("text", ""))
    return ""


class ResponsesClient:
    """Generation gateway backed by the Responses API.

    The coroutine methods open a fresh ``aiohttp.ClientSession`` per call so
    they can run on whichever event loop the calling worker thread owns.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        org_id: str = "",
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.org_id = org_id
        self.base_url = base_url
        self.timeout_s = timeout_s
        logger.info(
            "model client initialized model=%s max_tokens=%d has_org_id=%s",
            self.model,
            self.max_tokens,
            bool(self.org_id),
        )

    def _headers(self, stream: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        if stream:
            headers["Accept"] = "text/event-stream"
        if self.org_id:
            headers["OpenAI-Organization"] = self.org_id
        return headers

    def _payload(self, message: str, history: Sequence[str], stream: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model,
            "input": build_input(message, history),
            "max_output_tokens": self.max_tokens,
        }
        if stream:
            payload["stream"] = True
        return payload

    async def generate(self, message: str, history: Sequence[str]) -> str:
        url = _build_url(self.base_url, "/responses")
        logger.debug("sending request model=%s history_length=%d", self.model, len(history))
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url, json=self._payload(message, history, False), headers=self._headers(False)
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise UpstreamFailure(response.status, body)
                    payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportFailure(f"send request: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise TransportFailure(f"decode response: {exc}") from exc
        usage = payload.get("usage") or {}
        logger.info(
            "received response id=%s input_tokens=%s output_tokens=%s",
            payload.get("id"),
            usage.get("input_tokens"),
            usage.get("output_tokens"),
        )
        text = extract_output_text(payload)
        if not text:
            logger.warning("empty response from model")
        return text

    async def stream(self, message: str, history: Sequence[str]) -> AsyncIterator[str]:
        """Yield output text deltas until ``[DONE]`` or the stream closes."""

        url = _build_url(self.base_url, "/responses")
        logger.debug("starting streaming request model=%s history_length=%d", self.model, len(history))
        timeout = aiohttp.ClientTimeout(total=self.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    url, json=self._payload(message, history, True), headers=self._headers(True)
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise UpstreamFailure(response.status, body)
                    while True:
                        raw = await response.content.readline()
                        if not raw:
                            break
                        kind, delta = parse_sse_line(raw.decode("utf-8", errors="replace"))
                        if kind == "done":
                            logger.debug("stream completed")
                            return
                        if kind == "delta" and delta is not None:
                            yield delta
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportFailure(f"stream read error: {exc}") from exc

    def generate_text(self, message: str, history: Sequence[str]) -> str:
        """Blocking ``generate`` for worker threads."""

        return asyncio.run(self.generate(message, history))

    def collect_stream(
        self,
        message: str,
        history: Sequence[str],
        on_fragment: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Run ``stream`` to completion on a private loop and join the fragments."""

        async def _collect() -> str:
            parts: list[str] = []
            async for fragment in self.stream(message, history):
                parts.append(fragment)
                if on_fragment is not None:
                    on_fragment(fragment)
            return "".join(parts)

        return asyncio.run(_collect())
