"""Incremental decoding of streamed completion responses.

Both decoders take the text lines of a response body (as produced by
``httpx.Response.aiter_lines``) and yield text deltas in arrival order:

  cloud  - server-sent events whose ``data:`` payloads are JSON chunks
  local  - newline-delimited JSON objects (Ollama ``/api/chat``)
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterable, AsyncIterator, Callable

from chatlogger.errors import DecodeError, TransportError

_logger = logging.getLogger(__name__)

Decoder = Callable[[AsyncIterable[str]], AsyncIterator[str]]

_DONE_SENTINEL = "[DONE]"


# ---------------------------------------------------------------------------
# Cloud: server-sent events
# ---------------------------------------------------------------------------

def _event_text(payload: str) -> str:
    """Extract the text delta from one event ``data`` payload."""
    if payload.strip() == _DONE_SENTINEL:
        return ""
    try:
        data: Any = json.loads(payload)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Malformed event payload: {payload[:80]!r}") from e
    if not isinstance(data, dict):
        raise DecodeError(f"Event payload is not an object: {payload[:80]!r}")

    if data.get("error"):
        err = data["error"]
        message = err.get("message", err) if isinstance(err, dict) else err
        raise TransportError(f"Cloud stream error: {message}")

    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    choice = choices[0]
    delta = choice.get("delta") if isinstance(choice, dict) else None
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


async def decode_event_stream(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield text deltas from an event-stream body.

    Comment lines (``:`` keepalives), non-data fields and records without
    text are skipped.  A payload that is not JSON raises ``DecodeError``.
    """
    data_lines: list[str] = []
    async for line in lines:
        if not line:
            # Blank line dispatches the pending event
            if data_lines:
                text = _event_text("\n".join(data_lines))
                data_lines = []
                if text:
                    yield text
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data_lines.append(value)

    if data_lines:
        text = _event_text("\n".join(data_lines))
        if text:
            yield text


# ---------------------------------------------------------------------------
# Local: newline-delimited JSON
# ---------------------------------------------------------------------------

async def decode_ndjson(lines: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield text deltas from an NDJSON body.

    Malformed lines are logged and skipped.  Decoding stops at the first
    object flagged ``done`` or when the response ends.
    """
    async for line in lines:
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            _logger.warning("Skipping malformed stream line: %.80r", line)
            continue
        if not isinstance(data, dict):
            _logger.warning("Skipping non-object stream line: %.80r", line)
            continue

        if data.get("error"):
            raise TransportError(f"Local backend error: {data['error']}")

        message = data.get("message")
        chunk = message.get("content") if isinstance(message, dict) else None
        if chunk:
            yield chunk

        if data.get("done"):
            return
