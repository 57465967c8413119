"""Shared helpers for HTTP-level tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import httpx


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered as the given byte chunks.

    If *hang* is set, the stream blocks forever after the last chunk
    (simulating a stalled backend).
    """

    def __init__(self, chunks: list[bytes], hang: bool = False) -> None:
        self._chunks = chunks
        self._hang = hang
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


def sse_body(*payloads: Any, done: bool = True) -> bytes:
    """Encode *payloads* as an OpenAI-style event stream."""
    out = []
    for p in payloads:
        data = p if isinstance(p, str) else json.dumps(p)
        out.append(f"data: {data}\n\n")
    if done:
        out.append("data: [DONE]\n\n")
    return "".join(out).encode()


def sse_delta(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def ndjson_line(content: str | None = None, done: bool = False) -> bytes:
    obj: dict[str, Any] = {"model": "llama2", "done": done}
    if content is not None:
        obj["message"] = {"role": "assistant", "content": content}
    return (json.dumps(obj) + "\n").encode()


class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response | Callable[[], httpx.Response]):
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        idx = min(len(self.requests), len(self._responses)) - 1
        resp = self._responses[idx]
        return resp() if callable(resp) else resp

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)
