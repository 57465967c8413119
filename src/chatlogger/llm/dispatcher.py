"""Provider dispatcher: one streaming completion call for every backend.

Each backend is described by a ``Backend`` capability set (payload builder,
transport factory, stream decoder, retry policy).  Callers only ever see
``ProviderDispatcher.complete()``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, Union

import httpx

from chatlogger.config import ProviderConfig
from chatlogger.errors import CompletionCancelled, DecodeError, TransportError
from chatlogger.types import CompletionResult, Message

from .decoder import Decoder, decode_event_stream, decode_ndjson
from .formatter import build_cloud_body, build_local_body
from .retry import with_retry
from .transport import CloudTransport, LocalTransport, StreamingTransport

_logger = logging.getLogger(__name__)

# Sync or async callable receiving each text fragment
DeltaCallback = Callable[[str], Union[None, Awaitable[None]]]
# Sync or async callable receiving the 1-based number of each new attempt
AttemptCallback = Callable[[int], Union[None, Awaitable[None]]]


# ---------------------------------------------------------------------------
# Backend capability sets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Backend:
    """Everything the dispatcher needs to talk to one kind of backend."""

    name: str
    build_body: Callable[[ProviderConfig, Sequence[Message]], dict[str, Any]]
    make_transport: Callable[
        [ProviderConfig, httpx.AsyncBaseTransport | None], StreamingTransport,
    ]
    decode: Decoder
    timeout: Callable[[ProviderConfig], float]
    retries: bool
    require_text: bool


CLOUD = Backend(
    name="cloud",
    build_body=build_cloud_body,
    make_transport=CloudTransport.from_config,
    decode=decode_event_stream,
    timeout=lambda cfg: cfg.cloud.timeout,
    retries=True,
    require_text=True,
)

LOCAL = Backend(
    name="local",
    build_body=build_local_body,
    make_transport=LocalTransport.from_config,
    decode=decode_ndjson,
    timeout=lambda cfg: cfg.local.timeout,
    retries=False,
    require_text=False,
)

BACKENDS: dict[str, Backend] = {b.name: b for b in (CLOUD, LOCAL)}


async def _deliver(callback: Callable[[Any], Any], value: Any) -> None:
    result = callback(value)
    if inspect.isawaitable(result):
        await result


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------

class ProviderDispatcher:
    """Uniform streaming completion over the configured backend.

    One dispatcher serves one conversation; callers must not start a second
    completion while one is in flight.  Each call gets its own cancellation
    event, so a dispatcher may be reused across event loops.

    Parameters
    ----------
    http_transport:
        Optional httpx transport shared by all requests (tests inject
        ``httpx.MockTransport`` here).
    sleep:
        Awaitable sleep used between retry attempts.
    """

    def __init__(
        self,
        http_transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self._http_transport = http_transport
        self._sleep = sleep
        self._cancel_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def complete(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        on_delta: DeltaCallback | None = None,
        on_attempt: AttemptCallback | None = None,
    ) -> str:
        """Stream a completion and return the full text.

        *on_delta* is called once per fragment, in arrival order.  On a
        cloud retry the fragments of the new attempt start a fresh response,
        so callers should replace (not append to) what they displayed.
        *on_attempt* is called with the attempt number before each attempt
        starts streaming; a number above 1 marks that replacement point.
        """
        result = await self.complete_result(
            config, messages, on_delta, on_attempt=on_attempt,
        )
        return result.text

    async def complete_result(
        self,
        config: ProviderConfig,
        messages: Sequence[Message],
        on_delta: DeltaCallback | None = None,
        on_attempt: AttemptCallback | None = None,
    ) -> CompletionResult:
        """Like ``complete()`` but returns a ``CompletionResult``."""
        # A cancel() issued before this call does not carry over
        self._cancel_event = asyncio.Event()
        backend = BACKENDS[config.active_backend]
        body = backend.build_body(config, messages)
        transport = backend.make_transport(config, self._http_transport)
        _logger.info(
            "Dispatching %d message(s) to %s backend (model=%s)",
            len(messages), backend.name, config.active_model,
        )

        start = time.monotonic()
        attempts = 0

        async def attempt(n: int) -> str:
            nonlocal attempts
            attempts = n
            if on_attempt is not None:
                await _deliver(on_attempt, n)
            return await self._attempt(backend, transport, body, config, on_delta)

        if backend.retries:
            text = await with_retry(
                attempt,
                config.retry.max_attempts,
                config.retry.base_delay,
                retry_on=(TransportError, DecodeError),
                before_attempt=self._check_cancelled,
                sleep=self._sleep,
            )
        else:
            self._check_cancelled(1)
            text = await attempt(1)

        latency = (time.monotonic() - start) * 1000
        _logger.info(
            "Completion from %s: %d chars, %d attempt(s), %.0f ms",
            backend.name, len(text), attempts, latency,
        )
        return CompletionResult(
            text=text,
            backend=backend.name,
            model=config.active_model,
            attempts=attempts,
            latency_ms=latency,
        )

    def spawn(self) -> ProviderDispatcher:
        """New dispatcher for a separate conversation, sharing HTTP settings."""
        return ProviderDispatcher(self._http_transport, self._sleep)

    def cancel(self) -> None:
        """Request cancellation of the in-flight completion."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_cancelled(self, attempt: int) -> None:
        if self._cancel_event.is_set():
            raise CompletionCancelled(f"cancelled before attempt {attempt}")

    async def _attempt(
        self,
        backend: Backend,
        transport: StreamingTransport,
        body: dict[str, Any],
        config: ProviderConfig,
        on_delta: DeltaCallback | None,
    ) -> str:
        """One request/response cycle, bounded by the backend timeout."""
        parts: list[str] = []

        async def consume() -> None:
            async with transport.open(body) as lines:
                async for delta in backend.decode(lines):
                    parts.append(delta)
                    if on_delta is not None:
                        await _deliver(on_delta, delta)

        await self._run_until_cancelled(
            consume(), backend.timeout(config), transport.label,
        )

        text = "".join(parts)
        if backend.require_text and not text:
            raise TransportError(f"{transport.label} returned an empty response")
        return text

    async def _run_until_cancelled(
        self, coro: Awaitable[None], timeout: float, label: str,
    ) -> None:
        """Await *coro*, aborting it on cancel() or after *timeout* seconds."""
        work = asyncio.ensure_future(coro)
        stop = asyncio.ensure_future(self._cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {work, stop},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if work in done:
                work.result()
                return
            if stop in done:
                raise CompletionCancelled("completion cancelled")
            raise TransportError(f"{label} exceeded the {timeout:g}s deadline")
        finally:
            stop.cancel()
            work.cancel()
            # Let the stream context close the response
            await asyncio.gather(work, stop, return_exceptions=True)


async def complete(
    config: ProviderConfig,
    messages: Sequence[Message],
    on_delta: DeltaCallback | None = None,
    on_attempt: AttemptCallback | None = None,
) -> str:
    """Module-level shortcut using a fresh ``ProviderDispatcher``."""
    return await ProviderDispatcher().complete(
        config, messages, on_delta, on_attempt=on_attempt,
    )
