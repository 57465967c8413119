"""HTTP transports for the cloud and local completion backends.

Each transport issues one streaming POST and exposes the raw response body
as an async iterator of byte chunks.  httpx errors never leave this module;
they are wrapped in ``TransportError``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from chatlogger.config import ProviderConfig
from chatlogger.errors import TransportError

_logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT = 10.0
_ERROR_BODY_LIMIT = 500


class StreamingTransport:
    """One backend endpoint reachable with a streaming POST.

    Parameters
    ----------
    url:
        Full request URL.
    timeout:
        Upper bound (seconds) for any single network operation.
    headers:
        Extra request headers.
    http_transport:
        Optional httpx transport (e.g. ``httpx.MockTransport`` in tests).
    """

    label = "backend"

    def __init__(
        self,
        url: str,
        timeout: float,
        headers: dict[str, str] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._http_transport = http_transport

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers=self.headers,
            timeout=httpx.Timeout(
                self.timeout, connect=min(_CONNECT_TIMEOUT, self.timeout),
            ),
            transport=self._http_transport,
        )

    @asynccontextmanager
    async def open(self, body: dict[str, Any]) -> AsyncIterator[AsyncIterator[str]]:
        """POST *body* and yield the response body as text lines.

        The response is closed when the context exits, including on
        cancellation or when the consumer stops reading early.
        """
        client = self._make_client()
        try:
            async with client.stream("POST", self.url, json=body) as resp:
                if not resp.is_success:
                    raw = (await resp.aread()).decode(errors="replace")
                    _logger.warning(
                        "%s returned %d: %s",
                        self.label, resp.status_code, raw[:200],
                    )
                    raise TransportError(
                        f"{self.label} returned HTTP {resp.status_code}",
                        status_code=resp.status_code,
                        body=raw[:_ERROR_BODY_LIMIT],
                    )
                yield resp.aiter_lines()
        except httpx.TimeoutException as e:
            raise TransportError(f"{self.label} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{self.label} request failed: {e}") from e
        finally:
            await client.aclose()


class CloudTransport(StreamingTransport):
    """OpenAI chat completions endpoint with bearer-token auth."""

    label = "Cloud API"

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> CloudTransport:
        spec = config.cloud
        return cls(
            spec.url,
            spec.timeout,
            headers={"Authorization": f"Bearer {spec.api_key}"},
            http_transport=http_transport,
        )


class LocalTransport(StreamingTransport):
    """Ollama ``/api/chat`` endpoint."""

    label = "Ollama API"

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> LocalTransport:
        spec = config.local
        return cls(spec.chat_url, spec.timeout, http_transport=http_transport)
