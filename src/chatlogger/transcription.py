"""Speech-to-text collaborator.

Audio arrives already encoded (WAV); the transcript is returned as plain
text so it can be placed in a user message.
"""

from __future__ import annotations

import logging

import httpx

from chatlogger.config import ProviderConfig
from chatlogger.errors import TransportError

_logger = logging.getLogger(__name__)


class Transcriber:
    """Upload audio to the cloud or local (whisper.cpp) transcription API."""

    def __init__(self, http_transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._http_transport = http_transport

    async def transcribe(
        self,
        config: ProviderConfig,
        audio: bytes,
        filename: str = "audio.wav",
        content_type: str = "audio/wav",
    ) -> str:
        """Return the transcript of *audio*."""
        spec = config.transcription
        files = {"file": (filename, audio, content_type)}
        if spec.use_local:
            url = spec.local_endpoint.rstrip("/") + "/inference"
            headers: dict[str, str] = {}
            data: dict[str, str] = {}
            label = "whisper.cpp"
        else:
            url = spec.cloud_url
            headers = {"Authorization": f"Bearer {config.cloud.api_key}"}
            data = {"model": spec.model}
            label = "Cloud transcription"

        _logger.info("Transcribing %d bytes via %s", len(audio), label)
        async with httpx.AsyncClient(
            timeout=spec.timeout, transport=self._http_transport,
        ) as client:
            try:
                resp = await client.post(url, headers=headers, data=data, files=files)
            except httpx.TimeoutException as e:
                raise TransportError(f"{label} timed out: {e}") from e
            except httpx.HTTPError as e:
                raise TransportError(f"{label} request failed: {e}") from e

        if not resp.is_success:
            raise TransportError(
                f"{label} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text[:500],
            )
        try:
            payload = resp.json()
        except ValueError as e:
            raise TransportError(f"{label} returned invalid JSON") from e
        text = payload.get("text", "") if isinstance(payload, dict) else ""
        return text.strip()


async def transcribe(config: ProviderConfig, audio: bytes) -> str:
    """Module-level shortcut using a fresh ``Transcriber``."""
    return await Transcriber().transcribe(config, audio)
