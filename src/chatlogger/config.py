"""Provider configuration for chatlogger.

Config discovery (first match wins):
  1. explicit path (``--config`` flag)
  2. ``./chatlogger.yaml``
  3. ``~/.config/chatlogger/config.yaml``
  4. Built-in defaults

The dispatcher never stores configuration; callers pass a
``ProviderConfig`` on every call.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chatlogger.errors import ConfigError

_logger = logging.getLogger(__name__)

BACKENDS = ("cloud", "local")


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class CloudSpec:
    """Hosted OpenAI-compatible chat completions backend."""

    url: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    timeout: float = 30.0


@dataclass
class LocalSpec:
    """Locally hosted Ollama backend."""

    endpoint: str = "http://localhost:11434"
    model: str = "llama2"
    timeout: float = 120.0

    @property
    def chat_url(self) -> str:
        return self.endpoint.rstrip("/") + "/api/chat"


@dataclass
class TranscriptionSpec:
    """Speech-to-text collaborator settings."""

    use_local: bool = False
    cloud_url: str = "https://api.openai.com/v1/audio/transcriptions"
    model: str = "whisper-1"
    local_endpoint: str = "http://localhost:8080"
    timeout: float = 60.0


@dataclass
class RetrySpec:
    """Bounded linear backoff for the cloud backend."""

    max_attempts: int = 3
    base_delay: float = 1.0


@dataclass
class ProviderConfig:
    """Top-level configuration.

    Exactly one backend is active; the other backend's settings are kept
    but unused.
    """

    active_backend: str = "cloud"
    cloud: CloudSpec = field(default_factory=CloudSpec)
    local: LocalSpec = field(default_factory=LocalSpec)
    transcription: TranscriptionSpec = field(default_factory=TranscriptionSpec)
    retry: RetrySpec = field(default_factory=RetrySpec)

    def __post_init__(self) -> None:
        if self.active_backend not in BACKENDS:
            raise ConfigError(
                f"active_backend must be one of {BACKENDS}, "
                f"got {self.active_backend!r}"
            )
        if self.retry.max_attempts < 1:
            raise ConfigError("retry.max_attempts must be at least 1")

    @property
    def is_local(self) -> bool:
        return self.active_backend == "local"

    @property
    def active_model(self) -> str:
        return self.local.model if self.is_local else self.cloud.model


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./chatlogger.yaml"),
    Path.home() / ".config" / "chatlogger" / "config.yaml",
]


def _pick(cls: type, raw: dict[str, Any] | None) -> Any:
    """Build dataclass *cls* from the known keys of *raw*."""
    if not raw:
        return cls()
    known = {
        k: v for k, v in raw.items()
        if v is not None and k in cls.__dataclass_fields__
    }
    return cls(**known)


def _parse_config(raw: dict[str, Any]) -> ProviderConfig:
    cloud = _pick(CloudSpec, raw.get("cloud"))
    if not cloud.api_key:
        cloud.api_key = os.environ.get("OPENAI_API_KEY", "")
    return ProviderConfig(
        active_backend=raw.get("active_backend", "cloud"),
        cloud=cloud,
        local=_pick(LocalSpec, raw.get("local")),
        transcription=_pick(TranscriptionSpec, raw.get("transcription")),
        retry=_pick(RetrySpec, raw.get("retry")),
    )


def load_config(path: str | Path | None = None) -> ProviderConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ProviderConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s; using defaults", path)
            return _parse_config({})
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found; using defaults")
        return _parse_config({})

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")

    return _parse_config(raw)
