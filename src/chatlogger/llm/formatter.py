"""Conversion of backend-agnostic messages into backend request payloads.

Images reach the formatter either as a structured ``Message.attachment`` or
as the legacy ``[Image: <ref>]`` marker embedded in the content.  Both
produce the same payload.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Sequence

from chatlogger.config import ProviderConfig
from chatlogger.errors import FormatError
from chatlogger.types import Message, Role

_logger = logging.getLogger(__name__)

_MARKER_OPEN = "[Image:"
_MARKER_PATTERN = re.compile(r"\[Image:\s*(.*?)\]", re.DOTALL)
_DATA_URI_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")

# Request knobs
CLOUD_MAX_TOKENS_TEXT = 2000
CLOUD_MAX_TOKENS_IMAGE = 4096
CLOUD_TEMPERATURE = 0.7
LOCAL_TEMPERATURE = 0.7
LOCAL_NUM_PREDICT = 1000
LOCAL_DEFAULT_IMAGE_PROMPT = "What is in this image?"


# ---------------------------------------------------------------------------
# Image extraction
# ---------------------------------------------------------------------------

def parse_image_marker(content: str) -> tuple[str, str | None]:
    """Split *content* into ``(visible_text, image_ref)``.

    Returns ``(content, None)`` unchanged when no marker is present.  Raises
    ``FormatError`` if the marker is opened but cannot be parsed.
    """
    if _MARKER_OPEN not in content:
        return content, None
    match = _MARKER_PATTERN.search(content)
    if match is None:
        raise FormatError("Invalid image format in message: unterminated marker")
    ref = match.group(1).strip()
    if not ref:
        raise FormatError("Invalid image format in message: empty reference")
    text = (content[: match.start()] + content[match.end() :]).strip()
    return text, ref


def strip_data_uri(ref: str) -> str:
    """Return the raw base64 payload of a ``data:<mime>;base64,`` reference."""
    return _DATA_URI_PREFIX.sub("", ref, count=1)


def split_image(message: Message) -> tuple[str, str | None]:
    """Return ``(text, image_ref)`` for *message*.

    System messages are never inspected.
    """
    if message.role is Role.SYSTEM:
        return message.content, None
    if message.attachment is not None:
        if not message.attachment.ref.strip():
            raise FormatError("Attachment reference is empty")
        return message.content, message.attachment.ref
    return parse_image_marker(message.content)


# ---------------------------------------------------------------------------
# Per-backend message shapes
# ---------------------------------------------------------------------------

def format_cloud_message(message: Message) -> dict[str, Any]:
    text, ref = split_image(message)
    if ref is None:
        return {"role": message.role.value, "content": message.content}
    return {
        "role": message.role.value,
        "content": [
            {"type": "text", "text": text},
            {
                "type": "image_url",
                "image_url": {"url": ref, "detail": "auto"},
            },
        ],
    }


def format_local_message(message: Message) -> dict[str, Any]:
    text, ref = split_image(message)
    if ref is None:
        return {"role": message.role.value, "content": message.content}
    return {
        "role": message.role.value,
        "content": text or LOCAL_DEFAULT_IMAGE_PROMPT,
        "images": [strip_data_uri(ref)],
    }


_FORMATTERS = {
    "cloud": format_cloud_message,
    "local": format_local_message,
}


def format_messages(
    backend: str, messages: Sequence[Message],
) -> list[dict[str, Any]]:
    """Convert *messages* to the wire message list for *backend*."""
    try:
        fmt = _FORMATTERS[backend]
    except KeyError:
        raise FormatError(f"Unknown backend: {backend!r}") from None
    if not messages:
        raise FormatError("Cannot format an empty conversation")
    return [fmt(m) for m in messages]


def _has_image_part(wire_messages: list[dict[str, Any]]) -> bool:
    return any(isinstance(m.get("content"), list) for m in wire_messages)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

def build_cloud_body(
    config: ProviderConfig, messages: Sequence[Message],
) -> dict[str, Any]:
    wire = format_messages("cloud", messages)
    body: dict[str, Any] = {
        "model": config.cloud.model,
        "messages": wire,
        "stream": True,
    }
    if _has_image_part(wire):
        body["max_tokens"] = CLOUD_MAX_TOKENS_IMAGE
    else:
        body["temperature"] = CLOUD_TEMPERATURE
        body["max_tokens"] = CLOUD_MAX_TOKENS_TEXT
    _logger.debug(
        "Cloud body: model=%s messages=%d max_tokens=%d",
        body["model"], len(wire), body["max_tokens"],
    )
    return body


def build_local_body(
    config: ProviderConfig, messages: Sequence[Message],
) -> dict[str, Any]:
    wire = format_messages("local", messages)
    _logger.debug(
        "Local body: model=%s messages=%d", config.local.model, len(wire),
    )
    return {
        "model": config.local.model,
        "messages": wire,
        "stream": True,
        "options": {
            "temperature": LOCAL_TEMPERATURE,
            "num_predict": LOCAL_NUM_PREDICT,
        },
    }


def build_payload(
    config: ProviderConfig, messages: Sequence[Message],
) -> dict[str, Any]:
    """Request body for the active backend of *config*."""
    if config.is_local:
        return build_local_body(config, messages)
    return build_cloud_body(config, messages)
