"""Shared data types for chatlogger."""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field, replace
from typing import Any, Union


# ---------------------------------------------------------------------------
# Conversation types
# ---------------------------------------------------------------------------

class Role(str, enum.Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Attachment:
    """Inline attachment carried next to the message text.

    ``ref`` is a URI or a base64 data reference (``data:image/png;base64,...``
    or bare base64).
    """

    ref: str
    kind: str = "image"


@dataclass(frozen=True)
class Message:
    """Backend-agnostic chat message.

    Messages are immutable; transforms always build new objects.
    """

    role: Role
    content: str
    created_at: float = field(default_factory=time.time)
    attachment: Attachment | None = None

    def __post_init__(self) -> None:
        # Accept plain strings for convenience ("user" -> Role.USER)
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(Role.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(Role.USER, content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(Role.ASSISTANT, content)

    @classmethod
    def with_image(cls, role: Role | str, text: str, ref: str) -> Message:
        """Build a message with a structured image attachment."""
        return cls(Role(role), text, attachment=Attachment(ref=ref))

    def with_content(self, content: str) -> Message:
        return replace(self, content=content)

    def to_dict(self) -> dict[str, Any]:
        """Plain ``{role, content}`` view (used when a conversation is
        embedded as JSON inside another prompt)."""
        return {"role": self.role.value, "content": self.content}


# ---------------------------------------------------------------------------
# Function-call recognition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Call:
    """A recognized function-call block."""

    operation: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class NoCall:
    """No function call was recognized in the text."""

    def __bool__(self) -> bool:
        return False


Recognition = Union[Call, NoCall]


# ---------------------------------------------------------------------------
# Completion types
# ---------------------------------------------------------------------------

@dataclass
class CompletionResult:
    """Outcome of one request/response cycle."""

    text: str = ""
    backend: str = ""
    model: str = ""
    attempts: int = 1
    latency_ms: float = 0
