"""chatlogger: streaming chat client core for cloud and local LLM backends."""

from chatlogger.config import ProviderConfig, load_config
from chatlogger.errors import (
    ChatloggerError,
    CompletionCancelled,
    ConfigError,
    DecodeError,
    ExhaustedRetries,
    FormatError,
    ResponseFormatError,
    TransportError,
)
from chatlogger.llm.dispatcher import ProviderDispatcher, complete
from chatlogger.llm.function_call import detect
from chatlogger.types import Attachment, Call, Message, NoCall, Role

__all__ = [
    "Attachment",
    "Call",
    "ChatloggerError",
    "CompletionCancelled",
    "ConfigError",
    "DecodeError",
    "ExhaustedRetries",
    "FormatError",
    "Message",
    "NoCall",
    "ProviderConfig",
    "ProviderDispatcher",
    "ResponseFormatError",
    "Role",
    "TransportError",
    "complete",
    "detect",
    "load_config",
]
