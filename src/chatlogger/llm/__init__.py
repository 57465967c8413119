"""Model interaction layer for chatlogger."""

from chatlogger.llm.decoder import decode_event_stream, decode_ndjson
from chatlogger.llm.dispatcher import BACKENDS, Backend, ProviderDispatcher, complete
from chatlogger.llm.formatter import build_payload, format_messages, parse_image_marker
from chatlogger.llm.function_call import detect, format_call, function_call_prompt
from chatlogger.llm.retry import with_retry
from chatlogger.llm.transport import CloudTransport, LocalTransport, StreamingTransport

__all__ = [
    "BACKENDS",
    "Backend",
    "CloudTransport",
    "LocalTransport",
    "ProviderDispatcher",
    "StreamingTransport",
    "build_payload",
    "complete",
    "decode_event_stream",
    "decode_ndjson",
    "detect",
    "format_call",
    "format_messages",
    "function_call_prompt",
    "parse_image_marker",
    "with_retry",
]
