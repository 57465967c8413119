"""Recognition of model-emitted function-call blocks.

A block looks like::

    <function_call>
    createAssistant
    parameters:
    {"ready": true}
    </function_call>

Both markers must sit on their own lines.  Prose around the block is
allowed and ignored.  The recognizer never interprets the parameters.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping

from chatlogger.types import Call, NoCall, Recognition

_logger = logging.getLogger(__name__)

START_MARKER = "<function_call>"
END_MARKER = "</function_call>"
_PARAMS_HEADER = "parameters:"

_BLOCK_PATTERN = re.compile(
    r"^[ \t]*" + re.escape(START_MARKER) + r"[ \t]*\r?\n"
    r"(.*?)"
    r"^[ \t]*" + re.escape(END_MARKER) + r"[ \t]*\r?$",
    re.MULTILINE | re.DOTALL,
)

_FUNCTION_CALL_TEMPLATE = """\
You have access to the following function:

{name}
Description: {description}
Parameters:
{parameters}

To call this function, respond in this exact format:
{example}

Remember:
1. Only respond with the function call format when a function should be called
2. Otherwise respond normally to continue the conversation
3. Never explain the function call or add additional text around it"""


def _parse_body(body: str) -> Recognition:
    lines = body.splitlines()
    idx = 0
    while idx < len(lines) and not lines[idx].strip():
        idx += 1
    if idx == len(lines):
        _logger.warning("Function-call block is empty")
        return NoCall()
    operation = lines[idx].strip()
    rest = lines[idx + 1 :]

    # Skip blanks up to the parameters header
    while rest and not rest[0].strip():
        rest.pop(0)
    if not rest:
        return Call(operation=operation, parameters={})

    header = rest[0].strip()
    if not header.startswith(_PARAMS_HEADER):
        _logger.warning(
            "Function-call block for %r has no parameters header", operation,
        )
        return NoCall()
    json_text = "\n".join([header[len(_PARAMS_HEADER) :]] + rest[1:]).strip()
    if not json_text:
        return Call(operation=operation, parameters={})

    try:
        params = json.loads(json_text)
    except json.JSONDecodeError as e:
        _logger.warning(
            "Function-call block for %r has unparsable parameters: %s",
            operation, e,
        )
        return NoCall()
    if not isinstance(params, dict):
        _logger.warning(
            "Function-call parameters for %r are not an object", operation,
        )
        return NoCall()
    return Call(operation=operation, parameters=params)


def detect(text: str) -> Recognition:
    """Return the first function call embedded in *text*, or ``NoCall()``.

    Malformed blocks (missing operation, bad JSON) yield ``NoCall()`` and
    the text is treated as ordinary output.
    """
    if START_MARKER not in text:
        return NoCall()
    match = _BLOCK_PATTERN.search(text)
    if match is None:
        _logger.debug("Start marker present but no complete block")
        return NoCall()
    return _parse_body(match.group(1))


def format_call(operation: str, parameters: Mapping[str, Any]) -> str:
    """Render a block that ``detect`` recognizes."""
    return "\n".join([
        START_MARKER,
        operation,
        _PARAMS_HEADER,
        json.dumps(dict(parameters), indent=2),
        END_MARKER,
    ])


def function_call_prompt(
    name: str,
    description: str,
    parameters: Mapping[str, str],
    example: Mapping[str, Any],
) -> str:
    """Instructions teaching a model to emit a call to *name*.

    ``parameters`` maps parameter names to their descriptions; ``example``
    holds sample values rendered into the expected block.
    """
    param_lines = "\n".join(
        f"- {key}: {desc}" for key, desc in parameters.items()
    ) or "(none)"
    return _FUNCTION_CALL_TEMPLATE.format(
        name=name,
        description=description,
        parameters=param_lines,
        example=format_call(name, example),
    )
