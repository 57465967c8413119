"""Caller-side workflows built on the provider dispatcher.

These are the features that turn a chat backend into a logging-assistant
builder: the guided creator conversation, naming, system prompt generation
and CSV extraction of logged data.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from chatlogger.config import ProviderConfig
from chatlogger.errors import ChatloggerError, ResponseFormatError
from chatlogger.llm.dispatcher import DeltaCallback, ProviderDispatcher
from chatlogger.llm.function_call import detect, format_call
from chatlogger.types import Message, Recognition, Role

_logger = logging.getLogger(__name__)

CREATE_ASSISTANT = "createAssistant"

CREATOR_SYSTEM_PROMPT = f"""\
You are an assistant that helps users design a system prompt to instruct an \
LLM to log and categorize data according to specific needs. Through a series \
of guided questions, help users define key log categories, desired data \
fields, formatting preferences, and any custom logging requirements.

When you have gathered sufficient information (typically after 4-5 message \
exchanges), you must call the {CREATE_ASSISTANT} function:

{format_call(CREATE_ASSISTANT, {"ready": True})}

After the assistant is created, let the user know they can start using their \
new logging assistant."""

NAMING_SYSTEM_PROMPT = """\
You are a specialized assistant responsible for generating concise, relevant \
names for AI logging assistants. Based on the conversation history provided, \
generate a name that reflects the assistant's specific logging and \
categorization purpose.

IMPORTANT: Your response must be ONLY the suggested name, nothing else.

Guidelines for naming:
1. Keep names concise (2-6 words)
2. Make names descriptive of the logging purpose
3. Include relevant domain terminology
4. Ensure names are professional and clear
5. Do not include any explanations or additional text

Example outputs:
- Medical Records Logger
- Financial Transaction Tracker
- Equipment Maintenance Logger
- Research Data Cataloger"""

PROMPT_GENERATOR_SYSTEM_PROMPT = """\
You are an assistant designed to finalize and generate a structured system \
prompt for logging and categorizing data based on the user's requirements. \
You have been provided with detailed input from the user, including log \
categories, data fields, formatting preferences, and any custom requirements \
for logging.

Your response MUST be in the following JSON format:
{
  "systemPrompt": "The complete system prompt including all logging instructions",
  "icebreaker": "The contextual first message the assistant should use"
}

Follow these guidelines while crafting the system prompt:

1. Incorporate Key Categories and Fields: Ensure that each specified log \
category and data field is explicitly outlined in the prompt.
2. Apply Formatting Preferences: Use any formatting instructions provided to \
present data consistently.
3. Include Custom Requirements: Reflect any special instructions or custom \
rules for logging specified by the user.
4. Use Clarity and Precision: Structure the language for clear \
understanding, minimizing ambiguity in how data should be logged and \
categorized.
5. Adjust for User Level: If specified, adjust the tone and detail of the \
prompt to align with the user's technical expertise.
6. Create Initial Message: Include a contextual icebreaker message that:
   - References the specific logging purpose
   - Mentions key categories or fields to be logged
   - Provides a brief example of the expected data format
   - Encourages the user to start logging with a relevant prompt

Remember: Your entire response must be valid JSON with the exact format \
shown above."""

CSV_GENERATOR_PROMPT = """\
You are a data extraction specialist that converts logged information into \
CSV format. Analyze the provided chat messages and extract structured data \
into a CSV format. Follow these guidelines:

1. Only process assistant responses (ignore user messages)
2. Identify key data points and patterns in the logs
3. Create appropriate column headers based on the data structure
4. Format data consistently across rows
5. Handle missing or incomplete data appropriately
6. Return ONLY the CSV content, with headers as the first row
7. Use comma as the delimiter and properly escape any commas in the data
8. Include a timestamp column if temporal data is present

The output should be valid CSV format, ready for direct use in spreadsheet \
software."""

DEFAULT_ASSISTANT_NAME = "Custom Logging Assistant"
DEFAULT_ICEBREAKER = (
    "Hello! I'm ready to help you with logging. "
    "What would you like to log today?"
)
EMPTY_CSV = "Timestamp,Message\n"
INITIAL_MESSAGE_TAG = "INITIAL_MESSAGE:"

_QUOTES = re.compile(r"^[\"']|[\"']$")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class CreatorReply:
    """Assistant text of one creator turn plus any recognized call."""

    text: str
    call: Recognition

    @property
    def wants_assistant(self) -> bool:
        return bool(self.call) and self.call.operation == CREATE_ASSISTANT


@dataclass
class AssistantDraft:
    """Name and system prompt for a newly designed assistant."""

    name: str
    system_prompt: str


def _transcript(messages: Sequence[Message]) -> str:
    return json.dumps([m.to_dict() for m in messages])


def _with_system(prompt: str, payload: str) -> list[Message]:
    return [Message.system(prompt), Message.user(payload)]


# ---------------------------------------------------------------------------
# Creator conversation
# ---------------------------------------------------------------------------

async def creator_turn(
    dispatcher: ProviderDispatcher,
    config: ProviderConfig,
    messages: Sequence[Message],
    on_delta: DeltaCallback | None = None,
) -> CreatorReply:
    """Run one turn of the guided assistant-design conversation."""
    convo = [Message.system(CREATOR_SYSTEM_PROMPT)]
    convo.extend(m for m in messages if m.role is not Role.SYSTEM)
    text = await dispatcher.complete(config, convo, on_delta)
    call = detect(text)
    if call:
        _logger.info("Creator turn requested %s", call.operation)
    return CreatorReply(text=text, call=call)


# ---------------------------------------------------------------------------
# Naming and prompt generation
# ---------------------------------------------------------------------------

async def generate_assistant_name(
    dispatcher: ProviderDispatcher,
    config: ProviderConfig,
    messages: Sequence[Message],
) -> str:
    """Suggest a short name for the assistant described in *messages*."""
    try:
        response = await dispatcher.complete(
            config, _with_system(NAMING_SYSTEM_PROMPT, _transcript(messages)),
        )
    except ChatloggerError as e:
        _logger.error("Error generating assistant name: %s", e)
        return DEFAULT_ASSISTANT_NAME

    # Local models tend to ramble after the name
    if config.is_local:
        response = response.split("\n", 1)[0]
    name = _QUOTES.sub("", response.strip()).strip()
    return name or DEFAULT_ASSISTANT_NAME


def _join_prompt(system_prompt: str, icebreaker: str) -> str:
    return f"{system_prompt}\n\n{INITIAL_MESSAGE_TAG} {icebreaker}"


async def generate_system_prompt(
    dispatcher: ProviderDispatcher,
    config: ProviderConfig,
    messages: Sequence[Message],
) -> str | None:
    """Turn the creator conversation into a system prompt.

    The result ends with an ``INITIAL_MESSAGE:`` line holding the greeting
    the new assistant opens with.  Returns ``None`` if the backend fails.
    """
    try:
        response = await dispatcher.complete(
            config,
            _with_system(PROMPT_GENERATOR_SYSTEM_PROMPT, _transcript(messages)),
        )
    except ChatloggerError as e:
        _logger.error("Error generating system prompt: %s", e)
        return None

    raw = response
    if config.is_local:
        match = _JSON_OBJECT.search(response)
        if match is None:
            return _join_prompt(response, DEFAULT_ICEBREAKER)
        raw = match.group(0)

    try:
        parsed = json.loads(raw)
        return _join_prompt(parsed["systemPrompt"], parsed["icebreaker"])
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        _logger.warning("Error parsing prompt response: %s", e)
        return response


def split_initial_message(system_prompt: str) -> tuple[str, str | None]:
    """Separate a generated prompt from its ``INITIAL_MESSAGE:`` greeting."""
    head, sep, tail = system_prompt.rpartition(INITIAL_MESSAGE_TAG)
    if not sep:
        return system_prompt, None
    return head.rstrip(), tail.strip()


async def create_assistant(
    dispatcher: ProviderDispatcher,
    config: ProviderConfig,
    messages: Sequence[Message],
) -> AssistantDraft | None:
    """Generate the name and system prompt concurrently.

    Naming runs on a spawned dispatcher so the two requests do not share
    cancellation state.
    """
    prompt, name = await asyncio.gather(
        generate_system_prompt(dispatcher, config, messages),
        generate_assistant_name(dispatcher.spawn(), config, messages),
    )
    if prompt is None:
        return None
    return AssistantDraft(name=name, system_prompt=prompt)


# ---------------------------------------------------------------------------
# CSV extraction
# ---------------------------------------------------------------------------

def _timestamp(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


async def generate_csv(
    dispatcher: ProviderDispatcher,
    config: ProviderConfig,
    messages: Sequence[Message],
) -> str:
    """Extract the data logged by the assistant into CSV text."""
    logged = [m for m in messages if m.role is Role.ASSISTANT]
    if not logged:
        return EMPTY_CSV

    payload = json.dumps([
        {"content": m.content, "timestamp": _timestamp(m.created_at)}
        for m in logged
    ])
    response = await dispatcher.complete(
        config, _with_system(CSV_GENERATOR_PROMPT, payload),
    )
    if "," not in response:
        raise ResponseFormatError("Invalid CSV format received")
    return response
