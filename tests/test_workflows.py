"""Tests for the caller workflows built on the dispatcher."""

from __future__ import annotations

import json
from typing import Any

import pytest

from chatlogger.config import ProviderConfig
from chatlogger.errors import ExhaustedRetries, ResponseFormatError, TransportError
from chatlogger.types import Call, Message, NoCall, Role
from chatlogger.workflows import (
    CREATOR_SYSTEM_PROMPT,
    DEFAULT_ASSISTANT_NAME,
    EMPTY_CSV,
    create_assistant,
    creator_turn,
    generate_assistant_name,
    generate_csv,
    generate_system_prompt,
    split_initial_message,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeDispatcher:
    """Minimal fake ProviderDispatcher returning canned replies."""

    def __init__(self, *replies: str | Exception):
        self._replies = list(replies)
        self.calls: list[list[Message]] = []

    async def complete(self, config, messages, on_delta=None) -> str:
        self.calls.append(list(messages))
        reply = self._replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if on_delta is not None:
            on_delta(reply)
        return reply

    def spawn(self) -> FakeDispatcher:
        return self


@pytest.fixture
def cloud() -> ProviderConfig:
    return ProviderConfig(active_backend="cloud")


@pytest.fixture
def local() -> ProviderConfig:
    return ProviderConfig(active_backend="local")


@pytest.fixture
def history() -> list[Message]:
    return [
        Message.user("I want to log my runs"),
        Message.assistant("What fields should each run have?"),
        Message.user("distance, time, mood"),
    ]


def _exhausted() -> ExhaustedRetries:
    return ExhaustedRetries(3, TransportError("down"))


# ---------------------------------------------------------------------------
# Creator
# ---------------------------------------------------------------------------

class TestCreatorTurn:
    async def test_plain_reply(self, cloud, history):
        fake = FakeDispatcher("Anything else to track?")
        seen: list[str] = []
        reply = await creator_turn(fake, cloud, history, seen.append)
        assert reply.text == "Anything else to track?"
        assert reply.call == NoCall()
        assert not reply.wants_assistant
        assert seen == ["Anything else to track?"]
        sent = fake.calls[0]
        assert sent[0].role is Role.SYSTEM
        assert sent[0].content == CREATOR_SYSTEM_PROMPT
        assert sent[1:] == history

    async def test_create_assistant_call(self, cloud, history):
        fake = FakeDispatcher(
            "Thanks!\n<function_call>\ncreateAssistant\nparameters:\n"
            '{"ready": true}\n</function_call>'
        )
        reply = await creator_turn(fake, cloud, history)
        assert reply.call == Call("createAssistant", {"ready": True})
        assert reply.wants_assistant

    async def test_existing_system_message_replaced(self, cloud, history):
        fake = FakeDispatcher("ok")
        await creator_turn(fake, cloud, [Message.system("old")] + history)
        sent = fake.calls[0]
        assert [m.role for m in sent].count(Role.SYSTEM) == 1

    def test_prompt_teaches_block(self):
        assert "<function_call>\ncreateAssistant\nparameters:" in CREATOR_SYSTEM_PROMPT


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

class TestAssistantName:
    async def test_quotes_stripped(self, cloud, history):
        fake = FakeDispatcher('"Running Log Tracker"')
        assert await generate_assistant_name(fake, cloud, history) == "Running Log Tracker"
        payload = json.loads(fake.calls[0][1].content)
        assert payload[0] == {"role": "user", "content": "I want to log my runs"}

    async def test_local_takes_first_line(self, local, history):
        fake = FakeDispatcher("'Run Logger'\nThis name reflects...")
        assert await generate_assistant_name(fake, local, history) == "Run Logger"

    async def test_failure_falls_back(self, cloud, history):
        fake = FakeDispatcher(_exhausted())
        assert await generate_assistant_name(fake, cloud, history) == DEFAULT_ASSISTANT_NAME


# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

class TestSystemPrompt:
    async def test_cloud_json(self, cloud, history):
        reply = json.dumps({"systemPrompt": "Log runs.", "icebreaker": "How far today?"})
        prompt = await generate_system_prompt(FakeDispatcher(reply), cloud, history)
        assert prompt == "Log runs.\n\nINITIAL_MESSAGE: How far today?"

    async def test_cloud_invalid_json_returns_raw(self, cloud, history):
        prompt = await generate_system_prompt(FakeDispatcher("not json"), cloud, history)
        assert prompt == "not json"

    async def test_local_extracts_embedded_json(self, local, history):
        reply = (
            "Here you go:\n"
            + json.dumps({"systemPrompt": "Log runs.", "icebreaker": "Ready?"})
            + "\nEnjoy!"
        )
        prompt = await generate_system_prompt(FakeDispatcher(reply), local, history)
        assert prompt == "Log runs.\n\nINITIAL_MESSAGE: Ready?"

    async def test_local_without_json(self, local, history):
        prompt = await generate_system_prompt(
            FakeDispatcher("Just log the runs."), local, history,
        )
        text, greeting = split_initial_message(prompt)
        assert text == "Just log the runs."
        assert greeting.startswith("Hello!")

    async def test_failure_returns_none(self, cloud, history):
        assert await generate_system_prompt(
            FakeDispatcher(_exhausted()), cloud, history,
        ) is None

    def test_split_without_tag(self):
        assert split_initial_message("plain") == ("plain", None)


class TestCreateAssistant:
    async def test_draft(self, cloud, history):
        reply = json.dumps({"systemPrompt": "Log runs.", "icebreaker": "Go!"})
        fake = FakeDispatcher(reply, "Run Tracker")
        draft = await create_assistant(fake, cloud, history)
        assert draft is not None
        assert draft.name == "Run Tracker"
        assert draft.system_prompt.startswith("Log runs.")

    async def test_prompt_failure(self, cloud, history):
        fake = FakeDispatcher(_exhausted(), "Run Tracker")
        assert await create_assistant(fake, cloud, history) is None


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------

class TestGenerateCsv:
    async def test_no_assistant_messages(self, cloud):
        fake = FakeDispatcher()
        assert await generate_csv(fake, cloud, [Message.user("hi")]) == EMPTY_CSV
        assert fake.calls == []

    async def test_only_assistant_messages_sent(self, cloud, history):
        csv_text = "Timestamp,Distance\n2024-01-01,5km\n"
        fake = FakeDispatcher(csv_text)
        assert await generate_csv(fake, cloud, history) == csv_text
        rows: list[dict[str, Any]] = json.loads(fake.calls[0][1].content)
        assert [r["content"] for r in rows] == ["What fields should each run have?"]
        assert "timestamp" in rows[0]

    async def test_rejects_non_csv(self, cloud, history):
        with pytest.raises(ResponseFormatError):
            await generate_csv(FakeDispatcher("no delimiters here"), cloud, history)
