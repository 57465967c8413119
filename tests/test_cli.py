"""Tests for the chatlogger command line."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import yaml
from click.testing import CliRunner

from chatlogger.cli import main
from chatlogger.errors import TransportError


class TestTranscribeCommand:
    def test_prints_transcript(self, tmp_path):
        audio = tmp_path / "note.wav"
        audio.write_bytes(b"RIFF")
        with patch(
            "chatlogger.cli.Transcriber.transcribe",
            new_callable=AsyncMock, return_value="buy milk",
        ) as mock_transcribe:
            result = CliRunner().invoke(
                main, ["--config", str(tmp_path / "none.yaml"), "transcribe", str(audio)],
            )
        assert result.exit_code == 0, result.output
        assert "buy milk" in result.output
        args = mock_transcribe.await_args.args
        assert args[1] == b"RIFF"
        assert args[2] == "note.wav"

    def test_backend_failure(self, tmp_path):
        audio = tmp_path / "note.wav"
        audio.write_bytes(b"RIFF")
        with patch(
            "chatlogger.cli.Transcriber.transcribe",
            new_callable=AsyncMock, side_effect=TransportError("whisper.cpp down"),
        ):
            result = CliRunner().invoke(main, ["transcribe", str(audio)])
        assert result.exit_code != 0
        assert "whisper.cpp down" in result.output


class TestChatCommand:
    def test_quit_immediately(self, tmp_path):
        config_path = tmp_path / "chatlogger.yaml"
        config_path.write_text(yaml.dump({"active_backend": "local"}))
        with patch("chatlogger.cli.console.input", return_value="/quit"):
            result = CliRunner().invoke(main, ["-c", str(config_path), "chat"])
        assert result.exit_code == 0, result.output

    def test_single_turn(self, tmp_path):
        config_path = tmp_path / "chatlogger.yaml"
        config_path.write_text(yaml.dump({"active_backend": "local"}))

        async def fake_complete(config, messages, on_delta=None, on_attempt=None):
            on_attempt(1)
            on_delta("Hi ")
            on_delta("back")
            return "Hi back"

        with patch("chatlogger.cli.console.input", side_effect=["hello", "/quit"]), \
             patch(
                 "chatlogger.cli.ProviderDispatcher.complete",
                 side_effect=fake_complete,
             ) as mock_complete:
            result = CliRunner().invoke(
                main, ["-c", str(config_path), "chat", "--backend", "cloud"],
            )
        assert result.exit_code == 0, result.output
        config, messages = mock_complete.call_args.args[:2]
        assert config.active_backend == "cloud"
        assert [m.content for m in messages[:2]] == [
            "You are a helpful assistant.", "hello",
        ]

    def test_retry_starts_fresh_reply(self, tmp_path):
        config_path = tmp_path / "chatlogger.yaml"
        config_path.write_text(yaml.dump({"active_backend": "cloud"}))

        async def fake_complete(config, messages, on_delta=None, on_attempt=None):
            on_attempt(1)
            on_delta("Hel")
            on_attempt(2)
            on_delta("Hello")
            return "Hello"

        with patch("chatlogger.cli.console.input", side_effect=["hi", "/quit"]), \
             patch(
                 "chatlogger.cli.ProviderDispatcher.complete",
                 side_effect=fake_complete,
             ):
            result = CliRunner().invoke(main, ["-c", str(config_path), "chat"])
        assert result.exit_code == 0, result.output
        first, _, retried = result.output.partition("(retry 2)")
        assert "Hel" in first
        assert "assistant>" in retried
        assert "Hello" in retried
