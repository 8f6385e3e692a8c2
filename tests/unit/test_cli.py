"""Tests for the context-envelope CLI.

Tests cover:
1. Response envelope shape and request ids
2. anchor parse/create/source-id commands and their error codes
3. envelope build with budgets, text output and invalid input
4. capabilities resolve and messages transform, tagged with the target model
"""

import json

import pytest
from click.testing import CliRunner

from context_envelope.cli.main import cli
from context_envelope.core.context import get_model
from context_envelope.core.envelope.anchors import compute_source_id
from context_envelope.core.gateway.models import ModelCapabilities

PNG_URL = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """No config file, no gateway key, and an empty working directory."""
    for name in (
        "CONTEXT_ENVELOPE_CONFIG_FILE",
        "CONTEXT_ENVELOPE_MAX_TOKENS",
        "CONTEXT_ENVELOPE_MIN_CHUNKS",
        "CONTEXT_ENVELOPE_TASK_RESERVE",
        "CONTEXT_ENVELOPE_CAPABILITIES_FILE",
        "PORTKEY_API_KEY",
        "PORTKEY_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args):
    """Run the CLI and parse the JSON document it printed last."""
    result = runner.invoke(cli, list(args))
    lines = [line for line in result.output.splitlines() if line.strip()]
    return result, json.loads(lines[-1])


@pytest.fixture
def sources_file(tmp_path):
    path = tmp_path / "sources.json"
    path.write_text(
        json.dumps(
            [
                {"kind": "note", "title": "Plan", "text": "Ship the ladder. " * 60},
                {
                    "kind": "webpage",
                    "title": "Docs",
                    "url": "https://example.com/docs",
                    "markdown": "# Docs\n\nBudgets cap prompt size.",
                },
            ]
        )
    )
    return path


# =============================================================================
# Test: anchor
# =============================================================================


class TestAnchorCommands:
    """Tests for the anchor command group."""

    def test_parse_page_anchor(self, runner):
        result, payload = invoke(runner, "anchor", "parse", "src:1a2b3c4d#p=3")
        assert result.exit_code == 0
        assert payload["success"] is True
        assert payload["data"]["source_id"] == "src:1a2b3c4d"
        assert payload["data"]["location"] == {"type": "page", "value": "3"}
        assert payload["meta"]["version"] == "response-v1"
        assert payload["meta"]["request_id"].startswith("cli_")

    def test_parse_malformed_anchor(self, runner):
        result, payload = invoke(runner, "anchor", "parse", "src:1a2b#p=3")
        assert result.exit_code == 1
        assert payload["success"] is False
        assert payload["data"]["error_code"] == "MALFORMED_ANCHOR"
        assert "hash must be 8 hex characters" in payload["data"]["details"]["reason"]

    def test_create_page_anchor(self, runner):
        result, payload = invoke(runner, "anchor", "create", "src:1a2b3c4d", "--page", "2")
        assert result.exit_code == 0
        assert payload["data"]["anchor"] == "src:1a2b3c4d#p=2"

    def test_create_region_anchor(self, runner):
        _, payload = invoke(runner, "anchor", "create", "src:1a2b3c4d", "--region", "1,2,3,4")
        assert payload["data"]["anchor"] == "src:1a2b3c4d#r=1,2,3,4"

    def test_create_rejects_invalid_source_id(self, runner):
        result, payload = invoke(runner, "anchor", "create", "doc-1")
        assert result.exit_code == 1
        assert payload["data"]["error_code"] == "INVALID_SOURCE_ID"

    def test_create_rejects_two_locations(self, runner):
        result, payload = invoke(
            runner, "anchor", "create", "src:1a2b3c4d", "--page", "1", "--message", "2"
        )
        assert result.exit_code == 1
        assert payload["data"]["error_code"] == "VALIDATION_ERROR"

    def test_source_id_matches_library(self, runner, tmp_path):
        content_file = tmp_path / "body.txt"
        content_file.write_text("hello world")
        _, from_file = invoke(
            runner, "anchor", "source-id", "--url", "https://x.example", "--file", str(content_file)
        )
        _, inline = invoke(
            runner, "anchor", "source-id", "--url", "https://x.example", "--content", "hello world"
        )
        expected = compute_source_id(url="https://x.example", content="hello world")
        assert from_file["data"]["source_id"] == expected
        assert inline["data"]["source_id"] == expected


# =============================================================================
# Test: envelope
# =============================================================================


class TestEnvelopeCommands:
    """Tests for envelope build."""

    def test_build_without_budget(self, runner, sources_file):
        result, payload = invoke(runner, "envelope", "build", str(sources_file), "--task", "Sum up")
        assert result.exit_code == 0
        envelope = payload["data"]["envelope"]
        assert envelope["task"] == "Sum up"
        assert len(envelope["index"]) == 2
        assert envelope["budget"]["degrade_stage"] == 0
        assert payload["data"]["stats"]["source_count"] == 2

    def test_build_with_budget(self, runner, sources_file):
        _, payload = invoke(
            runner, "envelope", "build", str(sources_file), "--task", "Sum up", "--max-tokens", "150"
        )
        budget = payload["data"]["envelope"]["budget"]
        assert budget["max_tokens"] == 150
        assert budget["degrade_stage"] > 0
        assert budget["cuts"]

    def test_budget_defaults_from_config(self, runner, sources_file, tmp_path):
        config = tmp_path / "context-envelope.toml"
        config.write_text("[budget]\nmax_tokens = 150\n")
        _, payload = invoke(runner, "--config", str(config), "envelope", "build", str(sources_file))
        assert payload["data"]["envelope"]["budget"]["max_tokens"] == 150

    def test_text_output(self, runner, sources_file):
        _, payload = invoke(
            runner, "envelope", "build", str(sources_file), "--task", "Sum up", "--text"
        )
        text = payload["data"]["text"]
        assert text.startswith("=== CONTEXT INDEX ===")
        assert "=== TASK ===\nSum up" in text

    def test_extracted_input(self, runner, tmp_path):
        path = tmp_path / "extracted.json"
        path.write_text(json.dumps([{"type": "text", "title": "Memo", "content": "Remember."}]))
        _, payload = invoke(runner, "envelope", "build", str(path), "--extracted")
        assert payload["data"]["envelope"]["index"][0]["source_type"] == "note"

    def test_negative_budget(self, runner, sources_file):
        result, payload = invoke(
            runner, "envelope", "build", str(sources_file), "--max-tokens", "-1"
        )
        assert result.exit_code == 1
        assert payload["data"]["error_code"] == "INVALID_BUDGET"

    def test_invalid_json(self, runner, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("[{")
        result, payload = invoke(runner, "envelope", "build", str(path))
        assert result.exit_code == 1
        assert payload["data"]["error_code"] == "INVALID_INPUT"

    def test_invalid_sources(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps([{"kind": "spreadsheet"}]))
        result, payload = invoke(runner, "envelope", "build", str(path))
        assert result.exit_code == 1
        assert payload["data"]["error_code"] == "VALIDATION_ERROR"
        assert payload["data"]["details"]["errors"]


# =============================================================================
# Test: capabilities and messages
# =============================================================================


class TestGatewayCommands:
    """Tests for capabilities resolve and messages transform."""

    def test_resolve_static_model(self, runner):
        result, payload = invoke(runner, "capabilities", "resolve", "gpt-4o")
        assert result.exit_code == 0
        assert payload["data"]["provider_kind"] == "direct-openai"
        assert payload["data"]["capabilities"]["supports_vision"] is True

    def test_resolve_with_override_file(self, runner, tmp_path, monkeypatch):
        overrides = tmp_path / "caps.json"
        overrides.write_text(json.dumps({"local-llava": {"supportsVision": True}}))
        monkeypatch.setenv("CONTEXT_ENVELOPE_CAPABILITIES_FILE", str(overrides))
        _, payload = invoke(
            runner, "capabilities", "resolve", "local-llava", "--provider", "ollama"
        )
        assert payload["data"]["capabilities"]["supports_vision"] is True

    def test_resolve_unknown_portkey_model_without_key(self, runner):
        _, payload = invoke(
            runner, "capabilities", "resolve", "mystery", "--provider-kind", "portkey"
        )
        assert payload["data"]["capabilities"]["supports_vision"] is False

    @pytest.fixture
    def messages_file(self, tmp_path):
        path = tmp_path / "messages.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "role": "user",
                        "parts": [
                            {"type": "text", "text": "What is this?"},
                            {"type": "image", "uri": PNG_URL, "alt": "logo"},
                        ],
                    }
                ]
            )
        )
        return path

    def test_transform_for_text_only_model(self, runner, messages_file):
        result, payload = invoke(
            runner, "messages", "transform", str(messages_file), "--model", "llama3", "--provider", "ollama"
        )
        assert result.exit_code == 0
        assert payload["data"]["degraded"] is True
        assert payload["meta"]["warnings"]
        parts = payload["data"]["messages"][0]["parts"]
        assert parts[1] == {"type": "text", "text": "[image omitted: logo]"}

    def test_transform_to_openai(self, runner, messages_file):
        _, payload = invoke(
            runner,
            "messages",
            "transform",
            str(messages_file),
            "--model",
            "gpt-4o",
            "--format",
            "openai",
        )
        content = payload["data"]["messages"][0]["content"]
        assert content[0] == {"type": "image_url", "image_url": {"url": PNG_URL}}
        assert content[1] == {"type": "text", "text": "What is this?"}
        assert payload["data"]["degraded"] is False

    def test_transform_invalid_messages(self, runner, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps([{"role": "narrator", "parts": []}]))
        result, payload = invoke(runner, "messages", "transform", str(path), "--model", "gpt-4o")
        assert result.exit_code == 1
        assert payload["data"]["error_code"] == "VALIDATION_ERROR"

    def test_commands_tag_request_with_model(self, runner, monkeypatch, messages_file):
        seen = []

        async def fake_resolve(selector, api_key=None):
            seen.append(get_model())
            return ModelCapabilities()

        monkeypatch.setattr(
            "context_envelope.cli.commands.capabilities.get_model_capabilities", fake_resolve
        )
        monkeypatch.setattr(
            "context_envelope.cli.commands.messages.get_model_capabilities", fake_resolve
        )
        invoke(runner, "capabilities", "resolve", "gpt-4o")
        invoke(runner, "messages", "transform", str(messages_file), "--model", "llama3")
        assert seen == ["gpt-4o", "llama3"]
        assert get_model() == ""
