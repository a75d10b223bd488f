"""Tests for voxlink.assistant.config: environment parsing and helpers."""

from __future__ import annotations

from pathlib import Path

import pytest
from voxlink.assistant.config import (
    DEFAULT_CLOUDFLARE_MODEL,
    DEFAULT_SYSTEM_PROMPT,
    AssistantConfig,
    _normalize_choice,
    _strip_or_none,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestStripOrNone:
    def test_none(self):
        assert _strip_or_none(None) is None

    def test_blank(self):
        assert _strip_or_none("   ") is None

    def test_strips(self):
        assert _strip_or_none("  token ") == "token"


class TestNormalizeChoice:
    def test_known_value_lowercased(self):
        assert _normalize_choice(" OpenAI ", {"cloudflare", "openai"}, "cloudflare") == "openai"

    def test_unknown_value_uses_default(self):
        assert _normalize_choice("gemini", {"cloudflare", "openai"}, "cloudflare") == "cloudflare"

    def test_missing_value_uses_default(self):
        assert _normalize_choice(None, {"cloudflare", "openai"}, "cloudflare") == "cloudflare"


# ---------------------------------------------------------------------------
# AssistantConfig.from_env
# ---------------------------------------------------------------------------


class TestFromEnvDefaults:
    @pytest.fixture
    def config(self):
        return AssistantConfig.from_env({})

    def test_llm_defaults(self, config):
        assert config.llm.provider == "cloudflare"
        assert config.llm.cloudflare_model == DEFAULT_CLOUDFLARE_MODEL
        assert config.llm.cloudflare_base_url == "https://api.cloudflare.com/client/v4"
        assert config.llm.cloudflare_account_id is None
        assert config.llm.connect_timeout == 10.0
        assert config.llm.log_messages is False
        assert config.llm.system_prompt == DEFAULT_SYSTEM_PROMPT

    def test_chat_history_defaults(self, config):
        assert config.chat_history.directory == Path("data/chat_history")
        assert config.chat_history.reset_seconds == 300.0

    def test_whisper_defaults(self, config):
        whisper = config.whisper
        assert whisper.backend == "whisper-http"
        assert whisper.base_url == "http://localhost:8804"
        assert whisper.is_local
        assert whisper.language is None
        assert whisper.request_type == "filePath"
        assert whisper.binary == "whisper"
        assert whisper.server_script == Path("python/speech-service/whisper-host.py")
        assert whisper.wyoming.host == "127.0.0.1"
        assert whisper.wyoming.port == 10300
        assert whisper.wyoming.model is None


class TestFromEnvOverrides:
    def test_openai_provider(self):
        config = AssistantConfig.from_env(
            {
                "LLM_SERVER": "openai",
                "OPENAI_API_KEY": " sk-test ",
                "OPENAI_MODEL": "gpt-4.1-mini",
                "OPENAI_BASE_URL": "http://localhost:11434/v1/",
            }
        )

        assert config.llm.provider == "openai"
        assert config.llm.openai_api_key == "sk-test"
        assert config.llm.openai_model == "gpt-4.1-mini"
        assert config.llm.openai_base_url == "http://localhost:11434/v1"

    def test_cloudflare_credentials(self):
        config = AssistantConfig.from_env({"CLOUDFLARE_ACCOUNT_ID": "acct", "CLOUDFLARE_API_TOKEN": "tok"})

        assert config.llm.cloudflare_account_id == "acct"
        assert config.llm.cloudflare_api_token == "tok"

    def test_reset_and_history_dir(self, tmp_path):
        config = AssistantConfig.from_env(
            {"CHAT_HISTORY_DIR": str(tmp_path), "CHAT_HISTORY_RESET_SECONDS": "0"}
        )

        assert config.chat_history.directory == tmp_path
        assert config.chat_history.reset_seconds == 0.0

    def test_invalid_numbers_fall_back(self):
        config = AssistantConfig.from_env(
            {
                "WHISPER_PORT": "not-a-port",
                "CHAT_HISTORY_RESET_SECONDS": "soon",
                "LLM_CONNECT_TIMEOUT_SECONDS": "-5",
            }
        )

        assert config.whisper.port == 8804
        assert config.chat_history.reset_seconds == 300.0
        assert config.llm.connect_timeout == 0.1

    def test_padded_and_blank_numbers(self):
        config = AssistantConfig.from_env({"WHISPER_PORT": " 9001 ", "CHAT_HISTORY_RESET_SECONDS": "  "})

        assert config.whisper.port == 9001
        assert config.chat_history.reset_seconds == 300.0

    def test_remote_whisper(self):
        config = AssistantConfig.from_env(
            {"WHISPER_HOST": "whisper.lan", "WHISPER_PORT": "9000", "WHISPER_LANGUAGE": "de"}
        )

        assert config.whisper.base_url == "http://whisper.lan:9000"
        assert not config.whisper.is_local
        assert config.whisper.language == "de"

    def test_request_type_left_for_client(self):
        config = AssistantConfig.from_env({"WHISPER_REQUEST_TYPE": "multipart"})

        assert config.whisper.request_type == "multipart"

    def test_wyoming_backend(self):
        config = AssistantConfig.from_env(
            {
                "ASR_SERVER": "Wyoming",
                "WYOMING_WHISPER_HOST": "stt.lan",
                "WYOMING_WHISPER_PORT": "10301",
                "WYOMING_WHISPER_MODEL": "tiny-int8",
            }
        )

        assert config.whisper.backend == "wyoming"
        assert config.whisper.wyoming.host == "stt.lan"
        assert config.whisper.wyoming.port == 10301
        assert config.whisper.wyoming.model == "tiny-int8"

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("off", False)])
    def test_log_llm_messages(self, value, expected):
        assert AssistantConfig.from_env({"LOG_LLM_MESSAGES": value}).llm.log_messages is expected


class TestSystemPrompt:
    def test_inline_prompt(self):
        assert AssistantConfig.from_env({"SYSTEM_PROMPT": " Be brief. "}).llm.system_prompt == "Be brief."

    def test_prompt_file(self, tmp_path):
        prompt = tmp_path / "prompt.txt"
        prompt.write_text("From a file.\n", encoding="utf-8")

        config = AssistantConfig.from_env({"SYSTEM_PROMPT_FILE": str(prompt)})

        assert config.llm.system_prompt == "From a file."

    def test_inline_prompt_wins_over_file(self, tmp_path):
        prompt = tmp_path / "prompt.txt"
        prompt.write_text("From a file.", encoding="utf-8")

        config = AssistantConfig.from_env({"SYSTEM_PROMPT": "Inline.", "SYSTEM_PROMPT_FILE": str(prompt)})

        assert config.llm.system_prompt == "Inline."

    def test_missing_prompt_file_uses_default(self, tmp_path):
        config = AssistantConfig.from_env({"SYSTEM_PROMPT_FILE": str(tmp_path / "missing.txt")})

        assert config.llm.system_prompt == DEFAULT_SYSTEM_PROMPT
