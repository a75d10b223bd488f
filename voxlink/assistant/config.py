"""Configuration helpers for the voxlink assistant."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

LLM_PROVIDERS = {"cloudflare", "openai"}
ASR_BACKENDS = {"whisper-http", "wyoming"}
REQUEST_TYPES = {"filePath", "base64"}
LOOPBACK_HOSTS = frozenset({"localhost", "0.0.0.0", "127.0.0.1", "::1"})

DEFAULT_CLOUDFLARE_MODEL = "@cf/meta/llama-3.1-8b-instruct"
DEFAULT_WHISPER_PORT = 8804
DEFAULT_RESET_SECONDS = 300.0


def _strip_or_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _env_bool(source: Mapping[str, str], key: str, default: bool = False) -> bool:
    value = _strip_or_none(source.get(key))
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_int(source: Mapping[str, str], key: str, default: int) -> int:
    value = _strip_or_none(source.get(key))
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _env_float(source: Mapping[str, str], key: str, default: float) -> float:
    value = _strip_or_none(source.get(key))
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    system_prompt: str
    cloudflare_account_id: str | None
    cloudflare_api_token: str | None
    cloudflare_model: str
    cloudflare_base_url: str
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str
    connect_timeout: float
    log_messages: bool = False


@dataclass(frozen=True)
class ChatHistoryConfig:
    directory: Path
    reset_seconds: float


@dataclass(frozen=True)
class WyomingEndpoint:
    host: str
    port: int
    model: str | None = None


@dataclass(frozen=True)
class WhisperConfig:
    backend: Literal["whisper-http", "wyoming"]
    host: str
    port: int
    language: str | None
    request_type: str
    binary: str
    server_python: str
    server_script: Path
    wyoming: WyomingEndpoint

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def is_local(self) -> bool:
        """True when the recognition server is expected on this machine."""
        return self.host.strip().lower() in LOOPBACK_HOSTS


@dataclass(frozen=True)
class AssistantConfig:
    llm: LLMConfig
    chat_history: ChatHistoryConfig
    whisper: WhisperConfig

    @staticmethod
    def from_env(env: Mapping[str, str] | None = None) -> AssistantConfig:
        source = env if env is not None else os.environ

        system_prompt = (source.get("SYSTEM_PROMPT") or "").strip()
        prompt_file = source.get("SYSTEM_PROMPT_FILE")
        if not system_prompt and prompt_file:
            candidate = Path(prompt_file)
            if candidate.is_file():
                system_prompt = candidate.read_text(encoding="utf-8").strip()
        if not system_prompt:
            system_prompt = DEFAULT_SYSTEM_PROMPT

        llm = LLMConfig(
            provider=_normalize_choice(source.get("LLM_SERVER"), LLM_PROVIDERS, "cloudflare"),
            system_prompt=system_prompt,
            cloudflare_account_id=_strip_or_none(source.get("CLOUDFLARE_ACCOUNT_ID")),
            cloudflare_api_token=_strip_or_none(source.get("CLOUDFLARE_API_TOKEN")),
            cloudflare_model=_strip_or_none(source.get("CLOUDFLARE_MODEL")) or DEFAULT_CLOUDFLARE_MODEL,
            cloudflare_base_url=(
                source.get("CLOUDFLARE_BASE_URL") or "https://api.cloudflare.com/client/v4"
            ).rstrip("/"),
            openai_api_key=_strip_or_none(source.get("OPENAI_API_KEY")),
            openai_model=_strip_or_none(source.get("OPENAI_MODEL")) or "gpt-4o-mini",
            openai_base_url=(source.get("OPENAI_BASE_URL") or "https://api.openai.com/v1").rstrip("/"),
            connect_timeout=max(0.1, _env_float(source, "LLM_CONNECT_TIMEOUT_SECONDS", 10.0)),
            log_messages=_env_bool(source, "LOG_LLM_MESSAGES", False),
        )

        chat_history = ChatHistoryConfig(
            directory=Path(source.get("CHAT_HISTORY_DIR") or "data/chat_history"),
            reset_seconds=_env_float(source, "CHAT_HISTORY_RESET_SECONDS", DEFAULT_RESET_SECONDS),
        )

        whisper = WhisperConfig(
            backend=_normalize_choice(source.get("ASR_SERVER"), ASR_BACKENDS, "whisper-http"),
            host=(source.get("WHISPER_HOST") or "localhost").strip(),
            port=_env_int(source, "WHISPER_PORT", DEFAULT_WHISPER_PORT),
            language=_strip_or_none(source.get("WHISPER_LANGUAGE")),
            # Left unvalidated; the recognition client warns and falls back at request time.
            request_type=(source.get("WHISPER_REQUEST_TYPE") or "filePath").strip(),
            binary=_strip_or_none(source.get("WHISPER_BINARY")) or "whisper",
            server_python=_strip_or_none(source.get("WHISPER_SERVER_PYTHON")) or "python3",
            server_script=Path(source.get("WHISPER_SERVER_SCRIPT") or "python/speech-service/whisper-host.py"),
            wyoming=WyomingEndpoint(
                host=_strip_or_none(source.get("WYOMING_WHISPER_HOST")) or "127.0.0.1",
                port=_env_int(source, "WYOMING_WHISPER_PORT", 10300),
                model=_strip_or_none(source.get("WYOMING_WHISPER_MODEL")),
            ),
        )

        return AssistantConfig(llm=llm, chat_history=chat_history, whisper=whisper)


DEFAULT_SYSTEM_PROMPT = """You are a friendly voice assistant.
- Your replies are read aloud, so answer in plain sentences without markdown,
  lists or emoji.
- Keep answers short unless the user explicitly asks for more detail.
- When unsure, ask a clarifying question instead of guessing."""


def _normalize_choice(value: str | None, allowed: set[str], default: str) -> str:
    if not value:
        return default
    lowered = value.strip().lower()
    if lowered in allowed:
        return lowered
    return default
