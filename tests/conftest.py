"""Shared test fixtures and configuration for the voxlink test suite.

This module provides reusable fixtures for common test scenarios including:
- Async test backend selection
- Logger mocking
- LLM and speech recognition configuration factories
- Fake clocks for idle-reset timing
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any
from unittest.mock import Mock

import pytest
from voxlink.assistant.config import LLMConfig, WhisperConfig, WyomingEndpoint

# ============================================================================
# Pytest Configuration
# ============================================================================


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio backend for async tests."""
    return "asyncio"


# ============================================================================
# Logging Fixtures
# ============================================================================


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing.

    Returns a Mock with spec=logging.Logger to ensure only valid
    logger methods can be called.
    """
    return Mock(spec=logging.Logger)


# ============================================================================
# Time
# ============================================================================


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


# ============================================================================
# Test Data Factories
# ============================================================================


@pytest.fixture
def make_llm_config():
    """Factory fixture for creating LLM configs with custom overrides.

    Usage:
        config = make_llm_config(provider="openai", openai_api_key="key")
    """

    def _create_config(**overrides: Any) -> LLMConfig:
        defaults = {
            "provider": "cloudflare",
            "system_prompt": "You are a helpful assistant.",
            "cloudflare_account_id": "acct123",
            "cloudflare_api_token": "cf_token",
            "cloudflare_model": "@cf/meta/llama-3.1-8b-instruct",
            "cloudflare_base_url": "https://api.cloudflare.com/client/v4",
            "openai_api_key": None,
            "openai_model": "gpt-4o-mini",
            "openai_base_url": "https://api.openai.com/v1",
            "connect_timeout": 10.0,
        }
        defaults.update(overrides)
        return LLMConfig(**defaults)  # type: ignore[arg-type]

    return _create_config


@pytest.fixture
def make_whisper_config():
    """Factory fixture for speech recognition configs."""

    def _create_config(**overrides: Any) -> WhisperConfig:
        defaults = {
            "backend": "whisper-http",
            "host": "localhost",
            "port": 8804,
            "language": None,
            "request_type": "filePath",
            "binary": "whisper",
            "server_python": "python3",
            "server_script": Path("python/speech-service/whisper-host.py"),
            "wyoming": WyomingEndpoint(host="127.0.0.1", port=10300),
        }
        defaults.update(overrides)
        return WhisperConfig(**defaults)  # type: ignore[arg-type]

    return _create_config
