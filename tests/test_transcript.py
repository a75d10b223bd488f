"""Tests for chat transcript persistence."""

from __future__ import annotations

import json
from datetime import datetime

import pytest
from voxlink.assistant.session import Message, user_message
from voxlink.assistant.transcript import TranscriptWriter, load_transcript, transcript_filename

pytestmark = pytest.mark.anyio

STARTED_AT = datetime(2025, 1, 2, 3, 4, 5)


@pytest.fixture
def writer(tmp_path):
    return TranscriptWriter(tmp_path / "chat_history", "cloudflare", started_at=STARTED_AT)


def test_filename_format():
    assert transcript_filename("openai", STARTED_AT) == "openai_chat_history_2025-01-02_03-04-05.json"


def test_path_fixed_at_construction(writer, tmp_path):
    assert writer.path == tmp_path / "chat_history" / "cloudflare_chat_history_2025-01-02_03-04-05.json"


class TestSave:
    async def test_creates_directory_and_writes_array(self, writer):
        messages = [Message(role="system", content="sys"), user_message("Hello")]

        path = await writer.save(messages)

        assert path == writer.path
        assert json.loads(path.read_text(encoding="utf-8")) == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "Hello"},
        ]

    async def test_pretty_printed_with_two_space_indent(self, writer):
        await writer.save([Message(role="system", content="sys")])

        assert '\n  {\n    "role": "system"' in writer.path.read_text(encoding="utf-8")

    async def test_non_ascii_written_verbatim(self, writer):
        await writer.save([user_message("héllo 🌍")])

        assert "héllo 🌍" in writer.path.read_text(encoding="utf-8")

    async def test_each_save_overwrites_the_same_file(self, writer):
        first = [Message(role="system", content="sys"), user_message("one")]
        second = [*first, Message(role="assistant", content="two")]

        await writer.save(first)
        await writer.save(second)

        assert sorted(p.name for p in writer.directory.iterdir()) == [writer.path.name]
        assert load_transcript(writer.path) == second


class TestLoadTranscript:
    def test_rejects_non_array(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text('{"role": "user"}', encoding="utf-8")

        with pytest.raises(ValueError, match="not a JSON array"):
            load_transcript(path)
