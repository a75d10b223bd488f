"""Persist chat transcripts to disk after every turn."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from .session import Message, messages_from_dicts

LOGGER = logging.getLogger("voxlink.transcript")

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def transcript_filename(backend: str, started_at: datetime) -> str:
    return f"{backend}_chat_history_{started_at.strftime(TIMESTAMP_FORMAT)}.json"


class TranscriptWriter:
    """Write the whole transcript to one file named at startup.

    Every save overwrites the same file, so it always holds the cumulative
    transcript of the current process.
    """

    def __init__(
        self,
        directory: Path,
        backend: str,
        *,
        started_at: datetime | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.directory = Path(directory)
        self.backend = backend
        self.started_at = started_at or datetime.now()
        self.path = self.directory / transcript_filename(backend, self.started_at)
        self._logger = logger or LOGGER

    async def save(self, messages: Sequence[Message]) -> Path:
        payload = json.dumps([message.as_dict() for message in messages], indent=2, ensure_ascii=False)
        await asyncio.to_thread(self._write, payload)
        self._logger.debug("Saved %d message(s) to %s", len(messages), self.path)
        return self.path

    def _write(self, payload: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(self.path)


def load_transcript(path: Path) -> list[Message]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Transcript {path} is not a JSON array")
    return messages_from_dicts(data)
