"""
Speech recognition clients

Turns a recorded audio file into text using whichever recognition backend is
configured:

- whisper-http: POST /recognize on the whisper host server, sending either the
  file path (same filesystem) or the file contents base64-encoded
- wyoming: stream the WAV file's PCM frames to a Wyoming STT service

``recognize`` never raises. An empty string means nothing was recognized; the
reason is logged and available from ``recognize_detailed``.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import wave
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import httpx
from wyoming.asr import Transcribe, Transcript
from wyoming.audio import AudioChunk, AudioStart, AudioStop
from wyoming.client import AsyncTcpClient
from wyoming.event import Event

from .config import REQUEST_TYPES, WhisperConfig

LOGGER = logging.getLogger("voxlink.asr")

RequestType = Literal["filePath", "base64"]


class RecognitionError(RuntimeError):
    """Raised when the recognition server answers with an error status."""


@dataclass(frozen=True)
class RecognitionRequest:
    audio_path: Path
    encoding_mode: RequestType
    language: str | None = None

    def as_payload(self) -> dict[str, Any]:
        """Build the JSON body; base64 mode reads the whole file."""
        body: dict[str, Any] = {}
        if self.language:
            body["language"] = self.language
        if self.encoding_mode == "base64":
            body["base64"] = base64.b64encode(self.audio_path.read_bytes()).decode("ascii")
        else:
            body["filePath"] = str(self.audio_path)
        return body


@dataclass(frozen=True)
class RecognitionOutcome:
    status: Literal["success", "empty", "error"]
    text: str = ""
    error: str | None = None


def resolve_request_type(value: str | None, logger: logging.Logger | None = None) -> RequestType:
    if value in REQUEST_TYPES:
        return value  # type: ignore[return-value]
    (logger or LOGGER).warning("Invalid WHISPER_REQUEST_TYPE: %s, defaulting to filePath", value)
    return "filePath"


class SpeechRecognizer:
    async def recognize(self, audio_path: str | Path) -> str:
        outcome = await self.recognize_detailed(audio_path)
        return outcome.text

    async def recognize_detailed(self, audio_path: str | Path) -> RecognitionOutcome:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class WhisperHttpRecognizer(SpeechRecognizer):
    """Client for the whisper host's ``/recognize`` endpoint."""

    def __init__(
        self,
        config: WhisperConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.endpoint = f"{config.base_url}/recognize"
        self._logger = logger or LOGGER
        self._request_type = resolve_request_type(config.request_type, self._logger)
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0), transport=transport)
        self._closed = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()

    def build_request(self, audio_path: str | Path) -> RecognitionRequest:
        return RecognitionRequest(
            audio_path=Path(audio_path),
            encoding_mode=self._request_type,
            language=self.config.language,
        )

    async def recognize_detailed(self, audio_path: str | Path) -> RecognitionOutcome:
        request = self.build_request(audio_path)
        try:
            body = await asyncio.to_thread(request.as_payload)
            response = await self._client.post(self.endpoint, json=body)
            if not response.is_success:
                raise RecognitionError(f"Whisper service error {response.status_code}: {response.text[:200]}")
            data = response.json()
        except Exception as exc:  # pylint: disable=broad-except
            self._logger.error("Error calling Whisper service: %s", exc)
            return RecognitionOutcome(status="error", error=str(exc))

        recognition = data.get("recognition") if isinstance(data, dict) else None
        if isinstance(recognition, str) and recognition:
            return RecognitionOutcome(status="success", text=recognition)
        self._logger.error("Invalid response from Whisper service: %r", data)
        return RecognitionOutcome(status="empty")


@dataclass(frozen=True)
class WavAudio:
    rate: int
    width: int
    channels: int
    frames: bytes

    @classmethod
    def load(cls, path: Path) -> WavAudio:
        with wave.open(str(path), "rb") as wav:
            return cls(
                rate=wav.getframerate(),
                width=wav.getsampwidth(),
                channels=wav.getnchannels(),
                frames=wav.readframes(wav.getnframes()),
            )

    def chunks(self, chunk_ms: int) -> Iterator[bytes]:
        step = max(1, self.rate * chunk_ms // 1000) * self.width * self.channels
        for offset in range(0, len(self.frames), step):
            yield self.frames[offset : offset + step]


def transcription_events(
    audio: WavAudio,
    *,
    language: str | None = None,
    model: str | None = None,
    chunk_ms: int = 30,
) -> Iterator[Event]:
    """Events sent for one Wyoming transcription, in wire order."""
    yield Transcribe(name=model, language=language).event()
    yield AudioStart(rate=audio.rate, width=audio.width, channels=audio.channels).event()
    for chunk in audio.chunks(chunk_ms):
        yield AudioChunk(rate=audio.rate, width=audio.width, channels=audio.channels, audio=chunk).event()
    yield AudioStop().event()


class WyomingRecognizer(SpeechRecognizer):
    """Stream a WAV file's PCM frames to a Wyoming STT service.

    ``timeout`` bounds the whole exchange, from connect to transcript.
    """

    def __init__(
        self,
        config: WhisperConfig,
        *,
        timeout: float | None = 60.0,
        chunk_ms: int = 30,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self.chunk_ms = chunk_ms
        self._logger = logger or LOGGER

    async def recognize_detailed(self, audio_path: str | Path) -> RecognitionOutcome:
        endpoint = self.config.wyoming
        try:
            audio = await asyncio.to_thread(WavAudio.load, Path(audio_path))
            async with asyncio.timeout(self.timeout):
                text = await self._transcribe(audio)
        except TimeoutError:
            self._logger.error("Wyoming STT at %s:%s timed out after %ss", endpoint.host, endpoint.port, self.timeout)
            return RecognitionOutcome(status="error", error="timed out")
        except Exception as exc:  # pylint: disable=broad-except
            self._logger.error("Error calling Wyoming STT at %s:%s: %s", endpoint.host, endpoint.port, exc)
            return RecognitionOutcome(status="error", error=str(exc))

        text = (text or "").strip()
        if text:
            return RecognitionOutcome(status="success", text=text)
        self._logger.warning("Wyoming STT returned no transcript for %s", audio_path)
        return RecognitionOutcome(status="empty")

    async def _transcribe(self, audio: WavAudio) -> str | None:
        endpoint = self.config.wyoming
        client = AsyncTcpClient(endpoint.host, endpoint.port)
        await client.connect()
        try:
            events = transcription_events(
                audio,
                language=self.config.language,
                model=endpoint.model,
                chunk_ms=self.chunk_ms,
            )
            for event in events:
                await client.write_event(event)
            while True:
                event = await client.read_event()
                if event is None:
                    self._logger.debug("Wyoming STT closed the connection without a transcript")
                    return None
                if Transcript.is_type(event.type):
                    return Transcript.from_event(event).text
        finally:
            await client.disconnect()


def build_recognizer(
    config: WhisperConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    logger: logging.Logger | None = None,
) -> SpeechRecognizer:
    if config.backend == "wyoming":
        return WyomingRecognizer(config, logger=logger)
    return WhisperHttpRecognizer(config, transport=transport, logger=logger)
