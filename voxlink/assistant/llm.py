"""Streaming chat providers."""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from .config import LLMConfig
from .session import ChatSession, Message
from .sse import DONE_SENTINEL, EventStreamDecoder
from .transcript import TranscriptWriter

LOGGER = logging.getLogger("voxlink.llm")

PartialCallback = Callable[[str], Any]
DoneCallback = Callable[[], Any]


class ChatProviderError(RuntimeError):
    """Raised inside a turn when the provider rejects the request."""


@dataclass(frozen=True)
class TurnOutcome:
    """What happened during one chat turn.

    ``stream_completion`` never raises; callers that care can branch on
    ``status`` while everyone else can ignore the return value.
    """

    status: Literal["success", "empty", "error", "skipped"]
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class ChatProvider:
    """Run chat turns against a streaming completion endpoint.

    Subclasses describe the wire dialect (endpoint, headers, payload and where
    the text fragment lives); the turn lifecycle is shared.
    """

    name = "base"
    label = "LLM"

    def __init__(
        self,
        config: LLMConfig,
        session: ChatSession,
        transcript: TranscriptWriter | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self.session = session
        self.transcript = transcript
        self._logger = logger or LOGGER
        # No read timeout: a stream lasts as long as the model keeps generating.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=config.connect_timeout),
            transport=transport,
        )
        self._closed = False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.aclose()

    def reset_history(self) -> None:
        self.session.reset()

    async def stream_completion(
        self,
        input_messages: Iterable[Message] = (),
        on_partial: PartialCallback | None = None,
        on_done: DoneCallback | None = None,
    ) -> TurnOutcome:
        """Send one turn and stream the reply through ``on_partial``.

        ``on_done`` fires exactly once after the transcript is saved, whether
        the turn succeeded or not. Missing credentials skip the turn entirely
        without firing either callback.
        """
        if not self.has_credentials():
            self._logger.error("%s credentials not set.", self.label)
            return TurnOutcome(status="skipped", error="credentials not set")

        self.session.begin_turn()
        answer: list[str] = []
        try:
            new_messages = list(input_messages)
            self.session.append(new_messages)
            if self.config.log_messages:
                for message in new_messages:
                    self._logger.info("-> %s: %s", message.role, message.content)
            await self._stream_reply(answer, on_partial)
            text = "".join(answer)
            self.session.append([Message(role="assistant", content=text)])
            if self.config.log_messages:
                self._logger.info("<- assistant: %s", text)
            outcome = TurnOutcome(status="success" if text else "empty", text=text)
        except Exception as exc:
            self._logger.error("%s chat error: %s", self.label, exc)
            outcome = TurnOutcome(status="error", text="".join(answer), error=str(exc))
        finally:
            await self._finish_turn(on_done)
        return outcome

    async def summarize(self, text: str, prompt_prefix: str) -> str:
        """Single non-streaming request; returns ``text`` unchanged on any failure."""
        if not self.has_credentials():
            self._logger.error("%s credentials not set.", self.label)
            return text
        messages = [
            {"role": "system", "content": prompt_prefix},
            {"role": "user", "content": text},
        ]
        try:
            response = await self._client.post(
                self.endpoint(),
                json=self.build_payload(messages, stream=False),
                headers=self.headers(),
            )
            summary = self.extract_summary(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            self._logger.error("%s summary error: %s", self.label, exc)
            return text
        return summary or text

    async def _stream_reply(self, answer: list[str], on_partial: PartialCallback | None) -> None:
        decoder = EventStreamDecoder()
        payload = self.build_payload(self.session.as_payload(), stream=True)
        async with self._client.stream("POST", self.endpoint(), json=payload, headers=self.headers()) as response:
            if not response.is_success:
                detail = (await response.aread()).decode("utf-8", errors="replace").strip()
                raise ChatProviderError(f"{self.label} API error {response.status_code}: {detail[:200]}")
            async for chunk in response.aiter_bytes():
                for data in decoder.feed(chunk):
                    await self._handle_event(data, answer, on_partial)
        for data in decoder.flush():
            await self._handle_event(data, answer, on_partial)

    async def _handle_event(self, data: str, answer: list[str], on_partial: PartialCallback | None) -> None:
        if data.strip() == DONE_SENTINEL:
            return
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError as exc:
            self._logger.warning("Skipping malformed stream event %r: %s", data[:80], exc)
            return
        fragment = self.extract_fragment(parsed)
        if not fragment:
            return
        if on_partial is not None:
            await _maybe_await(on_partial(fragment))
        answer.append(fragment)

    async def _finish_turn(self, on_done: DoneCallback | None) -> None:
        if self.transcript is not None:
            try:
                await self.transcript.save(self.session.messages)
            except OSError as exc:
                self._logger.error("Failed to save chat history to %s: %s", self.transcript.path, exc)
        if on_done is not None:
            try:
                await _maybe_await(on_done())
            except Exception:
                self._logger.exception("Chat completion callback failed")

    def has_credentials(self) -> bool:
        raise NotImplementedError

    def endpoint(self) -> str:
        raise NotImplementedError

    def headers(self) -> dict[str, str]:
        raise NotImplementedError

    def build_payload(self, messages: list[dict[str, str]], *, stream: bool) -> dict[str, Any]:
        raise NotImplementedError

    def extract_fragment(self, parsed: Any) -> str | None:
        raise NotImplementedError

    def extract_summary(self, parsed: Any) -> str | None:
        raise NotImplementedError


class CloudflareProvider(ChatProvider):
    """Cloudflare Workers AI text generation."""

    name = "cloudflare"
    label = "Cloudflare"

    def has_credentials(self) -> bool:
        return bool(self.config.cloudflare_account_id and self.config.cloudflare_api_token)

    def endpoint(self) -> str:
        return (
            f"{self.config.cloudflare_base_url}/accounts/{self.config.cloudflare_account_id}"
            f"/ai/run/{self.config.cloudflare_model}"
        )

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.cloudflare_api_token}",
            "Content-Type": "application/json",
        }

    def build_payload(self, messages: list[dict[str, str]], *, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {"messages": messages}
        if stream:
            payload["stream"] = True
        return payload

    def extract_fragment(self, parsed: Any) -> str | None:
        if isinstance(parsed, dict):
            fragment = parsed.get("response")
            if isinstance(fragment, str):
                return fragment
        return None

    def extract_summary(self, parsed: Any) -> str | None:
        if not isinstance(parsed, dict):
            return None
        result = parsed.get("result")
        if isinstance(result, dict):
            return self.extract_fragment(result)
        return None


class OpenAIProvider(ChatProvider):
    """OpenAI-compatible chat completion endpoints."""

    name = "openai"
    label = "OpenAI"

    def has_credentials(self) -> bool:
        return bool(self.config.openai_api_key)

    def endpoint(self) -> str:
        return f"{self.config.openai_base_url}/chat/completions"

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.openai_api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, messages: list[dict[str, str]], *, stream: bool) -> dict[str, Any]:
        return {
            "model": self.config.openai_model,
            "messages": messages,
            "stream": stream,
        }

    def extract_fragment(self, parsed: Any) -> str | None:
        return _first_choice_text(parsed, "delta")

    def extract_summary(self, parsed: Any) -> str | None:
        return _first_choice_text(parsed, "message")


def _first_choice_text(parsed: Any, key: str) -> str | None:
    if not isinstance(parsed, dict):
        return None
    choices = parsed.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    body = choice.get(key)
    if isinstance(body, dict):
        content = body.get("content")
        if isinstance(content, str):
            return content
    return None


def build_llm_provider(
    config: LLMConfig,
    session: ChatSession,
    transcript: TranscriptWriter | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    logger: logging.Logger | None = None,
) -> ChatProvider:
    provider = (config.provider or "").strip().lower()
    if provider == "openai":
        return OpenAIProvider(config, session, transcript, transport=transport, logger=logger)
    return CloudflareProvider(config, session, transcript, transport=transport, logger=logger)
