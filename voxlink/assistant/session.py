"""
Chat session state and idle reset policy

A ChatSession owns the ordered transcript replayed to the language model on
every turn. The first message is always the system prompt; a reset clears
everything after it while keeping the same session object.

Reset policy:
- The first turn never resets (there is no previous timestamp yet)
- A later turn resets when the idle time is strictly greater than the threshold
- A threshold of zero or less disables resets entirely
- The last-message timestamp is refreshed at the start of every turn, before
  the network call, so idle time is measured between turns
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]
ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})

LOGGER = logging.getLogger("voxlink.session")


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Message:
        return cls(role=data["role"], content=str(data.get("content") or ""))


class ChatSession:
    """Ordered transcript plus the timestamp of the last turn."""

    def __init__(
        self,
        system_prompt: str,
        *,
        reset_after_seconds: float = 0.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.system_prompt = system_prompt
        self.reset_after_seconds = reset_after_seconds
        self._clock = clock
        self._messages: list[Message] = [Message(role="system", content=system_prompt)]
        self.last_message_time: float | None = None

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def append(self, messages: Iterable[Message]) -> None:
        """Append a batch of turns; a rejected batch leaves the session unchanged."""
        batch = list(messages)
        if any(message.role == "system" for message in batch):
            raise ValueError("Only the seeded system prompt may use the system role")
        self._messages.extend(batch)

    def reset(self) -> None:
        """Drop all turns, keeping only the system prompt."""
        self._messages[:] = [Message(role="system", content=self.system_prompt)]

    def should_reset(self, now: float | None = None) -> bool:
        if self.last_message_time is None or self.reset_after_seconds <= 0:
            return False
        current = self._clock() if now is None else now
        return current - self.last_message_time > self.reset_after_seconds

    def begin_turn(self) -> bool:
        """Apply the idle reset policy and stamp the turn. Returns True when history was cleared."""
        now = self._clock()
        reset = self.should_reset(now)
        if reset:
            LOGGER.info(
                "Chat idle for %.0fs (limit %.0fs); clearing history",
                now - (self.last_message_time or now),
                self.reset_after_seconds,
            )
            self.reset()
        self.last_message_time = now
        return reset

    def as_payload(self) -> list[dict[str, str]]:
        return [message.as_dict() for message in self._messages]


def user_message(text: str) -> Message:
    return Message(role="user", content=text)


def messages_from_dicts(items: Sequence[Mapping[str, Any]]) -> list[Message]:
    return [Message.from_dict(item) for item in items]
