"""Incremental decoder for `data: ` event streams."""

from __future__ import annotations

import codecs
from collections.abc import Iterable, Iterator

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


class EventStreamDecoder:
    """Turn raw response chunks into event payload strings.

    UTF-8 sequences and lines may be split across chunks; both are buffered
    until complete. Only lines starting with ``data: `` yield a payload.
    """

    def __init__(self, prefix: str = DATA_PREFIX) -> None:
        self.prefix = prefix
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return list(self._payloads(lines))

    def flush(self) -> list[str]:
        """Emit whatever is left once the stream has ended."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return list(self._payloads([tail]))

    def _payloads(self, lines: Iterable[str]) -> Iterator[str]:
        for line in lines:
            line = line.rstrip("\r")
            if not line.strip():
                continue
            if line.startswith(self.prefix):
                yield line[len(self.prefix) :]


def decode_event_stream(chunks: Iterable[bytes]) -> list[str]:
    """Decode a complete sequence of chunks into payloads."""
    decoder = EventStreamDecoder()
    payloads: list[str] = []
    for chunk in chunks:
        payloads.extend(decoder.feed(chunk))
    payloads.extend(decoder.flush())
    return payloads
