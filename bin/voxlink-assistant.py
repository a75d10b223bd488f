#!/usr/bin/env python3
"""voxlink console assistant.

Type a message to chat, ``@path/to/recording.wav`` to send a recording
through speech recognition first, or ``/reset`` to clear the history.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
import threading

from dotenv import load_dotenv

from voxlink.assistant.asr import build_recognizer
from voxlink.assistant.asr_server import WhisperServerSupervisor
from voxlink.assistant.config import AssistantConfig
from voxlink.assistant.llm import TurnOutcome, build_llm_provider
from voxlink.assistant.session import ChatSession, user_message
from voxlink.assistant.transcript import TranscriptWriter

LOGGER = logging.getLogger("voxlink-assistant")


class ConsoleAssistant:
    def __init__(self, config: AssistantConfig) -> None:
        self.config = config
        self.session = ChatSession(
            config.llm.system_prompt,
            reset_after_seconds=config.chat_history.reset_seconds,
        )
        self.transcript = TranscriptWriter(config.chat_history.directory, config.llm.provider)
        self.llm = build_llm_provider(config.llm, self.session, self.transcript)
        self.recognizer = build_recognizer(config.whisper)
        self.asr_server = WhisperServerSupervisor(config.whisper)
        self._lines: asyncio.Queue[str | None] = asyncio.Queue()
        self._shutdown = asyncio.Event()

    async def run(self) -> None:
        self._start_stdin_reader(asyncio.get_running_loop())
        LOGGER.info("voxlink ready (llm=%s, asr=%s)", self.llm.name, self.config.whisper.backend)
        while not self._shutdown.is_set():
            line = await self._lines.get()
            if line is None:
                return
            text = line.strip()
            if text:
                await self.handle_input(text)

    async def handle_input(self, text: str) -> TurnOutcome | None:
        if text == "/reset":
            self.llm.reset_history()
            print("[history cleared]", flush=True)
            return None
        if text.startswith("@"):
            audio_path = text[1:].strip()
            text = await self.recognizer.recognize(audio_path)
            if not text:
                print("[asr] nothing recognized", flush=True)
                return None
            print(f"[you] {text}", flush=True)
        return await self.chat(text)

    async def chat(self, text: str) -> TurnOutcome:
        def _on_partial(fragment: str) -> None:
            print(fragment, end="", flush=True)

        def _on_done() -> None:
            print(flush=True)

        outcome = await self.llm.stream_completion([user_message(text)], _on_partial, _on_done)
        if outcome.status == "error":
            LOGGER.warning("Chat turn failed: %s", outcome.error)
        return outcome

    async def shutdown(self) -> None:
        self._shutdown.set()
        await self.llm.close()
        await self.recognizer.close()
        await self.asr_server.stop()

    def _start_stdin_reader(self, loop: asyncio.AbstractEventLoop) -> None:
        def _reader() -> None:
            # The loop may already be closed when stdin finally returns.
            with contextlib.suppress(RuntimeError):
                for line in sys.stdin:
                    loop.call_soon_threadsafe(self._lines.put_nowait, line)
                loop.call_soon_threadsafe(self._lines.put_nowait, None)

        threading.Thread(target=_reader, name="stdin-reader", daemon=True).start()


async def main() -> None:
    parser = argparse.ArgumentParser(description="Chat with the configured LLM from the console.")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--env-file", default=".env", help="dotenv file to load before reading config")
    parser.add_argument("--audio", help="recognize this recording, send it as one turn, then exit")
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    load_dotenv(args.env_file)

    config = AssistantConfig.from_env()
    assistant = ConsoleAssistant(config)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _handle_signal(signum: int) -> None:
        stop_event.set()

    assistant.asr_server.install_termination_hooks(loop, on_signal=_handle_signal)
    await assistant.asr_server.start()

    if args.audio:
        try:
            await assistant.handle_input(f"@{args.audio}")
        finally:
            await assistant.shutdown()
        return

    run_task = asyncio.create_task(assistant.run())
    stop_task = asyncio.create_task(stop_event.wait())
    await asyncio.wait({run_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    await assistant.shutdown()
    for task in (run_task, stop_task):
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
