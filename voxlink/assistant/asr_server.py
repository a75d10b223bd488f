"""
Local whisper server supervision

When the recognition backend is the whisper HTTP server and its host is this
machine, the assistant starts the server itself and owns its lifetime:

- Startup: check that the whisper executable is installed, then spawn the host
  script with ``--port``. The child inherits the console and gets its own
  process group (new session on POSIX, new process group on Windows).
- Shutdown: one idempotent ``shutdown()`` terminates the child's process group.
  It is wired to SIGINT, SIGTERM, interpreter exit, uncaught exceptions and
  unhandled event-loop exceptions. The last two also force exit status 1.

A remote host (or another backend) leaves the supervisor in NOT_STARTED.
"""

from __future__ import annotations

import asyncio
import atexit
import contextlib
import enum
import logging
import os
import shutil
import signal
import subprocess
import sys
from asyncio.subprocess import Process
from collections.abc import Callable
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from .config import WhisperConfig

LOGGER = logging.getLogger("voxlink.asr_server")

IS_WINDOWS = os.name == "nt"


class ServerState(enum.Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    TERMINATED = "terminated"


@dataclass
class ASRProcessHandle:
    process: Process

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.process.returncode is None


def _spawn_kwargs() -> dict[str, Any]:
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _terminate_process_group(process: Process) -> None:
    if IS_WINDOWS:
        process.terminate()
    else:
        os.killpg(process.pid, signal.SIGTERM)


class WhisperServerSupervisor:
    """Owns the local whisper host subprocess."""

    def __init__(
        self,
        config: WhisperConfig,
        *,
        logger: logging.Logger | None = None,
        exit_func: Callable[[int], Any] = os._exit,
    ) -> None:
        self.config = config
        self.state = ServerState.NOT_STARTED
        self.handle: ASRProcessHandle | None = None
        self._logger = logger or LOGGER
        self._exit = exit_func
        self._terminated = False
        self._hooks_installed = False
        self._on_signal: Callable[[int], Any] | None = None

    @property
    def wants_local_server(self) -> bool:
        return self.config.backend == "whisper-http" and self.config.is_local

    def build_command(self) -> list[str]:
        return [
            self.config.server_python,
            str(self.config.server_script),
            "--port",
            str(self.config.port),
        ]

    def check_installation(self) -> bool:
        if not shutil.which(self.config.binary):
            self._logger.error(
                "%s command is not available. Please install Whisper (pip install openai-whisper) "
                "and ensure %s is in your PATH.",
                self.config.binary,
                self.config.binary,
            )
            return False
        if not self.config.server_script.is_file():
            self._logger.error(
                "Whisper server script not found at %s; set WHISPER_SERVER_SCRIPT to the whisper host script.",
                self.config.server_script,
            )
            return False
        return True

    async def start(self) -> ASRProcessHandle | None:
        if self.state is not ServerState.NOT_STARTED:
            return self.handle
        if self.config.backend != "whisper-http":
            return None
        if not self.config.is_local:
            self._logger.info("Using remote Whisper server at %s:%s", self.config.host, self.config.port)
            return None

        self.state = ServerState.STARTING
        if not self.check_installation():
            self.state = ServerState.NOT_STARTED
            return None

        command = self.build_command()
        self._logger.info("Starting Whisper server at port %s", self.config.port)
        self._logger.debug("Whisper server command: %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(*command, **_spawn_kwargs())
        except OSError as exc:
            self._logger.error("Failed to start Whisper server: %s", exc)
            self.state = ServerState.NOT_STARTED
            return None
        self.handle = ASRProcessHandle(process)
        self.state = ServerState.RUNNING
        return self.handle

    def shutdown(self) -> None:
        """Terminate the server's process group. Safe to call repeatedly and from signal handlers."""
        handle = self.handle
        if handle is None or self._terminated:
            return
        self._terminated = True
        self.state = ServerState.TERMINATED
        if not handle.alive:
            self._logger.debug("Whisper server (pid %s) already exited", handle.pid)
            return
        self._logger.info("Stopping Whisper server (pid %s)", handle.pid)
        try:
            _terminate_process_group(handle.process)
        except ProcessLookupError:
            self._logger.debug("Whisper server process group %s is already gone", handle.pid)
        except OSError as exc:
            self._logger.warning("Failed to stop Whisper server (pid %s): %s", handle.pid, exc)

    async def stop(self, timeout: float = 5.0) -> None:
        """Shut down and wait briefly for the child to exit."""
        self.shutdown()
        if self.handle is None:
            return
        with contextlib.suppress(asyncio.TimeoutError, ProcessLookupError):
            await asyncio.wait_for(self.handle.process.wait(), timeout=timeout)

    def install_termination_hooks(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        *,
        on_signal: Callable[[int], Any] | None = None,
    ) -> None:
        """Register ``shutdown`` with every process termination path."""
        if self._hooks_installed:
            return
        self._hooks_installed = True
        self._on_signal = on_signal
        atexit.register(self.shutdown)
        sys.excepthook = self._handle_uncaught_exception
        if loop is not None:
            loop.set_exception_handler(self._handle_loop_exception)
        for sig in (signal.SIGINT, signal.SIGTERM):
            if loop is not None:
                try:
                    loop.add_signal_handler(sig, self._handle_signal, sig)
                    continue
                except (NotImplementedError, RuntimeError):
                    # Windows event loops have no add_signal_handler.
                    pass
            signal.signal(sig, self._handle_raw_signal)

    def _handle_raw_signal(self, signum: int, frame: Any) -> None:
        self._handle_signal(signum)

    def _handle_signal(self, signum: int) -> None:
        self._logger.info("Received signal %s, shutting down", signum)
        self.shutdown()
        if self._on_signal is not None:
            self._on_signal(signum)
            return
        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        raise SystemExit(128 + signum)

    def _handle_uncaught_exception(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        self._logger.critical("Uncaught exception, exiting", exc_info=(exc_type, exc, tb))
        self.shutdown()
        self._exit(1)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if exc is None:
            # Notices such as "Task was destroyed but it is pending!" are not fatal.
            loop.default_exception_handler(context)
            return
        message = context.get("message") or "Unhandled exception in event loop"
        self._logger.critical("%s", message, exc_info=exc)
        self.shutdown()
        self._exit(1)
