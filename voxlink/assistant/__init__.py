"""
Chat and speech-recognition pipeline for voxlink

This package provides the per-turn plumbing between the voice front end and the
remote services:

- Chat sessions: Ordered transcript seeded with the system prompt, reset after idle time
- Streaming completions: Incremental server-sent event decoding with per-fragment hooks
- Transcript persistence: Cumulative JSON transcript written after every turn
- Speech recognition: HTTP /recognize client (path or base64 payload) and Wyoming STT
- Local ASR server: Supervised whisper subprocess tied to host-process termination

Key modules:
- config: Configuration management from environment variables
- session: Messages, chat session state and the idle reset policy
- sse: Incremental decoder for `data: ` event streams
- llm: Streaming chat providers (Cloudflare Workers AI, OpenAI-compatible)
- transcript: Transcript file naming, saving and loading
- asr: Speech recognition clients (whisper HTTP and Wyoming STT)
- asr_server: Local recognition server supervisor
"""

from __future__ import annotations

__all__ = [
    "config",
    "session",
    "sse",
    "llm",
    "transcript",
    "asr",
    "asr_server",
]
