#!/usr/bin/env python3
"""
Collaborator contracts consumed by the pipeline.

The default adapters live in ``detection``, ``llm``, ``tts`` and ``memory``;
anything with the same shape can be passed to ``PipelineController`` instead.
"""

from typing import Any, AsyncIterator, Callable, List, Optional, Protocol

from .models import GenerationRequest, MemorySearchResult, Message, TranscriptionEvent

EventCallback = Callable[[TranscriptionEvent], None]
ErrorCallback = Callable[[BaseException], None]


class Transcriber(Protocol):
    async def start_live_transcription(self, on_event: EventCallback, on_error: ErrorCallback) -> Any: ...

    def send_audio_chunk(self, chunk: bytes) -> None: ...

    async def stop(self, handle: Any) -> None: ...


class Generator(Protocol):
    def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        """Yield incremental text fragments (deltas) until the response is complete."""
        ...


class Synthesizer(Protocol):
    def stream(self, text: str) -> AsyncIterator[bytes]:
        """Yield encoded audio chunks in playback order."""
        ...


class MemoryStore(Protocol):
    async def get_recent_context(self, conversation_id: str) -> List[Message]: ...

    async def search(self, query: str, user_id: str, k: int) -> List[MemorySearchResult]: ...


class MessageStore(Protocol):
    async def append_message(self, conversation_id: str, role: str, content: str) -> Optional[Message]: ...


class AudioPlayer(Protocol):
    async def play(self, chunk: bytes) -> None:
        """Decode and play one chunk, returning when playback finished."""
        ...

    def stop(self) -> None:
        """Halt whatever is currently playing."""
        ...
