#!/usr/bin/env python3
"""
Data records shared by the pipeline components and its collaborators.
"""

import dataclasses
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Pipeline records --------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class TranscriptionEvent:
    """One partial or finalized transcript from the live transcription stream."""

    text: str
    is_final: bool
    timestamp: float = dataclasses.field(default_factory=time.time)


@dataclasses.dataclass(frozen=True)
class Utterance:
    """A completed user input, assembled from finalized segments."""

    text: str


class TurnState(str, Enum):
    RETRIEVING = "retrieving"
    GENERATING = "generating"
    SYNTHESIZING = "synthesizing"
    COMPLETED = "completed"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclasses.dataclass
class ConversationTurn:
    """Mutable state of the single in-flight turn.

    ``generated_text`` only ever grows while the turn is generating.
    """

    input_text: str
    session: Optional[int] = None
    generated_text: str = ""
    state: TurnState = TurnState.RETRIEVING
    error: Optional[BaseException] = None
    synthesis_error: Optional[BaseException] = None
    audio_chunks: int = 0

    @property
    def finished(self) -> bool:
        return self.state in (TurnState.COMPLETED, TurnState.FAILED, TurnState.DISCARDED)


class TurnEventKind(str, Enum):
    PARTIAL = "partial"      # text: full response so far
    RESPONSE = "response"    # text: final generated response
    AUDIO = "audio"          # audio: one synthesized chunk
    ERROR = "error"          # error: PipelineError; fatal when the turn failed
    DONE = "done"            # terminal success


@dataclasses.dataclass(frozen=True)
class TurnEvent:
    kind: TurnEventKind
    text: str = ""
    audio: bytes = b""
    error: Optional[BaseException] = None
    fatal: bool = False


class PipelineStatus(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


@dataclasses.dataclass(frozen=True)
class PipelineState:
    """Snapshot of a controller's per-session state."""

    status: PipelineStatus
    session: int
    is_processing_turn: bool
    is_playing_audio: bool
    silence_timer_pending: bool


# --- Collaborator records ----------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """A stored conversation message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["system", "user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)


class MemorySearchResult(BaseModel):
    """A past message judged relevant to the current utterance."""

    message: Message
    conversation_id: str
    conversation_title: str = "Untitled Conversation"
    similarity: Optional[float] = None


class GenerationRequest(BaseModel):
    """Everything the generation collaborator needs for one streamed response."""

    messages: List[Message]
    system_prompt: str
    temperature: float = 0.7
    max_tokens: int = 1000
