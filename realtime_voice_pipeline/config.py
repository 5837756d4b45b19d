#!/usr/bin/env python3
"""
Configuration settings for the Realtime Voice Pipeline using Pydantic.
"""

import math
from typing import Literal, Optional
from pydantic import BaseModel, Field, computed_field, ConfigDict, field_validator


class Config(BaseModel):
    """
    Configuration class for the Realtime Voice Pipeline using Pydantic for validation.

    One instance is shared by every component of a pipeline, so changes made with
    ``set_user_id``/``set_conversation_id`` are seen by the next turn.
    """

    model_config = ConfigDict(
        extra='forbid',  # Don't allow extra fields
        validate_assignment=True,  # Validate on assignment
        frozen=False,  # Allow modification after creation
    )

    # Audio Configuration
    sample_rate: int = Field(
        default=16000,
        description="Microphone sample rate in Hz (webrtcvad supports 8k/16k/32k/48k)",
    )

    frame_ms: int = Field(
        default=30,
        description="Milliseconds per frame for VAD (10, 20 or 30)",
    )

    vad_aggressiveness: int = Field(
        default=2,
        description="Voice Activity Detection aggressiveness (0-3, higher = more aggressive)",
        ge=0,
        le=3
    )

    min_utterance_ms: int = Field(
        default=300,
        description="Minimum voiced audio required before a speech segment starts (ms)",
        ge=10,
        le=5000
    )

    trailing_silence_ms: int = Field(
        default=300,
        description="Silence that finalizes a transcription segment (ms)",
        ge=10,
        le=5000
    )

    partial_interval_ms: int = Field(
        default=600,
        description="How often interim transcripts are produced while speech continues (ms)",
        ge=100,
        le=10000
    )

    # Speech-to-Text Configuration
    whisper_model: str = Field(
        default="small.en",
        description="faster-whisper model used for live transcription"
    )

    whisper_compute: Literal["auto", "cpu", "cuda"] = Field(
        default="auto",
        description="Compute device for the Whisper model"
    )

    # Utterance segmentation
    silence_window_ms: int = Field(
        default=1000,
        description="Pause after the last finalized segment that completes an utterance (ms)",
        ge=10,
        le=30000
    )

    # Memory Configuration
    user_id: str = Field(
        default="default",
        description="User whose past conversations are searched for relevant memories"
    )

    conversation_id: Optional[str] = Field(
        default="default",
        description="Conversation that turns are read from and persisted to (None disables persistence)"
    )

    context_window_size: int = Field(
        default=10,
        description="Number of recent messages included as conversational context",
        ge=0,
        le=200
    )

    memory_search_k: int = Field(
        default=3,
        description="Number of relevant past messages retrieved per turn",
        ge=0,
        le=50
    )

    # LLM Configuration
    ollama_model: str = Field(
        default="gpt-oss:20b",
        description="Ollama model name to use for chat completion"
    )

    system_prompt: str = Field(
        default=(
            "You are a helpful and friendly voice assistant with conversational memory. "
            "Keep your responses concise and natural for voice interaction."
        ),
        description="System instruction placed before retrieved memories"
    )

    temperature: float = Field(
        default=0.7,
        description="Sampling temperature for generation",
        ge=0.0,
        le=2.0
    )

    max_tokens: int = Field(
        default=1000,
        description="Maximum tokens per LLM response",
        ge=1,
        le=8192
    )

    generation_timeout_sec: Optional[float] = Field(
        default=30.0,
        description="Longest wait for the next generated fragment before the turn fails (None = unbounded)",
        gt=0.0
    )

    # Text-to-Speech Configuration
    voice_name: str = Field(
        default="en-GB-SoniaNeural",
        description="edge-tts voice name"
    )

    synthesis_timeout_sec: Optional[float] = Field(
        default=15.0,
        description="Longest wait for the next synthesized audio chunk (None = unbounded)",
        gt=0.0
    )

    playback_sample_rate: int = Field(
        default=24000,
        description="Sample rate decoded audio chunks are resampled to before playback",
        ge=8000,
        le=48000
    )

    # Computed properties (derived from other fields)
    @computed_field
    @property
    def frame_samples(self) -> int:
        """Number of audio samples per frame."""
        return int(self.sample_rate * self.frame_ms / 1000)

    @computed_field
    @property
    def frame_bytes(self) -> int:
        """Size of one PCM16 mono frame in bytes."""
        return self.frame_samples * 2

    @computed_field
    @property
    def min_voiced_frames(self) -> int:
        """Minimum number of voiced frames required."""
        return math.ceil(self.min_utterance_ms / self.frame_ms)

    @computed_field
    @property
    def trailing_silence_frames(self) -> int:
        """Number of silence frames that finalize a segment."""
        return math.ceil(self.trailing_silence_ms / self.frame_ms)

    @computed_field
    @property
    def partial_interval_frames(self) -> int:
        return max(1, math.ceil(self.partial_interval_ms / self.frame_ms))

    @computed_field
    @property
    def silence_window_sec(self) -> float:
        return self.silence_window_ms / 1000.0

    @field_validator('sample_rate')
    @classmethod
    def validate_sample_rate(cls, v):
        """webrtcvad only accepts a handful of rates."""
        if v not in (8000, 16000, 32000, 48000):
            raise ValueError("sample_rate must be one of 8000, 16000, 32000, 48000")
        return v

    @field_validator('frame_ms')
    @classmethod
    def validate_frame_ms(cls, v):
        if v not in (10, 20, 30):
            raise ValueError("frame_ms must be 10, 20 or 30")
        return v

    @field_validator('system_prompt')
    @classmethod
    def validate_system_prompt(cls, v):
        """Ensure system prompt is not empty."""
        if not v.strip():
            raise ValueError("system_prompt cannot be empty")
        return v

    @field_validator('user_id')
    @classmethod
    def validate_user_id(cls, v):
        if not v.strip():
            raise ValueError("user_id cannot be empty")
        return v

    def model_dump_config(self) -> dict:
        """Return configuration as a dictionary, including computed fields."""
        return self.model_dump()


# Default configuration instance
default_config = Config()
