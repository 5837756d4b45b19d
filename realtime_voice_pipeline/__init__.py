#!/usr/bin/env python3
"""
Realtime Voice Pipeline Module
==============================

A full-duplex voice conversation pipeline: live microphone transcription is
segmented into utterances, each utterance drives one streamed LLM turn, and the
synthesized reply is played back chunk by chunk while it streams in.

Features
--------
1. Live transcription (webrtcvad + faster-whisper) with interim and final transcripts.
2. Silence-window debouncing of finalized segments into utterances.
3. Single-flight turns: an utterance arriving mid-turn is dropped, while speech
   heard mid-turn is kept and answered once the turn ends.
4. Context retrieval and keyword memory search folded into the system prompt.
5. Streaming responses from an Ollama model, delivered as growing partial text.
6. Streaming edge-tts synthesis played in strict arrival order.
7. Start/stop/reset lifecycle; results of a stopped session are discarded.

Quick Start
-----------
```python
import asyncio
from realtime_voice_pipeline import run

if __name__ == '__main__':
    asyncio.run(run())
```
"""

from .accumulator import UtteranceAccumulator
from .clock import LoopClock, ManualClock
from .config import Config, default_config
from .core import PipelineController, main, run
from .detection import MicrophoneStream, WhisperLiveTranscriber
from .errors import (
    GenerationError,
    PersistenceError,
    PipelineError,
    PlaybackError,
    RetrievalError,
    SynthesisError,
    TranscriptionError,
)
from .llm import OllamaGenerator, build_messages, build_system_prompt
from .memory import InMemoryConversationStore
from .models import (
    ConversationTurn,
    GenerationRequest,
    MemorySearchResult,
    Message,
    PipelineState,
    PipelineStatus,
    TranscriptionEvent,
    TurnEvent,
    TurnEventKind,
    TurnState,
    Utterance,
)
from .playback import AudioChunkQueue, PlaybackDriver
from .tts import EdgeTTSSynthesizer, SimpleAudioPlayer
from .turns import TurnProcessor

__version__ = "1.0.0"
__all__ = [
    'PipelineController',
    'run',
    'main',
    'Config',
    'default_config',
    'UtteranceAccumulator',
    'TurnProcessor',
    'AudioChunkQueue',
    'PlaybackDriver',
    'LoopClock',
    'ManualClock',
    'WhisperLiveTranscriber',
    'MicrophoneStream',
    'OllamaGenerator',
    'build_messages',
    'build_system_prompt',
    'EdgeTTSSynthesizer',
    'SimpleAudioPlayer',
    'InMemoryConversationStore',
    'TranscriptionEvent',
    'Utterance',
    'ConversationTurn',
    'TurnState',
    'TurnEvent',
    'TurnEventKind',
    'PipelineState',
    'PipelineStatus',
    'Message',
    'MemorySearchResult',
    'GenerationRequest',
    'PipelineError',
    'TranscriptionError',
    'RetrievalError',
    'GenerationError',
    'SynthesisError',
    'PersistenceError',
    'PlaybackError',
]
