#!/usr/bin/env python3
"""
Exception hierarchy for the Realtime Voice Pipeline.

Every error handed to an ``on_error`` callback is a PipelineError; the underlying
collaborator exception is kept as ``__cause__``.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    stage = "pipeline"


class TranscriptionError(PipelineError):
    """Microphone or live transcription stream failure (input error)."""

    stage = "transcription"


class RetrievalError(PipelineError):
    """Recent context or memory search failed; the turn is aborted."""

    stage = "retrieval"


class GenerationError(PipelineError):
    """Text generation failed or stalled; the turn is aborted."""

    stage = "generation"


class SynthesisError(PipelineError):
    """Speech synthesis failed or stalled; already delivered text stands."""

    stage = "synthesis"


class PersistenceError(PipelineError):
    """Storing a message failed. Logged only, never surfaced to the caller."""

    stage = "persistence"


class PlaybackError(PipelineError):
    """Decoding or playing one audio chunk failed. Logged per chunk."""

    stage = "playback"
