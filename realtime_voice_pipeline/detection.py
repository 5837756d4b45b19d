#!/usr/bin/env python3
"""
Live transcription and microphone capture for the Realtime Voice Pipeline.
"""

import asyncio
import itertools
import logging
import sys
from typing import Callable, List, Optional

import numpy as np

from .config import default_config
from .errors import TranscriptionError
from .models import TranscriptionEvent

logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


class TranscriptionHandle:
    """Identifies one live transcription stream."""

    def __init__(self, on_event, on_error):
        self.id = next(_handle_ids)
        self.on_event = on_event
        self.on_error = on_error
        self.frames: asyncio.Queue = asyncio.Queue(maxsize=500)
        self.task: Optional[asyncio.Task] = None
        self.closed = False

    def __repr__(self):
        return f"<TranscriptionHandle {self.id}{' closed' if self.closed else ''}>"


def pcm16_to_float32(frames: List[bytes]) -> np.ndarray:
    pcm = b''.join(frames)
    return np.frombuffer(pcm, dtype=np.int16).astype(np.float32) / 32768.0


class WhisperLiveTranscriber:
    """Push-based live transcription using WebRTC VAD and faster-whisper.

    Logic:
      - Raw PCM16 chunks from ``send_audio_chunk`` are cut into VAD-sized frames.
      - A segment starts after MIN_VOICED_FRAMES consecutive voiced frames.
      - While the segment grows, an interim (partial) transcript is produced every
        PARTIAL_INTERVAL_FRAMES frames.
      - TRAILING_SILENCE_FRAMES consecutive silent frames end the segment and its
        final transcript is emitted with ``is_final=True``.
    """

    def __init__(self, config=None, model=None, vad=None):
        self.config = config or default_config
        self.model = model
        self.vad = vad
        self._handle: Optional[TranscriptionHandle] = None
        self._pending = bytearray()

    def _load_model(self):
        from faster_whisper import WhisperModel
        logger.info("Loading whisper model %s (%s)", self.config.whisper_model, self.config.whisper_compute)
        return WhisperModel(self.config.whisper_model, device=self.config.whisper_compute)

    def _load_vad(self):
        import webrtcvad
        return webrtcvad.Vad(self.config.vad_aggressiveness)

    async def start_live_transcription(self, on_event: Callable[[TranscriptionEvent], None],
                                       on_error: Callable[[BaseException], None]) -> TranscriptionHandle:
        if self._handle is not None:
            await self.stop(self._handle)
        try:
            if self.vad is None:
                self.vad = self._load_vad()
            if self.model is None:
                self.model = await asyncio.to_thread(self._load_model)
        except Exception as e:
            raise TranscriptionError(f"Failed to start live transcription: {e}") from e
        handle = TranscriptionHandle(on_event, on_error)
        handle.task = asyncio.create_task(self._run(handle))
        self._handle = handle
        self._pending.clear()
        logger.info("Live transcription started %r", handle)
        return handle

    def send_audio_chunk(self, chunk: bytes):
        handle = self._handle
        if handle is None or handle.closed:
            return
        self._pending.extend(chunk)
        size = self.config.frame_bytes
        while len(self._pending) >= size:
            frame = bytes(self._pending[:size])
            del self._pending[:size]
            try:
                handle.frames.put_nowait(frame)
            except asyncio.QueueFull:
                # Drop old frames to prevent memory buildup
                try:
                    handle.frames.get_nowait()
                    handle.frames.put_nowait(frame)
                except asyncio.QueueEmpty:
                    pass

    async def stop(self, handle: Optional[TranscriptionHandle]):
        if handle is None or handle.closed:
            return
        handle.closed = True
        if self._handle is handle:
            self._handle = None
            self._pending.clear()
        if handle.task is not None:
            handle.task.cancel()
            try:
                await handle.task
            except asyncio.CancelledError:
                pass
        logger.info("Live transcription stopped %r", handle)

    def transcribe(self, audio: np.ndarray) -> str:
        segments, _info = self.model.transcribe(audio, language="en", beam_size=1, vad_filter=False)
        return ''.join(segment.text for segment in segments).strip()

    def _is_speech(self, frame: bytes) -> bool:
        try:
            return self.vad.is_speech(frame, self.config.sample_rate)
        except Exception:
            # If VAD fails (rare), treat as silence
            return False

    async def _emit(self, handle: TranscriptionHandle, collected: List[bytes], is_final: bool) -> str:
        try:
            text = await asyncio.to_thread(self.transcribe, pcm16_to_float32(collected))
        except Exception as e:
            err = TranscriptionError(f"Transcription failed: {e}")
            err.__cause__ = e
            logger.error("[STT Error] %s", err)
            handle.on_error(err)
            return ''
        if text and not handle.closed:
            try:
                handle.on_event(TranscriptionEvent(text=text, is_final=is_final))
            except Exception as e:
                err = TranscriptionError(f"Transcript handler failed: {e}")
                err.__cause__ = e
                logger.error("[STT Error] %s", err)
                handle.on_error(err)
        return text

    async def _run(self, handle: TranscriptionHandle):
        started = False
        voiced_count = 0
        silence_count = 0
        since_partial = 0
        collected: List[bytes] = []
        while True:
            frame = await handle.frames.get()
            is_speech = self._is_speech(frame)
            if not started:
                if is_speech:
                    voiced_count += 1
                    collected.append(frame)
                    if voiced_count >= self.config.min_voiced_frames:
                        started = True
                        silence_count = 0
                        since_partial = 0
                else:
                    # Reset (noise or short blips)
                    voiced_count = 0
                    collected.clear()
                continue
            # After started
            collected.append(frame)
            since_partial += 1
            if is_speech:
                silence_count = 0
            else:
                silence_count += 1
                if silence_count >= self.config.trailing_silence_frames:
                    # Remove trailing silence frames for cleaner STT input
                    await self._emit(handle, collected[:-silence_count] or collected, is_final=True)
                    started = False
                    voiced_count = 0
                    silence_count = 0
                    collected = []
                    continue
            if since_partial >= self.config.partial_interval_frames:
                since_partial = 0
                await self._emit(handle, collected, is_final=False)


class MicrophoneStream:
    """Captures PCM16 mono audio with sounddevice and hands chunks to ``on_chunk``.

    The sounddevice callback runs on PortAudio's thread, so chunks are delivered
    on the event loop via ``call_soon_threadsafe``.
    """

    def __init__(self, on_chunk: Callable[[bytes], None], config=None):
        self.config = config or default_config
        self.on_chunk = on_chunk
        self.stream = None
        self.overflows = 0

    async def start(self):
        if self.stream is not None:
            return  # Already recording
        try:
            import sounddevice as sd
        except (ImportError, OSError):
            print("[MicrophoneStream] sounddevice/PortAudio unavailable. Install: pip install sounddevice", file=sys.stderr)
            raise
        loop = asyncio.get_running_loop()

        def audio_callback(indata, frames, time_info, status):
            if status.input_overflow:
                self.overflows += 1  # We tolerate overflow; frames still usable.
            loop.call_soon_threadsafe(self.on_chunk, bytes(indata))

        self.stream = sd.RawInputStream(
            samplerate=self.config.sample_rate,
            blocksize=self.config.frame_samples,
            channels=1,
            dtype='int16',
            callback=audio_callback,
        )
        self.stream.start()

    async def stop(self):
        if self.stream is not None:
            self.stream.stop()
            self.stream.close()
            self.stream = None
