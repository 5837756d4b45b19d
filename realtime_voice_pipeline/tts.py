#!/usr/bin/env python3
"""
Speech synthesis and audio playback for the Realtime Voice Pipeline.
"""

import asyncio
import io
import sys
from typing import AsyncGenerator, Optional

from .config import default_config


class EdgeTTSSynthesizer:
    """Edge TTS synthesizer; yields MP3 chunks as the service streams them."""

    def __init__(self, config=None, voice=None):
        self.config = config or default_config
        self.voice = voice or self.config.voice_name or 'en-US-JennyNeural'
        try:
            import edge_tts  # noqa: F401
        except ImportError:
            print("[EdgeTTSSynthesizer] Missing packages. Install: pip install edge-tts", file=sys.stderr)
            raise

    async def stream(self, text: str) -> AsyncGenerator[bytes, None]:
        import edge_tts
        communicate = edge_tts.Communicate(text, voice=self.voice)
        async for chunk in communicate.stream():
            if chunk["type"] == "audio" and chunk["data"]:
                yield chunk["data"]


class SimpleAudioPlayer:
    """Plays one encoded chunk at a time.

    Uses pydub to decode (ffmpeg underneath) and simpleaudio to play; both block,
    so they run in worker threads and ``play`` returns once the chunk finished.
    """

    def __init__(self, config=None, audio_format: str = "mp3"):
        self.config = config or default_config
        self.audio_format = audio_format
        self._play_obj = None
        try:
            import pydub  # noqa: F401
            import simpleaudio  # noqa: F401
        except ImportError:
            print("[SimpleAudioPlayer] Missing packages. Install: pip install pydub simpleaudio", file=sys.stderr)
            raise

    def _decode(self, chunk: bytes):
        from pydub import AudioSegment
        audio_seg = AudioSegment.from_file(io.BytesIO(chunk), format=self.audio_format)
        return audio_seg.set_frame_rate(self.config.playback_sample_rate).set_channels(1).set_sample_width(2)

    async def play(self, chunk: bytes):
        import simpleaudio as sa
        audio_seg = await asyncio.to_thread(self._decode, chunk)
        if not len(audio_seg.raw_data):
            return
        play_obj = sa.play_buffer(
            audio_seg.raw_data, num_channels=1, bytes_per_sample=2, sample_rate=audio_seg.frame_rate
        )
        self._play_obj = play_obj
        try:
            await asyncio.to_thread(play_obj.wait_done)
        finally:
            if self._play_obj is play_obj:
                self._play_obj = None

    def stop(self):
        play_obj: Optional[object] = self._play_obj
        self._play_obj = None
        if play_obj is not None:
            play_obj.stop()
