#!/usr/bin/env python3
"""
Ordered playback of streamed synthesis audio.
"""

import asyncio
import collections
import logging
from typing import Deque, Optional

from .errors import PlaybackError
from .interfaces import AudioPlayer

logger = logging.getLogger(__name__)


class AudioChunkQueue:
    """FIFO of encoded audio chunks awaiting playback."""

    def __init__(self):
        self._chunks: Deque[bytes] = collections.deque()

    def append(self, chunk: bytes):
        self._chunks.append(chunk)

    def popleft(self) -> bytes:
        return self._chunks.popleft()

    def clear(self):
        self._chunks.clear()

    def __len__(self) -> int:
        return len(self._chunks)

    def __bool__(self) -> bool:
        return bool(self._chunks)


class PlaybackDriver:
    """Drains an AudioChunkQueue one chunk at a time, in arrival order.

    A drain task is started by ``enqueue`` when idle and runs until the queue is
    empty; chunks enqueued meanwhile are picked up by the same loop.
    """

    def __init__(self, player: AudioPlayer, queue: Optional[AudioChunkQueue] = None):
        self.player = player
        self.queue = queue if queue is not None else AudioChunkQueue()
        self._task: Optional[asyncio.Task] = None
        self._playing = False

    @property
    def is_playing(self) -> bool:
        return self._playing

    def enqueue(self, chunk: bytes):
        self.queue.append(chunk)
        if not self._playing:
            self._playing = True
            self._task = asyncio.create_task(self._drain())

    async def _drain(self):
        try:
            while self.queue:
                chunk = self.queue.popleft()
                try:
                    await self.player.play(chunk)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    err = PlaybackError(f"Failed to play {len(chunk)} byte chunk: {e}")
                    logger.error("[Playback Error] %s", err, exc_info=e)
                    continue
                logger.debug("Played %d byte chunk (%d queued)", len(chunk), len(self.queue))
        finally:
            if self._task is asyncio.current_task():
                self._playing = False
                self._task = None

    def stop(self):
        """Drop queued audio and go idle without waiting for the current chunk."""
        self.queue.clear()
        task, self._task = self._task, None
        self._playing = False
        if task is not None and not task.done():
            task.cancel()
        try:
            self.player.stop()
        except Exception as e:
            logger.warning("Audio player stop failed: %s", e)

    async def wait_idle(self):
        """Wait until every queued chunk has been played (or playback stopped)."""
        while self._task is not None:
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
            if self._task is task:
                break

    async def close(self):
        self.stop()
