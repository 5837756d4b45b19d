#!/usr/bin/env python3
"""
Utterance segmentation from a continuous transcription stream.
"""

import logging
from typing import Callable, List, Optional

from .clock import Clock, LoopClock, TimerHandle
from .config import default_config
from .models import TranscriptionEvent, Utterance

logger = logging.getLogger(__name__)


class UtteranceAccumulator:
    """Debounces finalized transcription segments into utterances.

    Logic:
      - Partial events are forwarded to ``on_transcript`` and never accumulate.
      - Every finalized event appends its text and restarts the silence window.
      - When the window elapses with non-empty text and no turn in progress, the
        joined text is emitted through ``on_utterance`` and the buffer cleared.
      - If a turn is in progress the text is retained; ``recheck()`` (or the next
        finalized event) arms a new window.
    """

    def __init__(
        self,
        config=None,
        clock: Optional[Clock] = None,
        is_busy: Optional[Callable[[], bool]] = None,
        on_utterance: Optional[Callable[[Utterance], None]] = None,
        on_transcript: Optional[Callable[[TranscriptionEvent], None]] = None,
    ):
        self.config = config or default_config
        self.clock = clock or LoopClock()
        self.is_busy = is_busy or (lambda: False)
        self.on_utterance = on_utterance
        self.on_transcript = on_transcript
        self._segments: List[str] = []
        self._timer: Optional[TimerHandle] = None

    @property
    def text(self) -> str:
        """Accumulated text, whitespace-joined and trimmed."""
        return ' '.join(s for s in self._segments if s).strip()

    @property
    def pending(self) -> bool:
        """True while a silence window is armed."""
        return self._timer is not None

    @property
    def deadline(self) -> Optional[float]:
        """Absolute clock time at which the armed window elapses."""
        return self._timer.when() if self._timer is not None else None

    def on_transcription_event(self, event: TranscriptionEvent):
        if self.on_transcript is not None:
            self.on_transcript(event)
        if not event.is_final:
            return
        self._segments.append(event.text.strip())
        self._arm()

    def recheck(self) -> bool:
        """Arm a fresh window for text retained while a turn was busy.

        Returns True when a window is pending afterwards.
        """
        if self._timer is None and self.text:
            self._arm()
        return self._timer is not None

    def cancel(self):
        """Cancel the pending window, keeping accumulated text."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def clear(self):
        """Cancel the pending window and drop accumulated text."""
        self.cancel()
        self._segments.clear()

    def _arm(self):
        self.cancel()
        self._timer = self.clock.call_later(self.config.silence_window_sec, self._on_silence)
        logger.debug("Silence window armed (deadline %.3f)", self._timer.when())

    def _on_silence(self):
        self._timer = None
        text = self.text
        if not text:
            self._segments.clear()
            return
        if self.is_busy():
            logger.debug("Turn in progress; retaining %d chars for later", len(text))
            return
        self._segments.clear()
        logger.info("Utterance complete: %r", text)
        if self.on_utterance is not None:
            self.on_utterance(Utterance(text=text))
