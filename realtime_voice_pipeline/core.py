#!/usr/bin/env python3
"""
Core realtime voice pipeline implementation.
"""

import asyncio
import logging
import sys
from typing import Callable, Optional

from .accumulator import UtteranceAccumulator
from .clock import Clock
from .config import Config
from .errors import PipelineError, TranscriptionError
from .interfaces import AudioPlayer, Generator, MemoryStore, MessageStore, Synthesizer, Transcriber
from .models import ConversationTurn, PipelineState, PipelineStatus, TranscriptionEvent, Utterance
from .playback import PlaybackDriver
from .turns import TurnProcessor

logger = logging.getLogger(__name__)


class PipelineController:
    """
    Main realtime voice pipeline class.

    Wires microphone audio -> live transcription -> utterance segmentation ->
    single-flight turn processing -> ordered playback, and exposes the
    start/stop/reset lifecycle. All callbacks run on one event loop.
    """

    def __init__(
        self,
        transcriber: Transcriber,
        generator: Generator,
        synthesizer: Synthesizer,
        memory: MemoryStore,
        player: AudioPlayer,
        store: Optional[MessageStore] = None,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the pipeline; every pipeline gets its own state."""
        self.config = config or Config()
        self.transcriber = transcriber
        self.playback = PlaybackDriver(player)
        self.turns = TurnProcessor(
            generator, synthesizer, memory, store=store, playback=self.playback, config=self.config
        )
        self.accumulator = UtteranceAccumulator(
            self.config,
            clock=clock,
            is_busy=self._is_turn_active,
            on_utterance=self._on_utterance,
            on_transcript=self._forward_transcript,
        )
        self.status = PipelineStatus.IDLE
        self.session = 0
        self._handle = None
        self._turn_task: Optional[asyncio.Task] = None
        self._on_transcript: Optional[Callable[[str, bool], None]] = None
        self._on_response_partial: Optional[Callable[[str], None]] = None
        self._on_error: Optional[Callable[[BaseException], None]] = None

    # --- callback registration ---------------------------------------------

    def on_transcript(self, callback: Optional[Callable[[str, bool], None]]):
        """Register ``callback(text, is_final)`` for every transcription event."""
        self._on_transcript = callback

    def on_response_partial(self, callback: Optional[Callable[[str], None]]):
        """Register ``callback(response_so_far)``, called as generation streams."""
        self._on_response_partial = callback

    def on_error(self, callback: Optional[Callable[[BaseException], None]]):
        self._on_error = callback

    # --- lifecycle ----------------------------------------------------------

    @property
    def listening(self) -> bool:
        return self.status is PipelineStatus.LISTENING

    @property
    def state(self) -> PipelineState:
        return PipelineState(
            status=self.status,
            session=self.session,
            is_processing_turn=self._is_turn_active(),
            is_playing_audio=self.playback.is_playing,
            silence_timer_pending=self.accumulator.pending,
        )

    def is_live(self, session: Optional[int]) -> bool:
        return self.listening and session == self.session

    async def start(self) -> bool:
        """Idle -> Listening. Returns False (after reporting the error) if the stream could not open."""
        if self.listening:
            return True
        self.session += 1
        session = self.session
        try:
            self._handle = await self.transcriber.start_live_transcription(
                lambda event: self._handle_transcription(event, session),
                lambda error: self._handle_transcription_error(error, session),
            )
        except Exception as e:
            err = e if isinstance(e, PipelineError) else TranscriptionError(f"Could not start transcription: {e}")
            if err is not e:
                err.__cause__ = e
            logger.error("[STT Error] %s", err)
            self._report(err)
            return False
        self.status = PipelineStatus.LISTENING
        logger.info("Pipeline listening (session %d)", session)
        return True

    async def stop(self):
        """Listening -> Idle. Clears queued audio and the silence window; an in-flight turn is not awaited."""
        if not self.listening:
            return
        self.status = PipelineStatus.IDLE
        self.session += 1
        self.accumulator.clear()
        self.playback.stop()
        handle, self._handle = self._handle, None
        try:
            await self.transcriber.stop(handle)
        except Exception as e:
            logger.warning("Error closing transcription stream: %s", e)
        logger.info("Pipeline stopped")

    async def reset(self):
        """Drop all per-session state and, if listening, start a fresh session."""
        was_listening = self.listening
        await self.stop()
        self.accumulator.clear()
        self.playback.stop()
        self.session += 1
        if was_listening:
            await self.start()

    def send_audio_chunk(self, chunk: bytes):
        """Forward microphone audio to the transcriber while listening."""
        if self.listening:
            self.transcriber.send_audio_chunk(chunk)

    def set_user_id(self, user_id: str):
        self.config.user_id = user_id

    def set_conversation_id(self, conversation_id: Optional[str]):
        self.config.conversation_id = conversation_id

    async def join_turn(self) -> Optional[ConversationTurn]:
        """Wait for the in-flight turn (if any) and return it."""
        task = self._turn_task
        if task is None:
            return None
        return await asyncio.shield(task)

    async def close(self):
        await self.stop()
        await self.playback.close()
        await self.turns.close()

    # --- internals ----------------------------------------------------------

    def _is_turn_active(self) -> bool:
        return self.turns.busy or (self._turn_task is not None and not self._turn_task.done())

    def _report(self, error: BaseException):
        if self._on_error is not None:
            self._on_error(error)

    def _forward_transcript(self, event: TranscriptionEvent):
        if self._on_transcript is not None:
            self._on_transcript(event.text, event.is_final)

    def _handle_transcription(self, event: TranscriptionEvent, session: int):
        if not self.is_live(session):
            logger.debug("Ignoring transcript from stale session %d", session)
            return
        self.accumulator.on_transcription_event(event)

    def _handle_transcription_error(self, error: BaseException, session: int):
        if not self.is_live(session):
            return
        if not isinstance(error, PipelineError):
            wrapped = TranscriptionError(str(error))
            wrapped.__cause__ = error
            error = wrapped
        logger.error("[STT Error] %s", error)
        self._report(error)

    def _on_utterance(self, utterance: Utterance):
        self._turn_task = asyncio.create_task(self._run_turn(utterance, self.session))

    async def _run_turn(self, utterance: Utterance, session: int) -> Optional[ConversationTurn]:
        try:
            return await self.turns.process_utterance(
                utterance,
                session=session,
                is_live=self.is_live,
                on_partial=self._forward_partial,
                on_error=self._report,
            )
        except Exception as e:
            # host callback raised; aclosing already released the guard
            logger.error("[Turn Error] callback failed: %s", e, exc_info=e)
            return None
        finally:
            if self._turn_task is asyncio.current_task():
                self._turn_task = None
            if self.listening:
                self.accumulator.recheck()

    def _forward_partial(self, text: str):
        if self._on_response_partial is not None:
            self._on_response_partial(text)


async def run(config: Optional[Config] = None):
    """Run the pipeline against the microphone and speakers until interrupted."""
    from .detection import MicrophoneStream, WhisperLiveTranscriber
    from .llm import OllamaGenerator
    from .memory import InMemoryConversationStore
    from .tts import EdgeTTSSynthesizer, SimpleAudioPlayer

    config = config or Config()
    print("Booting realtime voice pipeline…")
    store = InMemoryConversationStore(config)
    pipeline = PipelineController(
        transcriber=WhisperLiveTranscriber(config),
        generator=OllamaGenerator(config),
        synthesizer=EdgeTTSSynthesizer(config),
        memory=store,
        player=SimpleAudioPlayer(config),
        config=config,
    )

    def show_transcript(text: str, is_final: bool):
        if is_final:
            print(f"You: {text}", flush=True)
        else:
            print(f"… {text}", end="\r", flush=True)

    def show_response(text: str):
        print(f"🤖 {text}", end="\r", flush=True)

    def show_error(error: BaseException):
        print(f"[{getattr(error, 'stage', 'pipeline')} error] {error}", file=sys.stderr)

    pipeline.on_transcript(show_transcript)
    pipeline.on_response_partial(show_response)
    pipeline.on_error(show_error)

    mic = MicrophoneStream(pipeline.send_audio_chunk, config)
    if not await pipeline.start():
        return
    await mic.start()
    print("🎤 Listening…", flush=True)
    try:
        await asyncio.Event().wait()
    finally:
        await mic.stop()
        await pipeline.close()
        print("\n🛑 Stopped listening.")


def main():
    """Console entry point."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        print("\nExiting…")
