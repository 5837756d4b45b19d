"""End-to-end tests for the pipeline controller with fake collaborators."""

from __future__ import annotations

import asyncio
import logging

import pytest

from fakes import FakeGenerator, FakeMemory, FakePlayer, FakeSynthesizer, FakeTranscriber, settle
from realtime_voice_pipeline.clock import ManualClock
from realtime_voice_pipeline.config import Config
from realtime_voice_pipeline.core import PipelineController
from realtime_voice_pipeline.errors import TranscriptionError
from realtime_voice_pipeline.models import PipelineStatus, TranscriptionEvent, TurnState


class Harness:
    def __init__(self, generator=None, synthesizer=None, transcriber=None, player=None, **config) -> None:
        self.clock = ManualClock()
        self.transcriber = transcriber or FakeTranscriber()
        self.generator = generator or FakeGenerator()
        self.synthesizer = synthesizer or FakeSynthesizer()
        self.memory = FakeMemory()
        self.player = player or FakePlayer()
        self.pipeline = PipelineController(
            transcriber=self.transcriber,
            generator=self.generator,
            synthesizer=self.synthesizer,
            memory=self.memory,
            player=self.player,
            config=Config(**config),
            clock=self.clock,
        )
        self.transcripts = []
        self.partials = []
        self.errors = []
        self.pipeline.on_transcript(lambda text, is_final: self.transcripts.append((text, is_final)))
        self.pipeline.on_response_partial(self.partials.append)
        self.pipeline.on_error(self.errors.append)

    @property
    def inputs(self):
        return [request.messages[-1].content for request in self.generator.requests]


@pytest.mark.asyncio
async def test_start_and_stop_transitions() -> None:
    h = Harness()
    assert h.pipeline.status is PipelineStatus.IDLE

    assert await h.pipeline.start() is True
    assert h.pipeline.status is PipelineStatus.LISTENING
    assert h.transcriber.started == 1

    await h.pipeline.stop()
    assert h.pipeline.status is PipelineStatus.IDLE
    assert h.transcriber.stopped == ["handle-1"]

    await h.pipeline.start()
    assert h.transcriber.started == 2


@pytest.mark.asyncio
async def test_audio_forwarded_only_while_listening() -> None:
    h = Harness()

    h.pipeline.send_audio_chunk(b"before")
    await h.pipeline.start()
    h.pipeline.send_audio_chunk(b"during")
    await h.pipeline.stop()
    h.pipeline.send_audio_chunk(b"after")

    assert h.transcriber.chunks == [b"during"]


@pytest.mark.asyncio
async def test_partial_and_final_become_one_turn() -> None:
    h = Harness()
    await h.pipeline.start()

    h.transcriber.emit("my", False)
    h.transcriber.emit("My name is Clemens", True)
    h.clock.advance(1.0)
    turn = await h.pipeline.join_turn()
    await h.pipeline.playback.wait_idle()

    assert h.inputs == ["My name is Clemens"]
    assert h.transcripts == [("my", False), ("My name is Clemens", True)]
    assert h.partials == ["Hello", "Hello there", "Hello there!"]
    assert turn.state is TurnState.COMPLETED
    assert h.player.played == ["A", "B", "C"]
    assert not h.pipeline.state.is_processing_turn


@pytest.mark.asyncio
async def test_finals_within_window_debounce() -> None:
    h = Harness()
    await h.pipeline.start()

    h.transcriber.emit("Hello", True)
    h.clock.advance(0.5)
    h.transcriber.emit("world", True)
    h.clock.advance(1.0)
    await h.pipeline.join_turn()
    h.clock.advance(5)
    await settle()

    assert h.inputs == ["Hello world"]


@pytest.mark.asyncio
async def test_speech_during_busy_turn_is_answered_afterwards() -> None:
    gate = asyncio.Event()
    h = Harness(generator=FakeGenerator(gate=gate))
    await h.pipeline.start()

    h.transcriber.emit("What's the weather?", True)
    h.clock.advance(1.0)
    await h.generator.started.wait()
    assert h.pipeline.state.is_processing_turn

    h.transcriber.emit("And tomorrow?", True)
    h.clock.advance(1.0)
    assert h.pipeline.accumulator.text == "And tomorrow?"
    assert h.inputs == ["What's the weather?"]

    h.generator.gate = None
    gate.set()
    await h.pipeline.join_turn()
    assert h.pipeline.accumulator.pending

    h.clock.advance(1.0)
    await h.pipeline.join_turn()

    assert h.inputs == ["What's the weather?", "And tomorrow?"]


@pytest.mark.asyncio
async def test_stop_mid_generation_discards_turn_without_error() -> None:
    gate = asyncio.Event()
    h = Harness(generator=FakeGenerator(gate=gate))
    await h.pipeline.start()

    h.transcriber.emit("Tell me a story", True)
    h.clock.advance(1.0)
    await h.generator.started.wait()

    await h.pipeline.stop()
    assert not h.pipeline.state.is_playing_audio
    assert not h.pipeline.state.silence_timer_pending

    gate.set()
    turn = await h.pipeline.join_turn()
    await settle()

    assert turn.state is TurnState.DISCARDED
    assert h.partials == []
    assert h.errors == []
    assert h.player.log == []
    assert not h.pipeline.state.is_processing_turn


@pytest.mark.asyncio
async def test_stop_clears_queued_audio_and_pending_window() -> None:
    hold = asyncio.Event()
    h = Harness(player=FakePlayer(hold=hold))
    await h.pipeline.start()

    h.transcriber.emit("Read the news", True)
    h.clock.advance(1.0)
    await h.pipeline.join_turn()
    await settle()
    assert h.pipeline.state.is_playing_audio
    assert h.player.log == ["start:A"]

    h.transcriber.emit("never mind", True)
    assert h.pipeline.state.silence_timer_pending

    await h.pipeline.stop()
    hold.set()
    await settle()

    assert not h.pipeline.state.is_playing_audio
    assert not h.pipeline.state.silence_timer_pending
    assert len(h.pipeline.playback.queue) == 0
    assert h.player.played == []
    h.clock.advance(5)
    assert h.inputs == ["Read the news"]


@pytest.mark.asyncio
async def test_transcription_error_is_reported_and_pipeline_keeps_listening() -> None:
    h = Harness()
    await h.pipeline.start()

    h.transcriber.fail(ConnectionResetError("socket closed"))

    assert len(h.errors) == 1
    assert isinstance(h.errors[0], TranscriptionError)
    assert h.pipeline.status is PipelineStatus.LISTENING


@pytest.mark.asyncio
async def test_failed_start_reports_error_and_stays_idle() -> None:
    h = Harness(transcriber=FakeTranscriber(fail_start=OSError("no network")))

    assert await h.pipeline.start() is False

    assert h.pipeline.status is PipelineStatus.IDLE
    assert isinstance(h.errors[0], TranscriptionError)


@pytest.mark.asyncio
async def test_events_from_previous_session_are_ignored() -> None:
    h = Harness()
    await h.pipeline.start()
    stale_emit = h.transcriber.on_event
    await h.pipeline.stop()
    await h.pipeline.start()

    stale_emit(TranscriptionEvent(text="ghost", is_final=True))

    assert h.pipeline.accumulator.text == ""
    assert h.transcripts == []


@pytest.mark.asyncio
async def test_reset_drops_retained_text_and_restarts() -> None:
    h = Harness()
    await h.pipeline.start()
    h.transcriber.emit("half a thought", True)
    session = h.pipeline.session

    await h.pipeline.reset()

    assert h.pipeline.listening
    assert h.pipeline.session > session
    assert h.pipeline.accumulator.text == ""
    h.clock.advance(5)
    assert h.generator.requests == []


@pytest.mark.asyncio
async def test_retargeting_user_and_conversation() -> None:
    h = Harness()
    await h.pipeline.start()
    h.pipeline.set_user_id("clemens")
    h.pipeline.set_conversation_id("kitchen")

    h.transcriber.emit("Remember the oven", True)
    h.clock.advance(1.0)
    await h.pipeline.join_turn()
    await h.pipeline.turns.wait_persisted()

    assert h.memory.searches[0][1] == "clemens"
    assert h.memory.appended[0] == ("kitchen", "user", "Remember the oven")


@pytest.mark.asyncio
async def test_pipelines_do_not_share_state() -> None:
    first = Harness()
    second = Harness()
    await first.pipeline.start()

    first.pipeline.set_user_id("someone-else")

    assert second.pipeline.config.user_id == "default"
    assert second.pipeline.state.session == 0
    assert first.pipeline.state.session == 1


@pytest.mark.asyncio
async def test_failing_partial_callback_is_logged_and_next_turn_runs(caplog) -> None:
    h = Harness()
    calls = []

    def broken_partial(text):
        calls.append(text)
        if len(calls) == 1:
            raise ValueError("ui bug")

    h.pipeline.on_response_partial(broken_partial)
    await h.pipeline.start()

    with caplog.at_level(logging.ERROR, logger="realtime_voice_pipeline.core"):
        h.transcriber.emit("First question", True)
        h.clock.advance(1.0)
        turn = await h.pipeline.join_turn()

    assert turn is None
    assert "callback failed" in caplog.text
    assert not h.pipeline.state.is_processing_turn

    h.transcriber.emit("Second question", True)
    h.clock.advance(1.0)
    turn = await h.pipeline.join_turn()

    assert turn.state is TurnState.COMPLETED
    assert h.inputs == ["First question", "Second question"]
