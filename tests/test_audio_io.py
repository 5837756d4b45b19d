"""Tests for the audio player and microphone capture with the device layer stubbed out."""

from __future__ import annotations

import asyncio
import threading
from types import SimpleNamespace

import pytest

from realtime_voice_pipeline.config import Config
from realtime_voice_pipeline.detection import MicrophoneStream
from realtime_voice_pipeline.tts import SimpleAudioPlayer


class FakeSegment:
    decoded = []

    def __init__(self, raw_data: bytes, frame_rate: int = 44100) -> None:
        self.raw_data = raw_data
        self.frame_rate = frame_rate

    @classmethod
    def from_file(cls, fileobj, format):
        data = fileobj.read()
        cls.decoded.append((data, format))
        return cls(b"" if data == b"silent" else data * 2)

    def set_frame_rate(self, rate):
        self.frame_rate = rate
        return self

    def set_channels(self, channels):
        return self

    def set_sample_width(self, width):
        return self


class FakePlayObject:
    def __init__(self) -> None:
        self.finished = threading.Event()
        self.stopped = False

    def wait_done(self):
        self.finished.wait(timeout=5)

    def stop(self):
        self.stopped = True
        self.finished.set()


@pytest.fixture
def audio_backend(monkeypatch):
    pydub = pytest.importorskip("pydub")
    simpleaudio = pytest.importorskip("simpleaudio")
    played = []

    def play_buffer(data, num_channels, bytes_per_sample, sample_rate):
        play_obj = FakePlayObject()
        played.append((data, num_channels, bytes_per_sample, sample_rate, play_obj))
        return play_obj

    FakeSegment.decoded = []
    monkeypatch.setattr(pydub, "AudioSegment", FakeSegment)
    monkeypatch.setattr(simpleaudio, "play_buffer", play_buffer)
    return played


async def wait_for(condition, rounds: int = 200) -> None:
    for _ in range(rounds):
        if condition():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition never became true")


@pytest.mark.asyncio
async def test_player_decodes_and_plays_chunk(audio_backend) -> None:
    player = SimpleAudioPlayer(Config(playback_sample_rate=22050))

    task = asyncio.create_task(player.play(b"mp3"))
    await wait_for(lambda: audio_backend)
    audio_backend[0][4].finished.set()
    await task

    assert FakeSegment.decoded == [(b"mp3", "mp3")]
    data, channels, width, rate, _ = audio_backend[0]
    assert (data, channels, width, rate) == (b"mp3mp3", 1, 2, 22050)
    assert player._play_obj is None


@pytest.mark.asyncio
async def test_player_skips_empty_audio(audio_backend) -> None:
    player = SimpleAudioPlayer()

    await player.play(b"silent")

    assert audio_backend == []


@pytest.mark.asyncio
async def test_player_stop_halts_current_chunk(audio_backend) -> None:
    player = SimpleAudioPlayer()

    task = asyncio.create_task(player.play(b"long"))
    await wait_for(lambda: audio_backend)
    player.stop()
    await asyncio.wait_for(task, timeout=5)

    assert audio_backend[0][4].stopped
    player.stop()


class FakeRawInputStream:
    created = []

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.events = []
        FakeRawInputStream.created.append(self)

    def start(self):
        self.events.append("start")

    def stop(self):
        self.events.append("stop")

    def close(self):
        self.events.append("close")


@pytest.fixture
def sounddevice(monkeypatch):
    try:
        import sounddevice as sd
    except (ImportError, OSError):
        pytest.skip("sounddevice/PortAudio unavailable")
    FakeRawInputStream.created = []
    monkeypatch.setattr(sd, "RawInputStream", FakeRawInputStream)
    return sd


@pytest.mark.asyncio
async def test_microphone_delivers_chunks_on_the_loop(sounddevice) -> None:
    config = Config(frame_ms=20)
    chunks = []
    mic = MicrophoneStream(chunks.append, config)

    await mic.start()
    await mic.start()
    stream = FakeRawInputStream.created[0]
    assert len(FakeRawInputStream.created) == 1
    assert stream.kwargs["samplerate"] == 16000
    assert stream.kwargs["blocksize"] == config.frame_samples
    assert stream.kwargs["dtype"] == "int16"

    stream.callback(b"\x01\x02", 1, None, SimpleNamespace(input_overflow=False))
    stream.callback(b"\x03\x04", 1, None, SimpleNamespace(input_overflow=True))
    await asyncio.sleep(0)

    assert chunks == [b"\x01\x02", b"\x03\x04"]
    assert mic.overflows == 1

    await mic.stop()
    assert stream.events == ["start", "stop", "close"]
    assert mic.stream is None
