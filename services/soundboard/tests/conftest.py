"""Test fixtures for soundboard service tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, Mock

import numpy as np
import pytest

from services.soundboard.catalog import SoundLibrary
from services.soundboard.engine import AudioEngine
from services.soundboard.mixer import SAMPLES_PER_FRAME
from services.soundboard.registry import PlaybackRegistry
from services.soundboard.snapshots import MemorySnapshotStore
from services.soundboard.transcoder import TranscoderEvent


class FakeHandle:
    """Stands in for a running ffmpeg pipeline."""

    def __init__(self, file_path: str, sink: Any, on_terminal: Callable[..., None]) -> None:
        self.file_path = file_path
        self.sink = sink
        self.on_terminal = on_terminal
        self.terminate_calls = 0

    @property
    def terminated(self) -> bool:
        return self.terminate_calls > 0

    def terminate(self) -> None:
        self.terminate_calls += 1

    def finish(self, event: TranscoderEvent = TranscoderEvent.CLOSED) -> None:
        """Simulate the decoder reaching its terminal event."""
        self.on_terminal(self, event)


class FakeTranscoder:
    """Records every spawn instead of starting processes."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []

    def spawn(self, file_path: str, sink: Any, on_terminal: Callable[..., None]) -> FakeHandle:
        handle = FakeHandle(file_path, sink, on_terminal)
        self.handles.append(handle)
        return handle

    def spawned(self, file_path: str) -> list[FakeHandle]:
        return [handle for handle in self.handles if handle.file_path == file_path]


@pytest.fixture
def fake_transcoder() -> FakeTranscoder:
    return FakeTranscoder()


@pytest.fixture
def engine(fake_transcoder: FakeTranscoder) -> AudioEngine:
    audio_engine = AudioEngine(fake_transcoder, music_volume=85, effects_volume=90)
    yield audio_engine
    audio_engine.destroy()


@pytest.fixture
def pcm_frame() -> Callable[[int], bytes]:
    """One 20 ms frame where every sample has the given value."""

    def _frame(value: int) -> bytes:
        return np.full(SAMPLES_PER_FRAME, value, dtype="<i2").tobytes()

    return _frame


@pytest.fixture
def make_voice_channel() -> Callable[..., Mock]:
    """Build a discord-like voice channel whose connect() yields a mock voice client."""

    def _make(channel_id: int, name: str = "General", guild_id: int = 1) -> Mock:
        voice = Mock()
        voice.is_connected.return_value = True
        voice.disconnect = AsyncMock()
        guild = Mock()
        guild.id = guild_id
        guild.name = "Test Guild"
        guild.voice_client = None
        channel = Mock()
        channel.id = channel_id
        channel.name = name
        channel.guild = guild
        channel.connect = AsyncMock(return_value=voice)
        channel.voice = voice
        return channel

    return _make


@pytest.fixture
def sound_dirs(tmp_path: Path) -> tuple[Path, Path]:
    music_dir = tmp_path / "music"
    effects_dir = tmp_path / "effects"
    music_dir.mkdir()
    effects_dir.mkdir()
    (music_dir / "track.mp3").write_bytes(b"\x00" * 16)
    (music_dir / "epic-battle_theme.ogg").write_bytes(b"\x00" * 32)
    (effects_dir / "boom.wav").write_bytes(b"\x00" * 8)
    return music_dir, effects_dir


@pytest.fixture
def library(sound_dirs: tuple[Path, Path]) -> SoundLibrary:
    return SoundLibrary(*sound_dirs)


@pytest.fixture
def snapshot_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()


@pytest.fixture
def registry(
    library: SoundLibrary,
    snapshot_store: MemorySnapshotStore,
    fake_transcoder: FakeTranscoder,
) -> PlaybackRegistry:
    return PlaybackRegistry(
        library,
        snapshot_store,
        engine_factory=lambda guild_id: AudioEngine(fake_transcoder, guild_id=guild_id),
        connect_timeout=1.0,
    )
