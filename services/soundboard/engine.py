"""Per-guild audio engine: one looping music slot plus one-shot effects."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import partial

from services.common.structured_logging import get_logger

from .mixer import MixBus, MixChannel, MixedOutput
from .transcoder import Transcoder, TranscoderEvent, TranscoderHandle


class StreamKind(Enum):
    MUSIC = "music"
    EFFECT = "effect"


class StreamState(Enum):
    PLAYING = "playing"
    ENDED = "ended"


@dataclass(eq=False, slots=True)
class ActiveStream:
    """A decode pipeline feeding one mix channel."""

    kind: StreamKind
    file_path: str
    volume: int
    loop: bool
    channel: MixChannel
    handle: TranscoderHandle | None = None
    state: StreamState = StreamState.PLAYING


class AudioEngine:
    """Mixes a looping background track with transient sound effects.

    The engine owns a :class:`MixBus` and the single :class:`MixedOutput`
    that voice sessions subscribe to. Each stream moves from ``PLAYING`` to
    ``ENDED`` exactly once; its mix channel is destroyed on that transition.
    A terminal decoder event for a stream that already ended is ignored, so
    an explicit stop racing a natural end cannot spawn or destroy twice.
    """

    def __init__(
        self,
        transcoder: Transcoder | None = None,
        *,
        music_volume: int = 85,
        effects_volume: int = 90,
        guild_id: str | None = None,
    ) -> None:
        self._transcoder = transcoder or Transcoder()
        self.music_volume = music_volume
        self.effects_volume = effects_volume
        self._bus = MixBus()
        self._output = MixedOutput(self._bus)
        self._background: ActiveStream | None = None
        self._effects: set[ActiveStream] = set()
        self._destroyed = False
        self._logger = get_logger(__name__, guild_id=guild_id, service_name="soundboard")

    @property
    def output(self) -> MixedOutput:
        return self._output

    @property
    def bus(self) -> MixBus:
        return self._bus

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def music_playing(self) -> bool:
        return self._background is not None

    @property
    def music_file(self) -> str | None:
        return self._background.file_path if self._background else None

    @property
    def active_effects(self) -> int:
        return len(self._effects)

    @property
    def is_active(self) -> bool:
        return self._output.is_playing

    def play_music(self, file_path: str) -> None:
        """Loop ``file_path`` as background music, restarting from the top.

        Any current music stream is torn down first, even for the same file.
        """
        self._ensure_alive()
        self._stop_background()
        self._background = self._spawn(
            StreamKind.MUSIC, file_path, self.music_volume, loop=True
        )
        self._logger.info("engine.music_started", file_path=file_path)

    def stop_music(self) -> None:
        if self._background is None:
            return
        file_path = self._background.file_path
        self._stop_background()
        self._logger.info("engine.music_stopped", file_path=file_path)

    def play_effect(self, file_path: str) -> None:
        self._ensure_alive()
        stream = self._spawn(
            StreamKind.EFFECT, file_path, self.effects_volume, loop=False
        )
        self._effects.add(stream)
        self._logger.info("engine.effect_started", file_path=file_path)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._stop_background()
        for stream in list(self._effects):
            self._finish(stream)
        self._effects.clear()
        self._bus.destroy()
        self._output.stop()
        self._logger.debug("engine.destroyed")

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("Audio engine is destroyed")

    def _spawn(
        self, kind: StreamKind, file_path: str, volume: int, *, loop: bool
    ) -> ActiveStream:
        channel = self._bus.create_channel(volume)
        stream = ActiveStream(
            kind=kind,
            file_path=file_path,
            volume=volume,
            loop=loop,
            channel=channel,
        )
        try:
            stream.handle = self._transcoder.spawn(
                file_path, channel, partial(self._on_terminal, stream)
            )
        except Exception:
            stream.state = StreamState.ENDED
            channel.destroy()
            raise
        return stream

    def _finish(self, stream: ActiveStream) -> bool:
        """PLAYING -> ENDED: destroy the channel and stop the decoder."""
        if stream.state is StreamState.ENDED:
            return False
        stream.state = StreamState.ENDED
        stream.channel.destroy()
        if stream.handle is not None:
            stream.handle.terminate()
        return True

    def _stop_background(self) -> None:
        stream = self._background
        self._background = None
        if stream is not None:
            self._finish(stream)

    def _on_terminal(
        self,
        stream: ActiveStream,
        handle: TranscoderHandle,  # noqa: ARG002
        event: TranscoderEvent,
    ) -> None:
        if not self._finish(stream):
            return

        if stream.kind is StreamKind.EFFECT:
            self._effects.discard(stream)
            if event is TranscoderEvent.FAILED:
                self._logger.warning("engine.effect_failed", file_path=stream.file_path)
            else:
                self._logger.debug("engine.effect_finished", file_path=stream.file_path)
            return

        if stream is not self._background:
            return

        self._background = None
        if event is TranscoderEvent.FAILED:
            self._logger.warning("engine.music_failed", file_path=stream.file_path)
            return

        if not stream.loop or self._destroyed:
            self._logger.info("engine.music_finished", file_path=stream.file_path)
            return

        try:
            self._background = self._spawn(
                StreamKind.MUSIC, stream.file_path, stream.volume, loop=True
            )
        except Exception as exc:
            # runs from a decoder callback; nothing upstream can handle this
            self._logger.error(
                "engine.music_loop_failed",
                file_path=stream.file_path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        self._logger.debug("engine.music_looped", file_path=stream.file_path)


__all__ = [
    "ActiveStream",
    "AudioEngine",
    "StreamKind",
    "StreamState",
]
