"""Voice connection lifecycle for a single guild."""

from __future__ import annotations

import asyncio
from typing import Any

import discord

from services.common.structured_logging import get_logger

from .domain import TrackSummary
from .engine import AudioEngine
from .errors import ConnectionTimeoutError


class GuildAudioManager:
    """Owns one guild's voice session and delegates playback to its engine."""

    def __init__(
        self,
        guild_id: str,
        engine: AudioEngine,
        *,
        connect_timeout: float = 20.0,
    ) -> None:
        self.guild_id = guild_id
        self._engine = engine
        self._connect_timeout = connect_timeout
        self._voice: discord.VoiceClient | None = None
        self._channel_id: str | None = None
        self._channel_label: str | None = None
        self._track: TrackSummary | None = None
        self._logger = get_logger(__name__, guild_id=guild_id, service_name="soundboard")

    @property
    def engine(self) -> AudioEngine:
        return self._engine

    @property
    def voice_client(self) -> discord.VoiceClient | None:
        return self._voice

    @property
    def connected(self) -> bool:
        return self._voice is not None and bool(self._voice.is_connected())

    @property
    def channel_id(self) -> str | None:
        return self._channel_id

    @property
    def channel_label(self) -> str | None:
        return self._channel_label

    @property
    def track(self) -> TrackSummary | None:
        # a failed decode ends the music slot without going through stop_music
        if not self._engine.music_playing:
            return None
        return self._track

    @property
    def is_idle(self) -> bool:
        return not (self.connected and self._engine.is_active)

    async def connect(self, channel: Any) -> discord.VoiceClient:
        """Join ``channel``, replacing any session in another channel.

        Raises:
            ConnectionTimeoutError: the session was not ready within the timeout
        """
        channel_id = str(channel.id)
        if self.connected and self._channel_id == channel_id:
            self._channel_label = channel.name
            self._logger.debug("voice.already_connected", channel_id=channel_id)
            return self._voice

        if self._voice is not None:
            self._logger.info(
                "voice.switching_channel",
                from_channel_id=self._channel_id,
                to_channel_id=channel_id,
            )
            await self._teardown_voice()

        self._logger.info(
            "voice.connect_starting",
            channel_id=channel_id,
            channel_name=channel.name,
            timeout=self._connect_timeout,
        )
        try:
            voice = await asyncio.wait_for(
                channel.connect(
                    timeout=self._connect_timeout,
                    reconnect=True,
                    self_deaf=False,
                ),
                timeout=self._connect_timeout,
            )
        except TimeoutError as exc:
            self._logger.error(
                "voice.connect_timeout",
                channel_id=channel_id,
                timeout=self._connect_timeout,
            )
            await self._cleanup_failed_connect(channel)
            raise ConnectionTimeoutError(
                self.guild_id, channel_id, self._connect_timeout
            ) from exc
        except Exception as exc:
            self._logger.error(
                "voice.connect_failed",
                channel_id=channel_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self._cleanup_failed_connect(channel)
            raise

        self._voice = voice
        self._channel_id = channel_id
        self._channel_label = channel.name
        voice.play(self._engine.output)
        self._logger.info("voice.connected", channel_id=channel_id)
        return voice

    async def disconnect(self) -> None:
        if self._voice is None:
            return
        self.stop_music()
        await self._teardown_voice()
        self._logger.info("voice.disconnected")

    async def destroy(self) -> None:
        self.stop_music()
        await self._teardown_voice()
        self._engine.destroy()
        self._logger.debug("manager.destroyed")

    def play_music(self, file_path: str, track: TrackSummary) -> None:
        self._engine.play_music(file_path)
        self._track = track

    def stop_music(self) -> None:
        self._engine.stop_music()
        self._track = None

    def play_effect(self, file_path: str) -> None:
        self._engine.play_effect(file_path)

    async def _teardown_voice(self) -> None:
        voice = self._voice
        self._voice = None
        self._channel_id = None
        self._channel_label = None
        if voice is None:
            return
        voice.stop()
        try:
            await voice.disconnect(force=True)
        except Exception as exc:
            self._logger.warning(
                "voice.disconnect_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _cleanup_failed_connect(self, channel: Any) -> None:
        """Drop a half-open session left behind by a failed connect."""
        guild = getattr(channel, "guild", None)
        voice = getattr(guild, "voice_client", None) if guild is not None else None
        if voice is None:
            return
        try:
            await voice.disconnect(force=True)
        except Exception as exc:
            self._logger.warning(
                "voice.cleanup_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )


__all__ = ["GuildAudioManager"]
