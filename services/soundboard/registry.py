"""Process-wide guild -> playback manager registry."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from services.common.structured_logging import get_logger, guild_context

from .catalog import SoundLibrary
from .domain import GuildPlaybackState, PlayerSnapshot, SoundFile
from .engine import AudioEngine
from .errors import NotConnectedError
from .guild_audio import GuildAudioManager
from .snapshots import SnapshotStore


logger = get_logger(__name__, service_name="soundboard")

EngineFactory = Callable[[str], AudioEngine]


class PlaybackRegistry:
    """Entry point for the command and HTTP layers.

    Managers are created lazily by connect/play and removed by disconnect.
    Operations on one guild run one at a time behind a per-guild lock;
    different guilds proceed independently.
    """

    def __init__(
        self,
        library: SoundLibrary,
        snapshots: SnapshotStore,
        *,
        engine_factory: EngineFactory | None = None,
        connect_timeout: float = 20.0,
    ) -> None:
        self._library = library
        self._snapshots = snapshots
        self._engine_factory = engine_factory or (
            lambda guild_id: AudioEngine(guild_id=guild_id)
        )
        self._connect_timeout = connect_timeout
        self._managers: dict[str, GuildAudioManager] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @property
    def library(self) -> SoundLibrary:
        return self._library

    def get_manager(self, guild_id: str) -> GuildAudioManager | None:
        return self._managers.get(str(guild_id))

    def connected_channel_id(self, guild_id: str) -> str | None:
        manager = self._managers.get(str(guild_id))
        return manager.channel_id if manager else None

    async def connect(self, channel: Any) -> GuildAudioManager:
        guild_id = str(channel.guild.id)
        async with self._guild_lock(guild_id):
            manager = await self._connect_locked(guild_id, channel)
        logger.info(
            "player.connected",
            guild_id=guild_id,
            guild_name=getattr(channel.guild, "name", None),
            channel_name=channel.name,
        )
        return manager

    async def disconnect(self, guild_id: str) -> None:
        guild_id = str(guild_id)
        async with self._guild_lock(guild_id):
            manager = self._managers.pop(guild_id, None)
            if manager is None:
                logger.debug("player.disconnect_untracked", guild_id=guild_id)
                return
            await manager.destroy()
            await self._remove_snapshot(guild_id)
        logger.info("player.disconnected", guild_id=guild_id)

    async def stop(self, guild_id: str) -> None:
        guild_id = str(guild_id)
        async with self._guild_lock(guild_id):
            manager = self._managers.get(guild_id)
            if manager is None:
                logger.debug("player.stop_untracked", guild_id=guild_id)
                return
            manager.stop_music()
            await self._persist(guild_id)
        logger.info("player.stopped", guild_id=guild_id)

    async def play_music(
        self, guild_id: str, track_id_or_name: str, channel: Any | None = None
    ) -> SoundFile:
        guild_id = str(guild_id)
        async with self._guild_lock(guild_id):
            self._require_connection(guild_id, channel)
            file = await self._library.resolve("music", track_id_or_name)
            manager = await self._resolve_manager(guild_id, channel)
            manager.play_music(str(file.path), file.summary())
            await self._persist(guild_id)
        logger.info(
            "player.music_playing",
            guild_id=guild_id,
            track_id=file.id,
            track_name=file.name,
        )
        return file

    async def play_effect(
        self, guild_id: str, effect_id_or_name: str, channel: Any | None = None
    ) -> SoundFile:
        guild_id = str(guild_id)
        async with self._guild_lock(guild_id):
            self._require_connection(guild_id, channel)
            file = await self._library.resolve("effects", effect_id_or_name)
            manager = await self._resolve_manager(guild_id, channel)
            manager.play_effect(str(file.path))
            await self._persist(guild_id)
        logger.info(
            "player.effect_triggered",
            guild_id=guild_id,
            effect_id=file.id,
            effect_name=file.name,
        )
        return file

    async def get_state(self) -> list[GuildPlaybackState]:
        """Live state of tracked guilds, then snapshots of untracked ones."""
        timestamp = datetime.now(UTC).isoformat()
        live = [
            GuildPlaybackState(
                guild_id=guild_id,
                connected_channel_id=manager.channel_id,
                connected_channel_name=manager.channel_label,
                is_idle=manager.is_idle,
                track=manager.track,
                source="live",
                last_updated=timestamp,
            )
            for guild_id, manager in self._managers.items()
        ]
        try:
            snapshots = await self._snapshots.list()
        except Exception as exc:
            logger.warning(
                "player.snapshot_list_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            snapshots = []
        fallbacks = [
            GuildPlaybackState(
                guild_id=snapshot.guild_id,
                connected_channel_id=snapshot.connected_channel_id,
                connected_channel_name=snapshot.connected_channel_name,
                is_idle=snapshot.is_idle,
                track=snapshot.track(),
                source="snapshot",
                last_updated=snapshot.updated_at.isoformat(),
            )
            for snapshot in snapshots
            if snapshot.guild_id not in self._managers
        ]
        logger.debug("player.state", live=len(live), snapshots=len(fallbacks))
        return [*live, *fallbacks]

    async def shutdown(self) -> None:
        """Tear down every manager; snapshots are kept for the next start."""
        guild_ids = list(self._managers)
        for guild_id in guild_ids:
            async with self._guild_lock(guild_id):
                manager = self._managers.pop(guild_id, None)
                if manager is None:
                    continue
                try:
                    await manager.destroy()
                except Exception as exc:
                    logger.warning(
                        "player.shutdown_manager_failed",
                        guild_id=guild_id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
        logger.info("player.shutdown_complete", guilds=len(guild_ids))

    @asynccontextmanager
    async def _guild_lock(self, guild_id: str) -> AsyncIterator[None]:
        """Serialise work on one guild and tag its log records with the guild id.

        The lock is dropped once nobody holds or waits for it and the guild is
        no longer tracked.
        """
        lock = self._locks.setdefault(guild_id, asyncio.Lock())
        self._lock_users[guild_id] = self._lock_users.get(guild_id, 0) + 1
        try:
            async with lock:
                with guild_context(guild_id):
                    yield
        finally:
            self._lock_users[guild_id] -= 1
            if not self._lock_users[guild_id]:
                del self._lock_users[guild_id]
                if guild_id not in self._managers:
                    self._locks.pop(guild_id, None)

    def _require_connection(self, guild_id: str, channel: Any | None) -> None:
        if channel is not None:
            return
        manager = self._managers.get(guild_id)
        if manager is None or not manager.connected:
            logger.warning("player.not_connected", guild_id=guild_id)
            raise NotConnectedError(guild_id)

    async def _resolve_manager(
        self, guild_id: str, channel: Any | None
    ) -> GuildAudioManager:
        if channel is not None:
            return await self._connect_locked(guild_id, channel)
        manager = self._managers.get(guild_id)
        if manager is None or not manager.connected:
            raise NotConnectedError(guild_id)
        return manager

    async def _connect_locked(self, guild_id: str, channel: Any) -> GuildAudioManager:
        manager = self._managers.get(guild_id)
        created = manager is None
        if manager is None:
            manager = GuildAudioManager(
                guild_id,
                self._engine_factory(guild_id),
                connect_timeout=self._connect_timeout,
            )
            self._managers[guild_id] = manager
        try:
            await manager.connect(channel)
        except Exception:
            if created:
                # a manager that never connected must not linger in the registry
                self._managers.pop(guild_id, None)
                await manager.destroy()
            else:
                # the previous session is gone even though the switch failed
                await self._persist(guild_id)
            raise
        await self._persist(guild_id)
        return manager

    async def _persist(self, guild_id: str) -> None:
        manager = self._managers.get(guild_id)
        if manager is None:
            await self._remove_snapshot(guild_id)
            return
        track = manager.track
        snapshot = PlayerSnapshot(
            guild_id=guild_id,
            connected_channel_id=manager.channel_id,
            connected_channel_name=manager.channel_label,
            track_id=track.id if track else None,
            track_name=track.name if track else None,
            track_filename=track.filename if track else None,
            track_category=track.category if track else None,
            is_idle=manager.is_idle,
        )
        try:
            await self._snapshots.upsert(snapshot)
        except Exception as exc:
            logger.warning(
                "player.snapshot_persist_failed",
                guild_id=guild_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _remove_snapshot(self, guild_id: str) -> None:
        try:
            await self._snapshots.remove(guild_id)
        except Exception as exc:
            logger.warning(
                "player.snapshot_remove_failed",
                guild_id=guild_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )


__all__ = ["EngineFactory", "PlaybackRegistry"]
