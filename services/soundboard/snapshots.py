"""Persistence of per-guild playback snapshots.

Snapshots let the dashboard show what each guild was playing after a
restart. They are written through on every state change and are strictly
best-effort: callers log and ignore storage failures.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
import json
import os
from pathlib import Path
import tempfile

from services.common.structured_logging import get_logger

from .domain import PlayerSnapshot


logger = get_logger(__name__, service_name="soundboard")


class SnapshotStoreError(Exception):
    """Raised when snapshots cannot be read or written."""


class SnapshotStore(ABC):
    """Abstract interface for snapshot storage backends."""

    @abstractmethod
    async def upsert(self, snapshot: PlayerSnapshot) -> None:
        """Insert or replace the snapshot for ``snapshot.guild_id``."""

    @abstractmethod
    async def remove(self, guild_id: str) -> None:
        """Delete the snapshot of a guild; missing guilds are ignored."""

    @abstractmethod
    async def list(self) -> list[PlayerSnapshot]:
        """All snapshots, most recently updated first."""


class MemorySnapshotStore(SnapshotStore):
    """Process-local store, used in tests and when no path is configured."""

    def __init__(self) -> None:
        self._snapshots: dict[str, PlayerSnapshot] = {}

    async def upsert(self, snapshot: PlayerSnapshot) -> None:
        self._snapshots[snapshot.guild_id] = snapshot

    async def remove(self, guild_id: str) -> None:
        self._snapshots.pop(guild_id, None)

    async def list(self) -> list[PlayerSnapshot]:
        return sorted(
            self._snapshots.values(), key=lambda item: item.updated_at, reverse=True
        )


class JsonFileSnapshotStore(SnapshotStore):
    """Keeps all snapshots in one JSON document, rewritten atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._cache: dict[str, PlayerSnapshot] | None = None

    async def upsert(self, snapshot: PlayerSnapshot) -> None:
        async with self._lock:
            snapshots = await self._load()
            snapshots[snapshot.guild_id] = snapshot
            await self._save(snapshots)
        logger.debug(
            "snapshots.upserted",
            guild_id=snapshot.guild_id,
            channel_id=snapshot.connected_channel_id,
            is_idle=snapshot.is_idle,
        )

    async def remove(self, guild_id: str) -> None:
        async with self._lock:
            snapshots = await self._load()
            if snapshots.pop(guild_id, None) is None:
                return
            await self._save(snapshots)
        logger.debug("snapshots.removed", guild_id=guild_id)

    async def list(self) -> list[PlayerSnapshot]:
        async with self._lock:
            snapshots = await self._load()
        return sorted(snapshots.values(), key=lambda item: item.updated_at, reverse=True)

    async def _load(self) -> dict[str, PlayerSnapshot]:
        if self._cache is None:
            self._cache = await asyncio.to_thread(self._read)
        return self._cache

    async def _save(self, snapshots: dict[str, PlayerSnapshot]) -> None:
        await asyncio.to_thread(self._write, snapshots)

    def _read(self) -> dict[str, PlayerSnapshot]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            items = [PlayerSnapshot.from_dict(item) for item in raw.get("snapshots", [])]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise SnapshotStoreError(f"Cannot read snapshots from {self.path}: {exc}") from exc
        return {item.guild_id: item for item in items}

    def _write(self, snapshots: dict[str, PlayerSnapshot]) -> None:
        payload = {"snapshots": [item.to_dict() for item in snapshots.values()]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SnapshotStoreError(f"Cannot write snapshots to {self.path}: {exc}") from exc


__all__ = [
    "JsonFileSnapshotStore",
    "MemorySnapshotStore",
    "SnapshotStore",
    "SnapshotStoreError",
]
