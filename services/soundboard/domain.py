"""Domain types shared by the soundboard playback layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal


SoundCategory = Literal["music", "effects"]
SOUND_CATEGORIES: tuple[SoundCategory, ...] = ("music", "effects")

StateSource = Literal["live", "snapshot"]


@dataclass(frozen=True, slots=True)
class TrackSummary:
    """Display metadata of the track a guild is playing."""

    id: str
    name: str
    filename: str
    category: SoundCategory

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "category": self.category,
        }


@dataclass(frozen=True, slots=True)
class SoundFile:
    """A file in the sound library."""

    id: str
    name: str
    filename: str
    category: SoundCategory
    size: int
    created_at: str
    path: Path

    def summary(self) -> TrackSummary:
        return TrackSummary(
            id=self.id,
            name=self.name,
            filename=self.filename,
            category=self.category,
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain representation; the filesystem path stays internal."""
        return {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "category": self.category,
            "size": self.size,
            "created_at": self.created_at,
        }


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class PlayerSnapshot:
    """Best-effort record of what a guild should be playing."""

    guild_id: str
    connected_channel_id: str | None = None
    connected_channel_name: str | None = None
    track_id: str | None = None
    track_name: str | None = None
    track_filename: str | None = None
    track_category: SoundCategory | None = None
    is_idle: bool = True
    updated_at: datetime = field(default_factory=_utcnow)

    def track(self) -> TrackSummary | None:
        if not self.track_id:
            return None
        return TrackSummary(
            id=self.track_id,
            name=self.track_name or "Unknown",
            filename=self.track_filename or "unknown",
            category=self.track_category or "music",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "connected_channel_id": self.connected_channel_id,
            "connected_channel_name": self.connected_channel_name,
            "track_id": self.track_id,
            "track_name": self.track_name,
            "track_filename": self.track_filename,
            "track_category": self.track_category,
            "is_idle": self.is_idle,
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlayerSnapshot:
        updated_at = data.get("updated_at")
        return cls(
            guild_id=str(data["guild_id"]),
            connected_channel_id=data.get("connected_channel_id"),
            connected_channel_name=data.get("connected_channel_name"),
            track_id=data.get("track_id"),
            track_name=data.get("track_name"),
            track_filename=data.get("track_filename"),
            track_category=data.get("track_category"),
            is_idle=bool(data.get("is_idle", True)),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else _utcnow(),
        )


@dataclass(slots=True)
class GuildPlaybackState:
    """Dashboard view of one guild's playback."""

    guild_id: str
    connected_channel_id: str | None
    connected_channel_name: str | None
    is_idle: bool
    track: TrackSummary | None
    source: StateSource
    last_updated: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "guild_id": self.guild_id,
            "connected_channel_id": self.connected_channel_id,
            "connected_channel_name": self.connected_channel_name,
            "is_idle": self.is_idle,
            "track": self.track.to_dict() if self.track else None,
            "source": self.source,
            "last_updated": self.last_updated,
        }
