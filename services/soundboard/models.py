"""Pydantic models for the soundboard dashboard API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class TrackSummaryModel(BaseModel):
    """Display metadata of a playing track."""

    id: str
    name: str
    filename: str
    category: Literal["music", "effects"]


class GuildPlaybackStateModel(BaseModel):
    """Playback state of one guild."""

    guild_id: str
    connected_channel_id: str | None = None
    connected_channel_name: str | None = None
    is_idle: bool
    track: TrackSummaryModel | None = None
    source: Literal["live", "snapshot"]
    last_updated: str


class SoundFileModel(BaseModel):
    """A file of the sound library."""

    id: str
    name: str
    filename: str
    category: Literal["music", "effects"]
    size: int
    created_at: str


class JoinRequest(BaseModel):
    """Request model for joining a voice channel."""

    guild_id: str = Field(..., description="Discord guild ID")
    channel_id: str = Field(..., description="Voice channel ID")


class GuildRequest(BaseModel):
    """Request model for guild-scoped commands (leave, stop)."""

    guild_id: str = Field(..., description="Discord guild ID")


class PlayRequest(BaseModel):
    """Request model for starting a music track."""

    guild_id: str = Field(..., description="Discord guild ID")
    track_id: str = Field(..., description="Track id or (part of) its name")
    channel_id: str | None = Field(
        None, description="Voice channel to join first; defaults to the current one"
    )


class EffectRequest(BaseModel):
    """Request model for triggering a sound effect."""

    guild_id: str = Field(..., description="Discord guild ID")
    effect_id: str = Field(..., description="Effect id or (part of) its name")
    channel_id: str | None = Field(
        None, description="Voice channel to join first; defaults to the current one"
    )


class StatusResponse(BaseModel):
    """Generic acknowledgement."""

    status: Literal["ok"] = "ok"


class PlayResponse(StatusResponse):
    track: SoundFileModel


class EffectResponse(StatusResponse):
    effect: SoundFileModel


class BotStatusResponse(BaseModel):
    """Whether the Discord client is logged in and ready."""

    ready: bool
    user_tag: str | None = None


class ChannelEntry(BaseModel):
    id: str
    name: str


class GuildDirectoryEntry(BaseModel):
    """A guild the bot is in, with its voice channels."""

    guild_id: str
    guild_name: str
    channels: list[ChannelEntry] = Field(default_factory=list)
