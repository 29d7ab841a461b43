"""Errors surfaced by the soundboard playback layer."""

from __future__ import annotations


class SoundboardError(Exception):
    """Base class for user-facing playback errors."""


class NotConnectedError(SoundboardError):
    """Playback requested without a voice connection or a channel to join."""

    def __init__(self, guild_id: str) -> None:
        self.guild_id = guild_id
        super().__init__("Not connected to a voice channel. Use join first.")


class SoundNotFoundError(SoundboardError):
    """A sound id or name did not resolve to a file in the library."""

    def __init__(self, category: str, id_or_name: str) -> None:
        self.category = category
        self.id_or_name = id_or_name
        super().__init__(f"No {category} found matching '{id_or_name}'")


class ConnectionTimeoutError(SoundboardError):
    """The voice session did not become ready within the configured bound."""

    def __init__(self, guild_id: str, channel_id: str, timeout: float) -> None:
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.timeout = timeout
        super().__init__(
            f"Voice connection to channel {channel_id} was not ready after {timeout:g}s"
        )


class InvalidChannelError(SoundboardError):
    """A guild or channel reference does not name a reachable voice channel."""


__all__ = [
    "ConnectionTimeoutError",
    "InvalidChannelError",
    "NotConnectedError",
    "SoundNotFoundError",
    "SoundboardError",
]
