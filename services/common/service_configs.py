"""Configuration sections used by the soundboard service."""

from __future__ import annotations

from .config import (
    BaseConfig,
    FieldDefinition,
    create_field_definition,
    validate_non_empty,
    validate_port,
)


class DiscordConfig(BaseConfig):
    """Bot login and voice connection settings."""

    token: str
    command_prefix: str
    voice_connect_timeout_seconds: float

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            create_field_definition(
                "token",
                str,
                default="",
                description="Discord bot token; the bot stays offline when empty",
                env_var="DISCORD_BOT_TOKEN",
            ),
            create_field_definition(
                "command_prefix",
                str,
                default="!",
                description="Prefix for text commands",
                validator=validate_non_empty,
                env_var="SOUNDBOARD_PREFIX",
            ),
            create_field_definition(
                "voice_connect_timeout_seconds",
                float,
                default=20.0,
                description="Upper bound for a voice session to become ready",
                min_value=1.0,
                max_value=120.0,
                env_var="DISCORD_VOICE_CONNECT_TIMEOUT",
            ),
        ]


class AudioConfig(BaseConfig):
    """Mixer gains and decoder settings."""

    music_volume: int
    effects_volume: int
    ffmpeg_path: str
    fade_in_seconds: float
    max_buffer_seconds: float

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            create_field_definition(
                "music_volume",
                int,
                default=85,
                description="Gain of the looping music channel (0-100)",
                min_value=0,
                max_value=100,
                env_var="AUDIO_MUSIC_VOLUME",
            ),
            create_field_definition(
                "effects_volume",
                int,
                default=90,
                description="Gain of one-shot effect channels (0-100)",
                min_value=0,
                max_value=100,
                env_var="AUDIO_EFFECTS_VOLUME",
            ),
            create_field_definition(
                "ffmpeg_path",
                str,
                default="ffmpeg",
                description="ffmpeg executable used to decode sound files",
                validator=validate_non_empty,
                env_var="AUDIO_FFMPEG_PATH",
            ),
            create_field_definition(
                "fade_in_seconds",
                float,
                default=0.05,
                description="Linear fade-in applied when a decode starts",
                min_value=0.0,
                max_value=5.0,
                env_var="AUDIO_FADE_IN_SECONDS",
            ),
            create_field_definition(
                "max_buffer_seconds",
                float,
                default=1.0,
                description="Decoded audio queued per mix channel before the decoder waits",
                min_value=0.1,
                max_value=30.0,
                env_var="AUDIO_MAX_BUFFER_SECONDS",
            ),
        ]


class StorageConfig(BaseConfig):
    """Sound library and snapshot locations."""

    music_dir: str
    effects_dir: str
    snapshot_path: str

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            create_field_definition(
                "music_dir",
                str,
                default="storage/music",
                description="Directory holding music tracks",
                env_var="SOUNDBOARD_MUSIC_DIR",
            ),
            create_field_definition(
                "effects_dir",
                str,
                default="storage/effects",
                description="Directory holding sound effects",
                env_var="SOUNDBOARD_EFFECTS_DIR",
            ),
            create_field_definition(
                "snapshot_path",
                str,
                default="storage/data/snapshots.json",
                description="JSON file persisting per-guild playback snapshots",
                env_var="SOUNDBOARD_SNAPSHOT_PATH",
            ),
        ]


class LoggingConfig(BaseConfig):
    """Log level and rendering."""

    level: str
    json_logs: bool
    service_name: str | None

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            create_field_definition(
                "level",
                str,
                default="INFO",
                description="Logging level",
                choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                env_var="LOG_LEVEL",
            ),
            create_field_definition(
                "json_logs",
                bool,
                default=True,
                description="Render JSON lines instead of console output",
                env_var="LOG_JSON",
            ),
            create_field_definition(
                "service_name",
                str,
                description="Service name attached to every log line",
                env_var="SERVICE_NAME",
            ),
        ]


class HttpConfig(BaseConfig):
    """Dashboard API listener."""

    host: str
    port: int

    @classmethod
    def get_field_definitions(cls) -> list[FieldDefinition]:
        return [
            create_field_definition(
                "host",
                str,
                default="0.0.0.0",  # noqa: S104
                description="Interface the dashboard API binds to",
                env_var="HTTP_HOST",
            ),
            create_field_definition(
                "port",
                int,
                default=8080,
                description="Port the dashboard API listens on",
                validator=validate_port,
                env_var="HTTP_PORT",
            ),
        ]


__all__ = [
    "AudioConfig",
    "DiscordConfig",
    "HttpConfig",
    "LoggingConfig",
    "StorageConfig",
]
