"""Discord client exposing the soundboard through prefix text commands."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import suppress
from datetime import timedelta
from typing import Any

import discord

from services.common.structured_logging import get_logger

from .catalog import SoundLibrary
from .domain import SoundCategory
from .errors import InvalidChannelError, SoundboardError
from .registry import PlaybackRegistry


_LIST_LIMIT = 15
_PURGE_LIMIT = 100
# Discord refuses bulk deletion of older messages
_PURGE_WINDOW = timedelta(days=14)

CommandHandler = Callable[[discord.Message, list[str]], Awaitable[None]]


class SoundboardBot(discord.Client):
    """Discord client that turns text commands into playback operations."""

    def __init__(
        self,
        registry: PlaybackRegistry,
        library: SoundLibrary,
        *,
        command_prefix: str = "!",
    ) -> None:
        intents = discord.Intents.default()
        intents.guilds = True
        intents.voice_states = True
        intents.guild_messages = True
        intents.message_content = True
        super().__init__(intents=intents)
        self.registry = registry
        self.library = library
        self.command_prefix = command_prefix
        self._logger = get_logger(__name__, service_name="soundboard")
        self._commands: dict[str, CommandHandler] = {
            "join": self._handle_join,
            "leave": self._handle_leave,
            "stop": self._handle_stop,
            "play": self._handle_play,
            "effect": self._handle_effect,
            "songs": self._handle_list_songs,
            "effects": self._handle_list_effects,
            "delete": self._handle_delete,
            "help": self._handle_help,
        }

    async def on_ready(self) -> None:
        self._logger.info(
            "discord.ready",
            user=str(self.user),
            guilds=[guild.id for guild in self.guilds],
        )

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None:
            return
        content = message.content or ""
        if not content.startswith(self.command_prefix):
            return
        command, *args = content[len(self.command_prefix) :].strip().split() or [""]
        if not command:
            return
        handler = self._commands.get(command.lower())
        if handler is None:
            await message.reply("Unknown command.")
            return

        self._logger.debug(
            "discord.command_received",
            command=command.lower(),
            guild_id=str(message.guild.id),
            user_id=str(message.author.id),
        )
        try:
            await handler(message, args)
        except SoundboardError as exc:
            await message.reply(str(exc))
        except Exception as exc:
            self._logger.exception(
                "discord.command_failed",
                command=command.lower(),
                guild_id=str(message.guild.id),
                error=str(exc),
            )
            await message.reply("Something went wrong, try again.")

    def bot_status(self) -> dict[str, Any]:
        if not self.is_ready():
            return {"ready": False, "user_tag": None}
        return {"ready": True, "user_tag": str(self.user) if self.user else None}

    def guild_directory(self) -> list[dict[str, Any]]:
        if not self.is_ready():
            return []
        return [
            {
                "guild_id": str(guild.id),
                "guild_name": guild.name,
                "channels": [
                    {"id": str(channel.id), "name": channel.name}
                    for channel in guild.voice_channels
                ],
            }
            for guild in self.guilds
        ]

    def resolve_voice_channel(
        self, guild_id: str, channel_id: str | None
    ) -> discord.VoiceChannel:
        """Look up a voice channel the bot can join.

        Raises:
            InvalidChannelError: unknown guild, missing id or non-voice channel
        """
        guild = self.get_guild(_as_snowflake(guild_id))
        if guild is None:
            raise InvalidChannelError("Guild not available on bot")
        if not channel_id:
            raise InvalidChannelError("Channel ID required")
        channel = guild.get_channel(_as_snowflake(channel_id))
        if not isinstance(channel, discord.VoiceChannel):
            raise InvalidChannelError("Channel not found or not voice-based")
        return channel

    async def _handle_join(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        channel = _author_voice_channel(message)
        if channel is None:
            await message.reply("Join a voice channel first.")
            return
        await self.registry.connect(channel)
        await message.reply(f"Connected to {channel.name}.")

    async def _handle_leave(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        await self.registry.disconnect(str(message.guild.id))
        await message.reply("Disconnected.")

    async def _handle_stop(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        await self.registry.stop(str(message.guild.id))
        await message.reply("Playback stopped.")

    async def _handle_play(self, message: discord.Message, args: list[str]) -> None:
        if not args:
            await message.reply(
                f"Provide a track name or ID. Use `{self.command_prefix}songs` to list."
            )
            return
        file = await self.registry.play_music(
            str(message.guild.id), " ".join(args), _author_voice_channel(message)
        )
        await message.reply(f"Playing **{file.name}**.")

    async def _handle_effect(self, message: discord.Message, args: list[str]) -> None:
        if not args:
            await message.reply(
                f"Provide an effect name or ID. Use `{self.command_prefix}effects` to list."
            )
            return
        file = await self.registry.play_effect(
            str(message.guild.id), " ".join(args), _author_voice_channel(message)
        )
        await message.reply(f"Triggered **{file.name}**.")

    async def _handle_list_songs(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        await self._reply_listing(message, "music", "Songs", "play")

    async def _handle_list_effects(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        await self._reply_listing(message, "effects", "Effects", "effect")

    async def _reply_listing(
        self,
        message: discord.Message,
        category: SoundCategory,
        title: str,
        command: str,
    ) -> None:
        items = await self.library.list(category)
        if not items:
            await message.reply(
                f"No {title.lower()} uploaded yet. Use the dashboard to add some."
            )
            return
        lines = [
            f"{index}. **{item.name}** (`{item.id}`)"
            for index, item in enumerate(items[:_LIST_LIMIT], start=1)
        ]
        if len(items) > _LIST_LIMIT:
            lines.append(f"... and {len(items) - _LIST_LIMIT} more.")
        await message.reply(
            f"**{title}:**\n" + "\n".join(lines)
            + f"\n\nUse `{self.command_prefix}{command} <name or id>`."
        )

    async def _handle_delete(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        channel = message.channel
        if not hasattr(channel, "purge"):
            await message.reply("This command only works in a text channel.")
            return
        if self.user is None:
            await message.reply("Bot not ready.")
            return

        bot_id = self.user.id
        cutoff = discord.utils.utcnow() - _PURGE_WINDOW
        try:
            deleted = await channel.purge(
                limit=_PURGE_LIMIT,
                check=lambda m: m.author.id == bot_id and m.created_at >= cutoff,
            )
        except discord.HTTPException as exc:
            self._logger.warning(
                "discord.purge_failed",
                guild_id=str(message.guild.id),
                channel_id=str(channel.id),
                status=exc.status,
                error=str(exc),
            )
            await message.reply("Could not delete messages.")
            return

        if not deleted:
            await message.reply("No bot messages to clear (or they're older than 14 days).")
            return
        self._logger.info(
            "discord.messages_purged",
            guild_id=str(message.guild.id),
            channel_id=str(channel.id),
            count=len(deleted),
        )
        with suppress(discord.HTTPException):
            await message.delete()
        await channel.send(f"Cleared **{len(deleted)}** bot message(s).", delete_after=4)

    async def _handle_help(self, message: discord.Message, args: list[str]) -> None:  # noqa: ARG002
        p = self.command_prefix
        lines = [
            f"**{p}help** - show this list",
            f"**{p}join** - join your voice channel",
            f"**{p}leave** - disconnect from voice",
            f"**{p}stop** - stop the music",
            f"**{p}songs** - list music tracks",
            f"**{p}effects** - list sound effects",
            f"**{p}play** <name or id> - loop a track",
            f"**{p}effect** <name or id> - trigger an effect",
            f"**{p}delete** - clear this channel's bot messages",
        ]
        await message.reply("**Commands:**\n" + "\n".join(lines))


def _author_voice_channel(message: discord.Message) -> Any | None:
    voice = getattr(message.author, "voice", None)
    return voice.channel if voice is not None else None


def _as_snowflake(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidChannelError(f"Invalid Discord id '{value}'") from exc


__all__ = ["SoundboardBot"]
