"""Soundboard dashboard HTTP API."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress
from typing import Any, cast

from fastapi import APIRouter, FastAPI, File, HTTPException, Request, Response, UploadFile
from fastapi.responses import FileResponse, JSONResponse

from services.common.config import ServiceConfig
from services.common.structured_logging import get_logger

from .bot import SoundboardBot
from .catalog import SoundLibrary
from .domain import SOUND_CATEGORIES, SoundCategory
from .engine import AudioEngine
from .errors import (
    ConnectionTimeoutError,
    InvalidChannelError,
    NotConnectedError,
    SoundboardError,
    SoundNotFoundError,
)
from .models import (
    BotStatusResponse,
    EffectRequest,
    EffectResponse,
    GuildDirectoryEntry,
    GuildPlaybackStateModel,
    GuildRequest,
    JoinRequest,
    PlayRequest,
    PlayResponse,
    SoundFileModel,
    StatusResponse,
)
from .registry import PlaybackRegistry
from .snapshots import JsonFileSnapshotStore
from .transcoder import Transcoder


logger = get_logger(__name__, service_name="soundboard")

_ERROR_STATUS: dict[type[SoundboardError], int] = {
    NotConnectedError: 409,
    SoundNotFoundError: 404,
    ConnectionTimeoutError: 504,
    InvalidChannelError: 400,
}

_MEDIA_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
}
_DEFAULT_MEDIA_TYPE: dict[SoundCategory, str] = {
    "music": "audio/mpeg",
    "effects": "audio/wav",
}

router = APIRouter()


def build_registry(config: ServiceConfig) -> PlaybackRegistry:
    """Wire the sound library, snapshot store and engines from configuration."""
    audio = config.audio
    storage = config.storage
    library = SoundLibrary(storage.music_dir, storage.effects_dir)
    library.ensure_directories()
    transcoder = Transcoder(
        audio.ffmpeg_path,
        fade_in_seconds=audio.fade_in_seconds,
        max_buffer_seconds=audio.max_buffer_seconds,
    )

    def engine_factory(guild_id: str) -> AudioEngine:
        return AudioEngine(
            transcoder,
            music_volume=audio.music_volume,
            effects_volume=audio.effects_volume,
            guild_id=guild_id,
        )

    return PlaybackRegistry(
        library,
        JsonFileSnapshotStore(storage.snapshot_path),
        engine_factory=engine_factory,
        connect_timeout=config.discord.voice_connect_timeout_seconds,
    )


def create_app(
    config: ServiceConfig,
    *,
    registry: PlaybackRegistry | None = None,
    bot: SoundboardBot | None = None,
) -> FastAPI:
    """Create the API app; the registry and bot live as long as the app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_registry = registry or build_registry(config)
        app_bot = bot
        bot_task: asyncio.Task[None] | None = None
        token = config.discord.token
        if app_bot is None and token:
            app_bot = SoundboardBot(
                app_registry,
                app_registry.library,
                command_prefix=config.discord.command_prefix,
            )
            bot_task = asyncio.create_task(app_bot.start(token))
        elif app_bot is None:
            logger.warning(
                "discord.token_missing",
                message="No Discord token configured; running the dashboard API only",
            )

        app.state.registry = app_registry
        app.state.bot = app_bot
        logger.info("soundboard.startup_complete", bot_enabled=app_bot is not None)
        try:
            yield
        finally:
            await app_registry.shutdown()
            if bot_task is not None:
                if app_bot is not None and not app_bot.is_closed():
                    await app_bot.close()
                bot_task.cancel()
                with suppress(asyncio.CancelledError):
                    await bot_task
            logger.info("soundboard.shutdown_complete")

    app = FastAPI(title="Soundboard", version="1.0.0", lifespan=lifespan)
    app.include_router(router)
    app.add_exception_handler(SoundboardError, _soundboard_error_handler)
    return app


async def _soundboard_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        (code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 400
    )
    logger.info(
        "http.request_rejected",
        path=request.url.path,
        status=status,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def _registry(request: Request) -> PlaybackRegistry:
    return request.app.state.registry


def _bot(request: Request) -> SoundboardBot | None:
    return request.app.state.bot


def _require_bot(request: Request) -> SoundboardBot:
    bot = _bot(request)
    if bot is None:
        raise HTTPException(status_code=503, detail="Discord client is not running")
    return bot


def _channel_for(request: Request, guild_id: str, channel_id: str | None) -> Any | None:
    if not channel_id:
        return None
    return _require_bot(request).resolve_voice_channel(guild_id, channel_id)


@router.get("/health/live")
async def health_live() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/health/ready")
async def health_ready(request: Request) -> dict[str, Any]:
    if getattr(request.app.state, "registry", None) is None:
        raise HTTPException(status_code=503, detail="starting")
    bot = _bot(request)
    return {"status": "ready", "discord_ready": bool(bot and bot.is_ready())}


@router.get("/player/state", response_model=list[GuildPlaybackStateModel])
async def get_state(request: Request) -> list[dict[str, Any]]:
    states = await _registry(request).get_state()
    return [state.to_dict() for state in states]


@router.get("/player/bot-status", response_model=BotStatusResponse)
async def bot_status(request: Request) -> dict[str, Any]:
    bot = _bot(request)
    if bot is None:
        return {"ready": False, "user_tag": None}
    return bot.bot_status()


@router.get("/player/guilds", response_model=list[GuildDirectoryEntry])
async def guild_directory(request: Request) -> list[dict[str, Any]]:
    bot = _bot(request)
    return bot.guild_directory() if bot is not None else []


@router.post("/player/join", response_model=StatusResponse)
async def join(body: JoinRequest, request: Request) -> dict[str, str]:
    logger.info("http.join", guild_id=body.guild_id, channel_id=body.channel_id)
    channel = _require_bot(request).resolve_voice_channel(body.guild_id, body.channel_id)
    await _registry(request).connect(channel)
    return {"status": "ok"}


@router.post("/player/leave", response_model=StatusResponse)
async def leave(body: GuildRequest, request: Request) -> dict[str, str]:
    logger.info("http.leave", guild_id=body.guild_id)
    await _registry(request).disconnect(body.guild_id)
    return {"status": "ok"}


@router.post("/player/stop", response_model=StatusResponse)
async def stop(body: GuildRequest, request: Request) -> dict[str, str]:
    logger.info("http.stop", guild_id=body.guild_id)
    await _registry(request).stop(body.guild_id)
    return {"status": "ok"}


@router.post("/player/play", response_model=PlayResponse)
async def play(body: PlayRequest, request: Request) -> dict[str, Any]:
    logger.info(
        "http.play",
        guild_id=body.guild_id,
        track_id=body.track_id,
        channel_id=body.channel_id,
    )
    channel = _channel_for(request, body.guild_id, body.channel_id)
    file = await _registry(request).play_music(body.guild_id, body.track_id, channel)
    return {"status": "ok", "track": file.to_dict()}


@router.post("/player/effect", response_model=EffectResponse)
async def effect(body: EffectRequest, request: Request) -> dict[str, Any]:
    logger.info(
        "http.effect",
        guild_id=body.guild_id,
        effect_id=body.effect_id,
        channel_id=body.channel_id,
    )
    channel = _channel_for(request, body.guild_id, body.channel_id)
    file = await _registry(request).play_effect(body.guild_id, body.effect_id, channel)
    return {"status": "ok", "effect": file.to_dict()}


def _category(category: str) -> SoundCategory:
    if category not in SOUND_CATEGORIES:
        raise HTTPException(status_code=404, detail=f"Unknown category '{category}'")
    return cast(SoundCategory, category)


@router.get("/sounds/{category}", response_model=list[SoundFileModel])
async def list_sounds(category: str, request: Request) -> list[dict[str, Any]]:
    items = await _registry(request).library.list(_category(category))
    return [item.to_dict() for item in items]


@router.post("/sounds/{category}", response_model=SoundFileModel, status_code=201)
async def upload_sound(
    category: str,
    request: Request,
    file: UploadFile | None = File(None),
) -> dict[str, Any]:
    kind = _category(category)
    logger.info(
        "http.upload",
        category=kind,
        filename=file.filename if file is not None else None,
    )
    if file is None:
        raise HTTPException(status_code=400, detail="No file provided")
    data = await file.read()
    item = await _registry(request).library.save(kind, file.filename or "", data)
    return item.to_dict()


@router.delete("/sounds/{category}/{sound_id}", status_code=204)
async def delete_sound(category: str, sound_id: str, request: Request) -> Response:
    kind = _category(category)
    logger.info("http.delete_sound", category=kind, sound_id=sound_id)
    await _registry(request).library.remove(kind, sound_id)
    return Response(status_code=204)


@router.get("/sounds/{category}/{sound_id}/file")
async def stream_sound(category: str, sound_id: str, request: Request) -> FileResponse:
    kind = _category(category)
    item = await _registry(request).library.get_file(kind, sound_id)
    media_type = _MEDIA_TYPES.get(item.path.suffix.lower(), _DEFAULT_MEDIA_TYPE[kind])
    return FileResponse(item.path, media_type=media_type)


__all__ = ["build_registry", "create_app", "router"]
