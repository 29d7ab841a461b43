"""ffmpeg decode pipelines producing mixer-ready PCM."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from enum import Enum
from typing import Protocol

from services.common.structured_logging import get_logger

from .mixer import CHANNELS, FRAME_DURATION, FRAME_SIZE, SAMPLE_RATE


logger = get_logger(__name__, service_name="soundboard")

_READ_CHUNK = FRAME_SIZE * 5
_STDERR_LIMIT = 2048


class TranscoderEvent(Enum):
    """Terminal event of a decode pipeline."""

    CLOSED = "closed"
    FAILED = "failed"


class PcmSink(Protocol):
    """Destination of decoded PCM (a mix channel)."""

    @property
    def destroyed(self) -> bool: ...

    @property
    def buffered_seconds(self) -> float: ...

    def write(self, data: bytes) -> int: ...


TerminalListener = Callable[["TranscoderHandle", TranscoderEvent], None]


class Transcoder:
    """Spawns one ffmpeg process per sound file.

    Output is raw s16le PCM at 48 kHz stereo, paced at real time and faded in
    over ``fade_in_seconds`` to avoid clicks.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        *,
        fade_in_seconds: float = 0.05,
        max_buffer_seconds: float = 1.0,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.fade_in_seconds = fade_in_seconds
        self.max_buffer_seconds = max_buffer_seconds

    def build_args(self, file_path: str) -> list[str]:
        args = [
            self.ffmpeg_path,
            "-nostdin",
            "-hide_banner",
            "-loglevel",
            "error",
            "-re",
            "-analyzeduration",
            "0",
            "-i",
            file_path,
        ]
        if self.fade_in_seconds > 0:
            args += ["-af", f"afade=t=in:st=0:d={self.fade_in_seconds:g}"]
        args += [
            "-f",
            "s16le",
            "-ar",
            str(SAMPLE_RATE),
            "-ac",
            str(CHANNELS),
            "pipe:1",
        ]
        return args

    def spawn(
        self,
        file_path: str,
        sink: PcmSink,
        on_terminal: TerminalListener,
    ) -> TranscoderHandle:
        """Start decoding ``file_path`` into ``sink``.

        Must be called from a running event loop. ``on_terminal`` is invoked
        exactly once, on the loop, after the last write to ``sink``.
        """
        handle = TranscoderHandle(self, file_path, sink, on_terminal)
        handle.start()
        return handle


class TranscoderHandle:
    """Owns one decode process and the task pumping its output."""

    def __init__(
        self,
        transcoder: Transcoder,
        file_path: str,
        sink: PcmSink,
        on_terminal: TerminalListener,
    ) -> None:
        self.file_path = file_path
        self._transcoder = transcoder
        self._sink = sink
        self._on_terminal = on_terminal
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task[TranscoderEvent] | None = None
        self._terminated = False
        self._event: TranscoderEvent | None = None
        self._stderr = bytearray()

    @property
    def event(self) -> TranscoderEvent | None:
        """Terminal event, once emitted."""
        return self._event

    @property
    def stderr_tail(self) -> str:
        """Last bytes the decoder wrote to stderr, decoded for logging."""
        return self._stderr.decode("utf-8", errors="replace").strip()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("Transcoder already started")
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._on_task_done)

    def terminate(self) -> None:
        """Stop decoding. Safe to call any number of times."""
        if self._terminated:
            return
        self._terminated = True
        self._kill()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _kill(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()

    async def _run(self) -> TranscoderEvent:
        args = self._transcoder.build_args(self.file_path)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error(
                "transcoder.spawn_failed",
                file_path=self.file_path,
                executable=args[0],
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return TranscoderEvent.FAILED

        # stderr must keep flowing or a chatty decoder stalls before stdout hits EOF
        drain = asyncio.get_running_loop().create_task(self._drain_stderr())
        try:
            await self._pump()
            if self._sink.destroyed:
                self._kill()
            returncode = await self._process.wait()
            await drain
        finally:
            self._kill()
            drain.cancel()

        if self._terminated or self._sink.destroyed:
            return TranscoderEvent.CLOSED
        if returncode != 0:
            logger.warning(
                "transcoder.decode_failed",
                file_path=self.file_path,
                returncode=returncode,
                stderr=self.stderr_tail or None,
            )
            return TranscoderEvent.FAILED
        return TranscoderEvent.CLOSED

    async def _pump(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        stdout = self._process.stdout
        max_buffer = self._transcoder.max_buffer_seconds
        while not self._sink.destroyed:
            # keep at most max_buffer seconds queued; ffmpeg blocks on the full pipe meanwhile
            while self._sink.buffered_seconds > max_buffer and not self._sink.destroyed:
                await asyncio.sleep(FRAME_DURATION)
            if self._sink.destroyed:
                return
            chunk = await stdout.read(_READ_CHUNK)
            if not chunk:
                return
            self._sink.write(chunk)

    async def _drain_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        stderr = self._process.stderr
        while True:
            chunk = await stderr.read(_READ_CHUNK)
            if not chunk:
                return
            self._stderr += chunk
            del self._stderr[:-_STDERR_LIMIT]

    def _on_task_done(self, task: asyncio.Task[TranscoderEvent]) -> None:
        if task.cancelled():
            event = TranscoderEvent.CLOSED
        elif task.exception() is not None:
            exc = task.exception()
            logger.error(
                "transcoder.pipeline_error",
                file_path=self.file_path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            event = TranscoderEvent.FAILED
        else:
            event = task.result()
        self._event = event
        logger.debug(
            "transcoder.terminal_event",
            file_path=self.file_path,
            terminal_event=event.value,
        )
        self._on_terminal(self, event)

    def __repr__(self) -> str:
        return f"TranscoderHandle(file_path={self.file_path!r}, event={self._event})"


__all__ = [
    "PcmSink",
    "TerminalListener",
    "Transcoder",
    "TranscoderEvent",
    "TranscoderHandle",
]
