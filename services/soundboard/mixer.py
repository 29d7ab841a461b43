"""Real-time PCM mix bus feeding a Discord voice client.

The bus holds any number of input channels. Each channel buffers raw
s16le 48 kHz stereo PCM written by a decoder on the event loop; the voice
client's player thread pulls one 20 ms frame at a time through
:class:`MixedOutput`. Frames are the gain-scaled, clipped sum of every
channel that has a full frame buffered, or silence when none has.
"""

from __future__ import annotations

import itertools
import threading

import discord
import numpy as np

from services.common.structured_logging import get_logger


logger = get_logger(__name__, service_name="soundboard")

SAMPLE_RATE = 48000
CHANNELS = 2
SAMPLE_WIDTH = 2
FRAME_DURATION = 0.02
SAMPLES_PER_FRAME = int(SAMPLE_RATE * FRAME_DURATION) * CHANNELS
FRAME_SIZE = SAMPLES_PER_FRAME * SAMPLE_WIDTH
BYTES_PER_SECOND = SAMPLE_RATE * CHANNELS * SAMPLE_WIDTH
SILENCE = bytes(FRAME_SIZE)

_INT16_MIN = -32768
_INT16_MAX = 32767


def gain_to_amplitude(gain: float) -> float:
    """Map a 0-100 gain to a linear amplitude factor."""
    return min(max(float(gain), 0.0), 100.0) / 100.0


class MixChannel:
    """One independently mixed input slot of a :class:`MixBus`."""

    def __init__(self, bus: MixBus, channel_id: int, gain: float) -> None:
        self._bus = bus
        self.channel_id = channel_id
        self.gain = gain
        self.amplitude = gain_to_amplitude(gain)
        self._buffer = bytearray()
        self._destroyed = False

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def buffered(self) -> int:
        with self._bus._lock:
            return len(self._buffer)

    @property
    def buffered_seconds(self) -> float:
        return self.buffered / BYTES_PER_SECOND

    def write(self, data: bytes) -> int:
        """Queue PCM for mixing; returns the number of bytes accepted."""
        with self._bus._lock:
            if self._destroyed:
                return 0
            self._buffer.extend(data)
        return len(data)

    def destroy(self) -> bool:
        """Remove the channel from the mix, dropping anything still buffered.

        Returns False when the channel was already destroyed.
        """
        return self._bus._remove(self)

    def _take_frame(self) -> bytes | None:
        if len(self._buffer) < FRAME_SIZE:
            return None
        frame = bytes(self._buffer[:FRAME_SIZE])
        del self._buffer[:FRAME_SIZE]
        return frame

    def __repr__(self) -> str:
        return (
            f"MixChannel(id={self.channel_id}, gain={self.gain}, "
            f"destroyed={self._destroyed})"
        )


class MixBus:
    """Sums the PCM of all active channels into one continuous stream."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: dict[int, MixChannel] = {}
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_channels(self) -> int:
        with self._lock:
            return len(self._channels)

    def create_channel(self, gain: float) -> MixChannel:
        with self._lock:
            if self._closed:
                raise RuntimeError("Mix bus is destroyed")
            channel = MixChannel(self, next(self._ids), gain)
            self._channels[channel.channel_id] = channel
        logger.debug(
            "mixer.channel_created",
            channel_id=channel.channel_id,
            gain=gain,
        )
        return channel

    def _remove(self, channel: MixChannel) -> bool:
        with self._lock:
            if channel._destroyed:
                return False
            channel._destroyed = True
            channel._buffer.clear()
            self._channels.pop(channel.channel_id, None)
        logger.debug("mixer.channel_destroyed", channel_id=channel.channel_id)
        return True

    def read_frame(self) -> bytes:
        """Return the next 20 ms of mixed output, or ``b""`` once destroyed."""
        with self._lock:
            if self._closed:
                return b""
            frames = []
            for channel in self._channels.values():
                frame = channel._take_frame()
                if frame is not None:
                    frames.append((channel.amplitude, frame))
            if not frames:
                return SILENCE
            # mix while holding the lock so a concurrent destroy cannot leak a frame
            acc = np.zeros(SAMPLES_PER_FRAME, dtype=np.float32)
            for amplitude, frame in frames:
                acc += np.frombuffer(frame, dtype="<i2").astype(np.float32) * amplitude
        return np.clip(acc, _INT16_MIN, _INT16_MAX).astype("<i2").tobytes()

    def destroy(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            for channel in self._channels.values():
                channel._destroyed = True
                channel._buffer.clear()
            self._channels.clear()
        logger.debug("mixer.bus_destroyed")


class MixedOutput(discord.AudioSource):
    """Continuous PCM source handed to ``VoiceClient.play``."""

    def __init__(self, bus: MixBus) -> None:
        self._bus = bus
        self._stopped = False

    @property
    def is_playing(self) -> bool:
        """True while at least one input channel feeds the mix."""
        return not self._stopped and self._bus.active_channels > 0

    def read(self) -> bytes:
        if self._stopped:
            return b""
        return self._bus.read_frame()

    def is_opus(self) -> bool:
        return False

    def cleanup(self) -> None:
        # Called by the voice player when a session ends; the bus outlives sessions.
        pass

    def stop(self) -> None:
        self._stopped = True


__all__ = [
    "BYTES_PER_SECOND",
    "CHANNELS",
    "FRAME_DURATION",
    "FRAME_SIZE",
    "MixBus",
    "MixChannel",
    "MixedOutput",
    "SAMPLE_RATE",
    "SILENCE",
    "gain_to_amplitude",
]
