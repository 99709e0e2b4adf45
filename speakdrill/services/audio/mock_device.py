"""Mock capture device and playback backend for testing.

This module provides simulated implementations of the capture and playback
contracts that run entirely on the event loop, without audio hardware.
"""

import asyncio
import logging
from typing import Any, Callable, Iterable, Optional, Union

from speakdrill.lib.config import CaptureConfig
from speakdrill.lib.exceptions import (
    CaptureAssemblyError,
    DeviceUnavailableError,
    PromptLoadError,
)
from speakdrill.services.audio.capture import CaptureDevice, CaptureHandle, CaptureStream
from speakdrill.services.audio.scrubber import PlaybackBackend

logger = logging.getLogger(__name__)


class MockCaptureStream(CaptureStream):
    """Emits a fixed chunk on the loop at a fixed interval."""

    def __init__(self, chunk: bytes, interval_seconds: float):
        self._chunk = chunk
        self._interval = interval_seconds
        self._timer: Optional[asyncio.TimerHandle] = None
        self._on_chunk: Optional[Callable[[Any], None]] = None
        self.started = False
        self.stopped = False

    def start(self, on_chunk: Callable[[Any], None]) -> None:
        self._on_chunk = on_chunk
        self.started = True
        self._emit()

    def stop(self) -> None:
        self.stopped = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._on_chunk = None

    def _emit(self) -> None:
        if self._on_chunk is None:
            return
        self._on_chunk(self._chunk)
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._interval, self._emit)


class MockCaptureDevice(CaptureDevice):
    """
    Simulated microphone.

    Attributes:
        simulate_absent: Acquisition fails as if no hardware exists
        simulate_denied: Acquisition fails as if the user denied permission
        acquire_delay: Seconds the permission request takes to resolve
        simulate_assembly_failure: Assembly raises CaptureAssemblyError
        supported_media_types: Media types the simulated encoder produces
        streams: Every stream opened, for assertions

    Example:
        >>> device = MockCaptureDevice(simulate_denied=True)
        >>> await device.acquire()  # raises DeviceUnavailableError
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        simulate_absent: bool = False,
        simulate_denied: bool = False,
        acquire_delay: float = 0.0,
        simulate_assembly_failure: bool = False,
        supported_media_types: Iterable[str] = ("audio/ogg;codecs=opus", "audio/ogg", "audio/wav"),
        chunk: bytes = b"\x00\x01" * 64,
        chunk_interval: float = 0.01,
    ):
        super().__init__(config or CaptureConfig())
        self.simulate_absent = simulate_absent
        self.simulate_denied = simulate_denied
        self.acquire_delay = acquire_delay
        self.simulate_assembly_failure = simulate_assembly_failure
        self.supported_media_types = set(supported_media_types)
        self.chunk = chunk
        self.chunk_interval = chunk_interval
        self.streams: list[MockCaptureStream] = []
        self.closed_handles: list[CaptureHandle] = []

    async def _open_handle(self) -> CaptureHandle:
        if self.acquire_delay:
            await asyncio.sleep(self.acquire_delay)
        if self.simulate_absent:
            raise DeviceUnavailableError(
                "No recording capability in this environment",
                reason=DeviceUnavailableError.ABSENT,
            )
        if self.simulate_denied:
            raise DeviceUnavailableError(
                "Microphone permission denied",
                reason=DeviceUnavailableError.DENIED,
            )
        return CaptureHandle(device_name="mock-microphone")

    def _open_stream(self, handle: CaptureHandle) -> CaptureStream:
        stream = MockCaptureStream(self.chunk, self.chunk_interval)
        self.streams.append(stream)
        return stream

    def _assemble(self, chunks: list[Any], media_type: str) -> bytes:
        if self.simulate_assembly_failure:
            raise CaptureAssemblyError("Simulated assembly failure")
        return b"".join(chunks)

    def supports_media_type(self, media_type: str) -> bool:
        return media_type in self.supported_media_types

    def _close_handle(self, handle: CaptureHandle) -> None:
        self.closed_handles.append(handle)


class MockPlaybackBackend(PlaybackBackend):
    """
    Simulated audio output.

    Tracks have a configured duration; sources listed in ``failing_sources``
    (or every source, with ``fail_all``) fail to load.

    Attributes:
        starts: Offsets passed to start(), in call order
        stops: Number of stop() calls
    """

    def __init__(
        self,
        default_duration: float = 0.1,
        durations: Optional[dict[str, float]] = None,
        failing_sources: Iterable[str] = (),
        fail_all: bool = False,
    ):
        self.default_duration = default_duration
        self.durations = dict(durations or {})
        self.failing_sources = set(failing_sources)
        self.fail_all = fail_all
        self.loaded: list[Union[str, bytes]] = []
        self.starts: list[float] = []
        self.stops = 0
        self.closed = False

    async def load(self, source: Union[str, bytes]) -> float:
        key = source if isinstance(source, str) else None
        if self.fail_all or (key is not None and key in self.failing_sources):
            raise PromptLoadError(f"Simulated load failure for {key}", source=key)
        self.loaded.append(source)
        if key is not None and key in self.durations:
            return self.durations[key]
        return self.default_duration

    def start(self, offset_seconds: float) -> None:
        self.starts.append(offset_seconds)

    def stop(self) -> None:
        self.stops += 1

    def close(self) -> None:
        self.closed = True
