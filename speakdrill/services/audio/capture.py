"""Capture device contract for timed microphone recording.

A CaptureDevice acquires one microphone handle per session and turns a
bounded window of audio into a RecordingArtifact. The bound is enforced here,
at the device level: every capture stops by itself once its duration elapses.

Implementations provide the platform parts (opening the handle, opening a
chunk stream, encoding) while this module owns acquisition ordering, the
duration bound, early stop/cancel and media type negotiation.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional

from speakdrill.lib.config import CaptureConfig, get_capture_config
from speakdrill.lib.exceptions import (
    CaptureAssemblyError,
    CaptureFailedError,
)
from speakdrill.lib.timestamps import generate_timestamp
from speakdrill.models.recording import RecordingArtifact
from speakdrill.services.audio.media_types import negotiate_media_type

logger = logging.getLogger(__name__)


@dataclass
class CaptureHandle:
    """Acquired microphone handle.

    Attributes:
        device_name: Human-readable device name
        acquired_at: When permission was granted
        native: Backend-specific object (e.g. an opened input stream)
        released: Whether the handle has been released
    """

    device_name: str
    acquired_at: datetime = field(default_factory=generate_timestamp)
    native: Any = None
    released: bool = False


class CaptureStream(ABC):
    """Source of audio chunks for a single capture window."""

    @abstractmethod
    def start(self, on_chunk: Callable[[Any], None]) -> None:
        """Begin delivering chunks. ``on_chunk`` is safe to call from any thread."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop delivering chunks."""
        pass


class CaptureState(str, Enum):
    """Lifecycle of a PendingCapture."""

    RECORDING = "RECORDING"
    STOPPING = "STOPPING"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


class PendingCapture:
    """
    One running capture window.

    Stops automatically after ``duration_seconds``. ``stop()`` ends early and
    keeps what was captured; ``cancel()`` abandons the attempt and discards it.

    Example:
        pending = device.start_capture(handle, 30.0)
        artifact = await pending.wait()
    """

    def __init__(
        self,
        stream: CaptureStream,
        duration_seconds: float,
        media_type: str,
        assemble: Callable[[list[Any], str, float], RecordingArtifact],
    ):
        self._stream = stream
        self._duration = duration_seconds
        self.media_type = media_type
        self._assemble = assemble
        self._loop = asyncio.get_running_loop()
        self._chunks: list[Any] = []
        self._result: asyncio.Future = self._loop.create_future()
        self._timer: Optional[asyncio.TimerHandle] = None
        self._assembly: Optional[asyncio.Task] = None
        self._started_at: Optional[float] = None
        self._stopped_at: Optional[float] = None
        self._state = CaptureState.RECORDING
        self.stop_reason: Optional[str] = None

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == CaptureState.RECORDING

    @property
    def duration_seconds(self) -> float:
        return self._duration

    @property
    def elapsed_seconds(self) -> float:
        """Seconds captured so far."""
        if self._started_at is None:
            return 0.0
        end = self._stopped_at if self._stopped_at is not None else self._loop.time()
        return max(0.0, end - self._started_at)

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def start(self) -> None:
        """Start the stream and arm the duration bound."""
        self._started_at = self._loop.time()
        self._stream.start(self._on_chunk_threadsafe)
        self._timer = self._loop.call_later(self._duration, self._finish, "duration")
        logger.info(f"Recorder started ({self.media_type}, {self._duration:.2f}s)")

    def stop(self) -> None:
        """End the capture early and keep the audio captured so far."""
        self._finish("stopped")

    def cancel(self) -> None:
        """Abandon the capture. Audio captured or being encoded is discarded."""
        if self._state in (CaptureState.FINISHED, CaptureState.CANCELLED):
            return
        self._halt()
        self._state = CaptureState.CANCELLED
        self._chunks.clear()
        if self._assembly is not None and not self._assembly.done():
            self._assembly.cancel()
        if not self._result.done():
            self._result.cancel()
        logger.info("Recorder cancelled, capture discarded")

    async def wait(self) -> RecordingArtifact:
        """
        Wait for the capture to finish.

        Returns:
            The assembled artifact

        Raises:
            CaptureAssemblyError: If the chunks could not be assembled
            asyncio.CancelledError: If the capture was cancelled, or the waiter
                was cancelled (which also cancels the capture)
        """
        try:
            return await asyncio.shield(self._result)
        except asyncio.CancelledError:
            self.cancel()
            raise

    def _on_chunk_threadsafe(self, chunk: Any) -> None:
        self._loop.call_soon_threadsafe(self._append, chunk)

    def _append(self, chunk: Any) -> None:
        if self._state in (CaptureState.RECORDING, CaptureState.STOPPING):
            self._chunks.append(chunk)

    def _halt(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._stopped_at is None:
            self._stopped_at = self._loop.time()
        self._stream.stop()

    def _finish(self, reason: str) -> None:
        if self._state != CaptureState.RECORDING:
            return
        self._halt()
        self._state = CaptureState.STOPPING
        self.stop_reason = reason
        logger.info(f"Recorder stopped ({reason}) after {self.elapsed_seconds:.2f}s")
        # Chunks already queued via call_soon_threadsafe run before assembly
        self._loop.call_soon(self._begin_assembly)

    def _begin_assembly(self) -> None:
        if self._result.done():
            return
        chunks = list(self._chunks)
        self._chunks.clear()
        self._assembly = self._loop.create_task(self._complete(chunks, self.elapsed_seconds))

    async def _complete(self, chunks: list[Any], elapsed_seconds: float) -> None:
        # Encoding a long window is CPU bound, keep it off the loop
        try:
            artifact = await asyncio.to_thread(self._assemble, chunks, self.media_type, elapsed_seconds)
        except CaptureAssemblyError as e:
            error: Optional[CaptureAssemblyError] = e
        except (ValueError, TypeError, RuntimeError) as e:
            error = CaptureAssemblyError(f"Failed to assemble capture: {e}")
        else:
            error = None

        if self._result.done():
            # Cancelled while encoding
            return
        self._state = CaptureState.FINISHED
        if error is not None:
            self._result.set_exception(error)
        else:
            self._result.set_result(artifact)


class CaptureDevice(ABC):
    """
    Microphone capture with session-scoped acquisition.

    Ordering guarantees:
        - A held handle is returned without a new permission request.
        - Concurrent ``acquire()`` calls share one pending request.
        - A failed request is not cached; the next ``acquire()`` retries.
        - At most one capture window is active; starting a new one cancels
          the previous.

    Implementations:
        - MockCaptureDevice: Simulated device for tests and headless runs
        - SoundDeviceCaptureDevice: PortAudio input via sounddevice
    """

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or get_capture_config()
        self._handle: Optional[CaptureHandle] = None
        self._acquiring: Optional[asyncio.Future] = None
        self._active: Optional[PendingCapture] = None
        self._acquisition_requests = 0

    @property
    def handle(self) -> Optional[CaptureHandle]:
        """Currently held handle, if any."""
        return self._handle

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    @property
    def acquisition_requests(self) -> int:
        """Number of permission requests actually issued."""
        return self._acquisition_requests

    async def acquire(self) -> CaptureHandle:
        """
        Acquire the microphone handle.

        Returns:
            The session's handle

        Raises:
            DeviceUnavailableError: No capture capability or permission denied
        """
        if self._handle is not None:
            return self._handle
        if self._acquiring is None:
            self._acquisition_requests += 1
            logger.debug(f"Requesting capture device (request #{self._acquisition_requests})")
            self._acquiring = asyncio.create_task(self._open_handle())
            self._acquiring.add_done_callback(self._on_acquired)
        return await asyncio.shield(self._acquiring)

    def _on_acquired(self, future: asyncio.Future) -> None:
        self._acquiring = None
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            self._handle = future.result()
            logger.info(f"Capture device acquired: {self._handle.device_name}")
        else:
            logger.info(f"Recorder failed: {error}")

    def negotiate_media_type(self) -> str:
        """Pick the best supported media type from the configured preferences."""
        return negotiate_media_type(
            self.config.media_type_preferences,
            self.supports_media_type,
            self.config.fallback_media_type,
        )

    def start_capture(self, handle: CaptureHandle, duration_seconds: float) -> PendingCapture:
        """
        Begin recording immediately for at most ``duration_seconds``.

        Raises:
            CaptureFailedError: If the handle is not held or the stream cannot start
        """
        if handle is not self._handle or handle.released:
            raise CaptureFailedError("Capture handle is not held by this device")
        if not duration_seconds > 0:
            raise CaptureFailedError(f"Capture duration must be positive: {duration_seconds}")

        if self._active is not None and self._active.is_active:
            logger.debug("Cancelling previous capture window")
            self._active.cancel()

        media_type = self.negotiate_media_type()
        stream = self._open_stream(handle)
        pending = PendingCapture(stream, duration_seconds, media_type, self._build_artifact)
        try:
            pending.start()
        except (OSError, RuntimeError) as e:
            pending.cancel()
            raise CaptureFailedError(f"Failed to start capture: {e}") from e
        self._active = pending
        return pending

    def release(self) -> None:
        """Cancel any active capture and release the handle."""
        if self._active is not None:
            self._active.cancel()
            self._active = None
        if self._acquiring is not None:
            self._acquiring.cancel()
            self._acquiring = None
        if self._handle is not None:
            handle = self._handle
            self._handle = None
            handle.released = True
            self._close_handle(handle)
            logger.info(f"Capture device released: {handle.device_name}")

    def _build_artifact(
        self, chunks: list[Any], media_type: str, elapsed_seconds: float
    ) -> RecordingArtifact:
        if not chunks:
            raise CaptureAssemblyError("No audio chunks captured")
        data = self._assemble(chunks, media_type)
        if not data:
            raise CaptureAssemblyError("Assembled recording is empty")
        return RecordingArtifact(
            data=data,
            media_type=media_type,
            duration_seconds=elapsed_seconds,
        )

    @abstractmethod
    async def _open_handle(self) -> CaptureHandle:
        """Request the platform handle.

        Raises:
            DeviceUnavailableError: Device absent or permission denied
        """
        pass

    @abstractmethod
    def _open_stream(self, handle: CaptureHandle) -> CaptureStream:
        """Create a chunk stream on a held handle."""
        pass

    @abstractmethod
    def _assemble(self, chunks: list[Any], media_type: str) -> bytes:
        """Encode captured chunks into bytes of ``media_type``.

        Raises:
            CaptureAssemblyError: If encoding fails
        """
        pass

    @abstractmethod
    def supports_media_type(self, media_type: str) -> bool:
        """Check whether this device can produce ``media_type``."""
        pass

    def _close_handle(self, handle: CaptureHandle) -> None:
        """Free platform resources held by ``handle``."""
        pass


__all__ = [
    "CaptureDevice",
    "CaptureHandle",
    "CaptureStream",
    "CaptureState",
    "PendingCapture",
]
