"""Hardware-backed capture and playback using sounddevice (PortAudio).

sounddevice is imported lazily: a machine without PortAudio or without an
input device degrades to DeviceUnavailableError instead of failing at import.
"""

import asyncio
import logging
import threading
from typing import Any, Callable, Optional, Union

import httpx
import numpy as np

from speakdrill.lib.config import CaptureConfig
from speakdrill.lib.exceptions import DeviceUnavailableError, PromptLoadError
from speakdrill.services.audio.capture import CaptureDevice, CaptureHandle, CaptureStream
from speakdrill.services.audio.encoding import (
    concatenate_blocks,
    decode_audio,
    encode_frames,
    soundfile_supports,
)
from speakdrill.services.audio.scrubber import PlaybackBackend

logger = logging.getLogger(__name__)


def _load_sounddevice():
    try:
        import sounddevice as sd
    except (ImportError, OSError) as e:
        raise DeviceUnavailableError(
            f"Audio backend not available: {e}",
            reason=DeviceUnavailableError.ABSENT,
        ) from e
    return sd


class _InputRouter:
    """Forwards PortAudio input blocks to whichever capture is listening."""

    def __init__(self):
        self._lock = threading.Lock()
        self._sink: Optional[Callable[[Any], None]] = None

    def attach(self, sink: Callable[[Any], None]) -> None:
        with self._lock:
            self._sink = sink

    def detach(self) -> None:
        with self._lock:
            self._sink = None

    def __call__(self, indata, frames, time, status) -> None:
        if status:
            logger.debug(f"Input stream status: {status}")
        with self._lock:
            sink = self._sink
        if sink is not None:
            sink(indata.copy())


class _RoutedStream(CaptureStream):
    def __init__(self, router: _InputRouter):
        self._router = router

    def start(self, on_chunk: Callable[[Any], None]) -> None:
        self._router.attach(on_chunk)

    def stop(self) -> None:
        self._router.detach()


class SoundDeviceCaptureDevice(CaptureDevice):
    """
    Microphone capture through the default PortAudio input device.

    The input stream is opened once on acquisition and kept running for the
    session; each capture window attaches to it and detaches on stop.
    """

    def __init__(self, config: Optional[CaptureConfig] = None, device: Optional[Union[int, str]] = None):
        super().__init__(config)
        self.device = device

    async def _open_handle(self) -> CaptureHandle:
        return await asyncio.to_thread(self._open_input)

    def _open_input(self) -> CaptureHandle:
        sd = _load_sounddevice()
        try:
            info = sd.query_devices(self.device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise DeviceUnavailableError(
                f"No input device: {e}",
                reason=DeviceUnavailableError.ABSENT,
            ) from e

        router = _InputRouter()
        try:
            stream = sd.InputStream(
                device=self.device,
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                blocksize=self.config.block_size,
                dtype="float32",
                callback=router,
            )
            stream.start()
        except sd.PortAudioError as e:
            raise DeviceUnavailableError(
                f"Input device refused access: {e}",
                reason=DeviceUnavailableError.DENIED,
            ) from e

        return CaptureHandle(device_name=info.get("name", "input"), native=(stream, router))

    def _open_stream(self, handle: CaptureHandle) -> CaptureStream:
        _, router = handle.native
        return _RoutedStream(router)

    def _assemble(self, chunks: list[Any], media_type: str) -> bytes:
        frames = concatenate_blocks(chunks)
        return encode_frames(frames, self.config.sample_rate, media_type)

    def supports_media_type(self, media_type: str) -> bool:
        return soundfile_supports(media_type, self.config.sample_rate)

    def _close_handle(self, handle: CaptureHandle) -> None:
        stream, router = handle.native
        router.detach()
        try:
            stream.stop()
            stream.close()
        except Exception as e:
            logger.warning(f"Error closing input stream: {e}")


class SoundDevicePlaybackBackend(PlaybackBackend):
    """Plays decoded tracks on the default PortAudio output device."""

    def __init__(self, fetch_timeout_seconds: float = 10.0):
        self._timeout = fetch_timeout_seconds
        self._frames: Optional[np.ndarray] = None
        self._sample_rate = 0

    async def load(self, source: Union[str, bytes]) -> float:
        if isinstance(source, str) and source.startswith(("http://", "https://")):
            payload = await asyncio.to_thread(self._fetch, source)
        else:
            payload = source
        frames, sample_rate = await asyncio.to_thread(decode_audio, payload)
        if sample_rate <= 0 or len(frames) == 0:
            raise PromptLoadError("Track contains no audio", source=str(source)[:200])
        self._frames = frames
        self._sample_rate = sample_rate
        return len(frames) / sample_rate

    def _fetch(self, url: str) -> bytes:
        try:
            with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
                response = client.get(url)
                if response.status_code != 200:
                    raise PromptLoadError(f"HTTP {response.status_code}", source=url)
                return response.content
        except httpx.TimeoutException as e:
            raise PromptLoadError(f"Request timed out after {self._timeout}s", source=url) from e
        except httpx.RequestError as e:
            raise PromptLoadError(f"Network error: {e}", source=url) from e

    def start(self, offset_seconds: float) -> None:
        if self._frames is None:
            return
        try:
            sd = _load_sounddevice()
        except DeviceUnavailableError as e:
            logger.warning(f"Playback unavailable: {e.message}")
            return
        first = int(offset_seconds * self._sample_rate)
        sd.play(self._frames[first:], self._sample_rate)

    def stop(self) -> None:
        if self._frames is None:
            return
        try:
            sd = _load_sounddevice()
        except DeviceUnavailableError:
            return
        sd.stop()

    def close(self) -> None:
        self.stop()
        self._frames = None
