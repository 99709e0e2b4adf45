"""Audio scrubber: one playable track with play/pause/seek and progress.

The scrubber keeps its own playback clock on the event loop. The backend only
renders audio from an offset; the scrubber decides where playback is and when
the track ends, and emits the completion event.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from speakdrill.lib.exceptions import PromptLoadError
from speakdrill.lib.timestamps import format_time

logger = logging.getLogger(__name__)

Source = Union[str, bytes]
CompletionHandler = Callable[[], None]


class PlaybackBackend(ABC):
    """
    Audio output for one track.

    Implementations:
        - MockPlaybackBackend: Simulated output for tests and headless runs
        - SoundDevicePlaybackBackend: PortAudio output via sounddevice
    """

    @abstractmethod
    async def load(self, source: Source) -> float:
        """Load a track and return its duration in seconds.

        Raises:
            PromptLoadError: If the track cannot be loaded
        """
        pass

    @abstractmethod
    def start(self, offset_seconds: float) -> None:
        """Start rendering the loaded track from an offset."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop rendering immediately."""
        pass

    def close(self) -> None:
        """Release output resources."""
        pass


class AudioScrubber:
    """
    Play/pause/seek wrapper around one track.

    A scrubber with no source, or whose source failed to load, is
    unavailable: ``play()`` is a no-op and seeking is disabled. Completion is
    emitted once each time playback reaches the end of the track.

    Example:
        scrubber = AudioScrubber(MockPlaybackBackend(), name="prompt")
        scrubber.on_complete(lambda: print("done"))
        await scrubber.set_source("Audio/q1.mp3")
        scrubber.play()
    """

    def __init__(self, backend: PlaybackBackend, name: str = "track"):
        self._backend = backend
        self.name = name
        self._source: Optional[Source] = None
        self._duration: Optional[float] = None
        self._available = False
        self._offset = 0.0
        self._started_at: Optional[float] = None
        self._end_timer: Optional[asyncio.TimerHandle] = None
        self._listeners: list[CompletionHandler] = []
        self._load_error: Optional[PromptLoadError] = None

    # ─────────────── source ─────────────────

    async def set_source(self, source: Optional[Source]) -> bool:
        """
        Load a new track, replacing the current one.

        Args:
            source: Path/URL or encoded bytes; None clears the track

        Returns:
            True if the track is playable
        """
        self._halt()
        self._source = source
        self._duration = None
        self._offset = 0.0
        self._available = False
        self._load_error = None

        if source is None or source == "" or source == b"":
            return False

        try:
            duration = await self._backend.load(source)
        except PromptLoadError as e:
            self._load_error = e
            logger.warning(f"[{self.name}] track unavailable: {e.message}")
            return False

        if duration is None or not math.isfinite(duration) or duration <= 0:
            self._load_error = PromptLoadError(
                f"Track has no playable duration: {duration!r}",
                source=source if isinstance(source, str) else None,
            )
            logger.warning(f"[{self.name}] track unavailable: zero-length track")
            return False

        self._duration = float(duration)
        self._available = True
        return True

    def clear(self) -> None:
        """Drop the current track."""
        self._halt()
        self._source = None
        self._duration = None
        self._offset = 0.0
        self._available = False
        self._load_error = None

    @property
    def available(self) -> bool:
        """True when a track is loaded and playable."""
        return self._available

    @property
    def load_error(self) -> Optional[PromptLoadError]:
        """The error from the last failed load, if any."""
        return self._load_error

    @property
    def has_source(self) -> bool:
        return self._source is not None

    # ─────────────── transport ─────────────────

    @property
    def is_playing(self) -> bool:
        return self._started_at is not None

    def play(self) -> bool:
        """Start or resume playback. Returns False when nothing was started."""
        if not self._available or self.is_playing:
            return False
        if self._offset >= self._duration:
            self._offset = 0.0
        loop = asyncio.get_running_loop()
        self._backend.start(self._offset)
        self._started_at = loop.time()
        self._arm_end_timer(loop)
        logger.debug(f"[{self.name}] play from {self._offset:.2f}s")
        return True

    def pause(self) -> bool:
        """Pause without rewinding. Returns False when not playing."""
        if not self.is_playing:
            return False
        self._offset = self.elapsed_seconds
        self._halt()
        logger.debug(f"[{self.name}] paused at {self._offset:.2f}s")
        return True

    def toggle(self) -> bool:
        """Play if paused, pause if playing. Returns True if now playing."""
        if self.is_playing:
            self.pause()
            return False
        return self.play()

    def restart(self) -> bool:
        """Rewind to the start and play."""
        if not self._available:
            return False
        self._halt()
        self._offset = 0.0
        return self.play()

    def stop(self) -> None:
        """Stop playback and rewind."""
        self._halt()
        self._offset = 0.0

    def seek_to_fraction(self, fraction: float) -> bool:
        """
        Move the playhead to ``fraction`` of the track.

        Args:
            fraction: Position in [0, 1]; out-of-range values are clamped

        Returns:
            False when seeking is disabled (no playable track)
        """
        if not self._available or fraction is None or not math.isfinite(fraction):
            return False
        fraction = min(1.0, max(0.0, fraction))
        was_playing = self.is_playing
        self._halt()
        self._offset = fraction * self._duration
        if was_playing:
            if self._offset >= self._duration:
                self._reach_end()
            else:
                self.play()
        return True

    # ─────────────── progress ─────────────────

    @property
    def duration_seconds(self) -> Optional[float]:
        return self._duration

    @property
    def elapsed_seconds(self) -> float:
        """Current playhead position in seconds."""
        if not self._available:
            return 0.0
        if self._started_at is None:
            return self._offset
        loop = asyncio.get_running_loop()
        return min(self._duration, self._offset + (loop.time() - self._started_at))

    @property
    def fraction_complete(self) -> float:
        if not self._available:
            return 0.0
        return self.elapsed_seconds / self._duration

    def position(self) -> tuple[float, float]:
        """Return (elapsed_seconds, fraction_complete)."""
        return self.elapsed_seconds, self.fraction_complete

    def time_label(self) -> str:
        """Elapsed time formatted as m:ss."""
        return format_time(self.elapsed_seconds)

    # ─────────────── events ─────────────────

    def on_complete(self, handler: CompletionHandler) -> Callable[[], None]:
        """Register a completion listener. Returns an unsubscribe function."""
        self._listeners.append(handler)

        def unsubscribe() -> None:
            if handler in self._listeners:
                self._listeners.remove(handler)

        return unsubscribe

    def close(self) -> None:
        """Stop playback and release the backend."""
        self.clear()
        self._listeners.clear()
        self._backend.close()

    def _arm_end_timer(self, loop: asyncio.AbstractEventLoop) -> None:
        remaining = max(0.0, self._duration - self._offset)
        self._end_timer = loop.call_later(remaining, self._reach_end)

    def _halt(self) -> None:
        if self._end_timer is not None:
            self._end_timer.cancel()
            self._end_timer = None
        if self._started_at is not None:
            self._backend.stop()
            self._started_at = None

    def _reach_end(self) -> None:
        self._halt()
        self._offset = self._duration or 0.0
        logger.info(f"[{self.name}] audio ended")
        for handler in list(self._listeners):
            handler()
