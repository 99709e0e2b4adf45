"""Practice session controller.

Sequences one item at a time through the phase machine:

    IDLE -> PLAYING_PROMPT -> POST_PROMPT_DELAY -> RECORDING -> COMPLETE

with a manual trigger (IDLE -> POST_PROMPT_DELAY) when the item has no
playable prompt. Navigation and redo tear down every pending timer and
capture for the item before the next step starts; an interrupted capture is
abandoned and stores nothing.

Failures never stop the session. They degrade the current item to a status:
invalid duration, prompt unavailable, device unavailable or capture failed.
"""

import asyncio
import logging
import math
from typing import Callable, Optional

from speakdrill.lib.config import PracticeConfig, get_practice_config
from speakdrill.lib.exceptions import CaptureFailedError, DeviceUnavailableError
from speakdrill.lib.messages import status_text
from speakdrill.models.item import PracticeItem
from speakdrill.models.recording import ItemRecordingState
from speakdrill.models.session import (
    SessionPhase,
    SessionQueue,
    SessionSnapshot,
    SessionStatus,
)
from speakdrill.services.audio.capture import CaptureDevice, CaptureHandle, PendingCapture
from speakdrill.services.audio.mock_device import MockPlaybackBackend
from speakdrill.services.audio.scrubber import AudioScrubber
from speakdrill.services.recording.store import RecordingStore
from speakdrill.services.session.timers import Countdown, ScheduledTask

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[SessionSnapshot], None]


class SessionController:
    """
    State machine for one practice session.

    The controller owns the per-item timers and the capture window; the
    capture device handle is acquired lazily and held until ``close()``.

    Example:
        controller = SessionController(queue, MockCaptureDevice())
        await controller.start()
        controller.play_prompt()
        await controller.wait_for_phase(SessionPhase.COMPLETE, timeout=60)
        await controller.next()
    """

    def __init__(
        self,
        queue: SessionQueue,
        device: CaptureDevice,
        store: Optional[RecordingStore] = None,
        prompt: Optional[AudioScrubber] = None,
        review: Optional[AudioScrubber] = None,
        config: Optional[PracticeConfig] = None,
    ):
        self.queue = queue
        self.device = device
        self.store = store or RecordingStore()
        self.prompt = prompt or AudioScrubber(MockPlaybackBackend(), name="prompt")
        self.review = review or AudioScrubber(MockPlaybackBackend(), name="recording")
        self.config = config or get_practice_config()

        self._phase = SessionPhase.IDLE
        self._status = SessionStatus.READY
        self._delay: Optional[ScheduledTask] = None
        self._countdown: Optional[Countdown] = None
        self._recording_task: Optional[asyncio.Task] = None
        self._capture: Optional[PendingCapture] = None
        self._warmup: Optional[asyncio.Task] = None
        self._attempt_error: Optional[DeviceUnavailableError] = None
        self._attempt = 0
        self._listeners: list[ChangeHandler] = []
        self._phase_waiters: list[tuple[SessionPhase, asyncio.Future]] = []
        self._lock = asyncio.Lock()
        self._started = False
        self._closed = False
        self._unsubscribe_prompt = self.prompt.on_complete(self._on_prompt_complete)

    # =========================================================================
    # Observation
    # =========================================================================

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def current_item(self) -> PracticeItem:
        return self.queue.current

    @property
    def current_state(self) -> ItemRecordingState:
        """Recording state of the current item."""
        return self.store.get(self.queue.current.id)

    @property
    def item_ids(self) -> list[str]:
        return self.queue.item_ids

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def _navigating(self) -> bool:
        # next/previous/redo/close hold the lock across teardown and entry
        return self._lock.locked()

    @property
    def remaining_seconds(self) -> Optional[float]:
        """Seconds left in the recording window, None outside recording."""
        if self._phase != SessionPhase.RECORDING or self._countdown is None:
            return None
        return self._countdown.remaining

    def completion_status(self) -> dict[str, bool]:
        """Map every queued item id to whether it has a result."""
        return self.store.completion_status(self.queue.item_ids)

    def snapshot(self) -> SessionSnapshot:
        """Build a read-only view of the current item."""
        remaining = self.remaining_seconds
        state = self.store.peek(self.queue.current.id)
        handle = state.handle if state is not None else None
        return SessionSnapshot(
            index=self.queue.index,
            total=len(self.queue),
            item_id=self.queue.current.id,
            phase=self._phase,
            status=self._status,
            status_text=status_text(self._status),
            remaining_seconds=math.ceil(remaining) if remaining is not None else None,
            prompt_available=self.prompt.available,
            has_previous=self.queue.has_previous,
            has_next=self.queue.has_next,
            is_last=self.queue.is_last,
            recording_url=handle.url if handle is not None and not handle.revoked else None,
        )

    def on_change(self, handler: ChangeHandler) -> Callable[[], None]:
        """Register a snapshot listener. Returns an unsubscribe function."""
        self._listeners.append(handler)

        def unsubscribe() -> None:
            if handler in self._listeners:
                self._listeners.remove(handler)

        return unsubscribe

    async def wait_for_phase(
        self, phase: SessionPhase, timeout: Optional[float] = None
    ) -> SessionSnapshot:
        """
        Wait until the controller enters ``phase``.

        Raises:
            asyncio.TimeoutError: If the phase is not reached in time
        """
        if self._phase == phase:
            return self.snapshot()
        future = asyncio.get_running_loop().create_future()
        entry = (phase, future)
        self._phase_waiters.append(entry)
        try:
            await asyncio.wait_for(future, timeout)
        finally:
            if entry in self._phase_waiters:
                self._phase_waiters.remove(entry)
        return self.snapshot()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> SessionSnapshot:
        """Render the first item."""
        async with self._lock:
            if not self._started:
                self._started = True
                await self._enter_item()
        return self.snapshot()

    async def close(self) -> None:
        """Cancel everything, release the device and revoke all handles."""
        if self._closed:
            return
        async with self._lock:
            await self._teardown()
            if self._warmup is not None and not self._warmup.done():
                self._warmup.cancel()
                try:
                    await self._warmup
                except asyncio.CancelledError:
                    pass
            self._warmup = None
            self._closed = True
            self._unsubscribe_prompt()
            self.device.release()
            self.store.close()
            self.prompt.close()
            self.review.close()
            for _, future in self._phase_waiters:
                if not future.done():
                    future.cancel()
            self._phase_waiters.clear()
            logger.info("Practice session closed")

    # =========================================================================
    # Actions
    # =========================================================================

    def play_prompt(self) -> bool:
        """
        Play the prompt from the start.

        Returns:
            False if the prompt is unavailable, a delay/recording is pending,
            or a navigation is in progress
        """
        if self._navigating:
            return False
        return self._play_prompt()

    def _play_prompt(self) -> bool:
        if self._closed or not self.prompt.available or self._phase.is_busy:
            return False
        self.prompt.restart()
        self._set_phase(SessionPhase.PLAYING_PROMPT, SessionStatus.PLAYING_PROMPT)
        self._warm_device()
        return True

    def trigger_manual_start(self) -> bool:
        """
        Start the delay without a prompt (no prompt track, or it failed to load).

        Returns:
            False if the item has a playable prompt, an invalid duration, or
            a prompt, delay, recording or navigation is in progress
        """
        if self._closed or self._navigating or self.prompt.available:
            return False
        if self._phase not in (SessionPhase.IDLE, SessionPhase.COMPLETE):
            return False
        if not self.queue.current.has_valid_duration:
            self._set_status(SessionStatus.INVALID_DURATION)
            return False
        self._warm_device()
        self._begin_delay()
        return True

    def stop_recording(self) -> bool:
        """End the recording window early and keep what was captured."""
        if self._navigating or self._phase != SessionPhase.RECORDING:
            return False
        if self._capture is not None and self._capture.is_active:
            self._capture.stop()
            return True
        if self._countdown is not None and not self._countdown.finished:
            self._countdown.stop()
            return True
        return False

    async def next(self) -> bool:
        """Move to the next item. Returns False at the last item."""
        async with self._lock:
            if self._closed or not self.queue.has_next:
                return False
            await self._teardown()
            self.queue.advance()
            await self._enter_item()
            return True

    async def previous(self) -> bool:
        """Move to the previous item. Returns False at the first item."""
        async with self._lock:
            if self._closed or not self.queue.has_previous:
                return False
            await self._teardown()
            self.queue.retreat()
            await self._enter_item()
            return True

    async def redo(self) -> bool:
        """
        Discard the current item's recording and run the item again.

        The old playable handle is revoked before anything new is captured.
        """
        async with self._lock:
            if self._closed:
                return False
            item = self.queue.current
            await self._teardown()
            self.store.clear(item.id)
            self.review.clear()
            self._attempt_error = None
            self._attempt += 1
            logger.info(f"Redo {item.id}")

            if not item.has_valid_duration:
                self._set_phase(SessionPhase.IDLE, SessionStatus.INVALID_DURATION)
                return True
            self._set_phase(SessionPhase.IDLE, SessionStatus.READY)
            if self.prompt.available:
                self._play_prompt()
            else:
                self._warm_device()
                self._begin_delay()
            return True

    # =========================================================================
    # Item entry and teardown
    # =========================================================================

    async def _enter_item(self) -> None:
        item = self.queue.current
        self._attempt += 1
        self._attempt_error = None
        state = self.store.get(item.id)

        prompt_ok = await self.prompt.set_source(item.prompt_audio)
        if state.artifact is not None:
            await self.review.set_source(state.artifact.data)
        else:
            self.review.clear()

        if not item.has_valid_duration:
            status = SessionStatus.INVALID_DURATION
            logger.warning(f"Item {item.id} has invalid duration: {item.duration_seconds!r}")
        elif state.capture_unavailable and not state.has_recording:
            status = SessionStatus.DEVICE_UNAVAILABLE
        elif not prompt_ok:
            status = SessionStatus.PROMPT_UNAVAILABLE
        else:
            status = SessionStatus.READY

        logger.info(f"Entered item {item.id} ({self.queue.index + 1}/{len(self.queue)})")
        self._set_phase(SessionPhase.IDLE, status)

    async def _teardown(self) -> None:
        """Cancel every pending step for the current item and wait for it to stop."""
        if self._delay is not None:
            delay, self._delay = self._delay, None
            await delay.cancel()

        if self._capture is not None:
            self._capture.cancel()

        if self._recording_task is not None and not self._recording_task.done():
            self._recording_task.cancel()
            try:
                await self._recording_task
            except asyncio.CancelledError:
                pass
        self._recording_task = None
        self._capture = None

        if self._countdown is not None:
            await self._countdown.cancel()
            self._countdown = None

        self.prompt.stop()
        self.review.stop()

    # =========================================================================
    # Phase steps
    # =========================================================================

    def _begin_delay(self) -> None:
        self._set_phase(SessionPhase.POST_PROMPT_DELAY, SessionStatus.WAITING)
        self._delay = ScheduledTask(
            self.config.post_prompt_delay_seconds,
            self._enter_recording,
            name="post-prompt delay",
        )
        self._delay.start()

    def _on_prompt_complete(self) -> None:
        if self._navigating or self._phase != SessionPhase.PLAYING_PROMPT:
            return
        if not self.queue.current.has_valid_duration:
            self._set_phase(SessionPhase.IDLE, SessionStatus.INVALID_DURATION)
            return
        self._begin_delay()

    def _enter_recording(self) -> None:
        item = self.queue.current
        self._set_phase(SessionPhase.RECORDING, SessionStatus.RECORDING)
        self._countdown = Countdown(
            item.duration_seconds,
            self.config.countdown_tick_seconds,
            on_tick=self._on_tick,
        )
        self._countdown.start()
        self._recording_task = asyncio.create_task(self._record(item, self._countdown))

    async def _record(self, item: PracticeItem, countdown: Countdown) -> None:
        try:
            handle = await self._acquire()
        except DeviceUnavailableError as e:
            logger.info(f"Recorder failed for {item.id}: {e.message} ({e.reason})")
            self.store.mark_unavailable(item.id)
            self._set_status(SessionStatus.DEVICE_UNAVAILABLE)
            await countdown.wait()
            self._finish(SessionStatus.DEVICE_UNAVAILABLE)
            return

        # Acquisition time is charged against the window
        remaining = countdown.remaining
        if remaining <= 0 and countdown.stopped_early:
            logger.info(f"Recording for {item.id} stopped before capture started")
            self._finish(SessionStatus.COMPLETE)
            return
        if remaining <= 0:
            logger.warning(f"No recording time left for {item.id} after acquisition")
            self._mark_failed(item)
            self._finish(SessionStatus.CAPTURE_FAILED)
            return

        try:
            self._capture = self.device.start_capture(handle, remaining)
            artifact = await self._capture.wait()
        except CaptureFailedError as e:
            logger.warning(f"Recorder failed for {item.id}: {e.message}")
            self._mark_failed(item)
            self._finish(SessionStatus.CAPTURE_FAILED)
            return
        finally:
            self._capture = None

        self.store.replace(item.id, artifact)
        await self.review.set_source(artifact.data)
        self._finish(SessionStatus.COMPLETE)

    async def _acquire(self) -> CaptureHandle:
        if self._attempt_error is not None:
            raise self._attempt_error
        return await self.device.acquire()

    def _warm_device(self) -> None:
        """Request the device ahead of the recording window."""
        if self.device.is_held:
            return
        if self._warmup is not None and not self._warmup.done():
            return
        self._warmup = asyncio.create_task(self._warm(self._attempt))

    async def _warm(self, attempt: int) -> None:
        try:
            await self.device.acquire()
        except DeviceUnavailableError as e:
            if attempt == self._attempt:
                self._attempt_error = e
            logger.info(f"Capture device unavailable: {e.message}")

    def _mark_failed(self, item: PracticeItem) -> None:
        state = self.store.get(item.id)
        if not state.has_recording:
            self.store.mark_unavailable(item.id)

    def _finish(self, status: SessionStatus) -> None:
        if self._countdown is not None:
            self._countdown.stop()
        self._set_phase(SessionPhase.COMPLETE, status)
        logger.info(f"Item {self.queue.current.id} complete ({status.value})")

    def _on_tick(self, remaining: float) -> None:
        if self._phase == SessionPhase.RECORDING:
            self._notify()

    # =========================================================================
    # State changes
    # =========================================================================

    def _set_phase(self, phase: SessionPhase, status: SessionStatus) -> None:
        if phase != self._phase and not self._phase.can_transition_to(phase):
            logger.warning(f"Unexpected phase transition {self._phase.value} -> {phase.value}")
        logger.debug(f"Phase {self._phase.value} -> {phase.value} ({status.value})")
        self._phase = phase
        self._status = status
        for entry in list(self._phase_waiters):
            wanted, future = entry
            if wanted == phase and not future.done():
                future.set_result(None)
                self._phase_waiters.remove(entry)
        self._notify()

    def _set_status(self, status: SessionStatus) -> None:
        self._status = status
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for handler in list(self._listeners):
            handler(snapshot)
