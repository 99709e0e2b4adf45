"""Contract tests for CaptureDevice.

Exercises the acquisition ordering, duration bound and stop/cancel
semantics every capture device must honour, using MockCaptureDevice.
"""

import asyncio
import time

import pytest

from speakdrill.lib.config import CaptureConfig
from speakdrill.lib.exceptions import CaptureAssemblyError, CaptureFailedError, DeviceUnavailableError
from speakdrill.services.audio.capture import CaptureState
from speakdrill.services.audio.mock_device import MockCaptureDevice


class TestAcquisition:
    """Tests for handle acquisition."""

    @pytest.mark.asyncio
    async def test_held_handle_reused(self):
        device = MockCaptureDevice()

        first = await device.acquire()
        second = await device.acquire()

        assert first is second
        assert device.acquisition_requests == 1
        assert device.is_held

    @pytest.mark.asyncio
    async def test_concurrent_acquire_shares_request(self):
        device = MockCaptureDevice(acquire_delay=0.05)

        handles = await asyncio.gather(device.acquire(), device.acquire(), device.acquire())

        assert handles[0] is handles[1] is handles[2]
        assert device.acquisition_requests == 1

    @pytest.mark.asyncio
    async def test_concurrent_failure_reaches_every_caller(self):
        device = MockCaptureDevice(acquire_delay=0.02, simulate_denied=True)

        results = await asyncio.gather(device.acquire(), device.acquire(), return_exceptions=True)

        assert all(isinstance(r, DeviceUnavailableError) for r in results)
        assert results[0].reason == DeviceUnavailableError.DENIED
        assert device.acquisition_requests == 1

    @pytest.mark.asyncio
    async def test_failure_not_cached(self):
        device = MockCaptureDevice(simulate_absent=True)

        with pytest.raises(DeviceUnavailableError):
            await device.acquire()
        device.simulate_absent = False
        handle = await device.acquire()

        assert handle.device_name == "mock-microphone"
        assert device.acquisition_requests == 2

    @pytest.mark.asyncio
    async def test_release_closes_handle(self):
        device = MockCaptureDevice()
        handle = await device.acquire()

        device.release()
        device.release()

        assert handle.released
        assert device.handle is None
        assert device.closed_handles == [handle]

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_request(self):
        device = MockCaptureDevice(acquire_delay=0.05)
        waiter = asyncio.create_task(device.acquire())
        await asyncio.sleep(0.01)

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        handle = await device.acquire()

        assert handle is not None
        assert device.acquisition_requests == 1


class TestCaptureWindow:
    """Tests for the bounded capture window."""

    @pytest.mark.asyncio
    async def test_stops_at_duration(self):
        device = MockCaptureDevice()
        handle = await device.acquire()
        loop = asyncio.get_running_loop()
        start = loop.time()

        pending = device.start_capture(handle, 0.1)
        artifact = await pending.wait()
        elapsed = loop.time() - start

        assert 0.08 <= elapsed < 0.3
        assert pending.stop_reason == "duration"
        assert pending.state == CaptureState.FINISHED
        assert artifact.data
        assert artifact.media_type == "audio/ogg;codecs=opus"
        assert device.streams[0].stopped

    @pytest.mark.asyncio
    async def test_stop_keeps_audio(self):
        device = MockCaptureDevice()
        handle = await device.acquire()

        pending = device.start_capture(handle, 5.0)
        await asyncio.sleep(0.03)
        pending.stop()
        artifact = await asyncio.wait_for(pending.wait(), timeout=0.5)

        assert pending.stop_reason == "stopped"
        assert artifact.duration_seconds < 1.0
        assert artifact.data

    @pytest.mark.asyncio
    async def test_cancel_discards_audio(self):
        device = MockCaptureDevice()
        handle = await device.acquire()

        pending = device.start_capture(handle, 5.0)
        await asyncio.sleep(0.03)
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending.wait()
        assert pending.state == CaptureState.CANCELLED
        assert pending.chunk_count == 0

    @pytest.mark.asyncio
    async def test_new_capture_cancels_previous(self):
        device = MockCaptureDevice()
        handle = await device.acquire()

        first = device.start_capture(handle, 5.0)
        second = device.start_capture(handle, 0.05)
        await second.wait()

        assert first.state == CaptureState.CANCELLED

    @pytest.mark.asyncio
    async def test_requires_held_handle(self):
        device = MockCaptureDevice()
        handle = await device.acquire()
        device.release()

        with pytest.raises(CaptureFailedError):
            device.start_capture(handle, 1.0)

    @pytest.mark.asyncio
    async def test_rejects_non_positive_duration(self):
        device = MockCaptureDevice()
        handle = await device.acquire()

        with pytest.raises(CaptureFailedError):
            device.start_capture(handle, 0)

    @pytest.mark.asyncio
    async def test_assembly_failure(self):
        device = MockCaptureDevice(simulate_assembly_failure=True)
        handle = await device.acquire()

        pending = device.start_capture(handle, 0.05)

        with pytest.raises(CaptureAssemblyError):
            await pending.wait()

    @pytest.mark.asyncio
    async def test_empty_capture_is_assembly_failure(self):
        device = MockCaptureDevice(chunk=b"")
        handle = await device.acquire()

        with pytest.raises(CaptureAssemblyError):
            await device.start_capture(handle, 0.03).wait()


class TestMediaNegotiation:
    """Tests for media type negotiation."""

    def test_first_supported_preference(self):
        config = CaptureConfig(preferred_media_types="audio/webm,audio/ogg,audio/wav")
        device = MockCaptureDevice(config, supported_media_types=("audio/ogg", "audio/wav"))

        assert device.negotiate_media_type() == "audio/ogg"

    def test_fallback_when_unsupported(self):
        config = CaptureConfig(preferred_media_types="audio/webm", fallback_media_type="audio/wav")
        device = MockCaptureDevice(config, supported_media_types=())

        assert device.negotiate_media_type() == "audio/wav"


class SlowEncodingDevice(MockCaptureDevice):
    """Mock device whose encoder blocks like a real one."""

    def __init__(self, encode_seconds: float, **kwargs):
        super().__init__(**kwargs)
        self.encode_seconds = encode_seconds

    def _assemble(self, chunks, media_type):
        time.sleep(self.encode_seconds)
        return super()._assemble(chunks, media_type)


class TestAssembly:
    """Tests for encoding the captured window."""

    @pytest.mark.asyncio
    async def test_encoding_does_not_block_loop(self):
        device = SlowEncodingDevice(0.2)
        handle = await device.acquire()
        ticks = 0

        async def ticker():
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        pending = device.start_capture(handle, 0.02)
        await asyncio.sleep(0.03)
        ticker_task = asyncio.create_task(ticker())
        try:
            artifact = await pending.wait()
        finally:
            ticker_task.cancel()

        assert artifact.data
        assert ticks >= 5

    @pytest.mark.asyncio
    async def test_cancel_while_encoding_discards_result(self):
        device = SlowEncodingDevice(0.1)
        handle = await device.acquire()

        pending = device.start_capture(handle, 0.02)
        await asyncio.sleep(0.05)
        assert pending.state == CaptureState.STOPPING
        pending.cancel()

        with pytest.raises(asyncio.CancelledError):
            await pending.wait()
        await asyncio.sleep(0.15)
        assert pending.state == CaptureState.CANCELLED
