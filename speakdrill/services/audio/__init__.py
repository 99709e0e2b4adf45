"""Audio services: capture contract, scrubber and mock backends.

Hardware-backed implementations live in speakdrill.services.audio.devices and
are imported explicitly by callers that need them.
"""

from speakdrill.services.audio.capture import (
    CaptureDevice,
    CaptureHandle,
    CaptureStream,
    PendingCapture,
)
from speakdrill.services.audio.media_types import extension_for, negotiate_media_type
from speakdrill.services.audio.mock_device import MockCaptureDevice, MockPlaybackBackend
from speakdrill.services.audio.scrubber import AudioScrubber, PlaybackBackend

__all__ = [
    "CaptureDevice",
    "CaptureHandle",
    "CaptureStream",
    "PendingCapture",
    "extension_for",
    "negotiate_media_type",
    "MockCaptureDevice",
    "MockPlaybackBackend",
    "AudioScrubber",
    "PlaybackBackend",
]
