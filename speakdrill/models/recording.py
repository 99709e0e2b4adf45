"""Recording models.

This module defines:
- RecordingArtifact: Binary result of a capture tagged with a media type
- PlayableHandle: Revocable reference used to play an artifact back
- ItemRecordingState: Per-item holder owned by the RecordingStore
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from speakdrill.lib.timestamps import generate_timestamp


@dataclass(frozen=True)
class RecordingArtifact:
    """
    Binary result of a capture.

    Attributes:
        data: Encoded audio payload
        media_type: Negotiated media type (e.g. "audio/ogg;codecs=opus")
        duration_seconds: Captured audio length, if known
        created_at: When the artifact was assembled
    """

    data: bytes
    media_type: str
    duration_seconds: Optional[float] = None
    created_at: datetime = field(default_factory=generate_timestamp)

    def __post_init__(self):
        if not self.data:
            raise ValueError("Recording artifact cannot be empty")
        if not self.media_type:
            raise ValueError("Recording artifact needs a media type")

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def base_media_type(self) -> str:
        """Media type without parameters (e.g. "audio/ogg")."""
        return self.media_type.split(";", 1)[0].strip().lower()


@dataclass
class PlayableHandle:
    """
    Revocable reference to an artifact.

    Handles are issued and revoked by the HandleRegistry; holders must not
    use a handle once ``revoked`` is True.

    Attributes:
        url: Opaque unique URL (recording://...)
        item_id: Item the handle was issued for
        revoked: Whether the handle has been released
    """

    url: str
    item_id: str
    revoked: bool = False


@dataclass
class ItemRecordingState:
    """
    Per-item recording state.

    Created lazily on first visit, keyed by item identifier. Holds at most
    one current artifact and the handle derived from it.

    Attributes:
        item_id: Owning item
        artifact: Current recording, if any
        handle: Live playable handle for ``artifact``
        capture_unavailable: Capture was attempted but no recording device was usable
    """

    item_id: str
    artifact: Optional[RecordingArtifact] = None
    handle: Optional[PlayableHandle] = None
    capture_unavailable: bool = False

    @property
    def has_recording(self) -> bool:
        return self.artifact is not None

    @property
    def media_type(self) -> Optional[str]:
        return self.artifact.media_type if self.artifact else None

    @property
    def is_attempted(self) -> bool:
        """True when a recording or a fallback acknowledgment exists."""
        return self.has_recording or self.capture_unavailable
