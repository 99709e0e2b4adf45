"""Domain models for speaking practice sessions."""

from speakdrill.models.item import PracticeItem
from speakdrill.models.session import (
    SessionPhase,
    SessionStatus,
    SessionQueue,
    SessionSnapshot,
)
from speakdrill.models.recording import (
    RecordingArtifact,
    PlayableHandle,
    ItemRecordingState,
)
from speakdrill.models.export import ExportArtifact

__all__ = [
    "PracticeItem",
    "SessionPhase",
    "SessionStatus",
    "SessionQueue",
    "SessionSnapshot",
    "RecordingArtifact",
    "PlayableHandle",
    "ItemRecordingState",
    "ExportArtifact",
]
