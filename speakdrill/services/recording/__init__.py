"""Recording state for practice sessions."""

from speakdrill.services.recording.store import HandleRegistry, RecordingStore

__all__ = ["HandleRegistry", "RecordingStore"]
