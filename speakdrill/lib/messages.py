"""Externalized message templates for the practice UI.

All user-facing status text is kept here rather than hardcoded
in the controller or the CLI.
"""

from speakdrill.models.session import SessionStatus

# =============================================================================
# Position
# =============================================================================

QUESTION_POSITION = "Question {number} of {total}"

SESSION_COMPLETE = "All questions complete."

EMPTY_SESSION = "No items selected. Choose items from the catalogue first."

# =============================================================================
# Status
# =============================================================================

STATUS_TEXT: dict[SessionStatus, str] = {
    SessionStatus.READY: "",
    SessionStatus.PLAYING_PROMPT: "Listening",
    SessionStatus.WAITING: "Get ready",
    SessionStatus.RECORDING: "Recording",
    SessionStatus.COMPLETE: "Complete",
    SessionStatus.INVALID_DURATION: "Invalid timeSec in data",
    SessionStatus.PROMPT_UNAVAILABLE: "Prompt unavailable. Press Start when ready.",
    SessionStatus.DEVICE_UNAVAILABLE: "Recording not available on this device.",
    SessionStatus.CAPTURE_FAILED: "Recording failed. Previous recording kept.",
}

# =============================================================================
# Recording
# =============================================================================

NO_RECORDING = "No recording yet."

RECORDING_SAVED = "Saved {filename}"

MARKER_SAVED = "No recording available; saved completion marker {filename}"

# =============================================================================
# Catalogue
# =============================================================================

CATALOG_NEED_IMPORT = "Unable to load the catalogue. Please import it."

CATALOG_IMPORT_FAILED = "Failed to read {path}. Please try again."

CATALOG_LOADED = "Loaded {count} items ({source})."

SHOWING_COUNT = "Showing {shown} / {total}"

SELECTED_COUNT = "Practice selected ({count})"


def status_text(status: SessionStatus) -> str:
    """Return display text for a session status."""
    return STATUS_TEXT.get(status, "")


def position_text(index: int, total: int) -> str:
    """Return the 1-indexed position label for the current item."""
    return QUESTION_POSITION.format(number=index + 1, total=total)
