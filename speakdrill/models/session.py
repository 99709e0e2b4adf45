"""Session models for practice runs.

This module defines the phase machine, the user-visible status, the
immutable queue of items selected for a session and the snapshot handed to
renderers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from speakdrill.lib.exceptions import NavigationError
from speakdrill.models.item import PracticeItem


class SessionPhase(str, Enum):
    """
    Per-item phase.

    State transitions:
        IDLE → PLAYING_PROMPT (prompt has audio, play pressed)
        IDLE → POST_PROMPT_DELAY (manual trigger when no prompt is playable)
        COMPLETE → PLAYING_PROMPT or POST_PROMPT_DELAY (run the item again)
        PLAYING_PROMPT → POST_PROMPT_DELAY (prompt reached its end)
        POST_PROMPT_DELAY → RECORDING (fixed wait elapsed)
        RECORDING → COMPLETE (duration elapsed or explicit stop)
        Any state → IDLE (navigation or redo)
    """

    IDLE = "idle"
    PLAYING_PROMPT = "playingAudio"
    POST_PROMPT_DELAY = "waiting"
    RECORDING = "recording"
    COMPLETE = "complete"

    @classmethod
    def allowed_transitions(cls) -> dict["SessionPhase", list["SessionPhase"]]:
        """Return allowed state transitions (IDLE is always reachable)."""
        return {
            cls.IDLE: [cls.PLAYING_PROMPT, cls.POST_PROMPT_DELAY, cls.IDLE],
            cls.PLAYING_PROMPT: [cls.POST_PROMPT_DELAY, cls.PLAYING_PROMPT, cls.IDLE],
            cls.POST_PROMPT_DELAY: [cls.RECORDING, cls.IDLE],
            cls.RECORDING: [cls.COMPLETE, cls.IDLE],
            cls.COMPLETE: [cls.PLAYING_PROMPT, cls.POST_PROMPT_DELAY, cls.IDLE],
        }

    def can_transition_to(self, new_phase: "SessionPhase") -> bool:
        """Check if transition to new_phase is allowed."""
        return new_phase in self.allowed_transitions().get(self, [])

    @property
    def is_busy(self) -> bool:
        """True while a timer or capture window is pending."""
        return self in (SessionPhase.POST_PROMPT_DELAY, SessionPhase.RECORDING)


class SessionStatus(str, Enum):
    """User-visible status for the current item."""

    READY = "READY"
    PLAYING_PROMPT = "PLAYING_PROMPT"
    WAITING = "WAITING"
    RECORDING = "RECORDING"
    COMPLETE = "COMPLETE"

    # Degraded states, never fatal
    INVALID_DURATION = "INVALID_DURATION"
    PROMPT_UNAVAILABLE = "PROMPT_UNAVAILABLE"
    DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
    CAPTURE_FAILED = "CAPTURE_FAILED"


class SessionQueue:
    """
    Ordered, immutable sequence of items with a current position.

    The position always satisfies ``0 <= index < len(queue)``.
    """

    def __init__(self, items: Sequence[PracticeItem]):
        """
        Args:
            items: Items in practice order

        Raises:
            NavigationError: If items is empty or contains duplicate identifiers
        """
        if not items:
            raise NavigationError("Session queue cannot be empty")
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise NavigationError(f"Duplicate item id in session queue: {item.id}")
            seen.add(item.id)
        self._items: tuple[PracticeItem, ...] = tuple(items)
        self._index = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    @property
    def index(self) -> int:
        """Current 0-indexed position."""
        return self._index

    @property
    def current(self) -> PracticeItem:
        """Item at the current position."""
        return self._items[self._index]

    @property
    def item_ids(self) -> list[str]:
        """Identifiers in queue order."""
        return [item.id for item in self._items]

    @property
    def has_previous(self) -> bool:
        return self._index > 0

    @property
    def has_next(self) -> bool:
        return self._index < len(self._items) - 1

    @property
    def is_last(self) -> bool:
        return not self.has_next

    def advance(self) -> bool:
        """Move forward one item. Returns False at the last item."""
        if not self.has_next:
            return False
        self._index += 1
        return True

    def retreat(self) -> bool:
        """Move back one item. Returns False at the first item."""
        if not self.has_previous:
            return False
        self._index -= 1
        return True


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Read-only view of the controller for renderers.

    Attributes:
        index: Current 0-indexed position
        total: Queue length
        item_id: Current item identifier
        phase: Current phase
        status: Current status
        status_text: Display text for the status
        remaining_seconds: Whole seconds left in the countdown, None outside recording
        prompt_available: Whether the prompt track can be played
        has_previous: Whether previous navigation is enabled
        has_next: Whether next navigation is enabled
        is_last: Whether the current item is the last one
        recording_url: Live playable handle URL for the current item, if any
    """

    index: int
    total: int
    item_id: str
    phase: SessionPhase
    status: SessionStatus
    status_text: str
    remaining_seconds: Optional[int]
    prompt_available: bool
    has_previous: bool
    has_next: bool
    is_last: bool
    recording_url: Optional[str] = None
