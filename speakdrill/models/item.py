"""Practice item model.

A PracticeItem is one prompted speaking exercise from the catalogue. The
session core only reads the identifier, the prompt and picture references and
the target duration; everything else travels along as opaque metadata.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional

# Keys consumed by the core; all other record keys become metadata
_CORE_KEYS = {"id", "audio", "picture", "timeSec"}


def _clean_reference(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _to_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True)
class PracticeItem:
    """
    One prompted speaking exercise.

    Attributes:
        id: Globally unique identifier
        prompt_audio: Prompt track reference, or None when the item has no prompt
        picture: Optional image reference
        duration_seconds: Target recording duration (None when missing or not numeric)
        metadata: Opaque catalogue fields not used by the session core
    """

    id: str
    prompt_audio: Optional[str] = None
    picture: Optional[str] = None
    duration_seconds: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self):
        if not self.id or not str(self.id).strip():
            raise ValueError("Item ID cannot be empty")

    @property
    def has_valid_duration(self) -> bool:
        """Check if the item can be recorded (finite positive duration)."""
        return (
            self.duration_seconds is not None
            and math.isfinite(self.duration_seconds)
            and self.duration_seconds > 0
        )

    @property
    def has_prompt(self) -> bool:
        """Check if the item references a prompt track."""
        return bool(self.prompt_audio)

    def to_dict(self) -> dict:
        """Convert back to a normalized catalogue record."""
        record = dict(self.metadata)
        record.update(
            {
                "id": self.id,
                "audio": self.prompt_audio or "",
                "picture": self.picture or "",
                "timeSec": self.duration_seconds,
            }
        )
        return record

    @classmethod
    def from_record(cls, record: dict) -> "PracticeItem":
        """
        Build an item from a normalized catalogue record.

        The duration is read from ``timeSec`` only. A missing or non-numeric
        value yields ``duration_seconds=None``, which the controller reports
        as an invalid duration rather than rejecting the whole catalogue.

        Raises:
            ValueError: If the record has no identifier
        """
        item_id = _clean_reference(record.get("id"))
        if item_id is None:
            raise ValueError(f"Record has no id: {record!r}")

        metadata = {key: value for key, value in record.items() if key not in _CORE_KEYS}

        return cls(
            id=item_id,
            prompt_audio=_clean_reference(record.get("audio")),
            picture=_clean_reference(record.get("picture")),
            duration_seconds=_to_number(record.get("timeSec")),
            metadata=metadata,
        )
