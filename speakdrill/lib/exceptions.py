"""Exception hierarchy for speaking practice sessions.

All custom exceptions inherit from PracticeError to enable
selective catching at different levels.

Hierarchy:
    PracticeError (base)
    ├── ConfigError - Configuration issues
    ├── CatalogError - Catalogue could not be read or parsed
    │   └── MergeError - Offline merge rejected a row
    ├── NavigationError - Invalid session queue
    ├── DeviceUnavailableError - No capture capability or permission denied
    ├── InvalidDurationError - Item duration missing or non-positive
    ├── PromptLoadError - Prompt track could not be loaded
    ├── CaptureFailedError - Capture could not run to completion
    │   └── CaptureAssemblyError - Chunks could not become an artifact
    ├── HandleRevokedError - Playable handle used after revocation
    └── ExportError - Export artifact could not be written

Only ConfigError, CatalogError and ExportError ever reach the user as failures;
the rest degrade a single item to a narrower capability.
"""

import math


class PracticeError(Exception):
    """
    Base exception for all practice session errors.

    Catching this will catch all custom exceptions from this package.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigError(PracticeError):
    """
    Configuration error.

    Raised when required configuration is missing or invalid.

    CLI Exit Code: 2
    """

    pass


class CatalogError(PracticeError):
    """
    Catalogue read or parse error.

    CLI Exit Code: 3

    Attributes:
        path: Source that caused the error
    """

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


class MergeError(CatalogError):
    """
    Offline merge rejected the input.

    Attributes:
        row: 1-indexed spreadsheet row number, if the error is row-specific
    """

    def __init__(self, message: str, row: int | None = None):
        self.row = row
        super().__init__(message)


class NavigationError(PracticeError):
    """Raised when a session queue cannot be built or navigated."""

    pass


class DeviceUnavailableError(PracticeError):
    """
    No capture capability in this environment, or permission denied.

    Recoverable: the session continues without an artifact for the item.

    Attributes:
        reason: "absent" or "denied"
    """

    ABSENT = "absent"
    DENIED = "denied"

    def __init__(self, message: str, reason: str = ABSENT):
        self.reason = reason
        super().__init__(message)


class InvalidDurationError(PracticeError):
    """
    Item's target duration is missing, non-finite or non-positive.

    Attributes:
        item_id: Offending item
        value: Raw duration value
    """

    def __init__(self, item_id: str, value: object):
        self.item_id = item_id
        self.value = value
        super().__init__(f"Item '{item_id}' has invalid duration: {value!r}")


class PromptLoadError(PracticeError):
    """
    Prompt track failed to load.

    Attributes:
        source: The source that failed
    """

    def __init__(self, message: str, source: str | None = None):
        self.source = source
        super().__init__(message)


class CaptureFailedError(PracticeError):
    """Capture started but could not produce a recording."""

    pass


class CaptureAssemblyError(CaptureFailedError):
    """Captured chunks could not be assembled into an artifact."""

    pass


class HandleRevokedError(PracticeError):
    """
    Playable handle resolved after it was revoked.

    Attributes:
        url: The revoked handle URL
    """

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Playable handle has been revoked: {url}")


class ExportError(PracticeError):
    """
    Export artifact could not be written.

    CLI Exit Code: 4

    Attributes:
        path: Target path
    """

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)


def validate_duration(item_id: str, value: object) -> float:
    """Return value as a finite positive float.

    Raises:
        InvalidDurationError: If value is missing, non-numeric, non-finite or <= 0
    """
    if value is None or isinstance(value, bool):
        raise InvalidDurationError(item_id, value)
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise InvalidDurationError(item_id, value) from None
    if not math.isfinite(seconds) or seconds <= 0:
        raise InvalidDurationError(item_id, value)
    return seconds
