"""Media type negotiation and filename extensions for recordings."""

import logging
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

EXTENSIONS: dict[str, str] = {
    "audio/ogg": "ogg",
    "audio/webm": "webm",
    "audio/wav": "wav",
    "audio/wave": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
    "audio/mp4": "m4a",
    "audio/mpeg": "mp3",
}

DEFAULT_EXTENSION = "bin"


def base_media_type(media_type: str) -> str:
    """Strip parameters: "audio/ogg;codecs=opus" -> "audio/ogg"."""
    return media_type.split(";", 1)[0].strip().lower()


def extension_for(media_type: str | None) -> str:
    """Return the filename extension for a media type, or "bin" if unknown."""
    if not media_type:
        return DEFAULT_EXTENSION
    return EXTENSIONS.get(base_media_type(media_type), DEFAULT_EXTENSION)


def negotiate_media_type(
    preferences: Iterable[str],
    is_supported: Callable[[str], bool],
    fallback: str,
) -> str:
    """
    Pick the first supported media type from a descending preference list.

    Args:
        preferences: Candidate media types, most preferred first
        is_supported: Predicate telling whether the encoder can produce a type
        fallback: Media type used when no candidate is supported

    Returns:
        The negotiated media type
    """
    for candidate in preferences:
        if is_supported(candidate):
            return candidate
    logger.debug(f"No preferred media type supported, falling back to {fallback}")
    return fallback
