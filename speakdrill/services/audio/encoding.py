"""Audio encoding and decoding with soundfile (libsndfile).

Captured blocks are float32 numpy arrays; they are concatenated and encoded
into the negotiated container in memory. Decoding accepts a path or raw bytes
and is used by the playback backend.
"""

import io
import logging
from pathlib import Path
from typing import Sequence, Union

import numpy as np
import soundfile as sf

from speakdrill.lib.exceptions import CaptureAssemblyError, PromptLoadError
from speakdrill.services.audio.media_types import base_media_type

logger = logging.getLogger(__name__)

# media type -> (libsndfile format, subtype)
SOUNDFILE_FORMATS: dict[str, tuple[str, str]] = {
    "audio/ogg;codecs=opus": ("OGG", "OPUS"),
    "audio/ogg;codecs=vorbis": ("OGG", "VORBIS"),
    "audio/ogg": ("OGG", "VORBIS"),
    "audio/flac": ("FLAC", "PCM_16"),
    "audio/wav": ("WAV", "PCM_16"),
    "audio/x-wav": ("WAV", "PCM_16"),
}

# Opus only encodes at these rates
OPUS_SAMPLE_RATES = (8000, 12000, 16000, 24000, 48000)

AudioSource = Union[str, Path, bytes]


def _normalize(media_type: str) -> str:
    return media_type.replace(" ", "").lower()


def soundfile_format(media_type: str) -> tuple[str, str] | None:
    """Return the libsndfile (format, subtype) pair for a media type."""
    key = _normalize(media_type)
    if key in SOUNDFILE_FORMATS:
        return SOUNDFILE_FORMATS[key]
    return SOUNDFILE_FORMATS.get(base_media_type(key))


def soundfile_supports(media_type: str, sample_rate: int | None = None) -> bool:
    """Check whether libsndfile can encode a media type in this environment."""
    fmt = soundfile_format(media_type)
    if fmt is None:
        return False
    format_name, subtype = fmt
    if subtype == "OPUS" and sample_rate is not None and sample_rate not in OPUS_SAMPLE_RATES:
        return False
    return sf.check_format(format_name, subtype)


def encode_frames(frames: np.ndarray, sample_rate: int, media_type: str) -> bytes:
    """
    Encode audio frames into an in-memory container.

    Args:
        frames: float32 array shaped (n,) or (n, channels)
        sample_rate: Sample rate in Hz
        media_type: Target media type (must be known to SOUNDFILE_FORMATS)

    Returns:
        Encoded bytes

    Raises:
        CaptureAssemblyError: If the frames are empty or encoding fails
    """
    fmt = soundfile_format(media_type)
    if fmt is None:
        raise CaptureAssemblyError(f"No encoder for media type {media_type}")
    if frames.size == 0:
        raise CaptureAssemblyError("No audio frames captured")

    format_name, subtype = fmt
    buffer = io.BytesIO()
    try:
        sf.write(buffer, frames, sample_rate, format=format_name, subtype=subtype)
    except (RuntimeError, ValueError, TypeError) as e:
        raise CaptureAssemblyError(f"Failed to encode {media_type}: {e}") from e

    data = buffer.getvalue()
    if not data:
        raise CaptureAssemblyError(f"Encoder produced no data for {media_type}")
    return data


def concatenate_blocks(blocks: Sequence[np.ndarray]) -> np.ndarray:
    """Join captured blocks into one float32 array."""
    if not blocks:
        return np.zeros((0,), dtype=np.float32)
    return np.ascontiguousarray(np.concatenate(blocks, axis=0), dtype=np.float32)


def decode_audio(source: AudioSource) -> tuple[np.ndarray, int]:
    """
    Decode a track into float32 frames.

    Args:
        source: Filesystem path or encoded bytes

    Returns:
        (frames, sample_rate)

    Raises:
        PromptLoadError: If the source cannot be read or decoded
    """
    label = "<bytes>" if isinstance(source, bytes) else str(source)
    target = io.BytesIO(source) if isinstance(source, bytes) else str(source)
    try:
        data, sample_rate = sf.read(target, dtype="float32")
    except (RuntimeError, ValueError, TypeError, OSError) as e:
        raise PromptLoadError(f"Failed to load audio: {e}", source=label) from e
    logger.debug(f"Decoded {label}: {len(data)} frames at {sample_rate} Hz")
    return data, sample_rate
