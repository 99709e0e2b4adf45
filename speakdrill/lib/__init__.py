"""Shared utilities and configuration."""

from speakdrill.lib.config import PracticeConfig, CaptureConfig, CatalogConfig
from speakdrill.lib.timestamps import generate_timestamp, format_timestamp, format_time
from speakdrill.lib.exceptions import (
    PracticeError,
    ConfigError,
    CatalogError,
    DeviceUnavailableError,
    InvalidDurationError,
    PromptLoadError,
    CaptureFailedError,
    CaptureAssemblyError,
)

__all__ = [
    "PracticeConfig",
    "CaptureConfig",
    "CatalogConfig",
    "generate_timestamp",
    "format_timestamp",
    "format_time",
    "PracticeError",
    "ConfigError",
    "CatalogError",
    "DeviceUnavailableError",
    "InvalidDurationError",
    "PromptLoadError",
    "CaptureFailedError",
    "CaptureAssemblyError",
]
