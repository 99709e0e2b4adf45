"""Configuration management via environment variables and pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class PracticeConfig(BaseSettings):
    """Configuration for the practice session controller."""

    post_prompt_delay_seconds: float = Field(
        default=2.0,
        alias="PRACTICE_POST_PROMPT_DELAY",
        description="Fixed pause between the end of the prompt and recording start",
    )

    countdown_tick_seconds: float = Field(
        default=1.0,
        alias="PRACTICE_COUNTDOWN_TICK",
        description="Interval between countdown notifications while recording",
    )

    export_prefix: str = Field(
        default="LR",
        alias="PRACTICE_EXPORT_PREFIX",
        description="Prefix for exported recording filenames",
    )

    export_dir: str = Field(
        default="./exports",
        alias="PRACTICE_EXPORT_DIR",
        description="Directory where the CLI saves exported recordings",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def export_path(self) -> Path:
        """Get export directory as Path."""
        return Path(self.export_dir)


class CaptureConfig(BaseSettings):
    """Configuration for microphone capture and encoding."""

    preferred_media_types: str = Field(
        default="audio/ogg;codecs=opus,audio/ogg,audio/flac,audio/wav",
        alias="CAPTURE_MEDIA_TYPES",
        description="Comma-separated media types, most preferred first",
    )

    fallback_media_type: str = Field(
        default="audio/wav",
        alias="CAPTURE_FALLBACK_MEDIA_TYPE",
        description="Media type used when no preferred type is supported",
    )

    sample_rate: int = Field(
        default=48000,
        alias="CAPTURE_SAMPLE_RATE",
        description="Capture sample rate in Hz",
    )

    channels: int = Field(
        default=1,
        alias="CAPTURE_CHANNELS",
        description="Number of input channels",
    )

    block_size: int = Field(
        default=1024,
        alias="CAPTURE_BLOCK_SIZE",
        description="Frames per callback block",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def media_type_preferences(self) -> list[str]:
        """Preferred media types as a list, most preferred first."""
        return [
            value.strip()
            for value in self.preferred_media_types.split(",")
            if value.strip()
        ]


class CatalogConfig(BaseSettings):
    """Configuration for the exercise catalogue and selection."""

    catalog_source: str = Field(
        default="./TestData.json",
        alias="CATALOG_SOURCE",
        description="Catalogue location: local path or http(s) URL",
    )

    cache_dir: str = Field(
        default="./.speakdrill",
        alias="CATALOG_CACHE_DIR",
        description="Directory for the last-known-good catalogue cache",
    )

    fetch_timeout_seconds: float = Field(
        default=10.0,
        alias="CATALOG_FETCH_TIMEOUT",
        description="Timeout for fetching a remote catalogue",
    )

    selection_file: str = Field(
        default="./.speakdrill/selected.json",
        alias="CATALOG_SELECTION_FILE",
        description="File storing the selected item identifiers",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @property
    def cache_path(self) -> Path:
        """Get the catalogue cache file path."""
        return Path(self.cache_dir) / "catalog_cache.json"

    @property
    def selection_path(self) -> Path:
        """Get selection file as Path."""
        return Path(self.selection_file)

    def is_remote(self) -> bool:
        """Check if the catalogue source is an HTTP(S) URL."""
        return self.catalog_source.lower().startswith(("http://", "https://"))


# Config instances (lazy loaded)
_practice_config: PracticeConfig | None = None
_capture_config: CaptureConfig | None = None
_catalog_config: CatalogConfig | None = None


def get_practice_config() -> PracticeConfig:
    """Get the practice configuration instance."""
    global _practice_config
    if _practice_config is None:
        _practice_config = PracticeConfig()
    return _practice_config


def get_capture_config() -> CaptureConfig:
    """Get the capture configuration instance."""
    global _capture_config
    if _capture_config is None:
        _capture_config = CaptureConfig()
    return _capture_config


def get_catalog_config() -> CatalogConfig:
    """Get the catalogue configuration instance."""
    global _catalog_config
    if _catalog_config is None:
        _catalog_config = CatalogConfig()
    return _catalog_config


def reset_all_configs() -> None:
    """Reset all configuration instances (useful for testing)."""
    global _practice_config, _capture_config, _catalog_config
    _practice_config = None
    _capture_config = None
    _catalog_config = None
