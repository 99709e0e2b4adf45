"""Export of the current item's recording as a downloadable artifact.

Items with a recording export the raw bytes under an extension matching the
negotiated media type. Items without one export a small JSON completion
marker so an attempt made without a usable device is still acknowledged.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Optional

from speakdrill.lib.config import PracticeConfig, get_practice_config
from speakdrill.lib.exceptions import ExportError
from speakdrill.lib.timestamps import format_timestamp, generate_timestamp
from speakdrill.models.export import ExportArtifact
from speakdrill.models.item import PracticeItem
from speakdrill.models.recording import ItemRecordingState
from speakdrill.services.audio.media_types import extension_for

logger = logging.getLogger(__name__)

MARKER_MEDIA_TYPE = "application/json"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _safe(part: object) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("-", str(part)).strip("-") or "item"


class ExportService:
    """
    Build and save export artifacts.

    Filenames are ``<prefix>_<date>_<set>_<num>`` when the item carries those
    catalogue fields, ``<prefix>_<id>`` otherwise.
    """

    def __init__(self, config: Optional[PracticeConfig] = None):
        self.config = config or get_practice_config()

    def file_base(self, item: PracticeItem) -> str:
        """Filename without extension."""
        meta = item.metadata
        parts = [meta.get("date"), meta.get("set"), meta.get("num")]
        if all(part not in (None, "") for part in parts):
            stem = "_".join(_safe(part) for part in parts)
        else:
            stem = _safe(item.id)
        return f"{self.config.export_prefix}_{stem}"

    def export(self, item: PracticeItem, state: Optional[ItemRecordingState]) -> ExportArtifact:
        """
        Produce the downloadable artifact for an item.

        Args:
            item: Item being exported
            state: Its recording state (None if never visited)

        Returns:
            The recording, or a completion marker if there is none
        """
        base = self.file_base(item)

        if state is not None and state.artifact is not None:
            artifact = state.artifact
            return ExportArtifact(
                payload=artifact.data,
                filename=f"{base}.{extension_for(artifact.media_type)}",
                media_type=artifact.media_type,
            )

        marker = {
            "id": item.id,
            "timestamp": format_timestamp(generate_timestamp()),
            "done": True,
        }
        logger.info(f"No recording for {item.id}, exporting completion marker")
        return ExportArtifact(
            payload=json.dumps(marker, indent=2).encode("utf-8"),
            filename=f"{base}.json",
            media_type=MARKER_MEDIA_TYPE,
            is_fallback=True,
        )

    def save(self, artifact: ExportArtifact, directory: Optional[Path] = None) -> Path:
        """
        Write an artifact to disk.

        Args:
            artifact: Artifact to write
            directory: Target directory (defaults to the configured export dir)

        Returns:
            Path of the written file

        Raises:
            ExportError: If the directory or file cannot be written
        """
        target_dir = Path(directory) if directory is not None else self.config.export_path
        path = target_dir / artifact.filename
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(artifact.payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise ExportError(f"Failed to save export: {e}", path=str(path)) from e

        logger.info(f"Saved {artifact.filename} ({len(artifact.payload)} bytes)")
        return path
