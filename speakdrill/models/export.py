"""Export models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ExportArtifact:
    """
    Downloadable result for one item.

    Attributes:
        payload: Bytes to deliver
        filename: Suggested filename including extension
        media_type: Media type of the payload
        is_fallback: True when the payload is a completion marker, not audio
    """

    payload: bytes
    filename: str
    media_type: str
    is_fallback: bool = False

    @property
    def extension(self) -> str:
        """Extension part of the suggested filename."""
        return self.filename.rsplit(".", 1)[-1] if "." in self.filename else ""
