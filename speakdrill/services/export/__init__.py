"""Export of recordings and completion markers."""

from speakdrill.services.export.service import ExportService

__all__ = ["ExportService"]
