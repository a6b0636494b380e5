"""Domain layer: errors, constants and schemas."""

from .errors import (
    BindingError,
    ErrorCodes,
    NoCompatibleTemplateError,
    PageFitError,
    StickerExportError,
    TemplateNotFoundError,
)
from .schemas import (
    Device,
    ExportFormat,
    ExportJob,
    ExportResult,
    MatchReason,
    StickerTemplate,
    TemplateMatch,
    TemplateOption,
)

__all__ = [
    "StickerExportError",
    "ErrorCodes",
    "BindingError",
    "TemplateNotFoundError",
    "NoCompatibleTemplateError",
    "PageFitError",
    "Device",
    "StickerTemplate",
    "MatchReason",
    "TemplateMatch",
    "TemplateOption",
    "ExportFormat",
    "ExportJob",
    "ExportResult",
]
