from captionburn.schemas.render import (
    CueSchema,
    ExportCreatedResponse,
    ExportPayload,
    ExportRequest,
    ExportStatusResponse,
    StyleSchema,
    WordTimingSchema,
)

__all__ = [
    "CueSchema",
    "ExportCreatedResponse",
    "ExportPayload",
    "ExportRequest",
    "ExportStatusResponse",
    "StyleSchema",
    "WordTimingSchema",
]
