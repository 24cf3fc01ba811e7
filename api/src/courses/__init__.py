"""Course outline: read-only content tree and its providers."""

from .media import MediaSource, classify_media_source
from .provider import (
    HttpOutlineProvider,
    OutlineProvider,
    OutlineUnavailableError,
    StaticOutlineProvider,
)
from .schemas import ContentItem, ContentKind, CourseOutline, Section, Subsection


__all__ = [
    "ContentItem",
    "ContentKind",
    "CourseOutline",
    "HttpOutlineProvider",
    "MediaSource",
    "OutlineProvider",
    "OutlineUnavailableError",
    "Section",
    "StaticOutlineProvider",
    "Subsection",
    "classify_media_source",
]
