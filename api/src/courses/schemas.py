"""Pydantic schemas for the course outline.

The outline is read-only input supplied by the course catalog:

    CourseOutline -> Section[] -> Subsection[] -> ContentItem[]

Both the catalog's JSON shape (`_id`, `type`, `videoUrl`) and snake_case
field names are accepted.
"""

from collections.abc import Iterator
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .media import MediaSource, classify_media_source


class ContentKind(str, Enum):
    """Kind of a content item."""

    VIDEO = "video"
    ARTICLE = "article"
    ASSIGNMENT = "assignment"
    QUIZ = "quiz"


class _OutlineModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class ContentItem(_OutlineModel):
    """Smallest addressable unit of course content."""

    id: str = Field(..., alias="_id", min_length=1)
    kind: ContentKind = Field(..., alias="type")
    title: str = ""
    media_url: str | None = Field(default=None, alias="videoUrl")
    order: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def media_source(self) -> MediaSource | None:
        """How watch-time is measured; None for non-video items."""
        if self.kind != ContentKind.VIDEO:
            return None
        return classify_media_source(self.media_url)

    @property
    def is_video(self) -> bool:
        return self.kind == ContentKind.VIDEO


class Subsection(_OutlineModel):
    id: str | None = Field(default=None, alias="_id")
    title: str = ""
    order: int = 0
    content: list[ContentItem] = Field(default_factory=list)


class Section(_OutlineModel):
    id: str | None = Field(default=None, alias="_id")
    title: str = ""
    order: int = 0
    subsections: list[Subsection] = Field(default_factory=list)


class CourseOutline(_OutlineModel):
    """Course content tree.

    `count_items()` is the single flatten-and-count used by every completion
    percentage, both for display and for the sync payload.
    """

    id: str = Field(..., alias="_id", min_length=1)
    title: str = ""
    sections: list[Section] = Field(default_factory=list)

    def iter_items(self) -> Iterator[ContentItem]:
        """Yield every content item in outline order."""
        for section in self.sections:
            for subsection in section.subsections:
                yield from subsection.content

    def count_items(self) -> int:
        """Total number of content items in the course."""
        return sum(1 for _ in self.iter_items())

    def find_item(self, item_id: str) -> ContentItem | None:
        """Find a content item by id (None if not part of this course)."""
        for item in self.iter_items():
            if item.id == item_id:
                return item
        return None

    def __contains__(self, item_id: object) -> bool:
        return isinstance(item_id, str) and self.find_item(item_id) is not None
