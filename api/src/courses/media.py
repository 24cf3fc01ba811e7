"""Media locator classification.

Video items are either played natively (a direct media file the player
reports position/duration for) or through a third-party embed that only
talks through asynchronous status messages.
"""

import re
from enum import Enum


class MediaSource(str, Enum):
    """How a video item's watch-time is sampled."""

    NATIVE = "native"  # direct file, player callbacks
    EMBEDDED = "embedded"  # hosted embed, polled status messages


# Hosted-embed URL patterns
EMBED_PATTERNS = (
    re.compile(r"(^|[/.])youtube\.com/", re.IGNORECASE),
    re.compile(r"(^|[/.])youtube-nocookie\.com/", re.IGNORECASE),
    re.compile(r"(^|[/.])youtu\.be/", re.IGNORECASE),
)


def is_embedded_url(url: str) -> bool:
    """Check whether a media URL points to a hosted embed."""
    return any(pattern.search(url) for pattern in EMBED_PATTERNS)


def classify_media_source(url: str | None) -> MediaSource:
    """Classify a video's media locator.

    Missing locators are treated as native media; the completion decision
    then simply waits for a duration that never arrives.
    """
    if url and is_embedded_url(url.strip()):
        return MediaSource.EMBEDDED
    return MediaSource.NATIVE
