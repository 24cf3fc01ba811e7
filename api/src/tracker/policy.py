"""Completion policy.

A video counts as completed once 70% of it has been watched: short skims
do not qualify while trailing credits can be skipped. The threshold and the
embed polling interval are inputs, not literals inside the state machine.
"""

import math
from dataclasses import dataclass

from src.config.settings import Settings
from src.courses.schemas import ContentKind


DEFAULT_WATCH_THRESHOLD = 0.70
DEFAULT_POLL_INTERVAL_SECONDS = 1.0


@dataclass(frozen=True)
class CompletionPolicy:
    """Tunable completion rules."""

    watch_threshold: float = DEFAULT_WATCH_THRESHOLD
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    def __post_init__(self) -> None:
        if not 0 < self.watch_threshold <= 1:
            raise ValueError("watch_threshold must be in (0, 1]")
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionPolicy":
        return cls(
            watch_threshold=settings.tracker_watch_threshold,
            poll_interval_seconds=settings.tracker_poll_interval_seconds,
        )


def evaluate_video_completion(
    kind: ContentKind | str,
    current_position: float | None,
    total_duration: float | None,
    threshold: float = DEFAULT_WATCH_THRESHOLD,
) -> bool:
    """Decide whether watch progress completes an item.

    Non-video kinds have no watch-time gate and are complete on display.
    For videos an unknown, zero, negative or non-finite duration means the
    decision cannot be made yet, which is reported as not complete.
    """
    if ContentKind(kind) != ContentKind.VIDEO:
        return True

    if total_duration is None or current_position is None:
        return False
    if not (math.isfinite(total_duration) and math.isfinite(current_position)):
        return False
    if total_duration <= 0:
        return False

    return current_position / total_duration >= threshold
