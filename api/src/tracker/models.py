"""Learner-side progress state.

- ProgressState: completed item ids for one course (monotonic)
- WatchSample / WatchProgress: ephemeral watch-time of the open video
"""

import math
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ItemStatus(str, Enum):
    """Per-item completion state."""

    NOT_STARTED = "not_started"  # opened, no watch-time yet
    IN_PROGRESS = "in_progress"  # watching, threshold not reached
    COMPLETED = "completed"  # terminal


def completion_percentage(completed_count: int, total_count: int) -> int:
    """Percentage of completed items, rounded half-up to an integer.

    Returns 0 for an empty course and never exceeds 100 (completed ids that
    are no longer in the outline are still counted by the caller).
    """
    if total_count <= 0:
        return 0
    percentage = math.floor(100 * completed_count / total_count + 0.5)
    return max(0, min(100, percentage))


@dataclass(frozen=True)
class ProgressState:
    """Completed content items of one course.

    Membership is the only semantics. Ids are only ever added.
    """

    course_id: str
    completed: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def empty(cls, course_id: str) -> "ProgressState":
        return cls(course_id=course_id)

    def is_completed(self, item_id: str) -> bool:
        return item_id in self.completed

    def with_item(self, item_id: str) -> "ProgressState":
        """Return a state that also contains `item_id` (self if already there)."""
        if item_id in self.completed:
            return self
        return ProgressState(self.course_id, self.completed | {item_id})

    def merged(self, other: "ProgressState") -> "ProgressState":
        """Union of both states (used when reconciling two snapshots)."""
        if other.completed <= self.completed:
            return self
        return ProgressState(self.course_id, self.completed | other.completed)

    @property
    def completed_count(self) -> int:
        return len(self.completed)

    def completion_percentage(self, total_count: int) -> int:
        return completion_percentage(self.completed_count, total_count)

    def __len__(self) -> int:
        return len(self.completed)


class WatchSample(BaseModel):
    """One validated watch-time reading.

    Either field may be missing (embeds report duration only once metadata
    is available) but at least one is present and both are finite, >= 0.
    """

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    current_time: float | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _require_a_reading(self) -> "WatchSample":
        if self.current_time is None and self.duration is None:
            raise ValueError("sample carries neither currentTime nor duration")
        return self


@dataclass
class WatchProgress:
    """Watch-time of the currently open video.

    The duration stays None until the player reports metadata. Seeks may
    move the position backwards.
    """

    current_position: float = 0.0
    total_duration: float | None = None
    samples: int = 0

    def apply(self, sample: WatchSample) -> None:
        if sample.current_time is not None:
            self.current_position = sample.current_time
        if sample.duration is not None:
            self.total_duration = sample.duration
        self.samples += 1

    @property
    def watched_fraction(self) -> float | None:
        if not self.total_duration:
            return None
        return self.current_position / self.total_duration
