"""Learner-side lesson progress tracking.

Completion is decided locally (immediately for non-video items, at the watch
threshold for videos), persisted to the local cache and pushed to the remote
progress endpoint in the background.
"""

from .cache import LocalProgressCache, MemoryBackend, RedisBackend, progress_cache_key
from .client import ProgressSnapshot, ProgressSyncError, RemoteProgressClient
from .embed import EmbedPoller, InboundMessage, LocalMessageChannel, parse_status_message
from .factory import create_tracker
from .models import ItemStatus, ProgressState, WatchProgress, WatchSample, completion_percentage
from .policy import CompletionPolicy, evaluate_video_completion
from .session import LessonSession
from .sync import ProgressSyncer
from .tracker import LessonNotFoundError, ProgressTracker


__all__ = [
    "CompletionPolicy",
    "EmbedPoller",
    "InboundMessage",
    "ItemStatus",
    "LessonNotFoundError",
    "LessonSession",
    "LocalMessageChannel",
    "LocalProgressCache",
    "MemoryBackend",
    "ProgressSnapshot",
    "ProgressState",
    "ProgressSyncError",
    "ProgressSyncer",
    "ProgressTracker",
    "RedisBackend",
    "RemoteProgressClient",
    "WatchProgress",
    "WatchSample",
    "completion_percentage",
    "create_tracker",
    "evaluate_video_completion",
    "parse_status_message",
    "progress_cache_key",
]
