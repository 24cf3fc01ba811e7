"""Tracker wiring from settings."""

from src.config.settings import Settings
from src.core.redis import connect_redis
from src.courses.provider import HttpOutlineProvider, OutlineProvider

from .cache import KeyValueBackend, LocalProgressCache, MemoryBackend, RedisBackend
from .client import RemoteProgressClient, TokenProvider
from .policy import CompletionPolicy
from .sync import ProgressSyncer
from .tracker import ProgressTracker


async def create_tracker(
    settings: Settings,
    token_provider: TokenProvider,
    outline_provider: OutlineProvider | None = None,
    backend: KeyValueBackend | None = None,
) -> ProgressTracker:
    """Build a ProgressTracker.

    The local cache uses Redis when it is reachable and falls back to an
    in-process store otherwise.
    """
    if backend is None:
        client = await connect_redis(settings)
        backend = RedisBackend(client) if client is not None else MemoryBackend()

    if outline_provider is None:
        outline_provider = HttpOutlineProvider(
            settings.outline_api_base_url,
            timeout=settings.progress_api_timeout,
        )

    remote = RemoteProgressClient(
        settings.progress_api_base_url,
        token_provider,
        timeout=settings.progress_api_timeout,
    )

    return ProgressTracker(
        cache=LocalProgressCache(backend),
        syncer=ProgressSyncer(remote),
        outline_provider=outline_provider,
        policy=CompletionPolicy.from_settings(settings),
        trusted_origins=settings.tracker_embed_origins,
    )
