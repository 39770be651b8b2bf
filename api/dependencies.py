from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from stream_bridge.generation import (
    ArtifactCache,
    ArtifactStorage,
    BridgeSettings,
    CleanupConfig,
    GenerationClient,
    RQJobQueue,
    SSEEventSink,
    SqlAlchemyArtifactRepository,
    StoragePaths,
)


@lru_cache(maxsize=1)
def get_settings() -> BridgeSettings:
    load_dotenv()
    return BridgeSettings.from_env()


@lru_cache(maxsize=1)
def get_cache() -> ArtifactCache:
    settings = get_settings()
    settings.cache_dir.mkdir(parents=True, exist_ok=True)
    storage = ArtifactStorage(StoragePaths(settings.cache_dir))
    cache = ArtifactCache(storage, SqlAlchemyArtifactRepository(settings.cache_database_url))
    cache.reconcile()
    return cache


@lru_cache(maxsize=1)
def get_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=get_settings().persist_workers, thread_name_prefix="artifact-persist")


@lru_cache(maxsize=1)
def get_client() -> GenerationClient:
    return GenerationClient(get_settings())


@lru_cache(maxsize=1)
def get_sink() -> SSEEventSink:
    return SSEEventSink()


@lru_cache(maxsize=1)
def get_job_queue() -> Optional[RQJobQueue]:
    settings = get_settings()
    if not settings.redis_url:
        return None
    return RQJobQueue(settings.redis_url)


def build_cleanup_config() -> CleanupConfig:
    settings = get_settings()
    return CleanupConfig(cache_dir=str(settings.cache_dir), database_url=settings.cache_database_url)
