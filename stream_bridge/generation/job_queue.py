from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from redis import Redis
from rq import Queue, Worker

from .cache import ArtifactCache
from .repository import SqlAlchemyArtifactRepository
from .storage import ArtifactStorage, StoragePaths


@dataclass
class CleanupConfig:
    cache_dir: str
    database_url: str


def build_cache(config: CleanupConfig) -> ArtifactCache:
    Path(config.cache_dir).mkdir(parents=True, exist_ok=True)
    storage = ArtifactStorage(StoragePaths(Path(config.cache_dir)))
    return ArtifactCache(storage, SqlAlchemyArtifactRepository(config.database_url))


def run_cleanup_job(max_age_hours: float, config: CleanupConfig) -> Dict[str, Any]:
    """
    RQ task entrypoint. Builds a SQL-backed cache over the shared directory and
    evicts artifacts older than `max_age_hours`.
    """
    cache = build_cache(config)
    cache.reconcile()
    result = cache.evict(max_age_hours)
    return {"deletedCount": result.deleted_count, "freedBytes": result.freed_bytes}


class RQJobQueue:
    """
    Runs cache eviction outside the request cycle. Each cleanup job rebuilds
    the cache from `CleanupConfig`, so a worker in another process evicts
    from the same directory and SQL index the API serves from.
    """

    def __init__(self, redis_url: str, queue_name: str = "cache-cleanup", result_ttl: int = 3600):
        self.connection = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.connection)
        self.result_ttl = result_ttl

    def enqueue_cleanup(self, max_age_hours: float, config: CleanupConfig):
        return self.queue.enqueue(
            run_cleanup_job,
            max_age_hours,
            config,
            description=f"evict artifacts older than {max_age_hours}h",
            result_ttl=self.result_ttl,
        )

    def work(self, burst: bool = False) -> bool:
        """Process cleanup jobs. With `burst`, return once the queue is empty."""
        worker = Worker([self.queue], connection=self.connection)
        return worker.work(burst=burst)
