from __future__ import annotations

import logging
import threading
import uuid
from datetime import timedelta
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import CacheWriteError
from .models import ArtifactCategory, ArtifactRecord, EvictionResult, utcnow
from .repository import ArtifactRepository
from .storage import ORIGINAL_VARIANT, ArtifactStorage, content_type_for_path, is_valid_variant

logger = logging.getLogger(__name__)


class ArtifactCache:
    """
    Content-addressable store for binary artifacts pulled out of generation
    responses.

    Keys are fresh uuid4 values, so concurrent stores never collide and are
    written without holding the index lock. A key is returned only after its
    file has been renamed into place and its record registered, so any
    `resolve()` that sees the key sees the whole file.
    """

    def __init__(self, storage: ArtifactStorage, repository: ArtifactRepository):
        self.storage = storage
        self.repo = repository
        self._index_lock = threading.Lock()
        self.storage.ensure_base_dirs()

    def store(
        self,
        data: bytes,
        mime_type: str,
        category: ArtifactCategory = ArtifactCategory.IMAGE,
    ) -> str:
        key = uuid.uuid4().hex
        try:
            path = self.storage.write_artifact(category, key, mime_type, data)
        except OSError as exc:
            logger.warning("Cache write failed for %s (%s, %d bytes): %s", key, mime_type, len(data), exc)
            raise CacheWriteError(key, str(exc)) from exc

        record = ArtifactRecord(
            id=key,
            file_path=str(path),
            mime_type=mime_type,
            size_bytes=len(data),
            category=category,
            size_variant=ORIGINAL_VARIANT,
        )
        with self._index_lock:
            self.repo.save(record)
        logger.debug("Stored %s artifact %s (%d bytes)", category.value, key, len(data))
        return key

    def store_variant(self, key: str, variant: str, data: bytes) -> Optional[Path]:
        if not variant or variant == ORIGINAL_VARIANT:
            raise ValueError("variant must name a non-original size")
        if not is_valid_variant(variant):
            raise ValueError(f"Invalid size variant label: {variant!r}")
        record = self.repo.get(key)
        if not record:
            return None
        try:
            return self.storage.write_variant(record.path, variant, data)
        except OSError as exc:
            raise CacheWriteError(key, str(exc)) from exc

    def resolve(self, key: str, size_variant: Optional[str] = ORIGINAL_VARIANT) -> Optional[Path]:
        record = self.repo.get(key)
        if not record:
            return None
        variant_path = self.storage.find_variant(record.path, size_variant)
        if variant_path is not None:
            return variant_path
        return record.path if record.path.exists() else None

    def describe(self, key: str) -> Optional[ArtifactRecord]:
        return self.repo.get(key)

    def evict(self, max_age_hours: float) -> EvictionResult:
        if max_age_hours < 0:
            raise ValueError("max_age_hours cannot be negative")
        cutoff = utcnow() - timedelta(hours=max_age_hours)
        deleted_count = 0
        freed_bytes = 0
        with self._index_lock:
            for record in self.repo.list_created_before(cutoff):
                # Drop the index entry first so no lookup returns a path being deleted.
                self.repo.delete(record.id)
                self.storage.delete(record.path)
                deleted_count += 1
                freed_bytes += record.size_bytes
        logger.info("Evicted %d artifact(s), freed %d bytes (max age %sh)", deleted_count, freed_bytes, max_age_hours)
        return EvictionResult(deleted_count=deleted_count, freed_bytes=freed_bytes)

    def reconcile(self) -> int:
        """Drop index records whose backing file no longer exists."""
        dropped = 0
        with self._index_lock:
            for record in self.repo.list_all():
                if not record.path.exists():
                    self.repo.delete(record.id)
                    dropped += 1
        if dropped:
            logger.warning("Dropped %d cache record(s) with missing files", dropped)
        return dropped

    def stats(self) -> Dict[str, Dict[str, int]]:
        summary: Dict[str, Dict[str, int]] = {
            category.value: {"count": 0, "bytes": 0} for category in ArtifactCategory
        }
        for record in self.repo.list_all():
            bucket = summary[record.category.value]
            bucket["count"] += 1
            bucket["bytes"] += record.size_bytes
        return summary

    @staticmethod
    def content_type_for(target: Union[ArtifactRecord, Path]) -> str:
        if isinstance(target, ArtifactRecord):
            if target.mime_type:
                return target.mime_type
            return content_type_for_path(target.path)
        return content_type_for_path(target)
