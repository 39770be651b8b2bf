from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel

from api.dependencies import build_cleanup_config, get_cache, get_client, get_job_queue, get_settings
from stream_bridge.generation import ArtifactCategory
from stream_bridge.generation.models import isoformat_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["cache"])


class CleanupRequest(BaseModel):
    maxAgeHours: Optional[float] = None
    background: bool = False


def _resolve_file(key: str, category: ArtifactCategory, size: str = "original") -> FileResponse:
    cache = get_cache()
    record = cache.describe(key)
    if not record or record.category != category:
        raise HTTPException(status_code=404, detail=f"{category.value.capitalize()} not found")
    path = cache.resolve(key, size)
    if path is None:
        raise HTTPException(status_code=404, detail=f"{category.value.capitalize()} file missing on disk: {key}")
    media_type = record.mime_type if path == record.path else cache.content_type_for(path)
    return FileResponse(path, media_type=media_type)


@router.get("/cache/image/{key}")
def get_cached_image(key: str, size: str = "original"):
    return _resolve_file(key, ArtifactCategory.IMAGE, size)


@router.get("/cache/table/{key}")
def get_cached_table(key: str):
    return _resolve_file(key, ArtifactCategory.TABLE)


@router.get("/cache/info/{key}")
def get_cache_info(key: str):
    record = get_cache().describe(key)
    if not record:
        raise HTTPException(status_code=404, detail="Artifact not found in cache")
    return record.to_dict()


@router.post("/cache/cleanup")
def cleanup_cache(request: CleanupRequest):
    max_age_hours = request.maxAgeHours
    if max_age_hours is None:
        max_age_hours = get_settings().default_max_age_hours
    if max_age_hours < 0:
        raise HTTPException(status_code=400, detail="maxAgeHours cannot be negative")

    if request.background:
        job_queue = get_job_queue()
        if job_queue is None:
            raise HTTPException(status_code=400, detail="Background cleanup requires REDIS_URL")
        job = job_queue.enqueue_cleanup(max_age_hours, build_cleanup_config())
        return {"success": True, "message": "Cache cleanup queued", "jobId": job.id}

    result = get_cache().evict(max_age_hours)
    return {
        "success": True,
        "message": "Cache cleanup completed",
        "deletedFiles": result.deleted_count,
        "freedSpace": result.freed_bytes,
    }


@router.get("/status")
def get_status():
    settings = get_settings()
    return {
        "system": {
            "apiKeyConfigured": get_client().configured,
            "maxTextLength": settings.max_prompt_length,
            "stallTimeoutSeconds": settings.stall_timeout_seconds,
            "backgroundCleanup": settings.redis_url is not None,
        },
        "cache": get_cache().stats(),
        "timestamp": isoformat_now(),
    }
