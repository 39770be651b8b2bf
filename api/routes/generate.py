from __future__ import annotations

import logging
from typing import Iterator, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from api.dependencies import get_cache, get_client, get_executor, get_settings, get_sink
from stream_bridge.generation import DecodeSession, GenerationOptions, collect_batch, stream_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/generate", tags=["generate"])


class BatchRequest(BaseModel):
    prompt: Optional[str] = None
    modality: str = "TEXT_AND_IMAGE"
    aspectRatio: str = "1:1"
    imageSize: str = "1k"
    temperature: float = 0.7
    maxTokens: int = 2048


def _build_options(
    prompt: Optional[str],
    modality: str,
    aspect_ratio: str,
    image_size: str,
    temperature: float,
    max_tokens: int,
) -> GenerationOptions:
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt is required")
    if len(prompt) > get_settings().max_prompt_length:
        raise HTTPException(status_code=400, detail="Prompt too long")
    if not get_client().configured:
        raise HTTPException(status_code=500, detail="AIHUBMIX_API_KEY not configured")
    try:
        return GenerationOptions(
            prompt=prompt,
            modality=modality,
            aspect_ratio=aspect_ratio,
            image_size=image_size,
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.get("/stream")
def generate_stream(
    prompt: Optional[str] = None,
    modality: str = "TEXT_AND_IMAGE",
    aspect_ratio: str = Query("1:1", alias="aspectRatio"),
    image_size: str = Query("1k", alias="imageSize"),
    temperature: float = 0.7,
    max_tokens: int = Query(2048, alias="maxTokens"),
):
    options = _build_options(prompt, modality, aspect_ratio, image_size, temperature, max_tokens)
    sink = get_sink()
    session = DecodeSession(get_cache(), get_executor())

    def event_frames() -> Iterator[str]:
        yield sink.connected()
        for event in stream_events(session, get_client().iter_chunks(options)):
            for frame in sink.render(event):
                yield frame

    logger.info("Starting stream session %s", session.session_id)
    return StreamingResponse(
        event_frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@router.post("/batch")
def generate_batch(request: BatchRequest):
    options = _build_options(
        request.prompt,
        request.modality,
        request.aspectRatio,
        request.imageSize,
        request.temperature,
        request.maxTokens,
    )
    session = DecodeSession(get_cache(), get_executor())
    result = collect_batch(session, get_client().iter_chunks(options))
    if not result.success:
        logger.warning("Batch session %s failed: %s", session.session_id, result.error)
        return JSONResponse(status_code=502, content=result.to_dict())
    return result.to_dict()


@router.get("/validate")
def validate_connection():
    return get_client().validate_connection(get_cache(), get_executor())
