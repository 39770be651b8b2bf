from __future__ import annotations

import json
import time
from typing import Any, Dict, List

from .models import ContentEvent, ErrorSignal, ImageArtifact, StreamEnd, TextDelta, isoformat_now


def format_sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


class SSEEventSink:
    """
    Maps content events onto the named server-sent events the web client
    consumes. Field names here are a compatibility surface.
    """

    def __init__(self, image_url_prefix: str = "/api/cache/image/"):
        self.image_url_prefix = image_url_prefix

    def connected(self, request_id: Any = None) -> str:
        return format_sse(
            "connected",
            {
                "status": "connected",
                "timestamp": isoformat_now(),
                "requestId": request_id if request_id is not None else int(time.time() * 1000),
            },
        )

    def render(self, event: ContentEvent) -> List[str]:
        if isinstance(event, TextDelta):
            return [
                format_sse(
                    "text",
                    {"content": event.text, "accumulated": event.accumulated, "chunkIndex": event.chunk_index},
                )
            ]
        if isinstance(event, ImageArtifact):
            return [
                format_sse(
                    "image",
                    {"key": event.key, "url": f"{self.image_url_prefix}{event.key}", "timestamp": event.timestamp},
                )
            ]
        if isinstance(event, ErrorSignal):
            return [format_sse("error", {"error": event.reason, "timestamp": event.timestamp})]
        if isinstance(event, StreamEnd):
            return self._render_end(event)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def _render_end(self, event: StreamEnd) -> List[str]:
        stats = event.stats
        frames: List[str] = []
        if stats.cache_keys:
            frames.append(format_sse("images", {"keys": list(stats.cache_keys), "count": len(stats.cache_keys)}))
        frames.append(
            format_sse(
                "complete",
                {
                    "status": "complete",
                    "success": stats.success,
                    "textLength": len(stats.text),
                    "imageCount": stats.artifacts_emitted,
                    "totalChunks": stats.chunks_processed,
                },
            )
        )
        final: Dict[str, Any] = {
            "status": "final" if stats.success else "error",
            "text": stats.text,
            "cacheKeys": list(stats.cache_keys),
            "success": stats.success,
            "timestamp": isoformat_now(),
        }
        if stats.error is not None:
            final["error"] = stats.error
        frames.append(format_sse("final", final))
        return frames
