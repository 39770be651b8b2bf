"""Streaming client for the upstream generateContent endpoint."""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import httpx

from .cache import ArtifactCache
from .config import BridgeSettings
from .errors import ConfigurationError, TransportError
from .models import isoformat_now
from .pipeline import collect_batch
from .session import DecodeSession

logger = logging.getLogger(__name__)

MODALITIES = ("TEXT", "IMAGE", "TEXT_AND_IMAGE")


@dataclass(frozen=True)
class GenerationOptions:
    prompt: str
    modality: str = "TEXT_AND_IMAGE"
    aspect_ratio: str = "1:1"
    image_size: str = "1k"
    temperature: float = 0.7
    max_tokens: int = 2048

    def __post_init__(self) -> None:
        if not self.prompt or not self.prompt.strip():
            raise ValueError("prompt cannot be empty")
        if self.modality not in MODALITIES:
            raise ValueError(f"modality must be one of {', '.join(MODALITIES)}")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")

    def to_request_body(self) -> Dict[str, Any]:
        if self.modality == "TEXT_AND_IMAGE":
            modalities = ["TEXT", "IMAGE"]
        else:
            modalities = [self.modality]
        generation_config: Dict[str, Any] = {
            "temperature": self.temperature,
            "maxOutputTokens": self.max_tokens,
            "responseModalities": modalities,
        }
        if "IMAGE" in self.modality:
            generation_config["imageConfig"] = {"aspectRatio": self.aspect_ratio, "imageSize": self.image_size}
        return {
            "contents": [{"role": "user", "parts": [{"text": self.prompt}]}],
            "generationConfig": generation_config,
        }


class GenerationClient:
    """
    Opens the upstream stream and hands its body to callers as raw byte
    chunks. The read timeout doubles as the stall timeout: no bytes within
    that window ends the stream with a TransportError.
    """

    def __init__(self, settings: BridgeSettings, http_client: Optional[httpx.Client] = None):
        self._settings = settings
        self._client = http_client or httpx.Client(
            timeout=httpx.Timeout(
                connect=settings.connect_timeout_seconds,
                read=settings.stall_timeout_seconds,
                write=settings.connect_timeout_seconds,
                pool=settings.connect_timeout_seconds,
            )
        )

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_key)

    def iter_chunks(self, options: GenerationOptions) -> Iterator[bytes]:
        if not self.configured:
            raise ConfigurationError("AIHUBMIX_API_KEY not configured")

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self._settings.api_key,
            "Accept": "text/event-stream",
        }
        try:
            with self._client.stream(
                "POST", self._settings.base_url, json=options.to_request_body(), headers=headers
            ) as response:
                if response.status_code >= 400:
                    body = response.read().decode("utf-8", errors="replace")
                    raise TransportError(f"API Error: {response.status_code} - {body}", response.status_code)
                for chunk in response.iter_bytes():
                    if chunk:
                        yield chunk
        except httpx.TimeoutException as exc:
            raise TransportError(
                f"Upstream stalled: no data within {self._settings.stall_timeout_seconds:g}s ({exc})"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Stream error: {exc}") from exc

    def validate_connection(self, cache: ArtifactCache, executor: Executor) -> Dict[str, Any]:
        if not self.configured:
            return {"valid": False, "error": "API key not configured"}
        session = DecodeSession(cache, executor)
        options = GenerationOptions(prompt='Say "test"', modality="TEXT", max_tokens=10)
        result = collect_batch(session, self.iter_chunks(options))
        if not result.success:
            return {"valid": False, "reachable": False, "error": result.error}
        return {
            "valid": True,
            "reachable": True,
            "responseTime": isoformat_now(),
            "testSuccessful": bool(result.text),
        }

    def close(self) -> None:
        self._client.close()
