from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional, Union


DEFAULT_IMAGE_MIME_TYPE = "image/png"

_DATA_URL_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so records stay naive throughout."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    DONE = "done"
    ERROR = "error"


class ArtifactCategory(str, Enum):
    IMAGE = "image"
    TABLE = "table"


@dataclass
class ParsedObject:
    value: Any
    residual: bool = False


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class InlineImagePart:
    data: str
    mime_type: str = DEFAULT_IMAGE_MIME_TYPE

    def decode(self) -> bytes:
        """
        Decode the base64 payload, tolerating a leading data URL prefix.
        Raises ValueError when the payload is not valid base64.
        """
        payload = _DATA_URL_PREFIX.sub("", self.data.strip(), count=1)
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Invalid base64 image payload: {exc}") from exc


ContentPart = Union[TextPart, InlineImagePart]


@dataclass
class SessionStats:
    characters_emitted: int = 0
    artifacts_emitted: int = 0
    chunks_processed: int = 0
    success: bool = True
    text: str = ""
    cache_keys: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(frozen=True)
class TextDelta:
    text: str
    accumulated: str = ""
    chunk_index: int = 0


@dataclass(frozen=True)
class ImageArtifact:
    key: str
    mime_type: str
    timestamp: str = field(default_factory=isoformat_now)


@dataclass(frozen=True)
class ErrorSignal:
    reason: str
    timestamp: str = field(default_factory=isoformat_now)


@dataclass(frozen=True)
class StreamEnd:
    stats: SessionStats


ContentEvent = Union[TextDelta, ImageArtifact, ErrorSignal, StreamEnd]


@dataclass
class ArtifactRecord:
    id: str
    file_path: str
    mime_type: str
    size_bytes: int
    category: ArtifactCategory = ArtifactCategory.IMAGE
    size_variant: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def path(self) -> Path:
        return Path(self.file_path)

    def to_dict(self) -> dict:
        return {
            "key": self.id,
            "mimeType": self.mime_type,
            "size": self.size_bytes,
            "category": self.category.value,
            "sizeVariant": self.size_variant,
            "createdAt": self.created_at.isoformat() + "Z",
        }


@dataclass(frozen=True)
class EvictionResult:
    deleted_count: int
    freed_bytes: int


@dataclass
class BatchResult:
    text: str
    images: List[str]
    chunks: int
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "text": self.text,
            "images": [{"key": key} for key in self.images],
            "chunks": self.chunks,
            "success": self.success,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload
