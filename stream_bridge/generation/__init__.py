"""
Generation bridge exports.
"""

from .cache import ArtifactCache
from .client import GenerationClient, GenerationOptions
from .config import BridgeSettings
from .decoder import DecodeBuffer, StreamDecoder
from .errors import (
    CacheWriteError,
    ConfigurationError,
    DecoderClosedError,
    SessionClosedError,
    StreamBridgeError,
    TransportError,
    UpstreamBlockedError,
)
from .extractor import ContentExtractor
from .job_queue import CleanupConfig, RQJobQueue, run_cleanup_job
from .models import (
    ArtifactCategory,
    ArtifactRecord,
    BatchResult,
    ContentEvent,
    ContentPart,
    ErrorSignal,
    EvictionResult,
    ImageArtifact,
    InlineImagePart,
    ParsedObject,
    SessionState,
    SessionStats,
    StreamEnd,
    TextDelta,
    TextPart,
)
from .pipeline import collect_batch, stream_events
from .repository import ArtifactRepository, InMemoryArtifactRepository, SqlAlchemyArtifactRepository
from .session import DecodeSession
from .sink import SSEEventSink, format_sse
from .storage import ArtifactStorage, StoragePaths

__all__ = [
    "ArtifactCache",
    "ArtifactCategory",
    "ArtifactRecord",
    "ArtifactRepository",
    "ArtifactStorage",
    "BatchResult",
    "BridgeSettings",
    "CacheWriteError",
    "CleanupConfig",
    "ConfigurationError",
    "ContentEvent",
    "ContentExtractor",
    "ContentPart",
    "DecodeBuffer",
    "DecodeSession",
    "DecoderClosedError",
    "ErrorSignal",
    "EvictionResult",
    "GenerationClient",
    "GenerationOptions",
    "ImageArtifact",
    "InMemoryArtifactRepository",
    "InlineImagePart",
    "ParsedObject",
    "RQJobQueue",
    "SSEEventSink",
    "SessionClosedError",
    "SessionState",
    "SessionStats",
    "SqlAlchemyArtifactRepository",
    "StoragePaths",
    "StreamBridgeError",
    "StreamDecoder",
    "StreamEnd",
    "TextDelta",
    "TextPart",
    "TransportError",
    "UpstreamBlockedError",
    "collect_batch",
    "format_sse",
    "run_cleanup_job",
    "stream_events",
]
