from __future__ import annotations

import logging
from typing import Iterable, Iterator, List, Optional, Union

from .errors import TransportError
from .models import BatchResult, ContentEvent, ErrorSignal, ImageArtifact, StreamEnd, TextDelta
from .session import DecodeSession

logger = logging.getLogger(__name__)


def stream_events(session: DecodeSession, chunks: Iterable[Union[bytes, str]]) -> Iterator[ContentEvent]:
    """
    Drive a session over an upstream chunk iterable, yielding events as they
    become available. Transport failures end the session with an error signal
    followed by StreamEnd; closing the generator aborts the session instead.
    """
    completed = False
    try:
        iterator = iter(chunks)
        while not session.terminal:
            try:
                chunk = next(iterator)
            except StopIteration:
                break
            except TransportError as exc:
                yield from session.fail(exc)
                break
            if chunk:
                yield from session.feed(chunk)
        if not session.terminal:
            yield from session.finish()
        completed = True
    finally:
        if not completed:
            session.abort()
        close = getattr(chunks, "close", None)
        if callable(close):
            close()


def collect_batch(session: DecodeSession, chunks: Iterable[Union[bytes, str]]) -> BatchResult:
    """Run the session to completion and fold its events into one result."""
    text_parts: List[str] = []
    images: List[str] = []
    errors: List[str] = []
    end: Optional[StreamEnd] = None

    for event in stream_events(session, chunks):
        if isinstance(event, TextDelta):
            text_parts.append(event.text)
        elif isinstance(event, ImageArtifact):
            images.append(event.key)
        elif isinstance(event, ErrorSignal):
            errors.append(event.reason)
        elif isinstance(event, StreamEnd):
            end = event

    if end is None:
        # stream_events only skips StreamEnd when aborted, which batch never does.
        raise RuntimeError(f"Session {session.session_id} ended without StreamEnd")
    if errors:
        logger.info("Batch session %s finished with %d error signal(s)", session.session_id, len(errors))
    return BatchResult(
        text="".join(text_parts),
        images=images,
        chunks=end.stats.chunks_processed,
        success=end.stats.success,
        error=end.stats.error,
    )
