from __future__ import annotations

import logging
import queue
import uuid
from concurrent.futures import Executor, Future, wait
from typing import List, Optional, Union

from .cache import ArtifactCache
from .decoder import StreamDecoder
from .errors import SessionClosedError, UpstreamBlockedError
from .extractor import ContentExtractor
from .models import (
    ArtifactCategory,
    ContentEvent,
    ErrorSignal,
    ImageArtifact,
    InlineImagePart,
    ParsedObject,
    SessionState,
    SessionStats,
    StreamEnd,
    TextDelta,
    TextPart,
)

logger = logging.getLogger(__name__)

TERMINAL_STATES = (SessionState.DONE, SessionState.ERROR)

DEFAULT_FAIL_JOIN_TIMEOUT = 30.0


class DecodeSession:
    """
    One decode run: IDLE -> ACTIVE -> FINALIZING -> DONE, or -> ERROR.

    `feed()` must not be called concurrently for one session. Text deltas and
    error signals are returned in decoder order. Image persistence runs on the
    executor and its events are returned by whichever later call observes
    them; `finish()` joins every outstanding task before the single
    StreamEnd, so image events always precede it. `fail()` waits at most
    `fail_join_timeout` seconds so a hung write cannot hold back the error.
    """

    def __init__(
        self,
        cache: ArtifactCache,
        executor: Executor,
        decoder: Optional[StreamDecoder] = None,
        extractor: Optional[ContentExtractor] = None,
        session_id: Optional[str] = None,
        fail_join_timeout: Optional[float] = DEFAULT_FAIL_JOIN_TIMEOUT,
    ):
        self.cache = cache
        self.executor = executor
        self.decoder = decoder or StreamDecoder()
        self.extractor = extractor or ContentExtractor()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.fail_join_timeout = fail_join_timeout
        self.state = SessionState.IDLE
        self.stats = SessionStats()
        self.cancelled = False
        self._pending: List[Future] = []
        self._completed: "queue.SimpleQueue[Union[ImageArtifact, ErrorSignal]]" = queue.SimpleQueue()

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def feed(self, chunk: Union[bytes, str]) -> List[ContentEvent]:
        self._ensure_open()
        if self.cancelled:
            return []
        if self.state == SessionState.IDLE:
            self._transition(SessionState.ACTIVE)

        objects = self.decoder.feed(chunk)
        self.stats.chunks_processed += 1
        events = self._process(objects)
        if self.terminal:
            return events
        events.extend(self.drain_completed())
        return events

    def finish(self) -> List[ContentEvent]:
        self._ensure_open()
        self._transition(SessionState.FINALIZING)
        events = self._process(self.decoder.finalize())
        if self.terminal:
            return events
        self._join()
        events.extend(self.drain_completed())
        self._transition(SessionState.DONE)
        events.append(StreamEnd(self._snapshot()))
        return events

    def fail(self, error: Union[BaseException, str]) -> List[ContentEvent]:
        self._ensure_open()
        reason = str(error)
        logger.warning("Session %s failed: %s", self.session_id, reason)
        self._join(self.fail_join_timeout)
        events: List[ContentEvent] = list(self.drain_completed())
        self.stats.success = False
        self.stats.error = reason
        self._transition(SessionState.ERROR)
        events.append(ErrorSignal(reason))
        events.append(StreamEnd(self._snapshot()))
        return events

    def abort(self) -> None:
        """
        Stop consuming input. Persistence tasks already submitted keep running
        and may still populate the cache.
        """
        if self.cancelled or self.terminal:
            return
        self.cancelled = True
        outstanding = sum(1 for f in self._pending if not f.done())
        logger.info("Session %s aborted with %d persistence task(s) outstanding", self.session_id, outstanding)

    def drain_completed(self) -> List[ContentEvent]:
        events: List[ContentEvent] = []
        while True:
            try:
                event = self._completed.get_nowait()
            except queue.Empty:
                return events
            if isinstance(event, ImageArtifact):
                self.stats.artifacts_emitted += 1
                self.stats.cache_keys.append(event.key)
            events.append(event)

    def _process(self, objects: List[ParsedObject]) -> List[ContentEvent]:
        events: List[ContentEvent] = []
        for obj in objects:
            try:
                parts = self.extractor.extract(obj)
            except UpstreamBlockedError as exc:
                events.extend(self.fail(exc.reason))
                return events
            for part in parts:
                if isinstance(part, TextPart):
                    events.append(self._emit_text(part.text))
                elif isinstance(part, InlineImagePart):
                    self._dispatch_image(part)
        return events

    def _emit_text(self, text: str) -> TextDelta:
        self.stats.text += text
        self.stats.characters_emitted += len(text)
        return TextDelta(text=text, accumulated=self.stats.text, chunk_index=self.stats.chunks_processed)

    def _dispatch_image(self, part: InlineImagePart) -> None:
        future = self.executor.submit(self._persist_image, part)
        self._pending.append(future)

    def _persist_image(self, part: InlineImagePart) -> None:
        try:
            data = part.decode()
            key = self.cache.store(data, part.mime_type, ArtifactCategory.IMAGE)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Session %s failed to save image: %s", self.session_id, exc)
            self._completed.put(ErrorSignal(f"Failed to save image: {exc}"))
            return
        self._completed.put(ImageArtifact(key=key, mime_type=part.mime_type))

    def _join(self, timeout: Optional[float] = None) -> None:
        if not self._pending:
            return
        _, not_done = wait(self._pending, timeout=timeout)
        if not_done:
            # Still running tasks may populate the cache but emit no events.
            logger.warning(
                "Session %s gave up on %d persistence task(s) after %ss",
                self.session_id,
                len(not_done),
                timeout,
            )
        self._pending = []

    def _snapshot(self) -> SessionStats:
        return SessionStats(
            characters_emitted=self.stats.characters_emitted,
            artifacts_emitted=self.stats.artifacts_emitted,
            chunks_processed=self.stats.chunks_processed,
            success=self.stats.success,
            text=self.stats.text,
            cache_keys=list(self.stats.cache_keys),
            error=self.stats.error,
        )

    def _transition(self, state: SessionState) -> None:
        logger.debug("Session %s: %s -> %s", self.session_id, self.state.value, state.value)
        self.state = state

    def _ensure_open(self) -> None:
        if self.terminal:
            raise SessionClosedError(f"Session {self.session_id} is {self.state.value}")
