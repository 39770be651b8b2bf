from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, replace
from typing import List, Optional, Union

from .errors import DecoderClosedError
from .models import ParsedObject

logger = logging.getLogger(__name__)


@dataclass
class DecodeBuffer:
    """
    Accumulated text plus the brace scanner state for the object currently
    being scanned. `text` always starts at the opening brace of that object
    while `depth > 0`; everything before it has already been surfaced or
    discarded.
    """

    text: str = ""
    scan_pos: int = 0
    depth: int = 0
    in_string: bool = False
    escaped: bool = False

    def copy(self) -> "DecodeBuffer":
        return replace(self)

    def consume(self, end: int) -> None:
        self.text = self.text[end:]
        self.reset_scan()

    def reset_scan(self) -> None:
        self.scan_pos = 0
        self.depth = 0
        self.in_string = False
        self.escaped = False


class StreamDecoder:
    """
    Incrementally extracts complete top-level JSON objects from an arbitrarily
    chunked stream. Balanced spans that fail to deserialize are dropped and
    scanning resumes after them; see `malformed_spans`.
    """

    def __init__(self, encoding: str = "utf-8"):
        self._buffer = DecodeBuffer()
        self._text_decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._closed = False
        self.malformed_spans = 0
        self.trailing_data: Optional[str] = None

    @property
    def buffer(self) -> DecodeBuffer:
        return self._buffer

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, chunk: Union[bytes, str]) -> List[ParsedObject]:
        if self._closed:
            raise DecoderClosedError("Decoder already finalized")

        working = self._buffer.copy()
        decoder_state = self._text_decoder.getstate()
        malformed_before = self.malformed_spans
        try:
            working.text += self._decode(chunk)
            objects = self._extract(working)
        except BaseException:
            self._text_decoder.setstate(decoder_state)
            self.malformed_spans = malformed_before
            raise
        self._buffer = working
        return objects

    def finalize(self) -> List[ParsedObject]:
        if self._closed:
            return []

        working = self._buffer.copy()
        working.text += self._text_decoder.decode(b"", final=True)
        objects = self._extract(working)

        remainder = working.text.strip()
        if remainder:
            residual = self._recover_residual(working)
            objects.extend(residual)
            self.trailing_data = remainder
            logger.warning(
                "Trailing data left after stream end (%d chars, %d residual object(s) recovered)",
                len(remainder),
                len(residual),
            )

        self._buffer = DecodeBuffer()
        self._closed = True
        return objects

    def _decode(self, chunk: Union[bytes, str]) -> str:
        if isinstance(chunk, str):
            return chunk
        return self._text_decoder.decode(bytes(chunk))

    def _extract(self, buf: DecodeBuffer, residual: bool = False) -> List[ParsedObject]:
        objects: List[ParsedObject] = []
        while True:
            if buf.depth == 0:
                start = buf.text.find("{")
                if start < 0:
                    buf.text = ""
                    buf.reset_scan()
                    return objects
                if start:
                    buf.text = buf.text[start:]
                buf.reset_scan()

            end = self._scan(buf)
            if end < 0:
                return objects

            span = buf.text[: end + 1]
            buf.consume(end + 1)
            try:
                value = json.loads(span)
            except (ValueError, RecursionError) as exc:
                self.malformed_spans += 1
                logger.warning("Skipping malformed JSON span (%d chars): %s", len(span), exc)
                continue
            objects.append(ParsedObject(value=value, residual=residual))

    @staticmethod
    def _scan(buf: DecodeBuffer) -> int:
        text = buf.text
        for i in range(buf.scan_pos, len(text)):
            ch = text[i]
            if buf.escaped:
                buf.escaped = False
                continue
            if ch == "\\":
                buf.escaped = True
                continue
            if ch == '"':
                buf.in_string = not buf.in_string
                continue
            if buf.in_string:
                continue
            if ch == "{":
                buf.depth += 1
            elif ch == "}":
                buf.depth -= 1
                if buf.depth == 0:
                    buf.scan_pos = i + 1
                    return i
        buf.scan_pos = len(text)
        return -1

    def _recover_residual(self, buf: DecodeBuffer) -> List[ParsedObject]:
        remainder = buf.text.strip()
        try:
            return [ParsedObject(value=json.loads(remainder), residual=True)]
        except (ValueError, RecursionError):
            pass

        # Unclosed outer object: peel its brace and salvage complete inner objects.
        recovered: List[ParsedObject] = []
        while buf.text:
            buf.consume(1)
            recovered.extend(self._extract(buf, residual=True))
        return recovered
