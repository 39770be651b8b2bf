from __future__ import annotations

import logging
from typing import Any, List, Optional

from .errors import UpstreamBlockedError
from .models import DEFAULT_IMAGE_MIME_TYPE, ContentPart, InlineImagePart, ParsedObject, TextPart

logger = logging.getLogger(__name__)

BLOCKING_FINISH_REASONS = frozenset(
    {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "RECITATION", "IMAGE_SAFETY"}
)


class ContentExtractor:
    """
    Turns decoded response objects into content parts.

    Objects shaped like a generateContent response are interpreted directly.
    The generic tree walk is only applied to residual objects recovered at
    stream end that do not have that shape, so no object is read twice.
    """

    def extract(self, obj: ParsedObject) -> List[ContentPart]:
        parts = self._interpret_shaped(obj.value)
        if parts is not None:
            return parts
        if obj.residual:
            return self._walk(obj.value, [])
        logger.debug("Ignoring unshaped object with keys %s", _describe_keys(obj.value))
        return []

    def _interpret_shaped(self, value: Any) -> Optional[List[ContentPart]]:
        if not isinstance(value, dict):
            return None
        candidates = value.get("candidates")
        feedback = value.get("promptFeedback")
        if not isinstance(candidates, list) and not isinstance(feedback, dict):
            return None

        reason = self._block_reason(feedback, candidates)
        if reason:
            raise UpstreamBlockedError(reason)

        parts: List[ContentPart] = []
        for candidate in candidates if isinstance(candidates, list) else []:
            content = candidate.get("content") if isinstance(candidate, dict) else None
            raw_parts = content.get("parts") if isinstance(content, dict) else None
            if not isinstance(raw_parts, list):
                continue
            for raw in raw_parts:
                part = self._interpret_part(raw)
                if part is not None:
                    parts.append(part)
        return parts

    @staticmethod
    def _block_reason(feedback: Any, candidates: Any) -> Optional[str]:
        if isinstance(feedback, dict) and feedback.get("blockReason"):
            return str(feedback["blockReason"])
        for candidate in candidates if isinstance(candidates, list) else []:
            if isinstance(candidate, dict) and candidate.get("finishReason") in BLOCKING_FINISH_REASONS:
                return str(candidate["finishReason"])
        return None

    @staticmethod
    def _interpret_part(raw: Any) -> Optional[ContentPart]:
        if not isinstance(raw, dict):
            return None
        text = raw.get("text")
        if isinstance(text, str) and text:
            return TextPart(text)
        inline = raw.get("inlineData")
        if isinstance(inline, dict) and isinstance(inline.get("data"), str) and inline["data"]:
            return InlineImagePart(inline["data"], inline.get("mimeType") or DEFAULT_IMAGE_MIME_TYPE)
        return None

    def _walk(self, node: Any, parts: List[ContentPart]) -> List[ContentPart]:
        if isinstance(node, list):
            for item in node:
                self._walk(item, parts)
            return parts
        if not isinstance(node, dict):
            return parts

        # A node may carry both keys; each yields its own part.
        text = node.get("text")
        if isinstance(text, str) and text:
            parts.append(TextPart(text))
        image = self._interpret_part({"inlineData": node.get("inlineData")})
        if image is not None:
            parts.append(image)
        for key, child in node.items():
            if key == "inlineData" and image is not None:
                continue
            self._walk(child, parts)
        return parts


def _describe_keys(value: Any) -> str:
    if isinstance(value, dict):
        return ",".join(sorted(str(k) for k in value)) or "<none>"
    return type(value).__name__
