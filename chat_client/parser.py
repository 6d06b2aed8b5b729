"""
Message content parser.

Splits a raw message body into ordered text and code segments. Fenced
regions look like:

    ```python
    print("hi")
    ```

The language tag is optional and must directly follow the opening marker.
An opening marker without a closing one is not a fence: the remainder stays
plain text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

# Language tag is ASCII word characters only; body is non-greedy up to the
# first closing marker.
_FENCE_RE = re.compile(r"```(\w+)?\n?([\s\S]*?)```", re.ASCII)


class SegmentKind(str, Enum):
    TEXT = "text"
    CODE = "code"


@dataclass(frozen=True)
class ContentSegment:
    """One contiguous unit of parsed message content."""

    kind: SegmentKind
    body: str
    language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value, "body": self.body}
        if self.language:
            data["language"] = self.language
        return data


def parse_content(content: str) -> List[ContentSegment]:
    """
    Parse message content into segments, in document order.

    - Fenced regions become CODE segments with the trimmed body.
    - Text around fences is kept verbatim; whitespace-only spans are dropped.
    - Fences whose body is empty after trimming are dropped.
    - If nothing survives, the whole input is one TEXT segment (even "").
    """
    segments: List[ContentSegment] = []
    last_index = 0

    for match in _FENCE_RE.finditer(content):
        if match.start() > last_index:
            _append_text(segments, content[last_index:match.start()])

        body = match.group(2).strip()
        if body:
            segments.append(ContentSegment(
                kind=SegmentKind.CODE,
                body=body,
                language=match.group(1) or None,
            ))

        last_index = match.end()

    if last_index < len(content):
        _append_text(segments, content[last_index:])

    if not segments:
        segments.append(ContentSegment(kind=SegmentKind.TEXT, body=content))

    return segments


def _append_text(segments: List[ContentSegment], text: str) -> None:
    if text.strip():
        segments.append(ContentSegment(kind=SegmentKind.TEXT, body=text))


def code_languages(segments: List[ContentSegment]) -> List[str]:
    """Distinct languages of the code segments, in first-seen order."""
    seen: List[str] = []
    for segment in segments:
        if segment.kind is SegmentKind.CODE and segment.language and segment.language not in seen:
            seen.append(segment.language)
    return seen
