"""Message cost in credits (one credit per segment)."""
from __future__ import annotations

import math

GSM_SEGMENT_LENGTH = 160
UNICODE_SEGMENT_LENGTH = 70


def requires_unicode(body: str) -> bool:
    # Any character past 7-bit ASCII switches the whole message to UCS-2 segments.
    return any(ord(ch) > 0x7F for ch in body)


def segment_length(body: str) -> int:
    return UNICODE_SEGMENT_LENGTH if requires_unicode(body) else GSM_SEGMENT_LENGTH


def message_cost(body: str) -> int:
    """Return the number of billable segments for `body`; 0 for an empty body."""
    if not body:
        return 0
    return math.ceil(len(body) / segment_length(body))


__all__ = ["GSM_SEGMENT_LENGTH", "UNICODE_SEGMENT_LENGTH", "requires_unicode", "segment_length", "message_cost"]
