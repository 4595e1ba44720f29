# src/assessment_engine/core/estimates.py
import math
import re
from typing import Optional

VIDEO_MIN_SECONDS = 60
VIDEO_DEFAULT_SECONDS = 5 * 60
READING_WORDS_PER_MINUTE = 200
DEFAULT_MATERIAL_SECONDS = 2 * 60

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def count_words(content_html: str) -> int:
    text = _SPACE_RE.sub(" ", _TAG_RE.sub(" ", content_html or "")).strip()
    return len(text.split(" ")) if text else 0


def compute_estimated_seconds(kind: str,
                              estimated_seconds: Optional[int] = None,
                              estimated_minutes: Optional[int] = None,
                              duration_sec: Optional[int] = None,
                              content_html: Optional[str] = None) -> int:
    """
    Time estimate stored on a learning material when it is authored.
    Explicit inputs win; otherwise a per-kind heuristic applies.
    """
    if estimated_seconds and estimated_seconds > 0:
        return estimated_seconds
    if estimated_minutes and estimated_minutes > 0:
        return estimated_minutes * 60

    if kind == "VIDEO":
        if duration_sec and duration_sec > 0:
            return max(VIDEO_MIN_SECONDS, duration_sec)
        return VIDEO_DEFAULT_SECONDS
    if kind == "HTML" and content_html is not None:
        minutes = max(1, math.ceil(count_words(content_html) / READING_WORDS_PER_MINUTE))
        return minutes * 60
    return DEFAULT_MATERIAL_SECONDS
