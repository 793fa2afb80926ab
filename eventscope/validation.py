"""
Input validation and sanitisation for data sent to Supabase.

Ratings and tracked events come straight from user input, so string fields
are trimmed and stripped of HTML tags and scores are forced into the 1-5
range before anything is written.
"""

import math
import re
from typing import Any, Dict, Optional

from eventscope.stats import round_half_up

MIN_SCORE = 1
MAX_SCORE = 5
MAX_ELEMENT_TEXT_LENGTH = 500

_TAG_PATTERN = re.compile(r"<[^>]*>")

# String columns of the user_events table that are sanitised before insert
USER_EVENT_STRING_FIELDS = (
    "event_type",
    "event_category",
    "element_type",
    "element_id",
    "element_class",
    "element_text",
    "page_url",
    "page_title",
    "route_path",
)


def sanitize_string(value: Optional[str]) -> str:
    """Trim a string and remove anything that looks like an HTML tag.

    Returns an empty string for ``None`` or empty input.

    Example:
        >>> sanitize_string("  <b>Great</b> night ")
        'Great night'
    """
    if not value:
        return ""
    return _TAG_PATTERN.sub("", str(value).strip())


def validate_score(score: Any) -> int:
    """Round a score (halves up) and clamp it to the allowed 1-5 range.

    Infinite scores clamp like any other out-of-range number. NaN and
    non-numeric input raise ``ValueError``.

    Example:
        >>> validate_score(4.6)
        5
        >>> validate_score(-3)
        1
    """
    try:
        value = float(score)
    except OverflowError:
        # ints too large for a float
        value = math.inf if score > 0 else -math.inf
    except (TypeError, ValueError):
        raise ValueError(f"Invalid rating score: {score!r}")
    if math.isnan(value):
        raise ValueError(f"Invalid rating score: {score!r}")
    return round_half_up(max(MIN_SCORE, min(MAX_SCORE, value)))


def sanitize_user_event(event: Dict[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
    """Return a copy of a tracked event that is safe to insert.

    String fields are sanitised, ``element_text`` is cut to 500 characters and,
    when ``user_id`` is given, it overrides the id stored on the event.
    """
    cleaned = dict(event)
    for field in USER_EVENT_STRING_FIELDS:
        if cleaned.get(field) is not None:
            cleaned[field] = sanitize_string(cleaned[field])
    if cleaned.get("element_text"):
        cleaned["element_text"] = cleaned["element_text"][:MAX_ELEMENT_TEXT_LENGTH]
    if user_id:
        cleaned["user_id"] = user_id
    return cleaned
