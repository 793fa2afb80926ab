"""
================================================================================
FORMATTING UTILITIES
================================================================================

Purpose: Display helpers shared by the pages: numbers, dates and times in the
en-GB style used across the app, category colors and icons, rating stars,
avatars, and the pandas DataFrames behind the admin CSV exports.
================================================================================
"""

import csv
from datetime import date, datetime

import pandas as pd
import streamlit as st

from eventscope.stats import round_half_up

CATEGORY_COLORS = {
    "music": "#FF6B5B",
    "food": "#FFD93D",
    "culture": "#9B7EDE",
    "sports": "#6BCAB3",
    "art": "#FFB5C5",
}
DEFAULT_COLOR = "#7B68C8"

CATEGORY_ICONS = {
    "music": "🎵",
    "food": "🍽️",
    "culture": "🎭",
    "sports": "⚽",
    "art": "🎨",
    "tech": "💻",
}
DEFAULT_ICON = "📅"


def format_number(value):
    """Shorten large counts.

    Example:
        >>> format_number(18500)
        '18.5k'
        >>> format_number(420)
        '420'
    """
    if value is None:
        return "0"
    if value >= 1000:
        return f"{value / 1000:.1f}k"
    return str(value)


def _to_date(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def format_date(value):
    """``2024-12-28`` → ``28 Dec 2024``. Empty input gives 'N/A'."""
    if not value:
        return "N/A"
    d = _to_date(value)
    return f"{d.day} {d.strftime('%b %Y')}"


def format_short_date(value):
    """``2024-12-28`` → ``28 Dec``."""
    if not value:
        return ""
    d = _to_date(value)
    return f"{d.day} {d.strftime('%b')}"


def format_full_date(value):
    """Detail page: ``2024-12-28`` → ``Saturday 28 December 2024``."""
    if not value:
        return ""
    d = _to_date(value)
    return f"{d.strftime('%A')} {d.day} {d.strftime('%B %Y')}"


def format_month_year(value):
    """Member-since style: ``2024-03-15`` → ``March 2024``."""
    if not value:
        return "N/A"
    return _to_date(value).strftime("%B %Y")


def format_datetime(value):
    """Admin tables: ``05 Dec 2024, 20:00``."""
    if not value:
        return "N/A"
    return _to_date(value).strftime("%d %b %Y, %H:%M")


def format_time(value):
    """Cut ``HH:MM:SS`` from Postgres down to ``HH:MM``."""
    if not value:
        return ""
    return str(value)[:5]


def get_score_class(score):
    if score >= 4:
        return "score-high"
    if score >= 3:
        return "score-medium"
    return "score-low"


def get_score_badge(score):
    """Colored emoji for a score, matching get_score_class."""
    return {"score-high": "🟢", "score-medium": "🟡", "score-low": "🔴"}[get_score_class(score)]


def get_user_initials(name):
    """First letter of each word, at most two, upper-cased. '?' for no name."""
    if not name:
        return "?"
    return "".join(part[0] for part in name.split() if part).upper()[:2]


def _category_key(category):
    """Lower-case lookup key from a category row, a name or an id like ``cat-music``."""
    if isinstance(category, dict):
        key = category.get("name") or category.get("id") or ""
    else:
        key = category or ""
    key = key.lower()
    if key.startswith("cat-"):
        key = key[len("cat-"):]
    return key


def get_category_color(category):
    """Color for a category row or name. The row's own color wins if it has one."""
    if isinstance(category, dict) and category.get("color"):
        return category["color"]
    return CATEGORY_COLORS.get(_category_key(category), DEFAULT_COLOR)


def get_category_icon(category):
    return CATEGORY_ICONS.get(_category_key(category), DEFAULT_ICON)


def format_stars(score, max_score=5):
    """``4`` → ``★★★★☆``."""
    filled = max(0, min(max_score, round_half_up(score or 0)))
    return "★" * filled + "☆" * (max_score - filled)


def render_user_avatar(name, avatar=None, size="large"):
    """Show the stored avatar text, or initials derived from the name."""
    initials = avatar or get_user_initials(name)
    if size == "small":
        st.markdown(f"## {initials}")
    else:
        st.markdown(f"# {initials}")


# =============================================================================
# ADMIN EXPORTS
# =============================================================================
# PURPOSE: Build the DataFrames behind the admin CSV downloads


def users_to_dataframe(users):
    return pd.DataFrame(
        [
            {
                "id": u["id"],
                "name": u.get("name"),
                "email": u.get("email"),
                "city": u.get("city"),
                "ratingCount": u.get("rating_count"),
                "avgRating": u.get("avg_rating"),
                "lastActivity": u.get("last_activity"),
            }
            for u in users
        ]
    )


def events_to_dataframe(events):
    return pd.DataFrame(
        [
            {
                "id": e["id"],
                "title": e.get("title"),
                "category": (e.get("category") or {}).get("name"),
                "city": (e.get("city") or {}).get("name"),
                "date": e.get("event_date"),
                "time": e.get("event_time"),
                "avgRating": e.get("avg_rating"),
                "visitors": e.get("visitor_count"),
            }
            for e in events
        ]
    )


def ratings_to_dataframe(ratings):
    return pd.DataFrame(
        [
            {
                "id": r["id"],
                "eventTitle": (r.get("event") or {}).get("title", "Unknown Event"),
                "userId": r.get("user_id"),
                "score": r.get("score"),
                "review": r.get("review"),
                "wasPresent": r.get("was_present"),
                "createdAt": r.get("created_at"),
            }
            for r in ratings
        ]
    )


def dataframe_to_csv(df):
    """CSV bytes for st.download_button. Every value is quoted, missing values are empty."""
    return df.fillna("").to_csv(index=False, quoting=csv.QUOTE_ALL).encode("utf-8")
