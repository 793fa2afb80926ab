"""Filtering utilities for events, ratings and admin user lists.

All filters use AND logic: an item is kept only if it matches every criterion
that is set. ``"all"`` (or an empty value) for a city or category means "no
restriction".

EXAMPLE:
--------
```python
filtered = filter_explore_events(
    events,
    search="jazz",
    city_id="all",
    min_rating=4,
    sort_by="visitors",
)
# Result: events mentioning "jazz" rated 4+ with the most visited first
```
"""

import streamlit as st

ALL = "all"

SORT_OPTIONS = {
    "rating": "Top rated",
    "visitors": "Most visitors",
    "reviews": "Most reviews",
    "date": "Date",
}

# =============================================================================
# INTERNAL HELPERS
# =============================================================================


def _is_set(value):
    return bool(value) and value != ALL


def _matches_search(event, search):
    if not search:
        return True
    haystack = (
        event.get("title"),
        event.get("subtitle"),
        (event.get("city") or {}).get("name"),
        event.get("neighborhood"),
    )
    return any(search in (field or "").lower() for field in haystack)


def sort_events(events, sort_by):
    """Sort by rating, visitors or reviews (highest first) or by date (earliest first).

    Unknown sort keys keep the incoming order.
    """
    if sort_by == "rating":
        return sorted(events, key=lambda e: e.get("avg_rating") or 0, reverse=True)
    if sort_by == "visitors":
        return sorted(events, key=lambda e: e.get("visitor_count") or 0, reverse=True)
    if sort_by == "reviews":
        return sorted(events, key=lambda e: e.get("review_count") or 0, reverse=True)
    if sort_by == "date":
        return sorted(events, key=lambda e: e.get("event_date") or "")
    return list(events)


# =============================================================================
# EVENT FILTERS
# =============================================================================


def filter_home_events(events, city_id, category_id=ALL):
    """Events of one city, optionally narrowed to a category."""
    return [
        e for e in events
        if e.get("city_id") == city_id and (not _is_set(category_id) or e.get("category_id") == category_id)
    ]


def filter_explore_events(events, search="", city_id=ALL, category_id=ALL, min_rating=0, sort_by="rating"):
    """Filter and sort events for the Explore page.

    Args:
        events (list): Events with joined city.
        search (str): Case-insensitive text matched against title, subtitle,
            city name and neighborhood.
        city_id (str): City id or "all".
        category_id (str): Category id or "all".
        min_rating (float): Minimum average rating.
        sort_by (str): One of SORT_OPTIONS.

    Returns:
        list: Matching events in the requested order.
    """
    search = (search or "").strip().lower()
    result = [
        e for e in events
        if _matches_search(e, search)
        and (not _is_set(city_id) or e.get("city_id") == city_id)
        and (not _is_set(category_id) or e.get("category_id") == category_id)
        and (e.get("avg_rating") or 0) >= (min_rating or 0)
    ]
    return sort_events(result, sort_by)


# =============================================================================
# ADMIN FILTERS
# =============================================================================


def filter_users(users, search="", city=None):
    search = (search or "").strip().lower()
    result = users
    if search:
        result = [
            u for u in result
            if search in (u.get("name") or "").lower()
            or search in (u.get("email") or "").lower()
            or search in u["id"].lower()
        ]
    if city:
        result = [u for u in result if u.get("city") == city]
    return result


def filter_admin_events(events, category_id=None, city_id=None, date_start=None, date_end=None):
    """Admin event list filter. Dates compare as ``YYYY-MM-DD`` strings, both ends inclusive."""
    result = events
    if _is_set(category_id):
        result = [e for e in result if e.get("category_id") == category_id]
    if _is_set(city_id):
        result = [e for e in result if e.get("city_id") == city_id]
    if date_start:
        start = str(date_start)
        result = [e for e in result if (e.get("event_date") or "") >= start]
    if date_end:
        end = str(date_end)
        result = [e for e in result if (e.get("event_date") or "") <= end]
    return result


def filter_ratings(ratings, min_score=0):
    if min_score and min_score > 0:
        return [r for r in ratings if r["score"] >= min_score]
    return ratings


# =============================================================================
# FILTER SESSION STATE DEFAULTS
# =============================================================================
# PURPOSE: Single place that lists every filter key kept in session state

FILTER_SESSION_DEFAULTS = {
    # Home
    "home_city": None,
    "home_category": ALL,

    # Explore
    "explore_search": "",
    "explore_city": ALL,
    "explore_category": ALL,
    "explore_min_rating": 0.0,
    "explore_sort": "rating",

    # Admin
    "admin_user_search": "",
    "admin_user_city": None,
    "admin_event_category": ALL,
    "admin_event_city": ALL,
    "admin_date_start": None,
    "admin_date_end": None,
    "admin_min_score": 0,
}

EXPLORE_FILTER_KEYS = [key for key in FILTER_SESSION_DEFAULTS if key.startswith("explore_")]


def get_filter_session_keys():
    """Return all filter-related session state keys (cleared on logout)."""
    return list(FILTER_SESSION_DEFAULTS.keys())


def initialize_session_state():
    """Set filter defaults without overwriting the user's current selections."""
    for key, value in FILTER_SESSION_DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = value


def reset_filters(keys):
    """Put the given filter keys back to their defaults."""
    for key in keys:
        st.session_state[key] = FILTER_SESSION_DEFAULTS[key]


def has_explore_filters():
    return any(st.session_state.get(key) != FILTER_SESSION_DEFAULTS[key]
               for key in EXPLORE_FILTER_KEYS if key != "explore_sort")
