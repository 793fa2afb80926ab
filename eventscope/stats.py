"""
================================================================================
ANALYTICS AGGREGATIONS
================================================================================

Purpose: Pure functions that turn already-fetched rows (events, ratings,
visits, profiles) into the numbers shown on the Home, Ratings, Analytics,
Profile and Admin pages. Nothing here talks to Supabase or Streamlit, so every
calculation can be tested with plain dicts.

Events are expected in the shape returned by ``queries.get_events``: table
columns plus ``avg_rating``, ``review_count``, ``visitor_count``,
``view_count`` and the joined ``category`` / ``city``. Missing counters count
as 0.
================================================================================
"""

from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
SHORT_MONTHS = [name[:3] for name in MONTH_NAMES]

QUALITY_MIN_VISITORS = 1000
QUALITY_MAX_RATING = 4.5
LOW_ENGAGEMENT_RATE = 30
ACTIVE_USER_DAYS = 30
FLAGGED_MAX_SCORE = 2


# =============================================================================
# HELPERS
# =============================================================================

def round_half_up(value, digits=0):
    """Round with halves going up (``4.25`` → ``4.3``), the way displayed numbers are expected.

    Python's ``round()`` rounds halves to even. Returns an int when ``digits`` is 0.
    """
    rounded = Decimal(str(value)).quantize(Decimal(1).scaleb(-digits), rounding=ROUND_HALF_UP)
    return int(rounded) if digits == 0 else float(rounded)


def _num(event, field):
    return event.get(field) or 0


def _mean(values):
    values = list(values)
    if not values:
        return 0
    return sum(values) / len(values)


def _rate(part, whole):
    return (part / whole) * 100 if whole > 0 else 0


def parse_date(value):
    """Parse ``YYYY-MM-DD`` (or an ISO timestamp) into a date. Returns None if invalid."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def parse_timestamp(value):
    """Parse an ISO timestamp from Supabase into an aware datetime (UTC if naive)."""
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _related_name(event, relation):
    related = event.get(relation) or {}
    return related.get("name", "")


# =============================================================================
# ANALYTICS DASHBOARD
# =============================================================================

def calculate_overall_stats(events):
    """Totals across all events.

    Engagement is ratings per view in percent; drop-off is its complement.
    """
    total_ratings = sum(_num(e, "review_count") for e in events)
    total_views = sum(_num(e, "view_count") for e in events)
    engagement_rate = _rate(total_ratings, total_views)

    return {
        "total_events": len(events),
        "total_visitors": sum(_num(e, "visitor_count") for e in events),
        "total_ratings": total_ratings,
        "avg_rating": round_half_up(_mean(_num(e, "avg_rating") for e in events), 2),
        "drop_off_rate": round_half_up(100 - engagement_rate, 1),
        "engagement_rate": round_half_up(engagement_rate, 1),
    }


def calculate_category_stats(events, categories):
    stats = []
    for category in categories:
        category_events = [e for e in events if e.get("category_id") == category["id"]]
        stats.append({
            "id": category["id"],
            "name": category["name"],
            "color": category.get("color"),
            "event_count": len(category_events),
            "avg_rating": round_half_up(_mean(_num(e, "avg_rating") for e in category_events), 1),
            "total_visitors": sum(_num(e, "visitor_count") for e in category_events),
            "total_reviews": sum(_num(e, "review_count") for e in category_events),
        })
    return stats


def calculate_city_stats(events, cities):
    stats = []
    for city in cities:
        city_events = [e for e in events if e.get("city_id") == city["id"]]
        total_views = sum(_num(e, "view_count") for e in city_events)
        total_ratings = sum(_num(e, "review_count") for e in city_events)
        stats.append({
            "id": city["id"],
            "name": city["name"],
            "event_count": len(city_events),
            "avg_rating": round_half_up(_mean(_num(e, "avg_rating") for e in city_events), 1),
            "total_visitors": sum(_num(e, "visitor_count") for e in city_events),
            "engagement_rate": round_half_up(_rate(total_ratings, total_views)),
        })
    return stats


def calculate_top_events(events, limit=5):
    """Most visited events, ranked from 1."""
    ranked = sorted(events, key=lambda e: _num(e, "visitor_count"), reverse=True)[:limit]
    return [
        {
            "rank": index + 1,
            "event_id": e.get("id"),
            "title": e.get("title"),
            "city": _related_name(e, "city"),
            "category": _related_name(e, "category") or e.get("category_id"),
            "visitors": _num(e, "visitor_count"),
            "rating": _num(e, "avg_rating"),
            "reviews": _num(e, "review_count"),
            "color": e.get("color"),
        }
        for index, e in enumerate(ranked)
    ]


def calculate_monthly_data(events):
    """Event count and average rating per calendar month, January first.

    Only events that have ratings contribute to the average; months without
    events are left out.
    """
    months = {}
    for event in events:
        event_date = parse_date(event.get("event_date"))
        if event_date is None:
            continue
        bucket = months.setdefault(event_date.month, {"count": 0, "ratings": []})
        bucket["count"] += 1
        if event.get("avg_rating"):
            bucket["ratings"].append(event["avg_rating"])

    return [
        {
            "month": MONTH_NAMES[month - 1],
            "short_month": SHORT_MONTHS[month - 1],
            "event_count": data["count"],
            "avg_rating": round_half_up(_mean(data["ratings"]), 1),
        }
        for month, data in sorted(months.items())
    ]


def calculate_quality_issues(events, limit=3):
    """Popular events (more than 1000 visitors) rated below 4.5."""
    issues = [
        e for e in events
        if _num(e, "visitor_count") > QUALITY_MIN_VISITORS and _num(e, "avg_rating") < QUALITY_MAX_RATING
    ]
    issues.sort(key=lambda e: _num(e, "visitor_count"), reverse=True)
    return [
        {
            "rank": index + 1,
            "event_id": e.get("id"),
            "title": e.get("title"),
            "visitors": _num(e, "visitor_count"),
            "rating": _num(e, "avg_rating"),
            "category": _related_name(e, "category") or e.get("category_id"),
            "color": e.get("color"),
        }
        for index, e in enumerate(issues[:limit])
    ]


def calculate_low_engagement(events, limit=3):
    """Events that get views but few ratings (rating rate under 30%), lowest first."""
    rows = []
    for e in events:
        views = _num(e, "view_count")
        reviews = _num(e, "review_count")
        if views <= 0 or reviews <= 0:
            continue
        rate = round_half_up(reviews / views * 100, 1)
        if rate < LOW_ENGAGEMENT_RATE:
            rows.append({"title": e.get("title"), "views": views, "ratings": reviews, "rate": rate})
    rows.sort(key=lambda row: row["rate"])
    return rows[:limit]


def get_day_bucket(event_date):
    """Friday, Saturday and Sunday get their own bucket, Monday-Thursday is 'Weekdays'."""
    weekday = event_date.weekday()
    if weekday == 4:
        return "Friday"
    if weekday == 5:
        return "Saturday"
    if weekday == 6:
        return "Sunday"
    return "Weekdays"


def calculate_time_analysis(events):
    """Average rating and event count per day bucket, in order of first appearance."""
    buckets = OrderedDict()
    for event in events:
        event_date = parse_date(event.get("event_date"))
        if event_date is None:
            continue
        data = buckets.setdefault(get_day_bucket(event_date), {"count": 0, "ratings": []})
        data["count"] += 1
        if event.get("avg_rating"):
            data["ratings"].append(event["avg_rating"])

    return [
        {"day": day, "avg_rating": round_half_up(_mean(data["ratings"]), 1), "event_count": data["count"]}
        for day, data in buckets.items()
    ]


def get_bar_width(value, max_value):
    """Bar length in percent of the largest value."""
    if not max_value:
        return 0
    return (value / max_value) * 100


def get_donut_segments(category_stats):
    """Percentages and offsets for a donut chart drawn on a circle of circumference 100.

    The first segment starts at the top (offset 25); each next segment
    starts where the previous one ended.
    """
    total = sum(c["event_count"] for c in category_stats)
    segments = []
    offset = 25
    for category in category_stats:
        percentage = (category["event_count"] / total) * 100 if total else 0
        segments.append({
            "name": category["name"],
            "color": category.get("color"),
            "event_count": category["event_count"],
            "percentage": percentage,
            "offset": offset,
            "dash_array": f"{percentage} {100 - percentage}",
        })
        offset -= percentage
    return segments


# =============================================================================
# HOME
# =============================================================================

def calculate_city_summary(events, city_id):
    city_events = [e for e in events if e.get("city_id") == city_id]
    return {
        "event_count": len(city_events),
        "total_visitors": sum(_num(e, "visitor_count") for e in city_events),
        "avg_rating": round_half_up(_mean(_num(e, "avg_rating") for e in city_events), 1),
    }


def get_featured_event(events, city_id):
    """Highest rated event of a city (the earliest one wins a tie)."""
    best = None
    for event in events:
        if event.get("city_id") != city_id:
            continue
        if best is None or _num(event, "avg_rating") > _num(best, "avg_rating"):
            best = event
    return best


# =============================================================================
# RATINGS PAGE
# =============================================================================

def has_review(rating):
    return bool((rating.get("review") or "").strip())


def calculate_user_rating_stats(ratings, visits):
    return {
        "total_ratings": len(ratings),
        "total_reviews": sum(1 for r in ratings if has_review(r)),
        "events_attended": len(visits),
        "avg_rating": round_half_up(_mean(r["score"] for r in ratings), 1),
    }


def mark_checked_in(pending_events, visits):
    """Pair each pending event with whether the user checked in to it."""
    visited = {v.get("event_id") for v in visits}
    return [{"event": event, "checked_in": event.get("id") in visited} for event in pending_events]


# =============================================================================
# PROFILE
# =============================================================================

ACHIEVEMENTS = [
    {"id": "first_rating", "title": "First Rating", "description": "Rate your first event", "icon": "⭐", "total": 1},
    {"id": "explorer", "title": "City Explorer", "description": "Visit events in 3 cities", "icon": "📍", "total": 3},
    {"id": "reviewer", "title": "Storyteller", "description": "Write 10 reviews", "icon": "💬", "total": 10},
    {"id": "regular", "title": "Event Regular", "description": "Attend 25 events", "icon": "📅", "total": 25},
    {"id": "pioneer", "title": "Pioneer", "description": "Be first to rate a new event", "icon": "🚩", "total": None},
]


def _user_event_ids(ratings, visits):
    event_ids = []
    for row in list(visits) + list(ratings):
        event_id = row.get("event_id")
        if event_id and event_id not in event_ids:
            event_ids.append(event_id)
    return event_ids


def _resolve_events(ratings, visits, events_by_id):
    """Map event ids the user interacted with to event dicts (joined rows first)."""
    resolved = {}
    for rating in ratings:
        if rating.get("event"):
            resolved[rating["event_id"]] = rating["event"]
    for event_id in _user_event_ids(ratings, visits):
        if event_id not in resolved and event_id in events_by_id:
            resolved[event_id] = events_by_id[event_id]
    return resolved


def calculate_profile_stats(ratings, visits, events_by_id=None):
    events = _resolve_events(ratings, visits, events_by_id or {})
    cities = {e.get("city_id") for e in events.values() if e.get("city_id")}
    return {
        "events_attended": len(visits),
        "ratings_given": len(ratings),
        "reviews_written": sum(1 for r in ratings if has_review(r)),
        "cities_visited": len(cities),
    }


def calculate_favorite_categories(ratings, visits, categories, events_by_id=None):
    """Categories of the events a user attended or rated, most frequent first."""
    events = _resolve_events(ratings, visits, events_by_id or {})
    counts = {}
    for event in events.values():
        category_id = event.get("category_id")
        if category_id:
            counts[category_id] = counts.get(category_id, 0) + 1

    favorites = [
        {"id": c["id"], "name": c["name"], "color": c.get("color"), "count": counts[c["id"]]}
        for c in categories
        if counts.get(c["id"])
    ]
    favorites.sort(key=lambda c: c["count"], reverse=True)
    return favorites


def is_pioneer(user_id, all_ratings):
    """True when the user wrote the earliest rating of at least one event."""
    first_by_event = {}
    for rating in all_ratings:
        created = parse_timestamp(rating.get("created_at"))
        if created is None:
            continue
        current = first_by_event.get(rating["event_id"])
        if current is None or created < current[0]:
            first_by_event[rating["event_id"]] = (created, rating.get("user_id"))
    return any(first_user == user_id for _, first_user in first_by_event.values())


def calculate_achievements(profile_stats, pioneer=False):
    progress_by_id = {
        "first_rating": profile_stats["ratings_given"],
        "explorer": profile_stats["cities_visited"],
        "reviewer": profile_stats["reviews_written"],
        "regular": profile_stats["events_attended"],
    }
    achievements = []
    for definition in ACHIEVEMENTS:
        achievement = dict(definition)
        if definition["id"] == "pioneer":
            achievement["unlocked"] = bool(pioneer)
            achievement["progress"] = None
        else:
            progress = progress_by_id[definition["id"]]
            achievement["unlocked"] = progress >= definition["total"]
            achievement["progress"] = progress
        achievements.append(achievement)
    return achievements


def get_progress_width(progress, total):
    if not total:
        return 0
    return min((progress / total) * 100, 100)


def build_recent_activity(ratings, visits, events_by_id=None, limit=5):
    """Merge ratings and check-ins into one feed, newest first."""
    events_by_id = events_by_id or {}
    activity = []
    for rating in ratings:
        event = rating.get("event") or events_by_id.get(rating.get("event_id")) or {}
        activity.append({
            "type": "review" if has_review(rating) else "rating",
            "event": event.get("title", "Unknown Event"),
            "city": _related_name(event, "city"),
            "score": rating.get("score"),
            "date": rating.get("created_at"),
        })
    for visit in visits:
        event = events_by_id.get(visit.get("event_id")) or {}
        activity.append({
            "type": "checkin",
            "event": event.get("title", "Unknown Event"),
            "city": _related_name(event, "city"),
            "score": None,
            "date": visit.get("checked_in_at"),
        })

    epoch = datetime.min.replace(tzinfo=timezone.utc)
    activity.sort(key=lambda item: parse_timestamp(item["date"]) or epoch, reverse=True)
    return activity[:limit]


# =============================================================================
# ADMIN
# =============================================================================

def get_display_name(user_id):
    if user_id.startswith("anon_"):
        return "Anonymous User"
    return user_id[:8]


def build_user_stats(ratings, profiles=None):
    """One row per user who has rated something, with counts and last activity.

    Profile data (name, email, city) is used when available; otherwise the
    name is derived from the id.
    """
    profiles_by_id = {p["id"]: p for p in (profiles or [])}
    users = OrderedDict()
    for rating in ratings:
        user_id = rating["user_id"]
        entry = users.setdefault(user_id, {"scores": [], "last_activity": ""})
        entry["scores"].append(rating["score"])
        created_at = rating.get("created_at") or ""
        if not entry["last_activity"] or created_at > entry["last_activity"]:
            entry["last_activity"] = created_at

    rows = []
    for user_id, entry in users.items():
        profile = profiles_by_id.get(user_id, {})
        rows.append({
            "id": user_id,
            "name": profile.get("name") or get_display_name(user_id),
            "email": profile.get("email"),
            "avatar": profile.get("avatar"),
            "city": profile.get("city"),
            "bio": profile.get("bio"),
            "rating_count": len(entry["scores"]),
            "visit_count": 0,
            "avg_rating": round_half_up(_mean(entry["scores"]), 1),
            "last_activity": entry["last_activity"],
        })
    return rows


def calculate_admin_stats(events, ratings, users, now=None):
    now = now or datetime.now(timezone.utc)
    threshold = now - timedelta(days=ACTIVE_USER_DAYS)

    active_users = 0
    for user in users:
        last_activity = parse_timestamp(user.get("last_activity"))
        if last_activity is not None and last_activity >= threshold:
            active_users += 1

    return {
        "total_users": len(users),
        "active_users": active_users,
        "total_events": len(events),
        "total_ratings": len(ratings),
        "avg_rating": round_half_up(_mean(r["score"] for r in ratings), 2),
        "flagged_content": sum(1 for r in ratings if r["score"] <= FLAGGED_MAX_SCORE),
    }
