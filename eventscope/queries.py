"""Raw Supabase queries for EventScope.

Every function takes a Supabase client as its first argument, so the same
queries serve the Streamlit app (through ``eventscope.db``) and the FastAPI
service in ``api/main.py``. Functions here do not catch errors: callers decide
whether to degrade gracefully (UI) or map the error to an HTTP status (API).

Aggregate counts for events come from the RPC functions defined in
``supabase_migrations/001_schema.sql``.
"""

import logging
from typing import Any, Dict, List, Optional

from eventscope.validation import sanitize_string, sanitize_user_event, validate_score

logger = logging.getLogger(__name__)

# Nested select used wherever an event is returned with its relations
EVENT_WITH_RELATIONS = "*, category:categories(*), city:cities(*)"
RATING_WITH_EVENT = f"*, event:events({EVENT_WITH_RELATIONS})"

STAT_RPCS = {
    "avg_rating": "get_event_avg_rating",
    "review_count": "get_event_review_count",
    "visitor_count": "get_event_visitor_count",
    "view_count": "get_event_view_count",
}


def _first(result):
    """Return the first row of a query result or None."""
    if result.data:
        return result.data[0]
    return None


# CITIES & CATEGORIES

def get_cities(client) -> List[Dict[str, Any]]:
    result = client.table("cities").select("*").order("name").execute()
    return result.data or []


def get_categories(client) -> List[Dict[str, Any]]:
    result = client.table("categories").select("*").order("name").execute()
    return result.data or []


# EVENTS

def get_event_stats(client, event_id: str) -> Dict[str, Any]:
    """Fetch the four computed counters for one event via RPC.

    The average comes back as a numeric string from Postgres, so it is parsed
    to float. Missing values default to 0.
    """
    stats = {}
    for field, rpc_name in STAT_RPCS.items():
        data = client.rpc(rpc_name, {"event_uuid": event_id}).execute().data
        if field == "avg_rating":
            stats[field] = float(data or 0)
        else:
            stats[field] = int(data or 0)
    return stats


def attach_event_stats(client, event: Dict[str, Any]) -> Dict[str, Any]:
    """Return the event merged with its RPC counters."""
    enriched = dict(event)
    enriched.update(get_event_stats(client, event["id"]))
    return enriched


def get_events(client, city_id=None, category_id=None, limit=None) -> List[Dict[str, Any]]:
    """Load events with category and city joined, ordered by date.

    Each event is enriched with avg_rating, review_count, visitor_count and
    view_count.
    """
    query = client.table("events").select(EVENT_WITH_RELATIONS).order("event_date")
    if city_id:
        query = query.eq("city_id", city_id)
    if category_id:
        query = query.eq("category_id", category_id)
    if limit:
        query = query.limit(limit)
    result = query.execute()
    return [attach_event_stats(client, event) for event in (result.data or [])]


def get_event_by_id(client, event_id: str) -> Optional[Dict[str, Any]]:
    result = client.table("events").select(EVENT_WITH_RELATIONS).eq("id", event_id).limit(1).execute()
    event = _first(result)
    if event is None:
        return None
    return attach_event_stats(client, event)


def delete_event(client, event_id: str) -> None:
    client.table("events").delete().eq("id", event_id).execute()


# EVENT VIEWS & VISITS

def track_event_view(client, event_id: str, user_id: str) -> None:
    """Record that a user opened an event. One row per (event, user)."""
    client.table("event_views").upsert(
        {"event_id": event_id, "user_id": user_id},
        on_conflict="event_id,user_id",
    ).execute()


def check_in(client, event_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """Check a user in to an event. Repeated check-ins keep a single row."""
    result = client.table("visits").upsert(
        {"event_id": event_id, "user_id": user_id},
        on_conflict="event_id,user_id",
    ).execute()
    return _first(result)


def get_user_visits(client, user_id: str) -> List[Dict[str, Any]]:
    result = (
        client.table("visits")
        .select("*")
        .eq("user_id", user_id)
        .order("checked_in_at", desc=True)
        .execute()
    )
    return result.data or []


def has_user_checked_in(client, event_id: str, user_id: str) -> bool:
    result = (
        client.table("visits")
        .select("id")
        .eq("event_id", event_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return bool(result.data)


# RATINGS

def create_rating(client, event_id: str, user_id: str, score, review: Optional[str] = None,
                  was_present: bool = True) -> Optional[Dict[str, Any]]:
    """Create or update the user's rating for an event.

    The score is rounded and clamped to 1-5 and the review is sanitised; an
    empty review is stored as NULL. Returns the saved rating with its event
    joined.
    """
    rating_data = {
        "event_id": event_id,
        "user_id": user_id,
        "score": validate_score(score),
        "review": sanitize_string(review) or None,
        "was_present": bool(was_present),
    }
    client.table("ratings").upsert(rating_data, on_conflict="event_id,user_id").execute()

    saved = (
        client.table("ratings")
        .select(RATING_WITH_EVENT)
        .eq("event_id", event_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute()
    )
    return _first(saved)


def get_user_ratings(client, user_id: str) -> List[Dict[str, Any]]:
    result = (
        client.table("ratings")
        .select(RATING_WITH_EVENT)
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


def get_event_ratings(client, event_id: str) -> List[Dict[str, Any]]:
    result = (
        client.table("ratings")
        .select(RATING_WITH_EVENT)
        .eq("event_id", event_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data or []


def get_all_ratings(client) -> List[Dict[str, Any]]:
    result = client.table("ratings").select(RATING_WITH_EVENT).order("created_at", desc=True).execute()
    return result.data or []


def delete_rating(client, rating_id: str) -> None:
    client.table("ratings").delete().eq("id", rating_id).execute()


def get_user_pending_ratings(client, user_id: str) -> List[Dict[str, Any]]:
    """Return events the user has checked into but not rated yet."""
    visits = (
        client.table("visits")
        .select(f"event_id, event:events({EVENT_WITH_RELATIONS})")
        .eq("user_id", user_id)
        .execute()
    )
    rated = client.table("ratings").select("event_id").eq("user_id", user_id).execute()
    rated_ids = {row["event_id"] for row in (rated.data or [])}

    pending = []
    for visit in visits.data or []:
        event = visit.get("event")
        if event and visit.get("event_id") not in rated_ids:
            pending.append(event)
    return pending


# USER PROFILES

def get_users(client) -> List[Dict[str, Any]]:
    result = client.table("user_profiles").select("*").order("created_at", desc=True).execute()
    return result.data or []


def get_user_profile(client, user_id: str) -> Optional[Dict[str, Any]]:
    result = client.table("user_profiles").select("*").eq("id", user_id).limit(1).execute()
    return _first(result)


def make_avatar(name: Optional[str]) -> Optional[str]:
    """Avatar placeholder: first two letters of the name, upper-cased."""
    if not name:
        return None
    return name[:2].upper()


def create_user_profile(client, user_id: str, email: Optional[str], name: Optional[str] = None):
    profile = {
        "id": user_id,
        "email": email,
        "name": name or None,
        "avatar": make_avatar(name),
    }
    result = client.table("user_profiles").insert(profile).execute()
    return _first(result)


def update_user_profile(client, user_id: str, updates: Dict[str, Any]):
    # id is the primary key and never changes
    updates = {k: v for k, v in updates.items() if k != "id"}
    result = client.table("user_profiles").update(updates).eq("id", user_id).execute()
    return _first(result)


def upsert_user_profile(client, user_id: str, name: Optional[str] = None, email: Optional[str] = None):
    """Create the profile row if missing, otherwise overwrite name and email."""
    profile = {
        "id": user_id,
        "name": sanitize_string(name) or None,
        "email": email or None,
    }
    result = client.table("user_profiles").upsert(profile, on_conflict="id").execute()
    return _first(result)


# USER EVENTS (TELEMETRY)

def save_user_events(client, events: List[Dict[str, Any]], user_id: Optional[str] = None) -> int:
    """Insert a batch of tracked events. Returns the number of rows sent.

    An empty batch is a no-op and makes no network call.
    """
    if not events:
        return 0
    rows = [sanitize_user_event(event, user_id) for event in events]
    client.table("user_events").insert(rows).execute()
    logger.debug(f"Saved {len(rows)} user events")
    return len(rows)


def save_user_event(client, event: Dict[str, Any]) -> None:
    client.table("user_events").insert(sanitize_user_event(event)).execute()


# HEALTH

def check_database(client) -> bool:
    """Cheap round-trip used by health checks."""
    client.table("cities").select("id").limit(1).execute()
    return True
