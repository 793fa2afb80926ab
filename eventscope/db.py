# Supabase data access layer for EventScope
# This module centralizes all database access used by the Streamlit pages
# Architecture: Streamlit UI → eventscope.* helpers → eventscope.db → eventscope.queries → Supabase
# Pages should not import Supabase directly, they should use functions from this module

import logging
import os

import streamlit as st
from st_supabase_connection import SupabaseConnection
from supabase import create_client

from eventscope import queries

logger = logging.getLogger(__name__)

# CONNECTION

# Get a cached Supabase database connection
# Streamlit reruns the script on each interaction, so opening a new connection every time
# would kill performance. @st.cache_resource keeps a single connection per process
@st.cache_resource
def supaconn():
    supabase_secrets = st.secrets.get("connections", {}).get("supabase", {})
    url = supabase_secrets.get("url")
    key = supabase_secrets.get("key")
    if url and key:
        return st.connection("supabase", type=SupabaseConnection, url=url, key=key)
    return st.connection("supabase", type=SupabaseConnection)


# The connection wraps a supabase-py client; queries only need the client
# It is shared by every browser session, so it must stay anonymous (no sign-in on it)
def get_client():
    return supaconn().client


# Create a new, uncached client for Supabase Auth
# supabase-py stores the signed-in session on the client and sends its JWT with every request,
# so each browser session signs in on its own client (see eventscope.auth.get_auth_client)
def create_auth_client():
    supabase_secrets = st.secrets.get("connections", {}).get("supabase", {})
    url = supabase_secrets.get("url") or os.environ.get("SUPABASE_URL")
    key = supabase_secrets.get("key") or os.environ.get("SUPABASE_KEY")
    if not url or not key:
        raise ValueError("Supabase URL not provided: set [connections.supabase] url and key in secrets")
    return create_client(url, key)


# INTERNAL HELPERS

# Show a user-facing message that matches the kind of failure
# Configuration problems look different from auth problems, so the message says which one it is
def _report_error(action, error):
    error_message = str(error)
    logger.error(f"Error {action}: {error_message}")

    lowered = error_message.lower()
    has_config_error = "url not provided" in lowered or "key not provided" in lowered or "api key" in lowered
    has_auth_error = "unauthorized" in lowered or "jwt" in lowered or "permission denied" in lowered

    if has_config_error:
        st.error("⚠️ **Database Configuration Error**\n\nPlease check the Supabase credentials in `.streamlit/secrets.toml`.")
    elif has_auth_error:
        st.error("⚠️ **Database Authentication Error**\n\nPlease verify the Supabase key has the required permissions.")
    else:
        st.error(f"⚠️ **Failed {action}**\n\nError: {error_message[:200]}")


# Writes change counters (avg rating, visitors, views), so event caches must be dropped
def _clear_event_caches():
    get_events.clear()
    get_event_by_id.clear()


def _clear_rating_caches():
    get_user_ratings.clear()
    get_event_ratings.clear()
    get_all_ratings.clear()
    get_user_pending_ratings.clear()


# CITIES & CATEGORIES

# Cities and categories are reference data and change rarely
@st.cache_data(ttl=600)
def get_cities():
    try:
        return queries.get_cities(get_client())
    except Exception as e:
        _report_error("to load cities", e)
        return []


@st.cache_data(ttl=600)
def get_categories():
    try:
        return queries.get_categories(get_client())
    except Exception as e:
        _report_error("to load categories", e)
        return []


# EVENTS

# Load events with relations and computed counters
# Cached for 120 seconds so fresh ratings show up quickly
@st.cache_data(ttl=120, show_spinner=False)
def get_events(city_id=None, category_id=None, limit=None):
    try:
        events = queries.get_events(get_client(), city_id=city_id, category_id=category_id, limit=limit)
        logger.info(f"Loaded {len(events)} events")
        return events
    except Exception as e:
        _report_error("to load events", e)
        return []


@st.cache_data(ttl=60, show_spinner=False)
def get_event_by_id(event_id):
    try:
        return queries.get_event_by_id(get_client(), event_id)
    except Exception as e:
        _report_error("to load event", e)
        return None


def delete_event(event_id):
    try:
        queries.delete_event(get_client(), event_id)
        _clear_event_caches()
        return True
    except Exception as e:
        logger.error(f"Failed to delete event {event_id}: {e}")
        return False


# VIEWS & VISITS

# View tracking is best effort: a failed insert must not break the detail page
def track_event_view(event_id, user_id):
    if not user_id:
        return False
    try:
        queries.track_event_view(get_client(), event_id, user_id)
        get_event_by_id.clear()
        return True
    except Exception as e:
        logger.warning(f"Could not record view for event {event_id}: {e}")
        return False


def check_in(event_id, user_id):
    if not user_id:
        st.error("Please sign in to check in.")
        return None
    try:
        visit = queries.check_in(get_client(), event_id, user_id)
        _clear_event_caches()
        get_user_visits.clear()
        get_user_pending_ratings.clear()
        has_user_checked_in.clear()
        return visit
    except Exception as e:
        _report_error("to check in", e)
        return None


@st.cache_data(ttl=60)
def get_user_visits(user_id):
    if not user_id:
        return []
    try:
        return queries.get_user_visits(get_client(), user_id)
    except Exception as e:
        logger.error(f"Error loading visits for {user_id}: {e}")
        return []


@st.cache_data(ttl=60)
def has_user_checked_in(event_id, user_id):
    if not user_id:
        return False
    try:
        return queries.has_user_checked_in(get_client(), event_id, user_id)
    except Exception as e:
        logger.error(f"Error checking visit for event {event_id}: {e}")
        return False


# RATINGS

# Create or update a rating (one rating per user and event)
def submit_rating(event_id, user_id, score, review=None, was_present=True):
    if not user_id:
        st.error("Please sign in to rate events.")
        return None
    try:
        rating = queries.create_rating(get_client(), event_id, user_id, score, review, was_present)
        _clear_event_caches()
        _clear_rating_caches()
        return rating
    except Exception as e:
        _report_error("to save rating", e)
        return None


@st.cache_data(ttl=60)
def get_user_ratings(user_id):
    if not user_id:
        return []
    try:
        return queries.get_user_ratings(get_client(), user_id)
    except Exception as e:
        logger.error(f"Error loading ratings for {user_id}: {e}")
        return []


@st.cache_data(ttl=60)
def get_event_ratings(event_id):
    try:
        return queries.get_event_ratings(get_client(), event_id)
    except Exception as e:
        logger.error(f"Error loading ratings for event {event_id}: {e}")
        return []


@st.cache_data(ttl=60)
def get_all_ratings():
    try:
        return queries.get_all_ratings(get_client())
    except Exception as e:
        _report_error("to load ratings", e)
        return []


@st.cache_data(ttl=60)
def get_user_pending_ratings(user_id):
    if not user_id:
        return []
    try:
        return queries.get_user_pending_ratings(get_client(), user_id)
    except Exception as e:
        logger.error(f"Error loading pending ratings for {user_id}: {e}")
        return []


def delete_rating(rating_id):
    try:
        queries.delete_rating(get_client(), rating_id)
        _clear_event_caches()
        _clear_rating_caches()
        return True
    except Exception as e:
        logger.error(f"Failed to delete rating {rating_id}: {e}")
        return False


# USER PROFILES

@st.cache_data(ttl=60)
def get_user_profile(user_id):
    if not user_id:
        return None
    try:
        return queries.get_user_profile(get_client(), user_id)
    except Exception as e:
        logger.error(f"Error loading profile for {user_id}: {e}")
        return None


@st.cache_data(ttl=120)
def get_users():
    try:
        return queries.get_users(get_client())
    except Exception as e:
        logger.error(f"Error loading user profiles: {e}")
        return []


def create_user_profile(user_id, email, name=None):
    try:
        profile = queries.create_user_profile(get_client(), user_id, email, name)
        get_user_profile.clear()
        get_users.clear()
        return profile
    except Exception as e:
        logger.error(f"Error creating profile for {user_id}: {e}")
        return None


def update_user_profile(user_id, updates):
    try:
        profile = queries.update_user_profile(get_client(), user_id, updates)
        get_user_profile.clear()
        get_users.clear()
        return profile
    except Exception as e:
        _report_error("to update profile", e)
        return None


# USER EVENTS (TELEMETRY)

# Build a sink for the event tracker
# The client is resolved here, on the script thread, so the tracker's timer thread
# never has to touch Streamlit APIs
def make_user_events_sink():
    client = get_client()

    def sink(events):
        queries.save_user_events(client, events)

    return sink
