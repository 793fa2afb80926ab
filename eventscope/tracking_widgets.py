"""
================================================================================
TRACKED WIDGETS
================================================================================

Purpose: Streamlit counterparts of click / file-upload / navigation tracking.
Widgets behave exactly like the plain Streamlit ones and additionally queue an
event on the session's EventTracker.

Streamlit reruns the whole script on every interaction, so these helpers only
record real changes (a button that returned True, a file that was not seen
before, a page that differs from the last one).

Tracking is best effort: any failure is logged as a warning and the widget
still returns its value.
================================================================================
"""

import atexit
import logging

import streamlit as st
from streamlit import runtime
from streamlit.runtime.scriptrunner import get_script_run_ctx

from eventscope import auth, db
from eventscope.tracking import DEFAULT_BATCH_SIZE, DEFAULT_FLUSH_INTERVAL, EventTracker, FlushScheduler

logger = logging.getLogger(__name__)

TRACKER_KEY = "event_tracker"
LAST_ROUTE_KEY = "_tracked_route"


def _tracking_settings():
    try:
        settings = st.secrets.get("tracking", {})
    except Exception:
        settings = {}
    return {
        "enabled": bool(settings.get("enabled", True)),
        "batch_size": int(settings.get("batch_size", DEFAULT_BATCH_SIZE)),
        "flush_interval": float(settings.get("flush_interval", DEFAULT_FLUSH_INTERVAL)),
    }


@st.cache_resource
def get_flush_scheduler():
    """Process-wide scheduler that runs the timed flush of every session's tracker."""
    scheduler = FlushScheduler(flush_interval=_tracking_settings()["flush_interval"])
    scheduler.start()
    # Last chance to send queued events when the server shuts down
    atexit.register(scheduler.close)
    logger.info("Started event flush scheduler")
    return scheduler


def _session_alive_check():
    """Return a callable telling whether the current browser session is still connected."""
    ctx = get_script_run_ctx()
    if ctx is None:
        return None
    session_id = ctx.session_id

    def is_alive():
        return runtime.exists() and runtime.get_instance().is_active_session(session_id)

    return is_alive


def get_tracker():
    """Return the EventTracker of this browser session, creating it on first use.

    New trackers are registered with the shared flush scheduler. Returns None
    when tracking is disabled in secrets or the database connection is not
    available.
    """
    if TRACKER_KEY in st.session_state:
        tracker = st.session_state[TRACKER_KEY]
        if tracker is not None:
            # A reconnected session may have been released by the scheduler
            get_flush_scheduler().register(tracker, _session_alive_check())
        return tracker

    settings = _tracking_settings()
    if not settings["enabled"]:
        st.session_state[TRACKER_KEY] = None
        return None

    try:
        sink = db.make_user_events_sink()
    except Exception as e:
        logger.warning(f"Interaction tracking disabled: {e}")
        st.session_state[TRACKER_KEY] = None
        return None

    tracker = EventTracker(
        sink,
        batch_size=settings["batch_size"],
        user_id=auth.get_current_user_id(),
        id_store=st.session_state,
    )
    get_flush_scheduler().register(tracker, _session_alive_check())
    st.session_state[TRACKER_KEY] = tracker
    logger.info(f"Started event tracker {tracker.session_id}")
    return tracker


def _safe_track(action, description):
    tracker = get_tracker()
    if tracker is None:
        return None
    try:
        return action(tracker)
    except Exception as e:
        logger.warning(f"Could not track {description}: {e}")
        return None


def track(event_type, event_category="interaction", **fields):
    """Queue a custom event (login attempts, admin actions, ...)."""
    return _safe_track(
        lambda tracker: tracker.track_event(event_type=event_type, event_category=event_category, **fields),
        event_type,
    )


def tracked_button(label, key, element_class=None, **kwargs):
    """``st.button`` that records a click event when pressed."""
    clicked = st.button(label, key=key, **kwargs)
    if clicked:
        _safe_track(
            lambda tracker: tracker.track_click("button", element_id=key, element_class=element_class, text=label),
            f"click on {key}",
        )
    return clicked


def tracked_file_uploader(label, key, accept_multiple_files=False, **kwargs):
    """``st.file_uploader`` that records one ``file_upload`` event per new file.

    Each event carries ``input_id``, ``input_name``, ``file_index`` and
    ``total_files`` in its metadata.
    """
    uploaded = st.file_uploader(label, key=key, accept_multiple_files=accept_multiple_files, **kwargs)
    if not uploaded:
        return uploaded

    files = uploaded if isinstance(uploaded, list) else [uploaded]
    seen_key = f"_tracked_uploads_{key}"
    seen = st.session_state.setdefault(seen_key, set())

    for index, uploaded_file in enumerate(files):
        signature = (uploaded_file.name, uploaded_file.size)
        if signature in seen:
            continue
        seen.add(signature)
        metadata = {
            "input_id": key,
            "input_name": label,
            "file_index": index,
            "total_files": len(files),
        }
        _safe_track(
            lambda tracker, f=uploaded_file, m=metadata: tracker.track_file_upload(f, m),
            f"upload of {uploaded_file.name}",
        )
    return uploaded


def track_page_view(route_path, page_title=None):
    """Record a navigation event when the active page changed since the last rerun."""
    if st.session_state.get(LAST_ROUTE_KEY) == route_path:
        return None
    st.session_state[LAST_ROUTE_KEY] = route_path
    return _safe_track(
        lambda tracker: tracker.track_navigation(route_path, page_url=route_path, page_title=page_title),
        f"navigation to {route_path}",
    )
