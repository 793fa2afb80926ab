"""pages.event_detail

Detail view of one event. Opening the page records a view; signed-in users can
check in and create or update their rating. The event is taken from
``?id=<event id>`` or from the last "View Details" click.
"""

import streamlit as st

from eventscope import db
from eventscope.auth import get_current_user_id, is_logged_in
from eventscope.components import get_selected_event_id
from eventscope.formatting import (
    format_full_date,
    format_number,
    format_stars,
    format_time,
    get_category_icon,
)
from eventscope.tracking_widgets import get_tracker, track, tracked_button

VIEWED_KEY = "_viewed_events"

event_id = get_selected_event_id()
if not event_id:
    st.info("Pick an event on the Home or Explore page to see its details.")
    if st.button("🔍 Explore events"):
        st.switch_page("pages/explore.py")
    st.stop()

event = db.get_event_by_id(event_id)
if not event:
    st.warning("This event does not exist anymore.")
    st.stop()

user_id = get_current_user_id()

# Record the view once per session and event; anonymous visitors count with their tracker id
tracker = get_tracker()
viewer_id = user_id or (tracker.user_id if tracker else None)
viewed = st.session_state.setdefault(VIEWED_KEY, set())
if viewer_id and event_id not in viewed:
    if db.track_event_view(event_id, viewer_id):
        viewed.add(event_id)

if tracked_button("← Back to Explore", key="detail_back"):
    st.switch_page("pages/explore.py")

# =============================================================================
# EVENT HEADER
# =============================================================================

category = event.get("category") or {}
city = event.get("city") or {}

st.caption(f"{get_category_icon(category)} {category.get('name', '')}")
st.title(event["title"])
if event.get("subtitle"):
    st.subheader(event["subtitle"])

location = city.get("name", "")
if event.get("neighborhood"):
    location = f"{location}, {event['neighborhood']}"
st.write(f"📍 {location}")
st.write(f"📅 {format_full_date(event.get('event_date'))} • 🕐 {format_time(event.get('event_time'))}")

col1, col2, col3, col4 = st.columns(4)
col1.metric("Rating", f"{event.get('avg_rating', 0):.1f} ⭐")
col2.metric("Reviews", event.get("review_count", 0))
col3.metric("Visitors", format_number(event.get("visitor_count", 0)))
col4.metric("Views", format_number(event.get("view_count", 0)))

st.divider()

if not is_logged_in():
    st.info("🔒 **Login required** - Sign in to check in and rate this event.")
    st.stop()

# =============================================================================
# CHECK-IN
# =============================================================================

checked_in = db.has_user_checked_in(event_id, user_id)
if checked_in:
    st.success("✅ You checked in to this event")
elif tracked_button("📍 Check in", key="detail_check_in", type="primary"):
    if db.check_in(event_id, user_id):
        st.rerun()

# =============================================================================
# RATING FORM
# =============================================================================

existing = next((r for r in db.get_event_ratings(event_id) if r.get("user_id") == user_id), None)

st.subheader("✏️ Update your rating" if existing else "⭐ Rate this event")

with st.form("rating_form"):
    score = st.select_slider(
        "Your rating",
        options=[1, 2, 3, 4, 5],
        value=existing["score"] if existing else 5,
        format_func=format_stars,
    )
    was_present = st.checkbox(
        "I was there",
        value=existing["was_present"] if existing else True,
    )
    review = st.text_area(
        "Review (optional)",
        value=(existing.get("review") or "") if existing else "",
        max_chars=1000,
    )
    submitted = st.form_submit_button("Update rating" if existing else "Submit rating", type="primary")

if submitted:
    saved = db.submit_rating(event_id, user_id, score, review, was_present)
    if saved:
        track(
            "rating_submitted",
            metadata={"event_id": event_id, "score": saved["score"], "updated": existing is not None},
        )
        st.toast("🎉 Thanks for your rating!")
        st.rerun()
