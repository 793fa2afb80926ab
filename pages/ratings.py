"""pages.ratings

Personal ratings: events the user checked in to but has not rated yet, the
rating history and a few totals.
"""

import streamlit as st

from eventscope import db
from eventscope.auth import get_current_user_id, is_logged_in
from eventscope.components import event_caption, open_event
from eventscope.formatting import format_date, format_datetime, format_stars
from eventscope.stats import calculate_user_rating_stats, mark_checked_in
from eventscope.tracking_widgets import track, tracked_button

if not is_logged_in():
    st.error("❌ Please sign in to see your ratings.")
    st.stop()

user_id = get_current_user_id()

ratings = db.get_user_ratings(user_id)
visits = db.get_user_visits(user_id)
pending = mark_checked_in(db.get_user_pending_ratings(user_id), visits)
user_stats = calculate_user_rating_stats(ratings, visits)

st.title("⭐ My Ratings")

col1, col2, col3, col4 = st.columns(4)
col1.metric("Ratings", user_stats["total_ratings"])
col2.metric("Reviews", user_stats["total_reviews"])
col3.metric("Events attended", user_stats["events_attended"])
col4.metric("Avg rating", f"{user_stats['avg_rating']:.1f}")

pending_count = sum(1 for p in pending if p["checked_in"])
tab_pending, tab_history = st.tabs([f"Pending ({pending_count})", f"History ({len(ratings)})"])

# =============================================================================
# PENDING
# =============================================================================

with tab_pending:
    if not pending:
        st.info("🎉 Nothing to rate. Check in at an event to rate it afterwards.")

    for item in pending:
        event = item["event"]
        with st.container(border=True):
            st.markdown(f"**{event['title']}**")
            st.caption(event_caption(event))

            with st.form(f"rate_{event['id']}"):
                score = st.select_slider("Rating", options=[1, 2, 3, 4, 5], value=5, format_func=format_stars)
                was_present = st.checkbox("I was there", value=True)
                review = st.text_area("Review (optional)", max_chars=1000)
                if st.form_submit_button("Submit rating", type="primary"):
                    if db.submit_rating(event["id"], user_id, score, review, was_present):
                        track("rating_submitted", metadata={"event_id": event["id"], "score": score, "source": "ratings"})
                        st.toast("🎉 Rating saved")
                        st.rerun()

# =============================================================================
# HISTORY
# =============================================================================

with tab_history:
    if not ratings:
        st.info("You have not rated any events yet.")

    for rating in ratings:
        event = rating.get("event") or {}
        with st.container(border=True):
            col_content, col_action = st.columns([4, 1])
            with col_content:
                st.markdown(f"**{event.get('title', 'Unknown Event')}** {format_stars(rating['score'])}")
                st.caption(f"{format_date(event.get('event_date'))} • rated {format_datetime(rating.get('created_at'))}"
                           + ("" if rating.get("was_present") else " • not attended"))
                if rating.get("review"):
                    st.write(rating["review"])
            with col_action:
                if event.get("id") and tracked_button("Open", key=f"history_open_{rating['id']}"):
                    open_event(event["id"])
