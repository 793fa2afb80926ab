"""Reusable Streamlit building blocks shared by several pages."""

import streamlit as st

from eventscope.formatting import (
    format_number,
    format_short_date,
    format_time,
    get_category_icon,
)
from eventscope.tracking_widgets import tracked_button

SELECTED_EVENT_KEY = "selected_event_id"
EVENT_DETAIL_PAGE = "pages/event_detail.py"


def open_event(event_id):
    """Remember the event and jump to the detail page."""
    st.session_state[SELECTED_EVENT_KEY] = event_id
    st.switch_page(EVENT_DETAIL_PAGE)


def get_selected_event_id():
    """Event id from the URL (``?id=``) or from the last click on a card."""
    return st.query_params.get("id") or st.session_state.get(SELECTED_EVENT_KEY)


def event_caption(event):
    category = event.get("category") or {}
    city = event.get("city") or {}
    parts = [
        f"{get_category_icon(category)} {category.get('name', '')}".strip(),
        f"📍 {city.get('name', '')}" + (f", {event['neighborhood']}" if event.get("neighborhood") else ""),
        f"📅 {format_short_date(event.get('event_date'))} {format_time(event.get('event_time'))}".strip(),
    ]
    return " • ".join(p for p in parts if p)


def render_event_card(event, key_prefix):
    """Event card with title, metadata, counters and a details button."""
    with st.container(border=True):
        col_content, col_action = st.columns([4, 1])

        with col_content:
            st.markdown(f"### {event.get('title', 'Event')}")
            if event.get("subtitle"):
                st.write(event["subtitle"])
            st.caption(event_caption(event))

            info_row = []
            if event.get("review_count"):
                info_row.append(f"⭐ {event.get('avg_rating', 0):.1f} ({event['review_count']})")
            else:
                info_row.append("⭐ No ratings yet")
            info_row.append(f"👥 {format_number(event.get('visitor_count') or 0)} visitors")
            st.caption(" • ".join(info_row))

        with col_action:
            st.write("")
            if tracked_button("View Details", key=f"{key_prefix}_view_{event['id']}",
                              element_class="event-card", use_container_width=True, type="primary"):
                open_event(event["id"])
