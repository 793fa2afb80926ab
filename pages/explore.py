"""pages.explore

Search across all events with city, category and minimum-rating filters and a
choice of sort order.
"""

import streamlit as st

from eventscope import db
from eventscope.components import render_event_card
from eventscope.filters import (
    ALL,
    EXPLORE_FILTER_KEYS,
    SORT_OPTIONS,
    filter_explore_events,
    has_explore_filters,
    reset_filters,
)
from eventscope.tracking_widgets import track

st.title("🔍 Explore")

events = db.get_events()
cities = db.get_cities()
categories = db.get_categories()

city_labels = {ALL: "All cities"}
city_labels.update({c["id"]: c["name"] for c in cities})
category_labels = {ALL: "All categories"}
category_labels.update({c["id"]: c["name"] for c in categories})

# Stale ids (e.g. a deleted city) fall back to "all"
if st.session_state.get("explore_city") not in city_labels:
    st.session_state["explore_city"] = ALL
if st.session_state.get("explore_category") not in category_labels:
    st.session_state["explore_category"] = ALL


def _on_search_change():
    track("search", metadata={"query": st.session_state["explore_search"]})


search = st.text_input(
    "Search",
    key="explore_search",
    placeholder="Title, venue, city or neighborhood",
    on_change=_on_search_change,
)

col1, col2, col3, col4 = st.columns(4)
with col1:
    city_id = st.selectbox("City", list(city_labels), format_func=city_labels.get, key="explore_city")
with col2:
    category_id = st.selectbox("Category", list(category_labels), format_func=category_labels.get,
                               key="explore_category")
with col3:
    min_rating = st.slider("Minimum rating", 0.0, 5.0, step=0.5, key="explore_min_rating")
with col4:
    sort_by = st.selectbox("Sort by", list(SORT_OPTIONS), format_func=SORT_OPTIONS.get, key="explore_sort")

results = filter_explore_events(
    events,
    search=search,
    city_id=city_id,
    category_id=category_id,
    min_rating=min_rating,
    sort_by=sort_by,
)

col_count, col_clear = st.columns([4, 1])
with col_count:
    st.caption(f"Showing {len(results)} of {len(events)} events")
with col_clear:
    if has_explore_filters():
        st.button("Clear filters", key="explore_clear", on_click=reset_filters, args=(EXPLORE_FILTER_KEYS,))

if not results:
    st.info("🔍 No events match your filters. Try a broader search.")

for event in results:
    render_event_card(event, key_prefix="explore")
