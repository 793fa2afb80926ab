"""pages.home

Start page: pick a city, narrow by category and see the city's numbers, its
best rated event and every event on the programme.
"""

import streamlit as st

from eventscope import db
from eventscope.components import open_event, render_event_card
from eventscope.filters import ALL, filter_home_events
from eventscope.formatting import format_number, get_category_icon
from eventscope.stats import calculate_city_summary, get_featured_event
from eventscope.tracking_widgets import track, tracked_button

DEFAULT_CITY = "Brussels"

st.title("🎪 Discover events")

cities = db.get_cities()
categories = db.get_categories()
events = db.get_events()

if not cities:
    st.info("No cities available yet.")
    st.stop()

# =============================================================================
# CITY & CATEGORY SELECTION
# =============================================================================

city_names = {c["id"]: c["name"] for c in cities}
city_ids = list(city_names)
if st.session_state.get("home_city") not in city_names:
    default = next((c["id"] for c in cities if c["name"] == DEFAULT_CITY), city_ids[0])
    st.session_state["home_city"] = default

selected_city = st.radio(
    "City",
    city_ids,
    format_func=lambda city_id: city_names[city_id],
    key="home_city",
    horizontal=True,
    on_change=lambda: track("city_selected", metadata={"city_id": st.session_state["home_city"]}),
)

category_options = [ALL] + [c["id"] for c in categories]
category_labels = {ALL: "All"}
category_labels.update({c["id"]: f"{get_category_icon(c)} {c['name']}" for c in categories})
if st.session_state.get("home_category") not in category_labels:
    st.session_state["home_category"] = ALL

selected_category = st.radio(
    "Category",
    category_options,
    format_func=lambda category_id: category_labels[category_id],
    key="home_category",
    horizontal=True,
)

# =============================================================================
# CITY STATS & FEATURED EVENT
# =============================================================================

summary = calculate_city_summary(events, selected_city)
col1, col2, col3 = st.columns(3)
col1.metric("Events", summary["event_count"])
col2.metric("Visitors", format_number(summary["total_visitors"]))
col3.metric("Avg rating", f"{summary['avg_rating']:.1f} ⭐")

featured = get_featured_event(events, selected_city)
if featured:
    with st.container(border=True):
        st.caption(f"✨ Featured in {city_names[selected_city]}")
        st.markdown(f"## {featured['title']}")
        if featured.get("subtitle"):
            st.write(featured["subtitle"])
        st.write(f"⭐ {featured.get('avg_rating', 0):.1f} • 👥 {format_number(featured.get('visitor_count') or 0)}")
        if tracked_button("See featured event", key="home_featured", element_class="featured"):
            open_event(featured["id"])

# =============================================================================
# EVENT LIST
# =============================================================================

city_events = filter_home_events(events, selected_city, selected_category)
st.subheader(f"📋 Events in {city_names[selected_city]} ({len(city_events)})")

if not city_events:
    st.info("🔍 No events match this city and category.")

for event in city_events:
    render_event_card(event, key_prefix="home")
