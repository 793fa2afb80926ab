"""pages.analytics

Dashboard over all events: totals, categories, cities, top events, months,
day-of-week ratings and the events that need attention.
"""

import streamlit as st

from eventscope import db
from eventscope.analytics import render_analytics_dashboard

st.title("📊 Analytics")
st.write("How events perform across Belgium")

with st.spinner("Loading analytics..."):
    events = db.get_events()
    categories = db.get_categories()
    cities = db.get_cities()

render_analytics_dashboard(events, categories, cities)
