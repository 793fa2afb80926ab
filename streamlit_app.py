"""
================================================================================
EVENTSCOPE STREAMLIT APPLICATION
================================================================================

Purpose: Main entry point for EventScope, an app to discover events in Belgian
cities, check in, rate them and see what is popular.
Architecture: Browser → Streamlit → eventscope modules → Supabase

Main Features:
- Home / Explore: browse events by city, category, rating and search text
- Event detail: check in and rate an event
- My Ratings / Profile: personal history, stats and achievements
- Analytics: dashboard over all events
- Admin: moderation and CSV exports (admin accounts only)

How it works:
1. Logging and the page configuration are set up once per run
2. st.navigation picks the active page; pages live in ``pages/``
3. Every page change is recorded by the interaction tracker
4. The sidebar shows the signed-in user and the logout button
================================================================================
"""

import logging

import streamlit as st

from eventscope.auth import get_current_user, handle_logout, is_admin, is_logged_in
from eventscope.filters import initialize_session_state
from eventscope.formatting import render_user_avatar
from eventscope.tracking_widgets import get_tracker, track_page_view, tracked_button

# =============================================================================
# STREAMLIT PAGE CONFIGURATION
# =============================================================================
# IMPORTANT: This MUST be the first Streamlit command in the script

st.set_page_config(
    page_title="EventScope",
    page_icon="🎪",
    layout="wide",
    initial_sidebar_state="expanded",
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

initialize_session_state()
get_tracker()

# =============================================================================
# NAVIGATION
# =============================================================================

home_page = st.Page("pages/home.py", title="Home", icon="🏠", default=True)
explore_page = st.Page("pages/explore.py", title="Explore", icon="🔍")
detail_page = st.Page("pages/event_detail.py", title="Event", icon="🎟️", url_path="event")
ratings_page = st.Page("pages/ratings.py", title="My Ratings", icon="⭐")
analytics_page = st.Page("pages/analytics.py", title="Analytics", icon="📊")
profile_page = st.Page("pages/profile.py", title="Profile", icon="👤")
admin_page = st.Page("pages/admin.py", title="Admin", icon="🛠️")
login_page = st.Page("pages/login.py", title="Sign in", icon="🔑")

pages = {
    "Discover": [home_page, explore_page, detail_page, analytics_page],
    "Account": [ratings_page, profile_page] if is_logged_in() else [login_page],
}
if is_admin():
    pages["Account"].append(admin_page)

current_page = st.navigation(pages)
track_page_view(f"/{current_page.url_path}", current_page.title)

# =============================================================================
# SIDEBAR
# =============================================================================

with st.sidebar:
    if is_logged_in():
        user = get_current_user()
        display_name = user.get("name") or user.get("email")
        col1, col2, col3 = st.columns([1, 2, 1])
        with col2:
            render_user_avatar(display_name, size="small")
            st.markdown(f"**{display_name}**")
        if tracked_button("🚪 Sign out", key="sidebar_logout", use_container_width=True):
            handle_logout()
    else:
        st.markdown("### 🎪 EventScope")
        st.caption("Sign in to check in and rate events.")

current_page.run()
