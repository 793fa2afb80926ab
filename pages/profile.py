"""pages.profile

The signed-in user's profile: personal information, activity numbers,
favourite categories, achievements, recent activity and settings.
"""

import streamlit as st

from eventscope import db
from eventscope.auth import get_current_user, is_logged_in
from eventscope.formatting import (
    format_date,
    format_month_year,
    format_stars,
    render_user_avatar,
)
from eventscope.stats import (
    build_recent_activity,
    calculate_achievements,
    calculate_favorite_categories,
    calculate_profile_stats,
    get_progress_width,
    is_pioneer,
)
from eventscope.tracking_widgets import track, tracked_file_uploader
from eventscope.validation import sanitize_string

SETTINGS = [
    ("notifications", "Push Notifications", True),
    ("emails", "Email Updates", False),
    ("location", "Location Services", True),
    ("public", "Public Profile", True),
]

ACTIVITY_ICONS = {"rating": "⭐", "review": "💬", "checkin": "📍"}

if not is_logged_in():
    st.error("❌ Please sign in to see your profile.")
    st.stop()

user = get_current_user()
user_id = user["id"]

profile = db.get_user_profile(user_id)
if profile is None:
    # Accounts created before profiles existed get one on first visit
    profile = db.create_user_profile(user_id, user.get("email"), user.get("name")) or {
        "id": user_id, "email": user.get("email"), "name": user.get("name"),
    }

ratings = db.get_user_ratings(user_id)
visits = db.get_user_visits(user_id)
events_by_id = {e["id"]: e for e in db.get_events()}

profile_stats = calculate_profile_stats(ratings, visits, events_by_id)
favorites = calculate_favorite_categories(ratings, visits, db.get_categories(), events_by_id)
achievements = calculate_achievements(profile_stats, pioneer=is_pioneer(user_id, db.get_all_ratings()))
activity = build_recent_activity(ratings, visits, events_by_id)

st.title("👤 My Profile")

# =============================================================================
# PROFILE HEADER
# =============================================================================

col_avatar, col_info = st.columns([1, 3])
with col_avatar:
    render_user_avatar(profile.get("name") or profile.get("email"), profile.get("avatar"))
with col_info:
    st.markdown(f"### {profile.get('name') or 'Unnamed user'}")
    metadata = []
    if profile.get("email"):
        metadata.append(f"📧 {profile['email']}")
    if profile.get("city"):
        metadata.append(f"📍 {profile['city']}")
    if profile.get("created_at"):
        metadata.append(f"📅 Member since {format_month_year(profile['created_at'])}")
    st.caption(" • ".join(metadata))
    if profile.get("bio"):
        st.write(profile["bio"])

col1, col2, col3, col4 = st.columns(4)
col1.metric("Events attended", profile_stats["events_attended"])
col2.metric("Ratings given", profile_stats["ratings_given"])
col3.metric("Reviews written", profile_stats["reviews_written"])
col4.metric("Cities visited", profile_stats["cities_visited"])

tab_overview, tab_achievements, tab_settings = st.tabs(["📋 Overview", "🏆 Achievements", "⚙️ Settings"])

# =============================================================================
# OVERVIEW
# =============================================================================

with tab_overview:
    col_fav, col_activity = st.columns(2)

    with col_fav:
        st.subheader("Favourite categories")
        if not favorites:
            st.info("Rate or check in to events to see your favourites.")
        for favorite in favorites:
            st.markdown(f"<span style='color:{favorite['color']}'>●</span> **{favorite['name']}** ({favorite['count']})",
                        unsafe_allow_html=True)

    with col_activity:
        st.subheader("Recent activity")
        if not activity:
            st.info("No activity yet.")
        for item in activity:
            line = f"{ACTIVITY_ICONS[item['type']]} **{item['event']}**"
            if item["city"]:
                line += f" · {item['city']}"
            if item["score"]:
                line += f" {format_stars(item['score'])}"
            st.markdown(line)
            st.caption(format_date(item["date"]))

# =============================================================================
# ACHIEVEMENTS
# =============================================================================

with tab_achievements:
    cols = st.columns(3)
    for index, achievement in enumerate(achievements):
        with cols[index % 3]:
            with st.container(border=True):
                status = "✅" if achievement["unlocked"] else "🔒"
                st.markdown(f"### {achievement['icon']} {achievement['title']} {status}")
                st.caption(achievement["description"])
                if achievement["total"]:
                    width = get_progress_width(achievement["progress"], achievement["total"])
                    st.progress(int(width), text=f"{achievement['progress']}/{achievement['total']}")

# =============================================================================
# SETTINGS
# =============================================================================

with tab_settings:
    st.subheader("Edit profile")
    with st.form("profile_form"):
        name = st.text_input("Name", value=profile.get("name") or "")
        city = st.text_input("City", value=profile.get("city") or "")
        bio = st.text_area("Bio", value=profile.get("bio") or "", max_chars=300)
        if st.form_submit_button("Save profile", type="primary"):
            updates = {
                "name": sanitize_string(name) or None,
                "city": sanitize_string(city) or None,
                "bio": sanitize_string(bio) or None,
            }
            if db.update_user_profile(user_id, updates) is not None:
                track("profile_updated", metadata={"fields": [k for k, v in updates.items() if v]})
                st.toast("✅ Profile saved")
                st.rerun()

    st.subheader("Profile picture")
    picture = tracked_file_uploader("Upload a picture", key="avatar_upload", type=["png", "jpg", "jpeg", "webp"])
    if picture:
        st.image(picture, width=120)

    st.subheader("Preferences")
    for setting_id, label, default in SETTINGS:
        key = f"setting_{setting_id}"
        st.toggle(
            label,
            value=st.session_state.get(key, default),
            key=key,
            on_change=lambda sid=setting_id, k=key: track(
                "setting_toggled", metadata={"setting": sid, "enabled": st.session_state[k]}
            ),
        )
