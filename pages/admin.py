"""pages.admin

Moderation area for admin accounts (listed under ``[admin] emails`` in
secrets): platform numbers, filterable user / event / rating tables, bulk
delete with confirmation and CSV exports.
"""

import pandas as pd
import streamlit as st

from eventscope import db
from eventscope.auth import is_admin
from eventscope.filters import ALL, filter_admin_events, filter_ratings, filter_users
from eventscope.formatting import (
    dataframe_to_csv,
    events_to_dataframe,
    format_date,
    format_datetime,
    get_score_badge,
    get_user_initials,
    ratings_to_dataframe,
    users_to_dataframe,
)
from eventscope.stats import build_user_stats, calculate_admin_stats
from eventscope.tracking_widgets import track, tracked_button

PENDING_DELETE_KEY = "admin_delete_pending"

if not is_admin():
    st.error("❌ Admin access required.")
    st.stop()

st.title("🛠️ Admin")

events = db.get_events()
ratings = db.get_all_ratings()
categories = db.get_categories()
cities = db.get_cities()
users = build_user_stats(ratings, db.get_users())

admin_stats = calculate_admin_stats(events, ratings, users)

col1, col2, col3, col4, col5, col6 = st.columns(6)
col1.metric("Users", admin_stats["total_users"])
col2.metric("Active (30d)", admin_stats["active_users"])
col3.metric("Events", admin_stats["total_events"])
col4.metric("Ratings", admin_stats["total_ratings"])
col5.metric("Avg rating", f"{admin_stats['avg_rating']:.2f}")
col6.metric("Flagged", admin_stats["flagged_content"])

# =============================================================================
# BULK DELETE WITH CONFIRMATION
# =============================================================================


def request_delete(kind, ids):
    st.session_state[PENDING_DELETE_KEY] = {"kind": kind, "ids": list(ids)}


def run_pending_delete():
    pending = st.session_state.pop(PENDING_DELETE_KEY, None)
    if not pending:
        return
    delete = db.delete_event if pending["kind"] == "event" else db.delete_rating
    failed = [item_id for item_id in pending["ids"] if not delete(item_id)]
    deleted = len(pending["ids"]) - len(failed)
    track("admin_bulk_delete", "admin", metadata={"kind": pending["kind"], "deleted": deleted, "failed": len(failed)})
    if failed:
        st.error(f"⚠️ {len(failed)} {pending['kind']}(s) could not be deleted.")
    st.toast(f"🗑️ Deleted {deleted} {pending['kind']}(s)")


pending = st.session_state.get(PENDING_DELETE_KEY)
if pending:
    with st.container(border=True):
        st.warning(f"Are you sure you want to delete {len(pending['ids'])} {pending['kind']}(s)? "
                   "This action cannot be undone.")
        col_confirm, col_cancel = st.columns(2)
        with col_confirm:
            if tracked_button("Delete", key="admin_confirm_delete", type="primary"):
                run_pending_delete()
                st.rerun()
        with col_cancel:
            if tracked_button("Cancel", key="admin_cancel_delete"):
                st.session_state.pop(PENDING_DELETE_KEY, None)
                st.rerun()


def selection_table(rows, key):
    """Editable table with a Select column. Returns the ids of the ticked rows."""
    if not rows:
        return []
    df = pd.DataFrame(rows)
    df.insert(0, "Select", False)
    edited = st.data_editor(
        df,
        key=key,
        hide_index=True,
        disabled=list(rows[0]),
        column_config={"id": None},
    )
    return edited.loc[edited["Select"], "id"].tolist()


def export_button(label, df, file_name, key):
    if df.empty:
        return
    if st.download_button(label, data=dataframe_to_csv(df), file_name=file_name, mime="text/csv", key=key):
        track("admin_export", "admin", metadata={"file": file_name, "rows": len(df)})


tab_users, tab_events, tab_ratings = st.tabs(["👥 Users", "🎟️ Events", "⭐ Ratings"])

# =============================================================================
# USERS
# =============================================================================

with tab_users:
    col_search, col_city = st.columns(2)
    with col_search:
        search = st.text_input("Search users", key="admin_user_search", placeholder="Name, email or id")
    with col_city:
        user_cities = sorted({u["city"] for u in users if u.get("city")})
        user_city = st.selectbox("City", [None] + user_cities, format_func=lambda c: c or "All cities",
                                 key="admin_user_city")

    filtered_users = filter_users(users, search, user_city)
    st.caption(f"{len(filtered_users)} of {len(users)} users")
    st.dataframe(
        [
            {
                "": get_user_initials(u["name"]),
                "Name": u["name"],
                "Email": u.get("email") or "",
                "Ratings": u["rating_count"],
                "Avg": u["avg_rating"],
                "Last activity": format_datetime(u["last_activity"]),
            }
            for u in filtered_users
        ],
        hide_index=True,
    )
    export_button("⬇️ Export users", users_to_dataframe(filtered_users), "users_export.csv", "export_users")

# =============================================================================
# EVENTS
# =============================================================================

with tab_events:
    category_labels = {ALL: "All categories"}
    category_labels.update({c["id"]: c["name"] for c in categories})
    city_labels = {ALL: "All cities"}
    city_labels.update({c["id"]: c["name"] for c in cities})

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        category_id = st.selectbox("Category", list(category_labels), format_func=category_labels.get,
                                   key="admin_event_category")
    with col2:
        city_id = st.selectbox("City", list(city_labels), format_func=city_labels.get, key="admin_event_city")
    with col3:
        date_start = st.date_input("From", value=None, key="admin_date_start")
    with col4:
        date_end = st.date_input("To", value=None, key="admin_date_end")

    filtered_events = filter_admin_events(events, category_id, city_id, date_start, date_end)
    st.caption(f"{len(filtered_events)} of {len(events)} events")

    selected_events = selection_table(
        [
            {
                "id": e["id"],
                "Title": e["title"],
                "Category": (e.get("category") or {}).get("name", ""),
                "City": (e.get("city") or {}).get("name", ""),
                "Date": format_date(e.get("event_date")),
                "Rating": e.get("avg_rating", 0),
                "Visitors": e.get("visitor_count", 0),
            }
            for e in filtered_events
        ],
        key="admin_events_table",
    )

    col_delete, col_export = st.columns(2)
    with col_delete:
        if tracked_button(f"🗑️ Delete selected ({len(selected_events)})", key="admin_delete_events",
                          disabled=not selected_events):
            request_delete("event", selected_events)
            st.rerun()
    with col_export:
        export_button("⬇️ Export events", events_to_dataframe(filtered_events), "events_export.csv", "export_events")

# =============================================================================
# RATINGS
# =============================================================================

with tab_ratings:
    min_score = st.select_slider("Minimum score", options=[0, 1, 2, 3, 4, 5], key="admin_min_score",
                                 format_func=lambda s: "Any" if s == 0 else f"{s}+")
    filtered_ratings = filter_ratings(ratings, min_score)
    st.caption(f"{len(filtered_ratings)} of {len(ratings)} ratings")

    selected_ratings = selection_table(
        [
            {
                "id": r["id"],
                "Score": f"{get_score_badge(r['score'])} {r['score']}",
                "Event": (r.get("event") or {}).get("title", "Unknown Event"),
                "User": r["user_id"][:8],
                "Review": r.get("review") or "",
                "Present": bool(r.get("was_present")),
                "Created": format_datetime(r.get("created_at")),
            }
            for r in filtered_ratings
        ],
        key="admin_ratings_table",
    )

    col_delete, col_export = st.columns(2)
    with col_delete:
        if tracked_button(f"🗑️ Delete selected ({len(selected_ratings)})", key="admin_delete_ratings",
                          disabled=not selected_ratings):
            request_delete("rating", selected_ratings)
            st.rerun()
    with col_export:
        export_button("⬇️ Export ratings", ratings_to_dataframe(filtered_ratings), "ratings_export.csv",
                      "export_ratings")
