"""
================================================================================
ANALYTICS VISUALIZATIONS
================================================================================

Purpose: Plotly charts and Streamlit sections for the analytics dashboard.
The numbers come from ``eventscope.stats``; this module only draws them.
Figure builders return ``go.Figure`` objects so they can be reused and
tested without a running Streamlit app.
================================================================================
"""

import plotly.graph_objects as go
import streamlit as st

from eventscope import stats
from eventscope.formatting import DEFAULT_COLOR, format_number, get_category_color

# =============================================================================
# CHART STYLING
# =============================================================================

BAR_COLOR = "#7B68C8"
LINE_COLOR = "#FF6B5B"


def _apply_layout(fig, title, height=320, **kwargs):
    fig.update_layout(
        title=dict(text=title, x=0.5, xanchor="center", font=dict(size=18, family="Arial", color="#000000")),
        height=height,
        margin=dict(l=20, r=20, t=50, b=20),
        paper_bgcolor="#FFFFFF",
        plot_bgcolor="rgba(0,0,0,0)",
        font=dict(family="Inter, system-ui, sans-serif", size=12),
        xaxis=dict(gridcolor="rgba(108, 117, 125, 0.1)", showgrid=True),
        yaxis=dict(gridcolor="rgba(108, 117, 125, 0.1)", showgrid=True),
        **kwargs,
    )
    return fig


# =============================================================================
# FIGURE BUILDERS
# =============================================================================

def build_category_donut(category_stats):
    """Share of events per category."""
    segments = [s for s in stats.get_donut_segments(category_stats) if s["event_count"] > 0]
    fig = go.Figure(data=[
        go.Pie(
            labels=[s["name"] for s in segments],
            values=[s["event_count"] for s in segments],
            marker=dict(colors=[s["color"] or get_category_color(s["name"]) for s in segments]),
            hole=0.6,
            sort=False,
            direction="clockwise",
        )
    ])
    return _apply_layout(fig, "Events by Category", showlegend=True)


def build_city_bar(city_stats):
    fig = go.Figure(data=[
        go.Bar(
            x=[c["name"] for c in city_stats],
            y=[c["event_count"] for c in city_stats],
            marker_color=BAR_COLOR,
            customdata=[[c["avg_rating"], c["engagement_rate"]] for c in city_stats],
            hovertemplate="%{x}<br>%{y} events<br>⭐ %{customdata[0]}<br>%{customdata[1]}% engagement<extra></extra>",
        )
    ])
    return _apply_layout(fig, "Events per City", xaxis_title="City", yaxis_title="Events")


def build_top_events_bar(top_events):
    """Horizontal bars, most visited event on top."""
    ordered = list(reversed(top_events))
    fig = go.Figure(data=[
        go.Bar(
            x=[e["visitors"] for e in ordered],
            y=[e["title"] for e in ordered],
            orientation="h",
            marker_color=[e.get("color") or DEFAULT_COLOR for e in ordered],
            text=[format_number(e["visitors"]) for e in ordered],
            textposition="outside",
        )
    ])
    return _apply_layout(fig, "Top Events by Visitors", xaxis_title="Visitors")


def build_monthly_chart(monthly_data):
    """Event count bars with the average rating as a line on a second axis."""
    months = [m["short_month"] for m in monthly_data]
    fig = go.Figure()
    fig.add_trace(go.Bar(x=months, y=[m["event_count"] for m in monthly_data], name="Events", marker_color=BAR_COLOR))
    fig.add_trace(go.Scatter(
        x=months,
        y=[m["avg_rating"] for m in monthly_data],
        name="Avg rating",
        mode="lines+markers",
        line=dict(color=LINE_COLOR),
        yaxis="y2",
    ))
    _apply_layout(fig, "Events per Month", xaxis_title="Month", yaxis_title="Events")
    fig.update_layout(yaxis2=dict(title="Avg rating", overlaying="y", side="right", range=[0, 5]))
    return fig


def build_time_chart(time_analysis):
    fig = go.Figure(data=[
        go.Bar(
            x=[t["day"] for t in time_analysis],
            y=[t["avg_rating"] for t in time_analysis],
            marker_color=LINE_COLOR,
            text=[f"{t['event_count']} events" for t in time_analysis],
            textposition="outside",
        )
    ])
    _apply_layout(fig, "Average Rating by Day", xaxis_title="Day", yaxis_title="Avg rating")
    fig.update_yaxes(range=[0, 5])
    return fig


# =============================================================================
# DASHBOARD SECTIONS
# =============================================================================

def render_overall_metrics(overall):
    col1, col2, col3 = st.columns(3)
    col1.metric("Events", overall["total_events"])
    col2.metric("Visitors", format_number(overall["total_visitors"]))
    col3.metric("Ratings", format_number(overall["total_ratings"]))

    col4, col5, col6 = st.columns(3)
    col4.metric("Avg rating", f"{overall['avg_rating']:.2f} ⭐")
    col5.metric("Engagement", f"{overall['engagement_rate']}%")
    col6.metric("Drop-off", f"{overall['drop_off_rate']}%")


def render_insights(quality_issues, low_engagement):
    """Two lists that point at events worth a closer look."""
    col1, col2 = st.columns(2)

    with col1:
        st.subheader("⚠️ Quality vs. Quantity")
        st.caption("Over 1k visitors but rated below 4.5")
        if not quality_issues:
            st.info("No popular events with low ratings.")
        for issue in quality_issues:
            st.markdown(f"**{issue['rank']}. {issue['title']}**: "
                        f"{format_number(issue['visitors'])} visitors, ⭐ {issue['rating']}")

    with col2:
        st.subheader("📉 Low Engagement")
        st.caption("Viewed often, rarely rated (under 30%)")
        if not low_engagement:
            st.info("Every event converts views into ratings well.")
        for row in low_engagement:
            st.markdown(f"**{row['title']}**: {row['ratings']} ratings from {row['views']} views ({row['rate']}%)")


def render_analytics_dashboard(events, categories, cities):
    """Compute every aggregation and render the full dashboard."""
    if not events:
        st.info("No events to analyse yet.")
        return

    overall = stats.calculate_overall_stats(events)
    category_stats = stats.calculate_category_stats(events, categories)
    city_stats = stats.calculate_city_stats(events, cities)
    top_events = stats.calculate_top_events(events)
    monthly_data = stats.calculate_monthly_data(events)
    quality_issues = stats.calculate_quality_issues(events)
    low_engagement = stats.calculate_low_engagement(events)
    time_analysis = stats.calculate_time_analysis(events)

    render_overall_metrics(overall)
    st.divider()

    col1, col2 = st.columns(2)
    with col1:
        st.plotly_chart(build_category_donut(category_stats), width="stretch")
    with col2:
        st.plotly_chart(build_city_bar(city_stats), width="stretch")

    st.plotly_chart(build_top_events_bar(top_events), width="stretch")

    col3, col4 = st.columns(2)
    with col3:
        st.plotly_chart(build_monthly_chart(monthly_data), width="stretch")
    with col4:
        st.plotly_chart(build_time_chart(time_analysis), width="stretch")

    st.divider()
    render_insights(quality_issues, low_engagement)

    with st.expander("📊 Category details"):
        st.dataframe(
            [
                {
                    "Category": c["name"],
                    "Events": c["event_count"],
                    "Avg rating": c["avg_rating"],
                    "Visitors": c["total_visitors"],
                    "Reviews": c["total_reviews"],
                }
                for c in category_stats
            ],
            hide_index=True,
        )
