"""
NutriBot Dashboard - monthly macro progress, meal log and community ranking with Streamlit.
"""
from __future__ import annotations
import logging
import streamlit as st
import pandas as pd
import plotly.graph_objects as go
from typing import Optional

from config import (
    LIVE_REFRESH_SECONDS,
    LOG_FORMAT,
    LOG_LEVEL,
    THEME,
    VERSION,
)
from data_loader import (
    AccessStatus,
    DashboardData,
    DataStoreError,
    SaveOutcome,
    get_client,
    load_dashboard,
    save_profile,
)
from daily_progress import create_daily_calorie_chart, daily_totals_frame, days_on_target
from leaderboard import find_viewer, podium
from live_updates import FeedRegistry
from metrics import MacroProgress, dashboard_progress, goals_for_period, remaining_calories
from records import UserProfile

logging.basicConfig(level=getattr(logging, LOG_LEVEL.upper(), logging.INFO), format=LOG_FORMAT)
logger = logging.getLogger("nutribot.app")

# === PAGE CONFIG ===
st.set_page_config(
    page_title=f"NutriBot Dashboard V{VERSION}",
    page_icon="◉",
    layout="wide",
    initial_sidebar_state="expanded",
)

# === CUSTOM CSS ===
st.markdown("""
<style>
    .section-header {
        font-size: 1.2rem;
        font-weight: 600;
        color: #e0e0e0;
        margin: 1.5rem 0 1rem 0;
        padding-bottom: 0.5rem;
        border-bottom: 2px solid #30475e;
    }
    .period-badge {
        font-size: 0.8rem;
        font-weight: 600;
        color: #10b981;
        text-transform: uppercase;
    }
    .rank-row {
        display: flex;
        justify-content: space-between;
        padding: 0.5rem 0.75rem;
        border-radius: 10px;
        margin-bottom: 0.4rem;
        background: linear-gradient(135deg, #1a1a2e 0%, #16213e 100%);
    }
    .rank-row.me {
        border: 1px solid #10b981;
    }
</style>
""", unsafe_allow_html=True)


def format_number(value: float) -> str:
    """Whole numbers without decimals, thousands separated."""
    if value == int(value):
        return f"{int(value):,}"
    return f"{value:,.1f}"


def create_progress_ring(progress: MacroProgress, color: str) -> go.Figure:
    """Donut of consumed vs. remaining for one macro."""
    fig = go.Figure(go.Pie(
        values=[progress.current, progress.remaining] if progress.target > 0 else [0, 1],
        hole=0.75,
        marker=dict(colors=[color, THEME["empty"]]),
        textinfo='none',
        hoverinfo='none',
        sort=False,
        direction='clockwise',
    ))

    fig.add_annotation(
        text=f"<b>{progress.percentage}%</b>",
        x=0.5, y=0.5,
        font=dict(size=18, color='white'),
        showarrow=False,
    )

    fig.update_layout(
        showlegend=False,
        margin=dict(l=5, r=5, t=30, b=5),
        height=150,
        paper_bgcolor='rgba(0,0,0,0)',
        plot_bgcolor='rgba(0,0,0,0)',
        title=dict(text=progress.name.upper(), font=dict(size=12, color='#a0a0a0'), x=0.5),
    )

    return fig


@st.cache_resource
def get_store():
    return get_client()


@st.cache_resource
def get_feeds() -> FeedRegistry:
    feeds = FeedRegistry()
    feeds.start_reaper()
    return feeds


def sync_dashboard(store, raw_id: Optional[str]) -> DashboardData:
    """
    Refresh dashboard data for the viewer.
    The ledger comes from the shared feed registry so every page viewing the same
    user renders the one ledger its live feed merges into.
    """
    data = load_dashboard(store, raw_id)
    if data.status == AccessStatus.GRANTED:
        data.ledger = get_feeds().attach(data.user_id, data.period, data.ledger.entries)
    st.session_state["dashboard"] = data
    return data


def render_blocked(data: DashboardData) -> None:
    if data.status == AccessStatus.NO_ID:
        st.title("Restricted Access")
        st.info(
            "This dashboard is for NutriBot users only. "
            "Open it from the link the bot sends you to see your metrics."
        )
    elif data.status == AccessStatus.DENIED:
        st.title("Profile Not Found")
        st.error(f"We could not find data for the id provided ({data.user_id}).")
        st.markdown(
            "- The id in the link changed or is incorrect.\n"
            "- The initial sign-up with the bot is not complete.\n"
            "- The database refused access."
        )
        if st.button("Try again"):
            st.session_state.pop("dashboard", None)
            st.rerun()


def render_profile_sidebar(store, data: DashboardData) -> None:
    profile = data.profile
    with st.sidebar:
        st.image(profile.avatar_url, width=96)
        st.subheader(profile.name)
        st.caption(
            f"{profile.age:.0f} y · {profile.weight:.1f} kg · {profile.height:.0f} cm"
        )
        st.metric("Daily goal", f"{profile.goal_calories:,.0f} kcal")
        st.metric("Daily protein", f"{profile.goal_protein:,.0f} g")

        with st.expander("Edit profile"):
            with st.form("profile-form"):
                name = st.text_input("Name", value=profile.name)
                age = st.number_input("Age", min_value=0, value=int(profile.age))
                weight = st.number_input("Weight (kg)", min_value=0.0, value=float(profile.weight))
                height = st.number_input("Height (cm)", min_value=0, value=int(profile.height))
                goal_calories = st.number_input("Calories / day", min_value=0, value=int(profile.goal_calories))
                goal_protein = st.number_input("Protein / day (g)", min_value=0, value=int(profile.goal_protein))
                submitted = st.form_submit_button("Save")

            if submitted:
                updated = UserProfile(
                    id=profile.id,
                    name=name,
                    age=age,
                    weight=weight,
                    height=height,
                    goal_calories=goal_calories,
                    goal_protein=goal_protein,
                    avatar_url=profile.avatar_url,
                )
                data.profile = updated
                outcome = save_profile(store, data.user_id, updated)
                if outcome == SaveOutcome.SAVED:
                    st.success("Profile updated!")
                elif outcome == SaveOutcome.SAVED_WITHOUT_AVATAR:
                    st.warning("Profile updated, but the photo could not be saved.")
                else:
                    st.error("Could not save changes. Check your connection.")


def render_leaderboard(data: DashboardData) -> None:
    st.markdown('<div class="section-header">Ranking</div>', unsafe_allow_html=True)

    if not data.leaderboard_loaded:
        st.caption("Loading ranking...")
        return
    if not data.leaderboard:
        st.caption("Nobody has scored in this period yet.")
        return

    viewer = find_viewer(data.leaderboard)
    position = viewer.rank if viewer else "-"
    st.caption(f"Your position: {position} of {len(data.leaderboard)}")

    for entry in podium(data.leaderboard):
        name = "You" if entry.is_current_user else entry.name
        css = "rank-row me" if entry.is_current_user else "rank-row"
        st.markdown(
            f'<div class="{css}"><span><b>{entry.rank}</b> &nbsp; {name}</span>'
            f'<span><b>{entry.score}</b></span></div>',
            unsafe_allow_html=True,
        )


@st.fragment(run_every=LIVE_REFRESH_SECONDS)
def render_live_section(data: DashboardData) -> None:
    """Goals and meal log, re-rendered as the live feed grows the ledger."""
    feeds = get_feeds()
    if not feeds.touch(data.user_id):
        data.ledger = feeds.attach(data.user_id, data.period, data.ledger.entries)
    ledger = data.ledger
    totals = ledger.totals()
    goals = goals_for_period(data.profile.goal_calories, data.profile.goal_protein, data.period)

    col_title, col_badge = st.columns([3, 1])
    with col_title:
        st.markdown('<div class="section-header">Goals</div>', unsafe_allow_html=True)
    with col_badge:
        label = "Month" if data.period.mode == "month" else "Day"
        st.markdown(f'<span class="period-badge">{label}: {data.period.display}</span>', unsafe_allow_html=True)

    st.metric("Calories remaining", f"{format_number(remaining_calories(totals, goals))} kcal")

    colors = [THEME["calories"], THEME["protein"], THEME["carbs"], THEME["fat"]]
    for col, progress, color in zip(st.columns(4), dashboard_progress(totals, goals), colors):
        with col:
            st.plotly_chart(create_progress_ring(progress, color), use_container_width=True)
            st.caption(
                f"{format_number(progress.current)} / {format_number(progress.target)}{progress.unit} "
                f"· {format_number(progress.remaining)}{progress.unit} to go"
            )

    st.markdown('<div class="section-header">Meal Log</div>', unsafe_allow_html=True)
    if len(ledger) == 0:
        st.caption("No meals logged in this period.")
    else:
        table = pd.DataFrame(
            [
                {
                    "Time": e.time_label,
                    "Meal": e.label,
                    "Calories": e.calories,
                    "P (g)": e.protein,
                    "C (g)": e.carbs,
                    "F (g)": e.fat,
                }
                for e in ledger.entries
            ]
        )
        st.dataframe(table, hide_index=True, use_container_width=True)

    if data.period.mode == "month":
        daily = daily_totals_frame(ledger.entries, data.period)
        st.plotly_chart(
            create_daily_calorie_chart(daily, data.profile.goal_calories),
            use_container_width=True,
        )
        on_target = days_on_target(daily, data.profile.goal_calories)
        st.caption(f"Days on target: {on_target} of {data.period.day_count}")


# === MAIN APP ===
def main():
    raw_id = st.query_params.get("id")

    try:
        store = get_store()
    except DataStoreError as exc:
        st.error(f"Data source not configured: {exc}")
        return

    data: Optional[DashboardData] = st.session_state.get("dashboard")
    if data is None or st.session_state.get("raw_id") != raw_id:
        with st.spinner("Loading your dashboard..."):
            data = sync_dashboard(store, raw_id)
        st.session_state["raw_id"] = raw_id

    if data.status != AccessStatus.GRANTED:
        render_blocked(data)
        return

    # === HEADER ===
    col_title, col_refresh = st.columns([4, 1])
    with col_title:
        st.title(f"Hi, {data.profile.name.split(' ')[0]}")
    with col_refresh:
        if st.button("Refresh"):
            with st.spinner("Refreshing..."):
                data = sync_dashboard(store, raw_id)

    render_profile_sidebar(store, data)

    col_main, col_side = st.columns([2, 1])
    with col_main:
        render_live_section(data)
    with col_side:
        render_leaderboard(data)


if __name__ == "__main__":
    main()
