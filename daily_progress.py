"""
Daily Progress Module

Per-day macro totals across the active period and the calorie bar chart
shown under the monthly goals.
"""
from __future__ import annotations
import pandas as pd
import plotly.graph_objects as go
from typing import Iterable, Optional

from config import THEME
from periods import ActivePeriod, parse_day
from records import MealEntry

MACRO_COLUMNS = ["calories", "protein", "carbs", "fat"]


def daily_totals_frame(entries: Iterable[MealEntry], period: ActivePeriod) -> pd.DataFrame:
    """
    Sum macros per calendar day of the period.
    Every day of the period gets a row; days without meals are zero.
    Meals without a usable date are left out.
    """
    days = pd.date_range(period.start, period.end, freq="D")
    rows = []
    for entry in entries:
        day = parse_day(entry.occurred_at)
        if day is None:
            continue
        rows.append({
            "date": pd.Timestamp(day),
            "calories": entry.calories,
            "protein": entry.protein,
            "carbs": entry.carbs,
            "fat": entry.fat,
        })

    frame = pd.DataFrame(rows, columns=["date"] + MACRO_COLUMNS)
    if frame.empty:
        daily = pd.DataFrame(0.0, index=days, columns=MACRO_COLUMNS)
    else:
        daily = frame.groupby("date")[MACRO_COLUMNS].sum().reindex(days, fill_value=0.0)
    daily.index.name = "date"
    return daily


def days_on_target(daily: pd.DataFrame, daily_goal: float, tolerance_pct: float = 10.0) -> int:
    """Days whose calories land within tolerance of the daily goal."""
    if daily_goal <= 0 or daily.empty:
        return 0
    deviation = (daily["calories"] - daily_goal).abs() / daily_goal * 100
    return int(((deviation <= tolerance_pct) & (daily["calories"] > 0)).sum())


def create_daily_calorie_chart(daily: pd.DataFrame, daily_goal: Optional[float] = None) -> go.Figure:
    """Bar chart of calories per day with the daily goal line."""
    fig = go.Figure()

    fig.add_trace(go.Bar(
        x=daily.index,
        y=daily["calories"],
        name="Calories",
        marker_color=THEME["calories"],
    ))

    if daily_goal:
        fig.add_hline(
            y=daily_goal,
            line=dict(color=THEME["accent_neutral"], dash="dash", width=2),
        )

    fig.update_layout(
        title=dict(text="Daily Calories", font=dict(size=14)),
        margin=dict(l=20, r=20, t=40, b=20),
        height=240,
        paper_bgcolor='rgba(0,0,0,0)',
        plot_bgcolor='rgba(0,0,0,0)',
        xaxis=dict(showgrid=False, color='#666'),
        yaxis=dict(showgrid=True, gridcolor='#333', color='#666', title='kcal'),
        showlegend=False,
        hovermode='x unified',
    )

    return fig
