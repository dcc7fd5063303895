"""
Community leaderboard: goal attainment of every user over the shared active period.
"""
from __future__ import annotations
from typing import Any, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from config import (
    AVATAR_FALLBACK_URL,
    DEFAULT_DAILY_CALORIES,
    DEFAULT_USER_NAME,
    PODIUM_SIZE,
    SCORE_SCALES,
    USER_FIELDS,
)
from metrics import round_half_up
from periods import ActivePeriod
from records import lookup, to_number


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    rank: int = Field(..., ge=1)
    user_id: str
    name: str
    score: int = Field(..., ge=0)
    is_current_user: bool
    avatar_url: str


def avatar_for(name: str, avatar_url: Any = None) -> str:
    if avatar_url is not None and str(avatar_url).strip():
        return str(avatar_url).strip()
    return AVATAR_FALLBACK_URL.format(name=quote(name))


def score_scale(period: ActivePeriod) -> Tuple[int, Optional[int]]:
    """(multiplier, cap) used for every score of one ranking."""
    return SCORE_SCALES[period.mode]


def attainment_score(total: float, goal: float, scale: Tuple[int, Optional[int]]) -> int:
    """Consumption vs. goal on the given scale; 0 when there is no goal."""
    if goal <= 0:
        return 0
    multiplier, cap = scale
    score = max(0, round_half_up(total / goal * multiplier))
    return min(cap, score) if cap is not None else score


def period_calories_by_user(meals: Sequence[Mapping[str, Any]], period: ActivePeriod) -> pd.Series:
    """Total calories per user id (as string) for meals inside the period."""
    frame = pd.DataFrame(
        [
            {
                "user_id": str(lookup(m, "user_id")),
                "calories": to_number(lookup(m, "calories")),
            }
            for m in meals
            if lookup(m, "user_id") is not None and period.contains(lookup(m, "date"))
        ],
        columns=["user_id", "calories"],
    )
    if frame.empty:
        return pd.Series(dtype=float)
    return frame.groupby("user_id", sort=False)["calories"].sum()


def rank_users(users: Sequence[Mapping[str, Any]], meals: Sequence[Mapping[str, Any]],
               period: ActivePeriod, viewer_id: Any,
               scale: Optional[Tuple[int, Optional[int]]] = None) -> List[LeaderboardEntry]:
    """
    Rank every user by period calories relative to their period calorie goal.

    Sorting is stable, so equal scores keep the order users came in.
    Ranks are dense and start at 1.
    """
    scale = scale or score_scale(period)
    totals = period_calories_by_user(meals, period)
    viewer = None if viewer_id is None else str(viewer_id)

    rows = []
    for user in users:
        raw_id = lookup(user, "id", USER_FIELDS)
        user_id = "" if raw_id is None else str(raw_id)
        name = lookup(user, "name", USER_FIELDS)
        name = str(name).strip() if name is not None and str(name).strip() else DEFAULT_USER_NAME

        daily_goal = to_number(lookup(user, "goal_calories", USER_FIELDS)) or DEFAULT_DAILY_CALORIES
        period_goal = daily_goal * period.day_count
        total = float(totals.get(user_id, 0.0))

        rows.append({
            "user_id": user_id,
            "name": name,
            "score": attainment_score(total, period_goal, scale),
            "is_current_user": viewer is not None and user_id == viewer,
            "avatar_url": avatar_for(name, lookup(user, "avatar_url", USER_FIELDS)),
        })

    if not rows:
        return []

    board = pd.DataFrame(rows).sort_values("score", ascending=False, kind="stable")
    return [
        LeaderboardEntry(
            rank=position,
            user_id=row.user_id,
            name=row.name,
            score=int(row.score),
            is_current_user=bool(row.is_current_user),
            avatar_url=row.avatar_url,
        )
        for position, row in enumerate(board.itertuples(index=False), start=1)
    ]


def find_viewer(entries: Sequence[LeaderboardEntry]) -> Optional[LeaderboardEntry]:
    return next((e for e in entries if e.is_current_user), None)


def podium(entries: Sequence[LeaderboardEntry], size: int = PODIUM_SIZE) -> List[LeaderboardEntry]:
    """Top entries, plus the viewer's own entry when ranked below them."""
    top = list(entries[:size])
    viewer = find_viewer(entries)
    if viewer is not None and viewer.rank > size:
        top.append(viewer)
    return top
