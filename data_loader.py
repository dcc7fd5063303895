"""
Data loading from Supabase for the nutrition dashboard.

Refresh order is profile -> meals -> active period -> leaderboard, since the
leaderboard is computed for the period resolved from the user's own meals.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

import httpx
from postgrest.exceptions import APIError
from supabase import Client, SupabaseException, create_client

from config import (
    MEAL_FETCH_LIMIT,
    MEAL_FIELDS,
    MEALS_TABLE,
    PERIOD_MODE,
    SUPABASE_KEY,
    SUPABASE_URL,
    USER_FIELDS,
    USERS_TABLE,
)
from leaderboard import LeaderboardEntry, rank_users
from live_updates import MealLedger
from metrics import aggregate_period
from periods import ActivePeriod, resolve_period
from records import UserProfile, normalize_profile

logger = logging.getLogger(__name__)

UserId = Union[int, str]

_LEADING_INT_RE = re.compile(r"^[+-]?\d+")


class DataStoreError(RuntimeError):
    """The store could not be reached or rejected the request."""


class ProfileNotFound(LookupError):
    """No user row exists for the requested id."""

    def __init__(self, user_id: UserId) -> None:
        super().__init__(f"No profile for user {user_id!r}")
        self.user_id = user_id


class AccessStatus(str, Enum):
    LOADING = "loading"
    NO_ID = "no_id"
    DENIED = "denied"
    GRANTED = "granted"


class SaveOutcome(str, Enum):
    SAVED = "saved"
    SAVED_WITHOUT_AVATAR = "saved_without_avatar"
    FAILED = "failed"


@dataclass
class DashboardData:
    status: AccessStatus
    user_id: Optional[UserId] = None
    profile: UserProfile = field(default_factory=UserProfile.default)
    period: Optional[ActivePeriod] = None
    ledger: Optional[MealLedger] = None
    leaderboard: List[LeaderboardEntry] = field(default_factory=list)
    leaderboard_loaded: bool = False


def _column(table: Mapping[str, tuple], name: str) -> str:
    return table[name][0]


# === CLIENT ===

def get_client(url: str = SUPABASE_URL, key: str = SUPABASE_KEY) -> Client:
    if not url or not key:
        raise DataStoreError("SUPABASE_URL and SUPABASE_KEY must be set")
    try:
        return create_client(url, key)
    except SupabaseException as exc:
        raise DataStoreError(f"Invalid Supabase configuration: {exc}") from exc


def parse_user_id(raw: Optional[str]) -> Optional[UserId]:
    """
    Identifier from the ?id= query parameter.
    A leading integer wins (numeric ids are int8 in the store), otherwise the raw string.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    match = _LEADING_INT_RE.match(text)
    if match:
        return int(match.group())
    return text


def _execute(query: Any, what: str) -> List[Dict[str, Any]]:
    try:
        response = query.execute()
    except (APIError, httpx.HTTPError) as exc:
        raise DataStoreError(f"Failed to fetch {what}: {exc}") from exc
    return list(getattr(response, "data", None) or [])


# === FETCHES ===

def fetch_profile(client: Client, user_id: UserId) -> Dict[str, Any]:
    rows = _execute(
        client.table(USERS_TABLE)
        .select("*")
        .eq(_column(USER_FIELDS, "id"), user_id)
        .limit(1),
        f"profile {user_id}",
    )
    if not rows:
        raise ProfileNotFound(user_id)
    return rows[0]


def fetch_meals(client: Client, user_id: UserId, limit: int = MEAL_FETCH_LIMIT) -> List[Dict[str, Any]]:
    """The user's meal rows, newest first."""
    return _execute(
        client.table(MEALS_TABLE)
        .select("*")
        .eq(_column(MEAL_FIELDS, "user_id"), user_id)
        .order(_column(MEAL_FIELDS, "date"), desc=True)
        .limit(limit),
        f"meals for {user_id}",
    )


def fetch_leaderboard_inputs(client: Client) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """All users and all meals, not restricted to the viewer."""
    user_columns = ", ".join(
        _column(USER_FIELDS, f) for f in ("id", "name", "goal_calories", "avatar_url")
    )
    meal_columns = ", ".join(
        _column(MEAL_FIELDS, f) for f in ("user_id", "calories", "date")
    )
    users = _execute(client.table(USERS_TABLE).select(user_columns), "users")
    meals = _execute(client.table(MEALS_TABLE).select(meal_columns), "all meals")
    return users, meals


def load_leaderboard(client: Client, viewer_id: UserId, period: ActivePeriod) -> List[LeaderboardEntry]:
    """Ranking for the period; an empty ranking when the store fails."""
    try:
        users, meals = fetch_leaderboard_inputs(client)
    except DataStoreError as exc:
        logger.error("Leaderboard unavailable: %s", exc)
        return []
    logger.info("Ranking %d users over %d meals for %s", len(users), len(meals), period.key)
    return rank_users(users, meals, period, viewer_id)


def load_dashboard(client: Client, raw_user_id: Optional[str], mode: str = PERIOD_MODE,
                   today: Optional[date] = None) -> DashboardData:
    """Run the full refresh for one viewer."""
    user_id = parse_user_id(raw_user_id)
    if user_id is None:
        return DashboardData(status=AccessStatus.NO_ID)

    try:
        profile_row = fetch_profile(client, user_id)
        meals = fetch_meals(client, user_id)
    except ProfileNotFound:
        logger.warning("Profile not found for user %r", user_id)
        return DashboardData(status=AccessStatus.DENIED, user_id=user_id)
    except DataStoreError as exc:
        logger.error("Dashboard load failed for user %r: %s", user_id, exc)
        return DashboardData(status=AccessStatus.DENIED, user_id=user_id)

    profile = normalize_profile(profile_row)
    if not meals:
        logger.info("No meals found for user %r", user_id)
    period = resolve_period(meals, mode, today)
    entries, _ = aggregate_period(meals, period)

    return DashboardData(
        status=AccessStatus.GRANTED,
        user_id=user_id,
        profile=profile,
        period=period,
        ledger=MealLedger(period, entries),
        leaderboard=load_leaderboard(client, user_id, period),
        leaderboard_loaded=True,
    )


# === PROFILE SAVE ===

def profile_update_payload(profile: UserProfile, include_avatar: bool = True) -> Dict[str, Any]:
    payload = {
        _column(USER_FIELDS, "name"): profile.name,
        _column(USER_FIELDS, "age"): profile.age,
        _column(USER_FIELDS, "weight"): profile.weight,
        _column(USER_FIELDS, "height"): profile.height,
        _column(USER_FIELDS, "goal_calories"): profile.goal_calories,
        _column(USER_FIELDS, "goal_protein"): profile.goal_protein,
    }
    if include_avatar and profile.avatar_url:
        payload[_column(USER_FIELDS, "avatar_url")] = profile.avatar_url
    return payload


def save_profile(client: Client, user_id: UserId, profile: UserProfile) -> SaveOutcome:
    """
    Save the profile; when the full update is rejected (usually an oversized
    avatar), retry with the text fields only.
    """
    id_column = _column(USER_FIELDS, "id")
    try:
        _execute(
            client.table(USERS_TABLE).update(profile_update_payload(profile)).eq(id_column, user_id),
            f"profile update {user_id}",
        )
        return SaveOutcome.SAVED
    except DataStoreError as exc:
        logger.warning("Full profile save failed, retrying without avatar: %s", exc)

    try:
        _execute(
            client.table(USERS_TABLE)
            .update(profile_update_payload(profile, include_avatar=False))
            .eq(id_column, user_id),
            f"profile update {user_id} without avatar",
        )
    except DataStoreError as exc:
        logger.error("Profile save failed for user %r: %s", user_id, exc)
        return SaveOutcome.FAILED
    return SaveOutcome.SAVED_WITHOUT_AVATAR
