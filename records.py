"""
Normalization of loosely-typed store rows into meal entries and user profiles.

Rows coming from the store do not agree on key casing ("Data" vs "data") and
any field may be missing or malformed. Nothing in this module raises on bad
input: every failure degrades to a default value.
"""
from __future__ import annotations
import json
import math
import re
import uuid
from datetime import date, datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from config import (
    DEFAULT_PROFILE,
    DESCRIPTION_MAX_CHARS,
    DETAILED_MEAL_LABEL,
    EMPTY_NAME_SENTINEL,
    MEAL_FIELDS,
    RECENT_LABEL,
    UNNAMED_MEAL_LABEL,
    USER_FIELDS,
)

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


# === FIELD ACCESS ===

def get_value(record: Optional[Mapping[str, Any]], key: str) -> Any:
    """Exact key first, then a case-insensitive scan. None when absent."""
    if not record:
        return None
    if key in record:
        return record[key]
    lower_key = key.lower()
    for candidate in record:
        if isinstance(candidate, str) and candidate.lower() == lower_key:
            return record[candidate]
    return None


def lookup(record: Optional[Mapping[str, Any]], field: str,
           table: Mapping[str, tuple] = MEAL_FIELDS) -> Any:
    """Resolve a canonical field through the column-name table."""
    for column in table[field]:
        value = get_value(record, column)
        if value is not None:
            return value
    return None


# === COERCION ===

def to_number(value: Any) -> float:
    """Numeric coercion; anything unparseable becomes 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def date_text(value: Any) -> str:
    """Raw date value as a stripped string ("" when missing)."""
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value).strip()


# === MODELS ===

class MealEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    occurred_at: str = ""
    time_label: str = RECENT_LABEL
    label: str = UNNAMED_MEAL_LABEL
    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    @field_validator("calories", "protein", "carbs", "fat", mode="before")
    @classmethod
    def coerce_macro(cls, value: Any) -> float:
        return to_number(value)


class UserProfile(BaseModel):
    id: str = ""
    name: str
    age: float = 0.0
    weight: float = 0.0
    height: float = 0.0
    goal_calories: float = 0.0
    goal_protein: float = 0.0
    avatar_url: str = ""

    @field_validator("id", "name", "avatar_url", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return "" if value is None else str(value).strip()

    @field_validator("age", "weight", "height", "goal_calories", "goal_protein", mode="before")
    @classmethod
    def coerce_number(cls, value: Any) -> float:
        return to_number(value)

    @classmethod
    def default(cls) -> "UserProfile":
        return cls(**DEFAULT_PROFILE)


# === LABELS ===

def _join_names(items: Any, keys: tuple[str, ...]) -> str:
    names = []
    for item in items:
        if isinstance(item, Mapping):
            name = next((get_value(item, k) for k in keys if get_value(item, k)), None)
        else:
            name = item
        if name is not None and str(name).strip():
            names.append(str(name).strip())
    return ", ".join(names)


def describe(description: Any) -> Optional[str]:
    """
    Flatten a free-text meal description into a short label.
    Handles markdown-fenced JSON with a components list or a plain list of items.
    """
    if description is None:
        return None

    if isinstance(description, (Mapping, list)):
        parsed = description
        cleaned = json.dumps(description, ensure_ascii=False)
    else:
        cleaned = _FENCE_RE.sub("", str(description)).strip()
        if not cleaned:
            return None
        try:
            parsed = json.loads(cleaned)
        except ValueError:
            parsed = None

    joined = ""
    if isinstance(parsed, Mapping) and isinstance(get_value(parsed, "components"), list):
        joined = _join_names(get_value(parsed, "components"), ("name",))
    elif isinstance(parsed, list):
        joined = _join_names(parsed, ("name", "item"))
    if joined:
        return joined

    if len(cleaned) > DESCRIPTION_MAX_CHARS:
        return DETAILED_MEAL_LABEL
    return cleaned


def resolve_label(name: Any, description: Any) -> str:
    if name is not None:
        text = str(name).strip()
        if text and text != EMPTY_NAME_SENTINEL:
            return text
    return describe(description) or UNNAMED_MEAL_LABEL


def resolve_time_label(raw_date: Any) -> str:
    """Short display string, preferring a clock time when the date carries one."""
    text = date_text(raw_date)

    if "T" in text:
        clock = text.split("T", 1)[1][:5]
        if clock:
            return clock
    if " " in text and ":" in text:
        parts = text.split()
        if len(parts) > 1 and parts[1][:5]:
            return parts[1][:5]

    date_parts = text.split(" ")[0].split("T")[0].split("-")
    if len(date_parts) == 3 and all(date_parts):
        return f"{date_parts[2]}/{date_parts[1]}"
    return RECENT_LABEL


# === RECORDS ===

def normalize_meal(record: Optional[Mapping[str, Any]]) -> MealEntry:
    """Convert one raw meal row into a MealEntry."""
    raw_id = lookup(record, "id")
    if raw_id is None or str(raw_id).strip() == "":
        entry_id = f"tmp-{uuid.uuid4().hex}"
    else:
        entry_id = str(raw_id)

    raw_date = lookup(record, "date")
    return MealEntry(
        id=entry_id,
        occurred_at=date_text(raw_date),
        time_label=resolve_time_label(raw_date),
        label=resolve_label(lookup(record, "name"), lookup(record, "description")),
        calories=lookup(record, "calories"),
        protein=lookup(record, "protein"),
        carbs=lookup(record, "carbs"),
        fat=lookup(record, "fat"),
    )


def normalize_profile(record: Optional[Mapping[str, Any]],
                      fallback: Optional[UserProfile] = None) -> UserProfile:
    """
    Merge a raw user row over a fallback profile.
    Missing, empty or zero values keep the fallback's value.
    """
    base = fallback or UserProfile.default()

    def text(field: str, current: str) -> str:
        value = lookup(record, field, USER_FIELDS)
        if value is None or str(value).strip() == "":
            return current
        return str(value).strip()

    def number(field: str, current: float) -> float:
        return to_number(lookup(record, field, USER_FIELDS)) or current

    return base.model_copy(update={
        "id": text("id", base.id),
        "name": text("name", base.name),
        "age": number("age", base.age),
        "weight": number("weight", base.weight),
        "height": number("height", base.height),
        "goal_calories": number("goal_calories", base.goal_calories),
        "goal_protein": number("goal_protein", base.goal_protein),
        "avatar_url": text("avatar_url", base.avatar_url),
    })
