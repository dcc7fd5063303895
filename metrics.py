"""
Macro aggregation and period goal calculations for the nutrition dashboard.
"""
from __future__ import annotations
import math
from typing import Any, Iterable, List, Mapping, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from config import (
    FAT_ENERGY_SHARE,
    KCAL_PER_G_CARBS,
    KCAL_PER_G_FAT,
    KCAL_PER_G_PROTEIN,
)
from periods import ActivePeriod
from records import MealEntry, lookup, normalize_meal


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up."""
    return int(math.floor(value + 0.5))


class MacroTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    calories: float = 0.0
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    def __add__(self, other: "MacroTotals") -> "MacroTotals":
        return MacroTotals(
            calories=self.calories + other.calories,
            protein=self.protein + other.protein,
            carbs=self.carbs + other.carbs,
            fat=self.fat + other.fat,
        )


class PeriodGoals(BaseModel):
    model_config = ConfigDict(frozen=True)

    calories: float = Field(..., ge=0)
    protein: float = Field(..., ge=0)
    carbs: int = Field(..., ge=0)
    fat: int = Field(..., ge=0)


class MacroProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    current: float
    target: float
    unit: str
    percentage: int = Field(..., ge=0, le=100)
    remaining: float


# === AGGREGATION ===

def filter_period(records: Iterable[Mapping[str, Any]], period: ActivePeriod) -> List[Mapping[str, Any]]:
    """Records whose date starts with the period key, in input order."""
    return [r for r in records if period.contains(lookup(r, "date"))]


def sum_totals(entries: Iterable[MealEntry]) -> MacroTotals:
    totals = MacroTotals()
    for entry in entries:
        totals = totals + MacroTotals(
            calories=entry.calories, protein=entry.protein, carbs=entry.carbs, fat=entry.fat,
        )
    return totals


def aggregate_period(records: Sequence[Mapping[str, Any]],
                     period: ActivePeriod) -> Tuple[List[MealEntry], MacroTotals]:
    """
    Normalize the records that fall inside the period and sum their macros.
    Returns (entries, totals); entries keep the input (newest first) order.
    """
    entries = [normalize_meal(r) for r in filter_period(records, period)]
    return entries, sum_totals(entries)


# === GOALS ===

def project_goals(daily_calories: float, daily_protein: float, day_count: int) -> PeriodGoals:
    """
    Scale daily goals to the period and derive carbs and fat from energy balance.
    Fat covers a fixed share of the calories, carbs fill whatever protein and fat leave.
    """
    day_count = max(0, int(day_count))
    calories = max(0.0, float(daily_calories)) * day_count
    protein = max(0.0, float(daily_protein)) * day_count

    fat_calories = calories * FAT_ENERGY_SHARE
    fat = round_half_up(fat_calories / KCAL_PER_G_FAT)

    remaining = calories - protein * KCAL_PER_G_PROTEIN - fat_calories
    carbs = max(0, round_half_up(remaining / KCAL_PER_G_CARBS))

    return PeriodGoals(calories=calories, protein=protein, carbs=carbs, fat=fat)


def goals_for_period(goal_calories: float, goal_protein: float, period: ActivePeriod) -> PeriodGoals:
    return project_goals(goal_calories, goal_protein, period.day_count)


# === PROGRESS ===

def macro_progress(name: str, current: float, target: float, unit: str) -> MacroProgress:
    """Consumed vs. target, with the percentage capped at 100."""
    pct = min(100, round_half_up(current / target * 100)) if target > 0 else 0
    return MacroProgress(
        name=name,
        current=current,
        target=target,
        unit=unit,
        percentage=max(0, pct),
        remaining=max(0.0, target - current),
    )


def dashboard_progress(totals: MacroTotals, goals: PeriodGoals) -> List[MacroProgress]:
    return [
        macro_progress("Calories", totals.calories, goals.calories, "kcal"),
        macro_progress("Protein", totals.protein, goals.protein, "g"),
        macro_progress("Carbs", totals.carbs, goals.carbs, "g"),
        macro_progress("Fat", totals.fat, goals.fat, "g"),
    ]


def remaining_calories(totals: MacroTotals, goals: PeriodGoals) -> float:
    return max(0.0, goals.calories - totals.calories)
