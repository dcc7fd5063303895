"""
Active period resolution: which day or month the dashboard reports against.
"""
from __future__ import annotations
import calendar
import logging
from datetime import date
from typing import Any, Mapping, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict

from config import PERIOD_MODE
from records import date_text, lookup

logger = logging.getLogger(__name__)

PERIOD_MODES = ("day", "month")


class ActivePeriod(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: str
    year: int
    month: int
    day: Optional[int] = None
    key: str
    display: str
    day_count: int

    def contains(self, raw_date: Any) -> bool:
        """
        Prefix match of a record's date against the period key.
        Dates are read through the same parser that resolves the period, so
        "2025/11/06 10:00" belongs to "2025-11". Unparseable text is matched as is.
        """
        day = parse_day(raw_date)
        text = day.isoformat() if day is not None else date_text(raw_date)
        return bool(text) and text.startswith(self.key)

    @property
    def start(self) -> date:
        return date(self.year, self.month, self.day or 1)

    @property
    def end(self) -> date:
        if self.mode == "day":
            return self.start
        return date(self.year, self.month, self.day_count)


def days_in_month(year: int, month: int) -> int:
    """Number of calendar days in a month (leap-year aware)."""
    return calendar.monthrange(year, month)[1]


def _check_mode(mode: str) -> str:
    if mode not in PERIOD_MODES:
        raise ValueError(f"Unknown period mode {mode!r}, expected one of {PERIOD_MODES}")
    return mode


def period_for_day(day: date, mode: str = PERIOD_MODE) -> ActivePeriod:
    """Build the active period containing a calendar day."""
    _check_mode(mode)
    if mode == "day":
        return ActivePeriod(
            mode="day",
            year=day.year,
            month=day.month,
            day=day.day,
            key=day.strftime("%Y-%m-%d"),
            display=day.strftime("%d/%m/%Y"),
            day_count=1,
        )
    return ActivePeriod(
        mode="month",
        year=day.year,
        month=day.month,
        day=None,
        key=day.strftime("%Y-%m"),
        display=day.strftime("%m/%Y"),
        day_count=days_in_month(day.year, day.month),
    )


def parse_day(raw_date: Any) -> Optional[date]:
    """Calendar day of a raw date value, or None when it cannot be parsed."""
    text = date_text(raw_date)
    if not text:
        return None
    stamp = pd.to_datetime(text, errors="coerce")
    if pd.isna(stamp):
        return None
    return stamp.date()


def resolve_period(records: Sequence[Mapping[str, Any]], mode: str = PERIOD_MODE,
                   today: Optional[date] = None) -> ActivePeriod:
    """
    Resolve the active period from records ordered newest first.
    With no records, or a latest record without a usable date, today's period is used.
    """
    _check_mode(mode)
    today = today or date.today()

    if not records:
        return period_for_day(today, mode)

    latest = parse_day(lookup(records[0], "date"))
    if latest is None:
        logger.warning("Latest meal has no usable date, reporting against today")
        return period_for_day(today, mode)
    return period_for_day(latest, mode)
