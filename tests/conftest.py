from __future__ import annotations

from datetime import date
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest

from periods import period_for_day


class FakeQuery:
    """Chainable stand-in for a PostgREST query builder."""

    def __init__(self, store: "FakeStore", table: str) -> None:
        self.store = store
        self.table = table
        self.filters: List[tuple] = []
        self.order_by: Optional[tuple] = None
        self.limit_to: Optional[int] = None
        self.columns: Optional[str] = None
        self.payload: Optional[Dict[str, Any]] = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.columns = columns
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self.order_by = (column, desc)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self.limit_to = size
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.payload = payload
        return self

    def execute(self) -> SimpleNamespace:
        self.store.executed.append(self)
        # queued outcomes per table, None lets that call through
        failures = self.store.failures.get(self.table)
        if failures:
            failure = failures.pop(0)
            if failure is not None:
                raise failure
        if self.payload is not None:
            return SimpleNamespace(data=[self.payload])

        rows = list(self.store.tables.get(self.table, []))
        for column, value in self.filters:
            rows = [r for r in rows if str(r.get(column)) == str(value)]
        if self.order_by is not None:
            column, desc = self.order_by
            rows.sort(key=lambda r: str(r.get(column, "")), reverse=desc)
        if self.limit_to is not None:
            rows = rows[: self.limit_to]
        return SimpleNamespace(data=rows)


class FakeStore:
    def __init__(self, tables: Dict[str, List[Dict[str, Any]]]) -> None:
        self.tables = tables
        self.failures: Dict[str, List[Exception]] = {}
        self.executed: List[FakeQuery] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


@pytest.fixture
def user_rows() -> List[Dict[str, Any]]:
    return [
        {"User_ID": 101, "Nome": "Maria G.", "Calorias_alvo": 2000, "Proteína_alvo": 120,
         "Idade": 31, "Peso_kg": 62, "Altura_cm": 165, "Avatar_URL": "https://img/maria.png"},
        {"User_ID": 202, "Nome": "João P.", "Calorias_alvo": 2500, "Proteína_alvo": 180,
         "Idade": 40, "Peso_kg": 88, "Altura_cm": 181},
        {"User_ID": 303, "Nome": "Sofia L.", "Calorias_alvo": None},
    ]


@pytest.fixture
def meal_rows() -> List[Dict[str, Any]]:
    return [
        {"id": 9, "User_ID": 101, "Data": "2025-11-06 19:45:00", "Nome": "Salmon & Asparagus",
         "Calorias": 520, "Proteinas": 40, "Carboidratos": 10, "Gorduras": 32},
        {"id": 8, "User_ID": 101, "Data": "2025-11-05T13:15:00", "Nome": "EMPTY",
         "Descrição_da_refeição": '```json {"components":[{"name":"Rice"},{"name":"Beans"}]} ```',
         "Calorias": "450", "Proteinas": "45", "Carboidratos": "15", "Gorduras": "20"},
        {"id": 7, "User_ID": 202, "Data": "2025-11-02", "Nome": "Oatmeal",
         "Calorias": 350, "Proteinas": 12, "Carboidratos": 55, "Gorduras": 6},
        {"id": 6, "User_ID": 101, "Data": "2025-10-30 08:00:00", "Nome": "Toast",
         "Calorias": 200, "Proteinas": 6, "Carboidratos": 30, "Gorduras": 4},
    ]


@pytest.fixture
def store(user_rows, meal_rows) -> FakeStore:
    return FakeStore({"NutriBot_User": user_rows, "Refeições_NutriBot": meal_rows})


@pytest.fixture
def november():
    return period_for_day(date(2025, 11, 6), "month")
