from __future__ import annotations

from datetime import date, datetime

import pytest

from pydantic import ValidationError

from records import (
    MealEntry,
    UserProfile,
    describe,
    get_value,
    lookup,
    normalize_meal,
    normalize_profile,
    resolve_label,
    resolve_time_label,
    to_number,
)


def test_get_value_prefers_exact_key() -> None:
    record = {"Data": "exact", "data": "lower"}
    assert get_value(record, "Data") == "exact"
    assert get_value(record, "data") == "lower"


def test_get_value_case_insensitive_fallback() -> None:
    assert get_value({"CALORIAS": 300}, "Calorias") == 300
    assert get_value({"calorias": 300}, "Calorias") == 300
    assert get_value({"Other": 1}, "Calorias") is None
    assert get_value(None, "Calorias") is None
    assert get_value({}, "Calorias") is None


def test_lookup_tries_aliases_in_order() -> None:
    record = {"descricao_da_refeicao": "Soup"}
    assert lookup(record, "description") == "Soup"


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, 0.0),
        ("", 0.0),
        ("  ", 0.0),
        ("12.5", 12.5),
        (" 7 ", 7.0),
        (42, 42.0),
        ("12g", 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        ([1, 2], 0.0),
        (True, 1.0),
    ],
)
def test_to_number(raw, expected) -> None:
    assert to_number(raw) == expected


def test_empty_record_yields_zero_entry() -> None:
    entry = normalize_meal({})
    assert (entry.calories, entry.protein, entry.carbs, entry.fat) == (0, 0, 0, 0)
    assert entry.label
    assert entry.time_label
    assert entry.id.startswith("tmp-")


def test_generated_ids_are_unique() -> None:
    assert normalize_meal({}).id != normalize_meal({}).id


def test_uppercase_keys_resolve() -> None:
    entry = normalize_meal({
        "ID": 5,
        "DATA": "2025-11-05 12:30:00",
        "NOME": "Chicken",
        "CALORIAS": "450",
        "PROTEINAS": 45,
        "CARBOIDRATOS": 15,
        "GORDURAS": "20",
    })
    assert entry.id == "5"
    assert entry.label == "Chicken"
    assert entry.time_label == "12:30"
    assert (entry.calories, entry.protein, entry.carbs, entry.fat) == (450, 45, 15, 20)


def test_fenced_components_description() -> None:
    description = '```json {"components":[{"name":"Rice"},{"name":"Beans"}]} ```'
    assert resolve_label(None, description) == "Rice, Beans"
    assert resolve_label("EMPTY", description) == "Rice, Beans"


def test_json_array_description_uses_name_or_item() -> None:
    description = '[{"name": "Egg"}, {"item": "Toast"}, {"qty": 2}]'
    assert describe(description) == "Egg, Toast"


def test_already_decoded_description() -> None:
    assert describe({"components": [{"name": "Rice"}]}) == "Rice"


def test_plain_text_description() -> None:
    assert resolve_label("", "Grilled fish with salad") == "Grilled fish with salad"


def test_long_description_becomes_generic_label() -> None:
    assert resolve_label(None, "x" * 101) == "Detailed meal"
    assert resolve_label(None, "x" * 100) == "x" * 100


def test_unrecognized_json_falls_back_to_text() -> None:
    assert describe('{"calories": 300}') == '{"calories": 300}'


def test_name_fallback_chain() -> None:
    assert resolve_label("Pasta", "ignored") == "Pasta"
    assert resolve_label("EMPTY", None) == "Unnamed meal"
    assert resolve_label(None, "``````") == "Unnamed meal"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("2025-11-05T08:30:00Z", "08:30"),
        ("2025-11-05 19:45:10", "19:45"),
        ("2025-11-05", "05/11"),
        ("", "Recent"),
        (None, "Recent"),
        ("yesterday", "Recent"),
        (datetime(2025, 11, 5, 7, 5), "07:05"),
        (date(2025, 11, 5), "05/11"),
    ],
)
def test_time_label(raw, expected) -> None:
    assert resolve_time_label(raw) == expected


def test_occurred_at_keeps_raw_date_text() -> None:
    entry = normalize_meal({"id": 1, "Data": " 2025-11-05 10:00:00 "})
    assert entry.occurred_at == "2025-11-05 10:00:00"


def test_profile_merges_over_defaults() -> None:
    profile = normalize_profile({"User_ID": 42, "nome": "Ana", "Calorias_alvo": 1800, "Idade": ""})
    default = UserProfile.default()
    assert profile.id == "42"
    assert profile.name == "Ana"
    assert profile.goal_calories == 1800
    assert profile.age == default.age
    assert profile.goal_protein == default.goal_protein
    assert profile.avatar_url == default.avatar_url


def test_profile_without_avatar_keeps_fallback() -> None:
    fallback = UserProfile.default()
    profile = normalize_profile({"User_ID": 1, "Avatar_URL": None}, fallback)
    assert profile.avatar_url == fallback.avatar_url


def test_profile_accepts_unaccented_protein_column() -> None:
    assert normalize_profile({"Proteina_alvo": "150"}).goal_protein == 150


def test_meal_entry_coerces_macros() -> None:
    entry = MealEntry(id="1", calories="450", protein="n/a", carbs=None, fat=float("nan"))
    assert (entry.calories, entry.protein, entry.carbs, entry.fat) == (450, 0, 0, 0)


def test_meal_entry_is_frozen() -> None:
    entry = normalize_meal({"id": 1, "Calorias": 100})
    with pytest.raises(ValidationError):
        entry.calories = 200


def test_profile_from_partial_row_values() -> None:
    profile = UserProfile(id=7, name=" Ana ", goal_calories="1800", age=None)
    assert profile.id == "7"
    assert profile.name == "Ana"
    assert profile.goal_calories == 1800
    assert profile.age == 0
