from __future__ import annotations

from datetime import date

from leaderboard import attainment_score, avatar_for, find_viewer, podium, rank_users
from periods import period_for_day


def test_monthly_scores_and_ranks(user_rows, meal_rows, november) -> None:
    board = rank_users(user_rows, meal_rows, november, viewer_id=202)

    # Maria: 970 / (2000 * 30) * 1000 = 16.2 ; João: 350 / (2500 * 30) * 1000 = 4.7
    assert [(e.rank, e.name, e.score) for e in board] == [
        (1, "Maria G.", 16),
        (2, "João P.", 5),
        (3, "Sofia L.", 0),
    ]
    assert [e.is_current_user for e in board] == [False, True, False]


def test_ranks_are_dense(user_rows, meal_rows, november) -> None:
    board = rank_users(user_rows, meal_rows, november, viewer_id=None)
    assert sorted(e.rank for e in board) == list(range(1, len(user_rows) + 1))


def test_ties_keep_user_order(november) -> None:
    users = [{"User_ID": i, "Nome": f"U{i}", "Calorias_alvo": 2000} for i in (5, 3, 9)]
    board = rank_users(users, [], november, viewer_id=3)
    assert [e.user_id for e in board] == ["5", "3", "9"]
    assert [e.rank for e in board] == [1, 2, 3]


def test_monthly_scale_is_uncapped(november) -> None:
    users = [{"User_ID": 1, "Nome": "Big", "Calorias_alvo": 100}]
    meals = [{"User_ID": 1, "Data": "2025-11-01", "Calorias": 6000}]
    assert rank_users(users, meals, november, viewer_id=1)[0].score == 2000


def test_daily_scale_is_capped() -> None:
    day = period_for_day(date(2025, 11, 5), "day")
    users = [{"User_ID": 1, "Nome": "A", "Calorias_alvo": 2000},
             {"User_ID": 2, "Nome": "B", "Calorias_alvo": 2000}]
    meals = [
        {"User_ID": 1, "Data": "2025-11-05 12:00", "Calorias": 5000},
        {"User_ID": 2, "Data": "2025-11-05 12:00", "Calorias": 1000},
        {"User_ID": 2, "Data": "2025-11-04 12:00", "Calorias": 1000},
    ]
    board = rank_users(users, meals, day, viewer_id="2")
    assert [(e.name, e.score) for e in board] == [("A", 100), ("B", 50)]
    assert board[1].is_current_user


def test_missing_goal_defaults_to_2000(november) -> None:
    users = [{"User_ID": 1, "Nome": "NoGoal", "Calorias_alvo": 0}]
    meals = [{"User_ID": 1, "Data": "2025-11-01", "Calorias": 30000}]
    assert rank_users(users, meals, november, viewer_id=None)[0].score == 500


def test_case_insensitive_fields_and_string_ids(november) -> None:
    users = [{"user_id": "77", "NOME": "Case", "calorias_alvo": "2000"}]
    meals = [{"user_id": 77, "data": "2025-11-02", "calorias": "6000"}]
    board = rank_users(users, meals, november, viewer_id=77)
    assert board[0].score == 100
    assert board[0].is_current_user


def test_name_and_avatar_fallbacks(november) -> None:
    board = rank_users([{"User_ID": 1}], [], november, viewer_id=None)
    assert board[0].name == "User"
    assert board[0].avatar_url == "https://ui-avatars.com/api/?name=User&background=random"
    assert avatar_for("Ana Lu") == "https://ui-avatars.com/api/?name=Ana%20Lu&background=random"
    assert avatar_for("Ana", " https://img/a.png ") == "https://img/a.png"


def test_empty_inputs(november) -> None:
    assert rank_users([], [], november, viewer_id=1) == []


def test_attainment_score() -> None:
    assert attainment_score(100, 0, (1000, None)) == 0
    assert attainment_score(1000, 2000, (100, 100)) == 50
    assert attainment_score(5000, 2000, (100, 100)) == 100


def test_podium_appends_viewer_below_top(november) -> None:
    users = [{"User_ID": i, "Nome": f"U{i}", "Calorias_alvo": 2000} for i in range(1, 6)]
    meals = [{"User_ID": i, "Data": "2025-11-01", "Calorias": 1000 * (6 - i)} for i in range(1, 6)]
    board = rank_users(users, meals, november, viewer_id=5)
    top = podium(board)
    assert [e.rank for e in top] == [1, 2, 3, 5]
    assert find_viewer(board).rank == 5

    board = rank_users(users, meals, november, viewer_id=2)
    assert [e.rank for e in podium(board)] == [1, 2, 3]


def test_non_iso_meal_dates_count_toward_period(november) -> None:
    users = [{"User_ID": 1, "Nome": "Ana", "Calorias_alvo": 100}]
    meals = [
        {"User_ID": 1, "Data": "2025/11/06 10:00", "Calorias": 1500},
        {"User_ID": 1, "Data": "2025/12/01 10:00", "Calorias": 9000},
    ]
    assert rank_users(users, meals, november, viewer_id=1)[0].score == 500
