"""
Configuration for the nutrition dashboard: data source, goals and targets.
"""
from __future__ import annotations
import os

from dotenv import load_dotenv

load_dotenv()

VERSION = "1.4"

# === DATA SOURCE ===
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")

USERS_TABLE = os.getenv("NUTRIBOT_USERS_TABLE", "NutriBot_User")
MEALS_TABLE = os.getenv("NUTRIBOT_MEALS_TABLE", "Refeições_NutriBot")

# Enough rows to cover a whole month of logging
MEAL_FETCH_LIMIT = int(os.getenv("NUTRIBOT_MEAL_FETCH_LIMIT", "100"))

# === FIELD NAMES ===
# Canonical field -> column name(s) in the store. Lookups are case-insensitive,
# aliases are tried in order.
MEAL_FIELDS = {
    "id": ("id",),
    "user_id": ("User_ID",),
    "date": ("Data",),
    "name": ("Nome",),
    "description": ("Descrição_da_refeição", "Descricao_da_refeicao"),
    "calories": ("Calorias",),
    "protein": ("Proteinas",),
    "carbs": ("Carboidratos",),
    "fat": ("Gorduras",),
}

USER_FIELDS = {
    "id": ("User_ID",),
    "name": ("Nome",),
    "age": ("Idade",),
    "weight": ("Peso_kg",),
    "height": ("Altura_cm",),
    "goal_calories": ("Calorias_alvo",),
    "goal_protein": ("Proteína_alvo", "Proteina_alvo"),
    "avatar_url": ("Avatar_URL",),
}

# === LABELS ===
EMPTY_NAME_SENTINEL = "EMPTY"
UNNAMED_MEAL_LABEL = "Unnamed meal"
DETAILED_MEAL_LABEL = "Detailed meal"
RECENT_LABEL = "Recent"
DEFAULT_USER_NAME = "User"
DESCRIPTION_MAX_CHARS = 100

# === PERIOD ===
# "month": goals and ranking over the calendar month of the latest meal
# "day": goals and ranking over the day of the latest meal
PERIOD_MODE = os.getenv("NUTRIBOT_PERIOD_MODE", "month")

# === GOALS ===
DEFAULT_DAILY_CALORIES = 2000
FAT_ENERGY_SHARE = 0.30
KCAL_PER_G_PROTEIN = 4
KCAL_PER_G_CARBS = 4
KCAL_PER_G_FAT = 9

DEFAULT_PROFILE = {
    "id": "",
    "name": "Alex Silva",
    "age": 28,
    "weight": 74.5,  # kg
    "height": 178,  # cm
    "goal_calories": 2500,
    "goal_protein": 180,  # g
    "avatar_url": "https://picsum.photos/seed/alex/200/200",
}

# === LEADERBOARD ===
# month: round(total / goal * 1000), uncapped
# day: min(100, round(total / goal * 100))
SCORE_SCALES = {
    "month": (1000, None),
    "day": (100, 100),
}
AVATAR_FALLBACK_URL = "https://ui-avatars.com/api/?name={name}&background=random"
PODIUM_SIZE = 3

# === LIVE UPDATES ===
LIVE_REFRESH_SECONDS = 5
FEED_IDLE_SECONDS = 60  # feeds no open page has refreshed for this long are stopped
FEED_REAP_SECONDS = 30

# === LOGGING ===
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# === UI CONFIG ===
THEME = {
    "calories": "#10b981",
    "protein": "#84cc16",
    "carbs": "#f59e0b",
    "fat": "#f43f5e",
    "empty": "#1a1a2e",
    "accent_positive": "#00C853",
    "accent_neutral": "#9E9E9E",
}
