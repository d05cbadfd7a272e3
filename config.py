import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Global Config
# Populated by load_settings(); the defaults below keep the core usable in tests.
BACKEND = "local"  # 'local' (SQLite) or 'supabase'
DATA_FOLDER: Optional[Path] = None
DB_FILE: Optional[Path] = None
LOG_FILE: Optional[Path] = None
LOG_LEVEL = "INFO"

# Remote data store (Supabase)
SUPABASE_URL: Optional[str] = None
SUPABASE_KEY: Optional[str] = None

# Payment links (Stripe)
STRIPE_SECRET_KEY: Optional[str] = None
STRIPE_CURRENCY = "inr"
APP_URL = "http://localhost:3000"

# Recommendations (any OpenAI-compatible endpoint, Groq by default)
AI_API_KEY: Optional[str] = None
AI_BASE_URL = "https://api.groq.com/openai/v1"
AI_MODEL = "llama-3.3-70b-versatile"

# Member lifecycle
QR_PREFIX = "MDQR_"
REMINDER_WINDOW_DAYS = 7

# Cache behaviour
REFRESH_MIN_INTERVAL = 2.0  # seconds between notification-driven refreshes
ACTIVITY_LOG_LIMIT = 100


def load_settings(env_file: Optional[str] = None) -> None:
    """
    Loads settings from the environment (and an optional .env file) into this module.

    Args:
        env_file (str, optional): Path to a .env file. Defaults to python-dotenv's search.
    """
    global BACKEND, DATA_FOLDER, DB_FILE, LOG_FILE, LOG_LEVEL
    global SUPABASE_URL, SUPABASE_KEY, STRIPE_SECRET_KEY, STRIPE_CURRENCY, APP_URL
    global AI_API_KEY, AI_BASE_URL, AI_MODEL, REFRESH_MIN_INTERVAL

    load_dotenv(env_file)

    BACKEND = os.getenv("GYMDESK_BACKEND", BACKEND).strip().lower()

    # Data folder holds the SQLite file and the log file
    DATA_FOLDER = Path(os.getenv("GYMDESK_DATA_DIR", str(Path.home() / "GymDesk")))
    DB_FILE = DATA_FOLDER / "gymdesk.db"
    LOG_FILE = DATA_FOLDER / "logs" / "gymdesk.log"
    LOG_LEVEL = os.getenv("LOG_LEVEL", LOG_LEVEL).upper()

    SUPABASE_URL = os.getenv("SUPABASE_URL")
    SUPABASE_KEY = os.getenv("SUPABASE_KEY")

    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", STRIPE_CURRENCY).lower()
    APP_URL = os.getenv("APP_URL", APP_URL).rstrip("/")

    AI_API_KEY = os.getenv("AI_API_KEY")
    AI_BASE_URL = os.getenv("AI_BASE_URL", AI_BASE_URL)
    AI_MODEL = os.getenv("AI_MODEL", AI_MODEL)

    try:
        REFRESH_MIN_INTERVAL = float(os.getenv("REFRESH_MIN_INTERVAL", REFRESH_MIN_INTERVAL))
    except ValueError:
        # Keep the default if the env value is not a number
        pass
