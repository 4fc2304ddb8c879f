import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    v = (os.getenv(name) or "").strip().lower()
    if not v:
        return default
    return v in {"1", "true", "yes", "y", "on"}


# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "form_builder")

# --- Public surface ---
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:3000")  # Where the public renderer lives
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "*")

# --- Admission control ---
RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", True)
RATE_LIMIT_WINDOW_MINUTES = int(os.getenv("RATE_LIMIT_WINDOW_MINUTES", "15"))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
SUBMISSION_RATE_LIMIT_MAX = int(os.getenv("SUBMISSION_RATE_LIMIT_MAX", "10"))

DEFAULT_RATE_LIMIT = f"{RATE_LIMIT_MAX_REQUESTS}/{RATE_LIMIT_WINDOW_MINUTES}minutes"
SUBMISSION_RATE_LIMIT = f"{SUBMISSION_RATE_LIMIT_MAX}/{RATE_LIMIT_WINDOW_MINUTES}minutes"

# --- Misc ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", "8000"))
