import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env reliably both locally and on server (regardless of current working directory)
BASE_DIR = Path(__file__).resolve().parents[1]  # project root
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH if ENV_PATH.exists() else None)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw.lstrip("-").isdigit() else default


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _default_sqlite_url() -> str:
    db_file = BASE_DIR / "prizewheel.sqlite3"
    # SQLAlchemy expects sqlite:///C:/path on Windows and sqlite:////abs/path on Linux/mac
    return f"sqlite:///{db_file.resolve().as_posix()}"


DB_URL = os.getenv("DB_URL", "").strip() or _default_sqlite_url()

BOT_TOKEN = os.getenv("BOT_TOKEN", "").strip()
ADMIN_KEY = os.getenv("ADMIN_KEY", "prizewheel-admin-dev").strip()

# All daily rules (quota, bonus, claim idempotency) use this single offset.
REFERENCE_UTC_OFFSET_HOURS = _int_env("REFERENCE_UTC_OFFSET_HOURS", 7)

BASE_DAILY_SPINS = _int_env("BASE_DAILY_SPINS", 1)
SPIN_RACE_RETRIES = _int_env("SPIN_RACE_RETRIES", 1)
NO_WIN_KIND = os.getenv("NO_WIN_KIND", "LOSE").strip() or "LOSE"

CLAIM_CODE_PREFIX = os.getenv("CLAIM_CODE_PREFIX", "GIFT-")
CLAIM_CODE_LENGTH = _int_env("CLAIM_CODE_LENGTH", 8)

# FORCE_RESEED=1 wipes and re-creates the prize slots on startup
FORCE_RESEED = _bool_env("FORCE_RESEED")

RATE_LIMIT_PER_MINUTE = _int_env("RATE_LIMIT_PER_MINUTE", 20)

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = _int_env("API_PORT", 4000)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
