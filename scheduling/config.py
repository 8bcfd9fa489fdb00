"""Configuration for the clinic scheduling service.

Business constants live here; deployment settings come from the environment
(a local .env file is honoured) so they can change without touching code.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value not in (None, "") else default


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///scheduling.db")
DB_POOL_SIZE = _env_int("DB_POOL_SIZE", 5)
DB_MAX_OVERFLOW = _env_int("DB_MAX_OVERFLOW", 10)
DB_POOL_TIMEOUT = _env_int("DB_POOL_TIMEOUT", 30)  # Connection acquisition timeout
DEBUG_SQL = _env_flag("DEBUG_SQL")

# Daily slot grid: nine hourly slots, 08:00 - 16:00
SLOT_GRID = {
    "start_hour": _env_int("SLOT_GRID_START_HOUR", 8),
    "slot_count": _env_int("SLOT_GRID_SLOT_COUNT", 9),
    "step_minutes": _env_int("SLOT_GRID_STEP_MINUTES", 60),
}

# Ordinal assignment retries after losing a concurrent insert
ORDINAL_MAX_ATTEMPTS = _env_int("ORDINAL_MAX_ATTEMPTS", 3)

# Notification worker
NOTIFIER = {
    "queue_size": _env_int("NOTIFIER_QUEUE_SIZE", 1000),
    "max_attempts": _env_int("NOTIFIER_MAX_ATTEMPTS", 3),
    "backoff_min": _env_float("NOTIFIER_BACKOFF_MIN", 1.0),
    "backoff_max": _env_float("NOTIFIER_BACKOFF_MAX", 8.0),
    "shutdown_timeout": _env_float("NOTIFIER_SHUTDOWN_TIMEOUT", 5.0),
}

CLINIC_NAME = os.getenv("CLINIC_NAME", "Clinica Salud Total")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# API Configuration
API_PORT = _env_int("PORT", 3000)
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


def default_slot_grid() -> list[str]:
    """
    Build the fixed daily grid of slot times.

    Returns:
        Ascending "HH:MM" strings (default: 08:00 ... 16:00)
    """
    start = SLOT_GRID["start_hour"] * 60
    step = SLOT_GRID["step_minutes"]
    times = []
    for index in range(SLOT_GRID["slot_count"]):
        minutes = start + index * step
        if minutes >= 24 * 60:
            break
        times.append(f"{minutes // 60:02d}:{minutes % 60:02d}")
    return times
