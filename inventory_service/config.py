# inventory_service/config.py

"""
Runtime configuration for the Inventory Service.
Values are read from environment variables, with defaults for local/dev.
"""
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        return default


# Database settings
POSTGRES_USER = os.getenv("POSTGRES_USER", "postgres")
POSTGRES_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
POSTGRES_DB = os.getenv("POSTGRES_DB", "product_management")
POSTGRES_HOST = os.getenv("POSTGRES_HOST", "localhost")
POSTGRES_PORT = os.getenv("POSTGRES_PORT", "5432")

# A full URL wins over the individual components
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql://"
    f"{POSTGRES_USER}:{POSTGRES_PASSWORD}@"
    f"{POSTGRES_HOST}:{POSTGRES_PORT}/{POSTGRES_DB}",
)

DB_CONNECT_RETRIES = max(1, _env_int("DB_CONNECT_RETRIES", 5))
DB_RETRY_DELAY_SECONDS = _env_float("DB_RETRY_DELAY_SECONDS", 2.0)
SEED_DATABASE = _env_bool("SEED_DATABASE", True)

# Availability / fallback behaviour
ENABLE_MEMORY_FALLBACK = _env_bool("ENABLE_MEMORY_FALLBACK", True)
REPROBE_INTERVAL_SECONDS = _env_float("REPROBE_INTERVAL_SECONDS", 15.0)
REPROBE_MAX_INTERVAL_SECONDS = _env_float("REPROBE_MAX_INTERVAL_SECONDS", 300.0)

# Reports
LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Login credentials
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")
