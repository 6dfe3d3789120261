import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _int_env(name, default=None):
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file next to app.py unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "sav.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Session cookie name for our auth token
    AUTH_COOKIE_NAME = "sav_session"

    # 8 hours session lifetime
    SESSION_LIFETIME_SECONDS = 8 * 60 * 60

    # Idle timeout: 20 minutes
    IDLE_TIMEOUT_SECONDS = 20 * 60

    # Session/cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = False  # set True when using HTTPS

    # Slot scheduling
    SLOT_DEFAULT_DURATION_MINUTES = _int_env("SLOT_DEFAULT_DURATION_MINUTES", 60)
    MAX_SLOT_GENERATION_DAYS = _int_env("MAX_SLOT_GENERATION_DAYS", 92)

    # Pending requests never expire unless set (hours)
    PENDING_REQUEST_TTL_HOURS = _int_env("PENDING_REQUEST_TTL_HOURS")

    # Inventory: default alert threshold of new parts
    LOW_STOCK_THRESHOLD = _int_env("LOW_STOCK_THRESHOLD", 10)

    # Billing (amounts are integers in the smallest currency unit)
    CURRENCY = os.getenv("CURRENCY", "EUR")
    INVOICE_PREFIX = os.getenv("INVOICE_PREFIX", "INV")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # create tables at startup instead of `flask db upgrade` (tests, throwaway databases)
    AUTO_CREATE_SCHEMA = False

    # Basic app settings
    DEBUG = False
