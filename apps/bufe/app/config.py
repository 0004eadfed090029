import os
from datetime import date, datetime
from typing import Dict, Tuple
from zoneinfo import ZoneInfo


def _env_or(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v is not None else default


ENV = _env_or("ENV", "dev").lower()
SERVICE_NAME = "bufe-pos"

DB_URL = _env_or("BUFE_DB_URL", _env_or("DB_URL", "sqlite+pysqlite:////tmp/bufe.db"))
# Seconds a writer waits for the SQLite lock before failing.
DB_BUSY_TIMEOUT = float(_env_or("BUFE_DB_BUSY_TIMEOUT", "15"))

# Business day boundaries (order dates, end-of-day) follow this zone.
TIMEZONE = ZoneInfo(_env_or("BUFE_TIMEZONE", "UTC"))

TOKEN_SECRET = _env_or("BUFE_TOKEN_SECRET", "change-me-bufe-token")
TOKEN_TTL_MINUTES = int(_env_or("BUFE_TOKEN_TTL_MINUTES", "720"))

ALLOWED_ORIGINS = _env_or("ALLOWED_ORIGINS", "")


def _enforce_token_secret_baseline() -> None:
    """
    Refuse to start outside dev/test with the default signing secret, so
    bearer tokens for end-of-day and cost admin cannot be forged.
    """
    if ENV not in ("dev", "test") and TOKEN_SECRET == "change-me-bufe-token":
        raise RuntimeError("BUFE_TOKEN_SECRET must be set in non-dev environments")


_enforce_token_secret_baseline()


def parse_users(raw: str) -> Dict[str, Tuple[str, str]]:
    """`user:password:role,...` -> {user: (password, role)}; role defaults to admin."""
    users: Dict[str, Tuple[str, str]] = {}
    for entry in raw.split(","):
        parts = [p.strip() for p in entry.split(":")]
        if len(parts) < 2 or not parts[0] or not parts[1]:
            continue
        role = parts[2] if len(parts) > 2 and parts[2] else "admin"
        users[parts[0]] = (parts[1], role)
    return users


USERS = parse_users(_env_or("BUFE_USERS", "admin:admin:admin" if ENV in ("dev", "test") else ""))


def is_prod_env() -> bool:
    return _env_or("ENV", "dev").strip().lower() in ("prod", "production", "staging")


def local_now() -> datetime:
    """Wall-clock time of the counter, stored naive so SQLite compares it as text."""
    return datetime.now(TIMEZONE).replace(tzinfo=None)


def business_today() -> date:
    return local_now().date()
