# backend/cashledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Local store: SQLite file in the instance folder unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///cashledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Memoized event replay, keyed by (register_id, last_event_id)
    LEDGER_CACHE_ENABLED = _env_bool("LEDGER_CACHE_ENABLED", True)
    LEDGER_CACHE_MAX_ENTRIES = int(os.environ.get("LEDGER_CACHE_MAX_ENTRIES", "1024"))

    # How far ahead of the server clock a caller-supplied occurred_at may be
    LEDGER_MAX_CLOCK_SKEW_SECONDS = int(os.environ.get("LEDGER_MAX_CLOCK_SKEW_SECONDS", "300"))

    # Remote event store. Unset means the terminal runs offline-only and the
    # outbox simply accumulates.
    REMOTE_STORE_URL = os.environ.get("REMOTE_STORE_URL")
    REMOTE_STORE_TOKEN = os.environ.get("REMOTE_STORE_TOKEN")
    REMOTE_STORE_TIMEOUT = float(os.environ.get("REMOTE_STORE_TIMEOUT", "5.0"))

    # Outbox reconciler
    OUTBOX_BATCH_SIZE = int(os.environ.get("OUTBOX_BATCH_SIZE", "50"))
    OUTBOX_BACKOFF_BASE = float(os.environ.get("OUTBOX_BACKOFF_BASE", "2.0"))
    OUTBOX_BACKOFF_MAX = float(os.environ.get("OUTBOX_BACKOFF_MAX", "300"))
    OUTBOX_LEASE_SECONDS = int(os.environ.get("OUTBOX_LEASE_SECONDS", "60"))
    OUTBOX_AUTO_DRAIN = _env_bool("OUTBOX_AUTO_DRAIN", False)
    OUTBOX_DRAIN_INTERVAL = float(os.environ.get("OUTBOX_DRAIN_INTERVAL", "30"))
