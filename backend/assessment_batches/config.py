"""
Runtime configuration read from environment variables.

Values are resolved once at import time. Every setting has a default that
works for local development against SQLite.
"""

import os

# Database URL (PostgreSQL in production, SQLite fallback locally)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./assessment_batches.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# ──────────────────────────────────────────────────────────────
# Commit behaviour for stores without multi-row transactions
# ──────────────────────────────────────────────────────────────
COMMIT_MAX_ATTEMPTS = int(os.getenv("COMMIT_MAX_ATTEMPTS", "3"))
COMMIT_BACKOFF_SECONDS = float(os.getenv("COMMIT_BACKOFF_SECONDS", "0.2"))
# When enabled, each record update is rejected if its version changed since load
COMMIT_CHECK_VERSIONS = os.getenv("COMMIT_CHECK_VERSIONS", "false").lower() in ("1", "true", "yes")

# Comma-separated role names allowed to edit and delete batches
PRIVILEGED_ROLES = [
    r.strip().lower()
    for r in os.getenv("PRIVILEGED_ROLES", "admin,head_coach,master").split(",")
    if r.strip()
]

# ──────────────────────────────────────────────────────────────
# Open edit sessions are kept in process memory
# ──────────────────────────────────────────────────────────────
# Seconds without any access after which a session is dropped
SESSION_IDLE_TTL_SECONDS = float(os.getenv("SESSION_IDLE_TTL_SECONDS", "3600"))
# Oldest idle sessions are dropped beyond this many
SESSION_MAX_OPEN = int(os.getenv("SESSION_MAX_OPEN", "200"))
