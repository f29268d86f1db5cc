# backend/utils/time_utils.py
from datetime import datetime, timezone


# Canonical timestamps are UTC-naive, matching what SQLite hands back
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
