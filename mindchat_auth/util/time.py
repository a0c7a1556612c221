from __future__ import annotations

import time
from datetime import datetime, timezone


def utcnow_iso() -> str:
    """Current UTC time as ISO-8601 string with Z."""
    return epoch_to_iso(time.time())


def epoch_to_iso(ts: float) -> str:
    """Epoch seconds -> ISO-8601 string with millisecond precision and trailing Z."""
    dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
