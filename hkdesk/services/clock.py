import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

_clock_lock = threading.Lock()
_last_timestamp: Optional[datetime] = None


def next_timestamp() -> datetime:
    """UTC now, strictly greater than any value previously returned in this process."""
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_timestamp is not None and now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now
