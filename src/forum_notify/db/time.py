# src/forum_notify/db/time.py
"""Time utilities for database models.

Forum records store integer UNIX timestamps so that ``0`` can act as the
"unbounded" sentinel for visibility windows.
"""

import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo


def unix_now() -> int:
    """Return the current time as whole UNIX seconds."""
    return int(time.time())


def local_midnight(timestamp: int, timezone: str) -> int:
    """Return the UNIX time of midnight, in ``timezone``, of the day containing ``timestamp``."""
    zone = ZoneInfo(timezone)
    local = datetime.fromtimestamp(timestamp, tz=zone)
    midnight = datetime(local.year, local.month, local.day, tzinfo=zone)
    return int(midnight.timestamp())


def digest_cutoff(timestamp: int, timezone: str, hour: int) -> int:
    """Return today's digest send time: local midnight plus ``hour`` hours."""
    return local_midnight(timestamp, timezone) + int(timedelta(hours=hour).total_seconds())
