from __future__ import annotations

import datetime


def now_epoch() -> int:
    """Current UTC time as integer epoch seconds (the stored timestamp format)."""
    return int(datetime.datetime.now(datetime.UTC).timestamp())
