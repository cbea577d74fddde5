"""
Timestamps.

The journal stamps entries in UTC with millisecond precision and an
explicit Z suffix: YYYY-MM-DDTHH:MM:SS.mmmZ. The escrow program and the
match store count unix seconds, with 0 meaning "not yet"; those are
rendered in the same format for operator output.
"""

from datetime import datetime, timezone
from typing import Optional


def _format(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return _format(moment.astimezone(timezone.utc))


def unix_to_timestamp(seconds: int) -> Optional[str]:
    if not seconds:
        return None
    return _format(datetime.fromtimestamp(seconds, timezone.utc))
