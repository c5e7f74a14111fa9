"""Date manipulation utilities"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def daraja_timestamp(moment: Optional[datetime] = None) -> str:
    """Daraja request timestamp, YYYYMMDDHHMMSS"""
    return (moment or utc_now()).strftime("%Y%m%d%H%M%S")

