from __future__ import annotations

import datetime as dt
import time
from typing import Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def now_ms() -> float:
    return time.time() * 1000.0


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def format_ts(ts: Optional[dt.datetime] = None) -> str:
    return (ts or utcnow()).strftime(ISO_FORMAT)


def parse_ts(value: str) -> dt.datetime:
    return dt.datetime.strptime(value, ISO_FORMAT).replace(tzinfo=dt.timezone.utc)


__all__ = ["now_ms", "utcnow", "format_ts", "parse_ts"]
