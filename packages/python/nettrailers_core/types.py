from datetime import datetime, timezone
from enum import Enum
from typing import Callable

ContentId = int
GenreId = int
EpochMs = int

Clock = Callable[[], datetime]


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(ts: datetime) -> EpochMs:
    """Convert a datetime to epoch milliseconds (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return int(ts.timestamp() * 1000)
