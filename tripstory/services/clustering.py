"""Group photos into ordinal trip days by capture date.

The calendar date is the wall-clock date recorded with the photo. An offset,
if the timestamp carries one, is ignored rather than converted, so a photo
taken at 23:30 local time stays on that local day.
"""
import logging
from datetime import date, datetime

from tripstory.schemas.photo import PhotoRecord
from tripstory.services.store import TripStore

logger = logging.getLogger(__name__)


class DayBucket:
    def __init__(self, day_number: int, day_date: date, photos: list[PhotoRecord]):
        self.day_number = day_number
        self.date = day_date
        self.photos = photos

    def __repr__(self) -> str:
        return f"DayBucket(day_number={self.day_number}, date={self.date}, photos={len(self.photos)})"


def wall_clock(timestamp: datetime) -> datetime:
    return timestamp.replace(tzinfo=None)


def chronological(photos: list[PhotoRecord]) -> list[PhotoRecord]:
    """Photos with a capture time, oldest first; ties keep their input order."""
    return sorted((p for p in photos if p.captured_at), key=lambda p: wall_clock(p.captured_at))


def cluster_by_day(photos: list[PhotoRecord]) -> list[DayBucket]:
    """Pure grouping: distinct capture dates ascending, numbered 1..M."""
    by_date: dict[date, list[PhotoRecord]] = {}
    for photo in chronological(photos):
        by_date.setdefault(photo.captured_at.date(), []).append(photo)

    return [
        DayBucket(day_number, day_date, by_date[day_date])
        for day_number, day_date in enumerate(sorted(by_date), start=1)
    ]


async def assign_day_numbers(store: TripStore, trip_id: str, photos: list[PhotoRecord]) -> list[DayBucket]:
    """Recompute and persist every photo's day number from scratch.

    Photos without a capture time are cleared to no day.
    """
    buckets = cluster_by_day(photos)
    assignments = {p.id: b.day_number for b in buckets for p in b.photos}

    logger.info(
        "[Trip %s] Found %d unique day(s): %s",
        trip_id, len(buckets), ", ".join(b.date.isoformat() for b in buckets),
    )
    for photo in photos:
        day_number = assignments.get(photo.id)
        if photo.day_number != day_number:
            await store.set_day_number(photo.id, day_number)

    for bucket in buckets:
        logger.info("[Trip %s] Day %d: %d photos from %s", trip_id, bucket.day_number, len(bucket.photos), bucket.date)
    unassigned = len(photos) - len(assignments)
    if unassigned:
        logger.warning("[Trip %s] %d photo(s) have no capture time and were left unassigned", trip_id, unassigned)
    return buckets
