"""Day-by-day and whole-trip narrative composition.

Both stages read persisted state, not in-memory results from earlier phases.
"""
import logging
import time

from tripstory.schemas.photo import PhotoRecord
from tripstory.schemas.trip import DayItineraryRecord, TripState
from tripstory.services.batching import run_all
from tripstory.services.clustering import DayBucket, chronological
from tripstory.services.geo import route_distance_km
from tripstory.services.narrative import TripNarrator
from tripstory.services.store import TripStore
from tripstory.utils.exceptions import PipelineError

logger = logging.getLogger(__name__)


def persisted_day_buckets(photos: list[PhotoRecord]) -> list[DayBucket]:
    """Rebuild day buckets from the day numbers stored on photos."""
    by_day: dict[int, list[PhotoRecord]] = {}
    for photo in photos:
        if photo.day_number is not None and photo.captured_at is not None:
            by_day.setdefault(photo.day_number, []).append(photo)
    buckets = []
    for day_number in sorted(by_day):
        ordered = chronological(by_day[day_number])
        buckets.append(DayBucket(day_number, ordered[0].captured_at.date(), ordered))
    return buckets


class ComposeResult:
    def __init__(self, succeeded: list[DayItineraryRecord], failed: list[int], skipped: list[int]):
        self.succeeded = succeeded
        self.failed = failed
        self.skipped = skipped


class ItineraryComposer:
    def __init__(self, store: TripStore, narrator: TripNarrator):
        self.store = store
        self.narrator = narrator

    async def compose_days(self, trip_id: str) -> ComposeResult:
        """Summarize every day that has at least one described photo.

        All days run at once. Failed days are logged and skipped; the stage only
        raises when every attempted day failed.
        """
        photos = await self.store.list_photos(trip_id)
        buckets = persisted_day_buckets(photos)
        await self.store.prune_itineraries(trip_id, {b.day_number for b in buckets})

        eligible: list[DayBucket] = []
        skipped: list[int] = []
        for bucket in buckets:
            described = [p for p in bucket.photos if p.description is not None]
            if described:
                eligible.append(DayBucket(bucket.day_number, bucket.date, described))
                logger.info("[Trip %s] Day %d: %d photos with descriptions", trip_id, bucket.day_number, len(described))
            else:
                skipped.append(bucket.day_number)
                logger.warning("[Trip %s] Day %d has no photos with descriptions, skipping", trip_id, bucket.day_number)

        outcomes = await run_all(eligible, lambda bucket: self._compose_day(trip_id, bucket))

        succeeded = [o.value for o in outcomes if o.ok]
        failed = [o.item.day_number for o in outcomes if not o.ok]
        for outcome in outcomes:
            if not outcome.ok:
                logger.error(
                    "[Trip %s] Day %d: failed to generate itinerary: %s",
                    trip_id, outcome.item.day_number, outcome.error,
                )

        logger.info(
            "[Trip %s] Day itinerary generation complete: %d succeeded, %d failed, %d skipped",
            trip_id, len(succeeded), len(failed), len(skipped),
        )
        if failed and not succeeded:
            raise PipelineError(f"All day itinerary generations failed ({len(failed)} days)")
        return ComposeResult(succeeded, failed, skipped)

    async def _compose_day(self, trip_id: str, bucket: DayBucket) -> DayItineraryRecord:
        started = time.monotonic()
        distance = route_distance_km(
            (p.location.latitude, p.location.longitude) if p.location else None for p in bucket.photos
        )
        summary = await self.narrator.summarize_day(bucket.photos, distance)
        record = await self.store.upsert_itinerary(trip_id, bucket.day_number, bucket.date, summary)
        logger.info(
            "[Trip %s] Day %d: itinerary generated in %.1fs (title: %s)",
            trip_id, bucket.day_number, time.monotonic() - started, summary.title,
        )
        return record

    async def compose_overview(self, trip: TripState) -> TripState:
        """Roll every persisted day itinerary into the trip overview and return the updated trip."""
        itineraries = await self.store.list_itineraries(trip.id)
        if not itineraries:
            raise PipelineError("No day itineraries available for trip overview")

        photos = await self.store.list_photos(trip.id)
        day_numbers = {p.day_number for p in photos if p.day_number is not None}
        missing = sorted(day_numbers - {i.day_number for i in itineraries})
        if missing:
            logger.warning(
                "[Trip %s] Days with photos but no itinerary: %s. Proceeding with available itineraries.",
                trip.id, ", ".join(str(d) for d in missing),
            )

        overview = await self.narrator.summarize_trip(itineraries, photos)

        updates: dict = {"overview": overview}
        ordered = chronological(photos)
        if ordered:
            updates["start_date"] = ordered[0].captured_at.date()
            updates["end_date"] = ordered[-1].captured_at.date()
        if overview.title:
            updates["name"] = overview.title

        updated = await self.store.update_trip(trip.id, **updates)
        logger.info("[Trip %s] Overview saved (title: %s)", trip.id, overview.title)
        return updated
