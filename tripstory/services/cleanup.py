"""Watchdog for trips stuck in processing, and out-of-band cancellation.

Neither stops in-flight oracle calls; they only force the persisted status so
late writes from an abandoned run no longer matter to observers.
"""
import asyncio
import logging
from datetime import datetime

from tripstory.config import settings
from tripstory.schemas.events import status_event
from tripstory.schemas.status import ProcessingStatus
from tripstory.schemas.trip import TripState
from tripstory.services.progress import ProgressBus
from tripstory.services.store import TripStore
from tripstory.utils.exceptions import AppException

logger = logging.getLogger(__name__)


async def sweep_stale_trips(
    store: TripStore,
    bus: ProgressBus,
    threshold_minutes: int | None = None,
    now: datetime | None = None,
) -> list[str]:
    """Force-fail trips that have sat in processing longer than the threshold."""
    threshold = threshold_minutes or settings.stale_processing_minutes
    stale = await store.find_stale_trips(threshold, now=now)
    if not stale:
        logger.debug("No trips stuck in processing")
        return []

    logger.warning("Found %d trip(s) stuck in processing for over %d minutes", len(stale), threshold)
    failed: list[str] = []
    for trip in stale:
        try:
            await store.set_trip_status(trip.id, ProcessingStatus.FAILED)
        except Exception:
            logger.exception("Failed to mark stuck trip %s as failed", trip.id)
            continue
        bus.publish(trip.id, status_event(ProcessingStatus.FAILED, "Processing timed out"))
        logger.warning("Marked trip %s as failed (last update %s)", trip.id, trip.updated_at)
        failed.append(trip.id)
    return failed


async def run_periodic_cleanup(store: TripStore, bus: ProgressBus, interval_minutes: int | None = None) -> None:
    """Sweep once immediately, then every ``interval_minutes`` until cancelled."""
    interval = (interval_minutes or settings.cleanup_interval_minutes) * 60
    logger.info("Starting periodic cleanup every %d seconds", interval)
    while True:
        try:
            await sweep_stale_trips(store, bus)
        except Exception:
            logger.exception("Periodic cleanup failed")
        await asyncio.sleep(interval)


async def cancel_trip(store: TripStore, bus: ProgressBus, trip_id: str) -> TripState:
    trip = await store.require_trip(trip_id)
    if trip.processing_status not in (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING):
        raise AppException(f"Trip is not processing (status: {trip.processing_status.value})", status_code=409)

    updated = await store.set_trip_status(trip_id, ProcessingStatus.FAILED)
    bus.publish(trip_id, status_event(ProcessingStatus.FAILED, "Processing cancelled"))
    logger.info("[Trip %s] Processing cancelled", trip_id)
    return updated
