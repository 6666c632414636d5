"""Trip processing pipeline.

Sequences photo enrichment, day clustering, day itineraries and the trip
overview, owns the trip status transitions, and streams progress to
subscribers. Callers must not start two runs for the same trip at once.
"""
import logging
import time

from tripstory.schemas.events import (
    DayHeadline,
    SummaryData,
    SummaryEvent,
    TripEvent,
    narration_started_event,
    progress_event,
    status_event,
)
from tripstory.schemas.status import PipelineStep, ProcessingStatus
from tripstory.schemas.trip import TripState
from tripstory.services.clustering import assign_day_numbers
from tripstory.services.enrichment import PhotoEnricher
from tripstory.services.geocoding import Geocoder
from tripstory.services.itinerary import ItineraryComposer
from tripstory.services.narration import NarrationService
from tripstory.services.narrative import TripNarrator
from tripstory.services.progress import ProgressBus, progress_bus
from tripstory.services.storage import ImageStore, image_store
from tripstory.services.store import TripStore, trip_store
from tripstory.services.vision import PhotoDescriber
from tripstory.utils.exceptions import PipelineError, mask_secrets

logger = logging.getLogger(__name__)

_STARTABLE = (ProcessingStatus.NOT_STARTED, ProcessingStatus.PENDING)


class TripPipeline:
    def __init__(
        self,
        store: TripStore,
        enricher: PhotoEnricher,
        composer: ItineraryComposer,
        bus: ProgressBus,
        narration: NarrationService,
    ):
        self.store = store
        self.enricher = enricher
        self.composer = composer
        self.bus = bus
        self.narration = narration

    def _emit(self, trip_id: str, event: TripEvent) -> None:
        self.bus.publish(trip_id, event)

    async def run(self, trip_id: str) -> TripState:
        """Process a trip end to end. Re-raises whatever made the trip fail."""
        started = time.monotonic()
        logger.info("[Trip %s] Starting trip processing pipeline", trip_id)

        trip = await self.store.transition_trip(trip_id, _STARTABLE, ProcessingStatus.PROCESSING)
        if trip is None:
            current = await self.store.require_trip(trip_id)
            logger.warning("[Trip %s] Not started, trip is %s", trip_id, current.processing_status.value)
            raise PipelineError(f"Trip cannot start processing from status {current.processing_status.value}")

        try:
            self._emit(trip_id, status_event(ProcessingStatus.PROCESSING, "Processing started"))

            trip = await self._timed(trip, "1/4 photos", self._enrich_photos)
            trip = await self._timed(trip, "2/4 clustering", self._cluster_days)
            trip = await self._timed(trip, "3/4 itineraries", self._compose_days)
            trip = await self._timed(trip, "4/4 overview", self._compose_overview)

            await self._current(trip_id)
            trip = await self.store.set_trip_status(trip_id, ProcessingStatus.COMPLETED)
        except Exception as e:
            logger.exception("[Trip %s] Processing failed after %.1fs", trip_id, time.monotonic() - started)
            await self._mark_failed(trip_id)
            message = mask_secrets(str(e)) or "Processing failed"
            self._emit(trip_id, status_event(ProcessingStatus.FAILED, message))
            raise

        logger.info("[Trip %s] All processing steps completed in %.1fs", trip_id, time.monotonic() - started)
        self._emit(trip_id, status_event(ProcessingStatus.COMPLETED, "Processing completed successfully"))
        await self._emit_summary(trip)
        if trip.narration_enabled:
            await self._start_narration(trip_id)
        return trip

    async def _timed(self, trip: TripState, label: str, phase) -> TripState:
        started = time.monotonic()
        trip = await self._current(trip.id)
        logger.info("[Trip %s] Step %s: starting", trip.id, label)
        trip = await phase(trip)
        logger.info("[Trip %s] Step %s: completed in %.1fs", trip.id, label, time.monotonic() - started)
        return trip

    async def _current(self, trip_id: str) -> TripState:
        """Fresh trip snapshot; stops the run if the trip was moved out of processing meanwhile."""
        trip = await self.store.require_trip(trip_id)
        if trip.processing_status != ProcessingStatus.PROCESSING:
            raise PipelineError(f"Processing stopped externally (status: {trip.processing_status.value})")
        return trip

    async def _enrich_photos(self, trip: TripState) -> TripState:
        photos = await self.store.list_photos(trip.id)
        if not photos:
            raise PipelineError("No photos found for trip")
        total = len(photos)
        self._emit(trip.id, progress_event(PipelineStep.PHOTOS, f"Processing {total} photos", total=total, completed=0))

        def report(completed: int, total: int) -> None:
            self._emit(trip.id, progress_event(
                PipelineStep.PHOTOS, f"Processed {completed}/{total} photos", total=total, completed=completed
            ))

        outcomes = await self.enricher.enrich_all(trip.id, photos, on_cohort_settled=report)
        failed = sum(1 for o in outcomes if not o.ok or o.value == ProcessingStatus.FAILED)
        logger.info("[Trip %s] Photo results: %d completed, %d failed", trip.id, total - failed, failed)
        if failed == total:
            raise PipelineError(f"All {total} photos failed processing")
        return trip

    async def _cluster_days(self, trip: TripState) -> TripState:
        self._emit(trip.id, progress_event(PipelineStep.CLUSTERING, "Clustering photos by day"))
        photos = await self.store.list_photos(trip.id)
        described = sum(1 for p in photos if p.description is not None)
        if described < len(photos):
            logger.warning("[Trip %s] %d photo(s) have no description", trip.id, len(photos) - described)
        await assign_day_numbers(self.store, trip.id, photos)
        return trip

    async def _compose_days(self, trip: TripState) -> TripState:
        self._emit(trip.id, progress_event(PipelineStep.ITINERARIES, "Generating day itineraries"))
        await self.composer.compose_days(trip.id)
        return trip

    async def _compose_overview(self, trip: TripState) -> TripState:
        self._emit(trip.id, progress_event(PipelineStep.OVERVIEW, "Generating trip overview"))
        return await self.composer.compose_overview(trip)

    async def _mark_failed(self, trip_id: str) -> None:
        try:
            await self.store.set_trip_status(trip_id, ProcessingStatus.FAILED)
        except Exception:
            logger.exception("[Trip %s] Could not persist failed status", trip_id)

    async def _emit_summary(self, trip: TripState) -> None:
        try:
            photos = await self.store.list_photos(trip.id)
            itineraries = await self.store.list_itineraries(trip.id)
        except Exception:
            logger.exception("[Trip %s] Could not load trip summary", trip.id)
            return

        logger.info("[Trip %s] Final summary: %d photos, %d days, name: %s", trip.id, len(photos), len(itineraries), trip.name)
        self._emit(trip.id, SummaryEvent(data=SummaryData(
            trip_id=trip.id,
            name=trip.name,
            start_date=trip.start_date,
            end_date=trip.end_date,
            status=trip.processing_status,
            total_photos=len(photos),
            total_days=len(itineraries),
            overview=trip.overview,
            days=[DayHeadline(day_number=i.day_number, date=i.date, title=i.summary.title) for i in itineraries],
        )))

    async def _start_narration(self, trip_id: str) -> None:
        logger.info("[Trip %s] Narration enabled, starting narration wizard", trip_id)
        try:
            await self.narration.start(trip_id)
        except Exception:
            logger.exception("[Trip %s] Failed to start narration wizard", trip_id)
            return
        self._emit(trip_id, narration_started_event())


def build_pipeline(
    store: TripStore | None = None,
    bus: ProgressBus | None = None,
    images: ImageStore | None = None,
) -> TripPipeline:
    store = store or trip_store
    narrator = TripNarrator()
    return TripPipeline(
        store=store,
        enricher=PhotoEnricher(store, images or image_store, PhotoDescriber(narrator.llm), Geocoder()),
        composer=ItineraryComposer(store, narrator),
        bus=bus or progress_bus,
        narration=NarrationService(store),
    )
