"""Per-photo enrichment: description, location, reconciliation.

A missing description or location never fails a photo. A photo is only
marked failed when something escapes the whole flow, e.g. its image cannot
be read, and that failure never reaches its siblings.
"""
import logging
import time

from tripstory.config import settings
from tripstory.schemas.photo import Location, PhotoRecord
from tripstory.schemas.status import ProcessingStatus
from tripstory.services.batching import CohortCallback, Settled, run_in_cohorts
from tripstory.services.geo import reconcile_locations
from tripstory.services.geocoding import Geocoder
from tripstory.services.storage import ImageStore
from tripstory.services.store import TripStore
from tripstory.services.vision import PhotoDescriber, build_exif_context

logger = logging.getLogger(__name__)


def choose_location(gps: Location | None, vision: Location | None) -> Location | None:
    if gps and vision:
        return reconcile_locations(gps, vision)
    return gps or vision


class PhotoEnricher:
    def __init__(
        self,
        store: TripStore,
        images: ImageStore,
        describer: PhotoDescriber,
        geocoder: Geocoder,
        max_concurrent: int | None = None,
    ):
        self.store = store
        self.images = images
        self.describer = describer
        self.geocoder = geocoder
        self.max_concurrent = max_concurrent or settings.max_concurrent_photos

    async def enrich_all(
        self, trip_id: str, photos: list[PhotoRecord], on_cohort_settled: CohortCallback | None = None
    ) -> list[Settled[PhotoRecord, ProcessingStatus]]:
        logger.info(
            "[Trip %s] Processing %d photos in cohorts of %d", trip_id, len(photos), self.max_concurrent
        )
        return await run_in_cohorts(
            photos,
            lambda photo: self.enrich(trip_id, photo),
            self.max_concurrent,
            on_cohort_settled,
        )

    async def enrich(self, trip_id: str, photo: PhotoRecord) -> ProcessingStatus:
        """Enrich one photo and return its final status. Only raises if the status write itself fails."""
        started = time.monotonic()
        try:
            await self.store.set_photo_status(photo.id, ProcessingStatus.PROCESSING)
            image = await self.images.read(photo.file_path)
            context = build_exif_context(photo.exif_data)

            await self._describe(trip_id, photo, image, context)

            gps = await self._gps_location(trip_id, photo)
            vision = await self._vision_location(trip_id, photo, image, context)
            location = choose_location(gps, vision)
            if location is not None:
                await self.store.save_location(photo.id, location)
                logger.debug(
                    "[Trip %s] Photo %s: location %s (source: %s)",
                    trip_id, photo.id, location.label(), location.source.value,
                )
            else:
                logger.debug("[Trip %s] Photo %s: location could not be determined", trip_id, photo.id)

            await self.store.set_photo_status(photo.id, ProcessingStatus.COMPLETED)
            logger.debug(
                "[Trip %s] Photo %s processed in %.1fs", trip_id, photo.id, time.monotonic() - started
            )
            return ProcessingStatus.COMPLETED
        except Exception:
            logger.exception(
                "[Trip %s] Failed to process photo %s after %.1fs", trip_id, photo.id, time.monotonic() - started
            )
            await self.store.set_photo_status(photo.id, ProcessingStatus.FAILED)
            return ProcessingStatus.FAILED

    async def _describe(self, trip_id: str, photo: PhotoRecord, image: bytes, context: str) -> None:
        try:
            description = await self.describer.describe(image, context)
        except Exception as e:
            logger.warning("[Trip %s] Photo %s: no description generated: %s", trip_id, photo.id, e)
            return
        await self.store.save_description(photo.id, description)
        logger.debug("[Trip %s] Photo %s: description saved (subject: %s)", trip_id, photo.id, description.main_subject)

    async def _gps_location(self, trip_id: str, photo: PhotoRecord) -> Location | None:
        coordinates = photo.gps_coordinates()
        if coordinates is None:
            return None
        try:
            return await self.geocoder.locate(*coordinates)
        except Exception as e:
            logger.warning("[Trip %s] Photo %s: failed to geocode GPS location: %s", trip_id, photo.id, e)
            return None

    async def _vision_location(
        self, trip_id: str, photo: PhotoRecord, image: bytes, context: str
    ) -> Location | None:
        try:
            return await self.describer.detect_location(image, context)
        except Exception as e:
            logger.warning("[Trip %s] Photo %s: visual location detection failed: %s", trip_id, photo.id, e)
            return None
