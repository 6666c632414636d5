import logging

from tripstory.schemas.status import ProcessingStatus
from tripstory.schemas.trip import NarrationState
from tripstory.services.store import TripStore
from tripstory.utils.exceptions import AppException

logger = logging.getLogger(__name__)


class NarrationService:
    """Owns the narration wizard state stored on a trip."""

    def __init__(self, store: TripStore):
        self.store = store

    async def start(self, trip_id: str) -> NarrationState:
        trip = await self.store.require_trip(trip_id)
        if trip.processing_status != ProcessingStatus.COMPLETED:
            raise AppException("Trip processing must be completed before narration", status_code=409)

        photos = await self.store.list_photos(trip_id)
        days = sorted({p.day_number for p in photos if p.day_number is not None})

        state = NarrationState(
            enabled=True,
            status="in_progress",
            current_day_number=days[0] if days else None,
            current_photo_index=0,
        )
        await self.store.update_trip(trip_id, narration_state=state)
        logger.info("[Trip %s] Started narration wizard", trip_id)
        return state

    async def state(self, trip_id: str) -> NarrationState | None:
        trip = await self.store.require_trip(trip_id)
        return trip.narration_state
