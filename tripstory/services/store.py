"""Single-row reads and writes for trips, photos and day itineraries.

Every write commits on its own so the next phase always reads durable state.
Reads return pydantic snapshots, never ORM rows.
"""
import logging
import uuid
from datetime import date, datetime, timedelta, timezone

from pydantic import ValidationError
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tripstory.database import async_session
from tripstory.models.itinerary import DayItinerary
from tripstory.models.photo import Photo
from tripstory.models.trip import Trip
from tripstory.schemas.photo import Location, LocationSource, PhotoDescription, PhotoRecord
from tripstory.schemas.status import ProcessingStatus
from tripstory.schemas.trip import (
    DayItineraryRecord,
    DayItinerarySummary,
    NarrationState,
    TripOverview,
    TripState,
)
from tripstory.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _trip_state(trip: Trip) -> TripState:
    return TripState(
        id=trip.id,
        name=trip.name,
        start_date=trip.start_date,
        end_date=trip.end_date,
        overview=trip.overview,
        processing_status=trip.processing_status,
        narration_state=trip.narration_state,
        created_at=trip.created_at,
        updated_at=trip.updated_at,
    )


def _photo_record(photo: Photo) -> PhotoRecord:
    location = None
    if (
        photo.location_latitude is not None
        and photo.location_longitude is not None
        and photo.location_source
    ):
        location = Location(
            latitude=photo.location_latitude,
            longitude=photo.location_longitude,
            country=photo.location_country,
            city=photo.location_city,
            neighborhood=photo.location_neighborhood,
            landmark=photo.location_landmark,
            full_address=photo.location_full_address,
            source=photo.location_source,
            confidence=photo.location_confidence or 0.0,
        )
    return PhotoRecord(
        id=photo.id,
        trip_id=photo.trip_id,
        filename=photo.filename,
        file_path=photo.file_path,
        captured_at=photo.captured_at,
        day_number=photo.day_number,
        description=photo.description,
        location=location,
        exif_data=photo.exif_data,
        processing_status=photo.processing_status,
    )


def _exif_location(exif: dict) -> Location | None:
    """Device GPS as a low-confidence location; unusable coordinates are dropped."""
    latitude, longitude = exif.get("latitude"), exif.get("longitude")
    if latitude is None or longitude is None:
        return None
    try:
        return Location(latitude=latitude, longitude=longitude, source=LocationSource.EXIF, confidence=0.5)
    except ValidationError:
        logger.warning("Ignoring invalid EXIF GPS coordinates (%r, %r)", latitude, longitude)
        return None


def _itinerary_record(row: DayItinerary) -> DayItineraryRecord:
    return DayItineraryRecord(
        trip_id=row.trip_id,
        day_number=row.day_number,
        date=row.date,
        summary=row.summary,
    )


def _column_value(value):
    if isinstance(value, (TripOverview, NarrationState)):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, ProcessingStatus):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return value


class TripStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory or async_session

    # Trips

    async def create_trip(
        self, name: str, start_date: date | None = None, narration_enabled: bool = False
    ) -> TripState:
        now = _now()
        trip = Trip(
            id=str(uuid.uuid4()),
            name=name,
            start_date=start_date.isoformat() if start_date else None,
            processing_status=ProcessingStatus.NOT_STARTED.value,
            narration_state=(
                NarrationState(enabled=True).model_dump(mode="json", by_alias=True)
                if narration_enabled else None
            ),
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(trip)
            await session.commit()
            return _trip_state(trip)

    async def list_trips(self) -> list[TripState]:
        async with self._session_factory() as session:
            result = await session.execute(select(Trip).order_by(Trip.created_at.desc()))
            return [_trip_state(t) for t in result.scalars().all()]

    async def get_trip(self, trip_id: str) -> TripState | None:
        async with self._session_factory() as session:
            trip = await session.get(Trip, trip_id)
            return _trip_state(trip) if trip else None

    async def require_trip(self, trip_id: str) -> TripState:
        trip = await self.get_trip(trip_id)
        if trip is None:
            raise NotFoundError("Trip not found")
        return trip

    async def set_trip_status(self, trip_id: str, status: ProcessingStatus) -> TripState:
        return await self.update_trip(trip_id, processing_status=status)

    async def transition_trip(
        self, trip_id: str, from_statuses: tuple[ProcessingStatus, ...], status: ProcessingStatus
    ) -> TripState | None:
        """Move the trip to ``status`` only if it is currently in one of ``from_statuses``."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Trip)
                .where(Trip.id == trip_id, Trip.processing_status.in_([s.value for s in from_statuses]))
                .values(processing_status=status.value, updated_at=_now())
            )
            await session.commit()
            if not result.rowcount:
                return None
        return await self.require_trip(trip_id)

    async def update_trip(self, trip_id: str, **fields) -> TripState:
        async with self._session_factory() as session:
            trip = await session.get(Trip, trip_id)
            if trip is None:
                raise NotFoundError("Trip not found")
            for name, value in fields.items():
                setattr(trip, name, _column_value(value))
            trip.updated_at = _now()
            await session.commit()
            return _trip_state(trip)

    async def delete_trip(self, trip_id: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(DayItinerary).where(DayItinerary.trip_id == trip_id))
            await session.execute(delete(Photo).where(Photo.trip_id == trip_id))
            await session.execute(delete(Trip).where(Trip.id == trip_id))
            await session.commit()

    async def find_stale_trips(self, threshold_minutes: int, now: datetime | None = None) -> list[TripState]:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=threshold_minutes)
        async with self._session_factory() as session:
            result = await session.execute(
                select(Trip).where(
                    Trip.processing_status == ProcessingStatus.PROCESSING.value,
                    Trip.updated_at < cutoff.isoformat(),
                )
            )
            return [_trip_state(t) for t in result.scalars().all()]

    # Photos

    async def add_photo(
        self,
        trip_id: str,
        filename: str,
        file_path: str,
        captured_at: datetime | None = None,
        exif_data: dict | None = None,
    ) -> PhotoRecord:
        photo = Photo(
            id=str(uuid.uuid4()),
            trip_id=trip_id,
            filename=filename,
            file_path=file_path,
            captured_at=captured_at.isoformat() if captured_at else None,
            uploaded_at=_now(),
            exif_data=exif_data or None,
            processing_status=ProcessingStatus.PENDING.value,
        )
        location = _exif_location(exif_data or {})
        if location is not None:
            photo.location_latitude = location.latitude
            photo.location_longitude = location.longitude
            photo.location_source = location.source.value
            photo.location_confidence = location.confidence
        elif exif_data and "latitude" in exif_data:
            photo.exif_data = {k: v for k, v in exif_data.items() if k not in ("latitude", "longitude")}
        async with self._session_factory() as session:
            session.add(photo)
            await session.commit()
            return _photo_record(photo)

    async def list_photos(self, trip_id: str) -> list[PhotoRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Photo).where(Photo.trip_id == trip_id).order_by(Photo.uploaded_at, Photo.id)
            )
            return [_photo_record(p) for p in result.scalars().all()]

    async def list_photos_for_day(self, trip_id: str, day_number: int) -> list[PhotoRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Photo)
                .where(Photo.trip_id == trip_id, Photo.day_number == day_number)
                .order_by(Photo.captured_at, Photo.id)
            )
            return [_photo_record(p) for p in result.scalars().all()]

    async def get_photo(self, photo_id: str) -> PhotoRecord | None:
        async with self._session_factory() as session:
            photo = await session.get(Photo, photo_id)
            return _photo_record(photo) if photo else None

    async def _update_photo(self, photo_id: str, **columns) -> None:
        async with self._session_factory() as session:
            photo = await session.get(Photo, photo_id)
            if photo is None:
                raise NotFoundError("Photo not found")
            for name, value in columns.items():
                setattr(photo, name, value)
            await session.commit()

    async def set_photo_status(self, photo_id: str, status: ProcessingStatus) -> None:
        await self._update_photo(photo_id, processing_status=status.value)

    async def save_description(self, photo_id: str, description: PhotoDescription) -> None:
        await self._update_photo(photo_id, description=description.model_dump(mode="json", by_alias=True))

    async def save_location(self, photo_id: str, location: Location) -> None:
        await self._update_photo(
            photo_id,
            location_latitude=location.latitude,
            location_longitude=location.longitude,
            location_country=location.country,
            location_city=location.city,
            location_neighborhood=location.neighborhood,
            location_landmark=location.landmark,
            location_full_address=location.full_address,
            location_source=location.source.value,
            location_confidence=location.confidence,
        )

    async def set_day_number(self, photo_id: str, day_number: int | None) -> None:
        await self._update_photo(photo_id, day_number=day_number)

    # Day itineraries

    async def upsert_itinerary(
        self, trip_id: str, day_number: int, day_date: date, summary: DayItinerarySummary
    ) -> DayItineraryRecord:
        payload = summary.model_dump(mode="json", by_alias=True)
        now = _now()
        async with self._session_factory() as session:
            result = await session.execute(
                select(DayItinerary).where(
                    DayItinerary.trip_id == trip_id, DayItinerary.day_number == day_number
                )
            )
            row = result.scalars().first()
            if row is None:
                row = DayItinerary(
                    id=str(uuid.uuid4()),
                    trip_id=trip_id,
                    day_number=day_number,
                    created_at=now,
                )
                session.add(row)
            row.date = day_date.isoformat()
            row.summary = payload
            row.updated_at = now
            await session.commit()
            return _itinerary_record(row)

    async def list_itineraries(self, trip_id: str) -> list[DayItineraryRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DayItinerary)
                .where(DayItinerary.trip_id == trip_id)
                .order_by(DayItinerary.day_number)
            )
            return [_itinerary_record(r) for r in result.scalars().all()]

    async def get_itinerary(self, trip_id: str, day_number: int) -> DayItineraryRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DayItinerary).where(
                    DayItinerary.trip_id == trip_id, DayItinerary.day_number == day_number
                )
            )
            row = result.scalars().first()
            return _itinerary_record(row) if row else None

    async def prune_itineraries(self, trip_id: str, keep_days: set[int]) -> int:
        """Delete itineraries for day numbers that no longer exist after re-clustering."""
        statement = delete(DayItinerary).where(DayItinerary.trip_id == trip_id)
        if keep_days:
            statement = statement.where(DayItinerary.day_number.not_in(keep_days))
        async with self._session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
            return result.rowcount or 0


trip_store = TripStore()
