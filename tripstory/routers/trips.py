import asyncio
import logging

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import StreamingResponse

from tripstory.config import settings
from tripstory.schemas.photo import PhotoResponse
from tripstory.schemas.status import ProcessingStatus
from tripstory.schemas.trip import TripCreate
from tripstory.services.cleanup import cancel_trip
from tripstory.services.exif import capture_time, extract_exif
from tripstory.services.narration import NarrationService
from tripstory.services.pipeline import build_pipeline
from tripstory.services.progress import QueueSubscriber, progress_bus
from tripstory.services.storage import image_store
from tripstory.services.store import trip_store
from tripstory.utils.exceptions import AppException, ConflictError, NotFoundError
from tripstory.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["trips"])

_background_tasks: set[asyncio.Task] = set()


async def _run_pipeline(trip_id: str) -> None:
    try:
        await build_pipeline().run(trip_id)
    except Exception:
        logger.exception("Background processing failed for trip %s", trip_id)


def start_processing(trip_id: str) -> None:
    task = asyncio.create_task(_run_pipeline(trip_id))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)


async def event_stream(trip_id: str, subscriber: QueueSubscriber):
    try:
        async for event in subscriber.events():
            yield event.to_sse()
    finally:
        subscriber.close()
        progress_bus.unsubscribe(trip_id, subscriber)


@router.post("", status_code=201)
async def create_trip(payload: TripCreate):
    trip = await trip_store.create_trip(payload.name, payload.start_date, payload.narration_enabled)
    return success_response(data=trip)


@router.get("")
async def list_trips():
    trips = await trip_store.list_trips()
    return success_response(data=trips)


@router.post("/{trip_id}/photos", status_code=201)
async def upload_photos(trip_id: str, files: list[UploadFile] = File(...)):
    await trip_store.require_trip(trip_id)

    uploaded = []
    for file in files:
        content = await file.read()
        if not content:
            raise AppException(f"Empty file: {file.filename}", status_code=400)
        if len(content) > settings.max_photo_size_bytes:
            raise AppException(f"File too large: {file.filename}", status_code=413)

        exif_data = await asyncio.to_thread(extract_exif, content)
        file_path = await image_store.save(trip_id, file.filename or "photo.jpg", content)
        photo = await trip_store.add_photo(
            trip_id,
            filename=file.filename or "photo.jpg",
            file_path=file_path,
            captured_at=capture_time(exif_data),
            exif_data=exif_data,
        )
        uploaded.append(PhotoResponse.model_validate(photo.model_dump()))

    return success_response(data={"uploaded_count": len(uploaded), "photos": uploaded})


@router.post("/{trip_id}/process", status_code=202)
async def process_trip(trip_id: str):
    trip = await trip_store.require_trip(trip_id)
    if trip.processing_status in (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING):
        raise ConflictError("Trip is already being processed")

    photos = await trip_store.list_photos(trip_id)
    if not photos:
        raise AppException("Trip has no photos to process", status_code=400)

    await trip_store.set_trip_status(trip_id, ProcessingStatus.PENDING)
    start_processing(trip_id)

    return success_response(data={
        "status": ProcessingStatus.PENDING.value,
        "message": f"Processing started for {len(photos)} photos",
    })


@router.get("/{trip_id}")
async def get_trip(trip_id: str):
    trip = await trip_store.require_trip(trip_id)
    days = await trip_store.list_itineraries(trip_id)
    photos = await trip_store.list_photos(trip_id)
    return success_response(data={
        "trip": trip,
        "days": days,
        "total_photos": len(photos),
    })


@router.get("/{trip_id}/days/{day_number}")
async def get_day(trip_id: str, day_number: int):
    await trip_store.require_trip(trip_id)
    day = await trip_store.get_itinerary(trip_id, day_number)
    if day is None:
        raise NotFoundError("Day itinerary not found")
    photos = await trip_store.list_photos_for_day(trip_id, day_number)
    return success_response(data={
        "day": day,
        "photos": [PhotoResponse.model_validate(p.model_dump()) for p in photos],
    })


@router.get("/{trip_id}/status")
async def stream_status(trip_id: str):
    trip = await trip_store.require_trip(trip_id)
    subscriber = QueueSubscriber()
    progress_bus.subscribe(trip_id, subscriber, trip.processing_status)
    return StreamingResponse(
        event_stream(trip_id, subscriber),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


@router.post("/{trip_id}/cancel")
async def cancel_processing(trip_id: str):
    trip = await cancel_trip(trip_store, progress_bus, trip_id)
    return success_response(data=trip, message="Processing cancelled")


@router.post("/{trip_id}/narration/start")
async def start_narration(trip_id: str):
    state = await NarrationService(trip_store).start(trip_id)
    return success_response(data=state)


@router.get("/{trip_id}/narration/state")
async def get_narration_state(trip_id: str):
    state = await NarrationService(trip_store).state(trip_id)
    return success_response(data=state)


@router.delete("/{trip_id}")
async def delete_trip(trip_id: str):
    trip = await trip_store.require_trip(trip_id)
    if trip.processing_status in (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING):
        raise ConflictError("Cancel processing before deleting the trip")

    await trip_store.delete_trip(trip_id)
    await image_store.remove_trip(trip_id)
    progress_bus.close_trip(trip_id)
    logger.info("[Trip %s] Deleted", trip_id)
    return success_response(message="Trip deleted")
