import asyncio
import os
import tempfile
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Point the app at a throwaway database and image root before it is imported
_TEST_DIR = tempfile.mkdtemp(prefix="tripstory-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.sqlite3"
os.environ["DATA_DIR"] = _TEST_DIR
os.environ["OPENAI_API_KEY"] = ""
os.environ["API_KEY"] = ""

from tripstory.database import Base  # noqa: E402
from tripstory.schemas.photo import Location, LocationSource, PhotoDescription  # noqa: E402
from tripstory.schemas.trip import DayItinerarySummary, TripOverview  # noqa: E402
from tripstory.services.storage import ImageStore  # noqa: E402
from tripstory.services.store import TripStore  # noqa: E402
from tripstory.utils.exceptions import OracleError  # noqa: E402
import tripstory.models  # noqa: E402,F401


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    from tripstory.database import create_tables, engine

    async def _setup():
        await create_tables()
        await engine.dispose()

    asyncio.run(_setup())


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/trips.sqlite3")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield TripStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))
    await engine.dispose()


@pytest.fixture
def images(tmp_path):
    return ImageStore(root=str(tmp_path / "images"))


@pytest.fixture
def add_photo(store, images):
    """Save an image whose bytes are its filename and register it on the trip."""

    async def _add(trip_id, filename, captured_at: datetime | None = None, gps: tuple[float, float] | None = None):
        file_path = await images.save(trip_id, filename, filename.encode())
        exif_data = {}
        if captured_at:
            exif_data["dateTime"] = captured_at.isoformat()
        if gps:
            exif_data["latitude"], exif_data["longitude"] = gps
        return await store.add_photo(
            trip_id, filename=filename, file_path=file_path, captured_at=captured_at, exif_data=exif_data
        )

    return _add


def make_description(subject: str = "Eiffel Tower at sunset") -> PhotoDescription:
    return PhotoDescription(
        main_subject=subject,
        setting="City centre",
        activities=["sightseeing"],
        mood="Relaxed",
        time_of_day="Golden hour",
        weather="Clear",
        notable_details=["crowds"],
        visual_quality="good",
    )


class FakeDescriber:
    """Description and vision-location oracle; locations are keyed on the image bytes."""

    def __init__(self):
        self.fail_all_descriptions = False
        self.locations: dict[bytes, Location | None] = {}

    async def describe(self, image: bytes, context: str) -> PhotoDescription:
        if self.fail_all_descriptions:
            raise OracleError("Model returned an empty response")
        return make_description(image.decode())

    async def detect_location(self, image: bytes, context: str) -> Location | None:
        return self.locations.get(image)


class FakeGeocoder:
    def __init__(self):
        self.calls: list[tuple[float, float]] = []
        self.fail = False

    async def locate(self, latitude: float, longitude: float) -> Location:
        self.calls.append((latitude, longitude))
        if self.fail:
            raise RuntimeError("geocoder unavailable")
        return Location(
            latitude=latitude,
            longitude=longitude,
            country="France",
            city="Paris",
            source=LocationSource.GEOCODING,
            confidence=1.0,
        )


class FakeNarrator:
    def __init__(self):
        self.fail_days: set[int] = set()
        self.fail_overview = False
        self.day_calls: list[int] = []

    async def summarize_day(self, photos, total_distance_km: float) -> DayItinerarySummary:
        day_number = photos[0].day_number
        self.day_calls.append(day_number)
        if day_number in self.fail_days:
            raise OracleError(f"Invalid day summary for day {day_number}")
        return DayItinerarySummary(
            title=f"Day {day_number} in Paris",
            narrative="We wandered the city.",
            highlights=["Seine walk"],
            locations=["Paris"],
            activities=["walking"],
            total_distance=round(total_distance_km, 1),
        )

    async def summarize_trip(self, itineraries, photos) -> TripOverview:
        if self.fail_overview:
            raise OracleError("Invalid trip overview")
        return TripOverview(
            title="A Week in Paris",
            summary="A trip through Paris.",
            total_days=len(itineraries),
            total_photos=len(photos),
        )


@pytest.fixture
def describer():
    return FakeDescriber()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def narrator():
    return FakeNarrator()


class RecordingSubscriber:
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    def send(self, event) -> None:
        if self.fail:
            raise ConnectionResetError("client went away")
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.type for e in self.events]


@pytest.fixture
def subscriber_factory():
    return RecordingSubscriber
