from datetime import date
from typing import Literal

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from tripstory.schemas.status import ProcessingStatus

_camel = {"alias_generator": to_camel, "populate_by_name": True}


class DayItinerarySummary(BaseModel):
    title: str = Field(min_length=1)
    narrative: str = Field(min_length=1)
    highlights: list[str]
    locations: list[str]
    activities: list[str]
    start_time: str = ""
    end_time: str = ""
    total_distance: float = 0.0

    model_config = _camel


class Destination(BaseModel):
    name: str
    days: list[int]
    highlights: list[str] = []

    model_config = _camel


class TripOverview(BaseModel):
    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    destinations: list[Destination] = []
    themes: list[str] = []
    total_days: int = 0
    total_photos: int = 0
    top_moments: list[str] = []
    travel_style: str | None = None

    model_config = _camel


class NarrationState(BaseModel):
    enabled: bool = True
    status: Literal["not_started", "in_progress", "completed"] = "not_started"
    current_day_number: int | None = None
    current_photo_index: int = 0
    completed_days: list[int] = []
    completed_photos: list[str] = []

    model_config = _camel


class TripState(BaseModel):
    """Authoritative snapshot of a trip row, read at the start of a phase."""

    id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None
    overview: TripOverview | None = None
    processing_status: ProcessingStatus = ProcessingStatus.NOT_STARTED
    narration_state: NarrationState | None = None
    created_at: str
    updated_at: str

    @property
    def narration_enabled(self) -> bool:
        return bool(self.narration_state and self.narration_state.enabled)


class DayItineraryRecord(BaseModel):
    trip_id: str
    day_number: int
    date: date
    summary: DayItinerarySummary


class TripCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    start_date: date | None = None
    narration_enabled: bool = False
