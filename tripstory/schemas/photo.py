from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from tripstory.schemas.status import ProcessingStatus


class LocationSource(str, Enum):
    EXIF = "exif"
    GEOCODING = "geocoding"
    LLM_VISUAL = "llm_visual"


class Location(BaseModel):
    """A resolved place. Coordinates and provenance are always present together."""

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    country: str | None = None
    city: str | None = None
    neighborhood: str | None = None
    landmark: str | None = None
    full_address: str | None = None
    source: LocationSource
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    @field_validator("country", "city", "neighborhood", "landmark", "full_address", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def label(self) -> str:
        parts = [p for p in (self.city, self.country) if p]
        return ", ".join(parts) if parts else "Unknown"


class PhotoDescription(BaseModel):
    main_subject: str = Field(min_length=1)
    setting: str = Field(min_length=1)
    activities: list[str]
    mood: str = Field(min_length=1)
    time_of_day: str = Field(min_length=1)
    weather: str = Field(min_length=1)
    notable_details: list[str]
    visual_quality: str = Field(min_length=1)

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


class PhotoRecord(BaseModel):
    id: str
    trip_id: str
    filename: str
    file_path: str
    captured_at: datetime | None = None
    day_number: int | None = None
    description: PhotoDescription | None = None
    location: Location | None = None
    exif_data: dict | None = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING

    def gps_coordinates(self) -> tuple[float, float] | None:
        """Coordinates recorded by the device, ignoring anything inferred from the image."""
        exif = self.exif_data or {}
        lat, lon = exif.get("latitude"), exif.get("longitude")
        if lat is not None and lon is not None:
            return float(lat), float(lon)
        if self.location and self.location.source != LocationSource.LLM_VISUAL:
            return self.location.latitude, self.location.longitude
        return None


class PhotoResponse(BaseModel):
    id: str
    filename: str
    captured_at: datetime | None = None
    day_number: int | None = None
    processing_status: ProcessingStatus
    description: PhotoDescription | None = None
    location: Location | None = None
