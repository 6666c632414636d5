"""Progress events streamed to trip subscribers.

Each event is a ``{type, data}`` pair; ``data`` is serialized with camelCase keys.
Optional fields are omitted from status and progress payloads when unset.
"""
import json
from datetime import date
from typing import Annotated, ClassVar, Literal, Union

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from tripstory.schemas.status import PipelineStep, ProcessingStatus
from tripstory.schemas.trip import TripOverview

_camel = {"alias_generator": to_camel, "populate_by_name": True}


class StatusData(BaseModel):
    status: ProcessingStatus
    message: str | None = None

    model_config = _camel


class ProgressData(BaseModel):
    step: PipelineStep
    message: str
    total: int | None = None
    completed: int | None = None

    model_config = _camel


class DayHeadline(BaseModel):
    day_number: int
    date: date
    title: str

    model_config = _camel


class SummaryData(BaseModel):
    trip_id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None
    status: ProcessingStatus
    total_photos: int
    total_days: int
    overview: TripOverview | None = None
    days: list[DayHeadline] = []

    model_config = _camel


class ConnectedData(BaseModel):
    trip_id: str
    message: str

    model_config = _camel


class NarrationStartedData(BaseModel):
    message: str


class _Event(BaseModel):
    omit_none: ClassVar[bool] = True

    def payload(self) -> dict:
        data = self.data.model_dump(mode="json", by_alias=True, exclude_none=self.omit_none)
        return {"type": self.type, "data": data}

    def to_sse(self) -> str:
        return f"event: {self.type}\ndata: {json.dumps(self.payload()['data'])}\n\n"


class StatusEvent(_Event):
    type: Literal["status"] = "status"
    data: StatusData


class ProgressEvent(_Event):
    type: Literal["progress"] = "progress"
    data: ProgressData


class SummaryEvent(_Event):
    omit_none: ClassVar[bool] = False

    type: Literal["summary"] = "summary"
    data: SummaryData


class ConnectedEvent(_Event):
    type: Literal["connected"] = "connected"
    data: ConnectedData


class NarrationStartedEvent(_Event):
    type: Literal["narration_started"] = "narration_started"
    data: NarrationStartedData


TripEvent = Annotated[
    Union[StatusEvent, ProgressEvent, SummaryEvent, ConnectedEvent, NarrationStartedEvent],
    Field(discriminator="type"),
]


def status_event(status: ProcessingStatus, message: str | None = None) -> StatusEvent:
    return StatusEvent(data=StatusData(status=status, message=message))


def progress_event(
    step: PipelineStep, message: str, total: int | None = None, completed: int | None = None
) -> ProgressEvent:
    return ProgressEvent(data=ProgressData(step=step, message=message, total=total, completed=completed))


def connected_event(trip_id: str) -> ConnectedEvent:
    return ConnectedEvent(data=ConnectedData(trip_id=trip_id, message="Connected to trip status stream"))


def narration_started_event() -> NarrationStartedEvent:
    return NarrationStartedEvent(data=NarrationStartedData(message="Narration wizard ready"))
