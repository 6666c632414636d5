from enum import Enum


class ProcessingStatus(str, Enum):
    NOT_STARTED = "not_started"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PipelineStep(str, Enum):
    PHOTOS = "photos"
    CLUSTERING = "clustering"
    ITINERARIES = "itineraries"
    OVERVIEW = "overview"
