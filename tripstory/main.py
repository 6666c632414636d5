import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware

from tripstory.config import settings
from tripstory.database import create_tables
from tripstory.dependencies import verify_api_key
from tripstory.routers.trips import router as trips_router
from tripstory.services.cleanup import run_periodic_cleanup
from tripstory.services.progress import progress_bus
from tripstory.services.store import trip_store
from tripstory.utils.exceptions import register_exception_handlers


class HealthCheckFilter(logging.Filter):
    """Filter out health check requests from uvicorn access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        return "/health" not in record.getMessage()


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("uvicorn.access").addFilter(HealthCheckFilter())


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await create_tables()
    cleanup_task = asyncio.create_task(run_periodic_cleanup(trip_store, progress_bus))
    yield
    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task


app = FastAPI(
    title="TripStory API",
    description="Turns a batch of travel photos into day-by-day and trip-level narratives",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

_api_key_dep = [Depends(verify_api_key)]

app.include_router(trips_router, prefix="/api/v1", dependencies=_api_key_dep)


@app.get("/health")
async def health_check():
    return {"status": "success", "data": {"service": "tripstory-api", "version": "0.1.0"}, "message": None}
