import asyncio
import logging
import os
import shutil
import uuid

from tripstory.config import settings
from tripstory.utils.exceptions import ImageNotFoundError

logger = logging.getLogger(__name__)


class ImageStore:
    """Photos on local disk, one directory per trip."""

    def __init__(self, root: str | None = None):
        self.root = root or os.path.join(settings.data_dir, "trips")

    async def save(self, trip_id: str, filename: str, content: bytes) -> str:
        trip_dir = os.path.join(self.root, trip_id)
        _, ext = os.path.splitext(filename)
        file_path = os.path.join(trip_dir, f"{uuid.uuid4()}{ext.lower() or '.jpg'}")
        await asyncio.to_thread(self._write, trip_dir, file_path, content)
        return file_path

    async def read(self, file_path: str) -> bytes:
        if not os.path.exists(file_path):
            logger.warning("Photo file not found: %s", file_path)
            raise ImageNotFoundError(file_path)
        return await asyncio.to_thread(self._read, file_path)

    async def remove_trip(self, trip_id: str) -> None:
        trip_dir = os.path.join(self.root, trip_id)
        await asyncio.to_thread(shutil.rmtree, trip_dir, True)
        logger.info("Removed photo directory for trip %s", trip_id)

    @staticmethod
    def _write(trip_dir: str, file_path: str, content: bytes) -> None:
        os.makedirs(trip_dir, exist_ok=True)
        with open(file_path, "wb") as f:
            f.write(content)

    @staticmethod
    def _read(file_path: str) -> bytes:
        with open(file_path, "rb") as f:
            return f.read()


image_store = ImageStore()
