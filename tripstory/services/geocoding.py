"""Reverse geocoding of device GPS coordinates through Nominatim."""
import asyncio
import logging
import re

from geopy import geocoders
from geopy.exc import GeopyError

from tripstory.config import settings
from tripstory.schemas.photo import Location, LocationSource

logger = logging.getLogger(__name__)

_LEADING_NUMBER = re.compile(r"^\d+")


def location_from_nominatim(raw: dict) -> Location | None:
    """Map a Nominatim reverse-geocoding payload onto a Location."""
    address: dict = raw.get("address") or {}
    if not address:
        return None

    display_name: str = raw.get("display_name") or ""
    landmark = None
    if display_name:
        first = display_name.split(",")[0].strip()
        if first and not _LEADING_NUMBER.match(first):
            landmark = first

    return Location(
        latitude=float(raw["lat"]),
        longitude=float(raw["lon"]),
        country=address.get("country"),
        city=address.get("city") or address.get("town") or address.get("village"),
        neighborhood=address.get("suburb") or address.get("neighbourhood"),
        landmark=landmark,
        full_address=display_name or None,
        source=LocationSource.GEOCODING,
        confidence=1.0,
    )


class Geocoder:
    def __init__(self, geolocator=None):
        self._geolocator = geolocator or geocoders.Nominatim(
            user_agent=settings.geocoder_user_agent,
            timeout=settings.geocoder_timeout_seconds,
        )

    async def reverse_geocode(self, latitude: float, longitude: float) -> Location | None:
        """Resolve coordinates to a place. Returns None on no match or lookup failure."""
        try:
            result = await asyncio.to_thread(
                self._geolocator.reverse, (latitude, longitude), exactly_one=True, addressdetails=True, zoom=18
            )
        except GeopyError as e:
            logger.warning("Reverse geocoding failed for %.5f,%.5f: %s", latitude, longitude, e)
            return None
        if not result:
            return None
        location = location_from_nominatim(result.raw)
        if location is None:
            logger.warning("No address data in geocoding response for %.5f,%.5f", latitude, longitude)
        return location

    async def locate(self, latitude: float, longitude: float) -> Location:
        """Geocoded location, or the raw device coordinates when geocoding has nothing."""
        geocoded = await self.reverse_geocode(latitude, longitude)
        if geocoded:
            return geocoded
        logger.debug("Geocoding returned nothing, using raw coordinates")
        return Location(latitude=latitude, longitude=longitude, source=LocationSource.EXIF, confidence=0.5)
