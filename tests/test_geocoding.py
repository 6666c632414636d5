from types import SimpleNamespace

import pytest
from geopy.exc import GeocoderTimedOut

from tripstory.schemas.photo import LocationSource
from tripstory.services.geocoding import Geocoder, location_from_nominatim

NOMINATIM_EIFFEL = {
    "lat": "48.8582599",
    "lon": "2.2945006",
    "display_name": "Tour Eiffel, 5, Avenue Anatole France, Gros-Caillou, Paris, France",
    "address": {
        "tourism": "Tour Eiffel",
        "suburb": "Gros-Caillou",
        "city": "Paris",
        "country": "France",
    },
}


class FakeGeolocator:
    def __init__(self, raw=None, error=None):
        self.raw = raw
        self.error = error
        self.calls = []

    def reverse(self, query, **kwargs):
        self.calls.append((query, kwargs))
        if self.error:
            raise self.error
        return SimpleNamespace(raw=self.raw) if self.raw else None


def test_nominatim_payload_mapping():
    location = location_from_nominatim(NOMINATIM_EIFFEL)

    assert location.city == "Paris"
    assert location.country == "France"
    assert location.neighborhood == "Gros-Caillou"
    assert location.landmark == "Tour Eiffel"
    assert location.full_address == NOMINATIM_EIFFEL["display_name"]
    assert location.source == LocationSource.GEOCODING
    assert location.confidence == 1.0


def test_nominatim_house_number_is_not_a_landmark():
    raw = {
        "lat": "41.9",
        "lon": "12.49",
        "display_name": "12, Via del Corso, Trevi, Rome, Italy",
        "address": {"town": "Rome", "neighbourhood": "Trevi", "country": "Italy"},
    }

    location = location_from_nominatim(raw)

    assert location.landmark is None
    assert location.city == "Rome"
    assert location.neighborhood == "Trevi"


def test_nominatim_payload_without_address():
    assert location_from_nominatim({"lat": "0", "lon": "0", "display_name": "Ocean"}) is None


@pytest.mark.asyncio
async def test_reverse_geocode_uses_geolocator():
    geolocator = FakeGeolocator(raw=NOMINATIM_EIFFEL)

    location = await Geocoder(geolocator).reverse_geocode(48.8584, 2.2945)

    assert location.city == "Paris"
    assert geolocator.calls[0][0] == (48.8584, 2.2945)


@pytest.mark.asyncio
async def test_reverse_geocode_failure_is_none():
    geocoder = Geocoder(FakeGeolocator(error=GeocoderTimedOut("timed out")))
    assert await geocoder.reverse_geocode(48.8584, 2.2945) is None


@pytest.mark.asyncio
async def test_locate_falls_back_to_raw_coordinates():
    location = await Geocoder(FakeGeolocator()).locate(48.8584, 2.2945)

    assert (location.latitude, location.longitude) == (48.8584, 2.2945)
    assert location.source == LocationSource.EXIF
    assert location.confidence == 0.5
    assert location.city is None
