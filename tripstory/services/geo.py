"""Distance helpers and GPS/vision location reconciliation.

Everything here is pure: the same inputs always give the same output.
"""
import logging
import math
from typing import Iterable

from tripstory.schemas.photo import Location, LocationSource

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
AGREEMENT_THRESHOLD_KM = 1.0
LANDMARK_CONFIDENCE = 0.7
FALLBACK_VISION_CONFIDENCE = 0.5


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(a: Location, b: Location) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def route_distance_km(points: Iterable[tuple[float, float] | None]) -> float:
    """Sum of hops between consecutive points; a missing point breaks the hop on both sides."""
    total = 0.0
    previous = None
    for point in points:
        if previous is not None and point is not None:
            total += haversine_km(previous[0], previous[1], point[0], point[1])
        previous = point
    return total


def specificity_score(location: Location) -> float:
    """Rank how precisely a location names a place. Landmarks weigh the most."""
    score = 0.0
    if location.country:
        score += 1
    if location.city:
        score += 2
    if location.neighborhood:
        score += 3
    if location.landmark:
        score += 5
    if location.full_address:
        score += 2
    return score + location.confidence * 2


def reconcile_locations(gps: Location, vision: Location) -> Location:
    """Pick or merge the GPS-derived and the vision-derived candidate.

    When the two agree (under 1 km apart) the more descriptive text wins but the
    GPS coordinates are kept. When they disagree, a confident landmark from
    vision wins, then the higher specificity score, then vision only if its
    confidence is above 0.5.
    """
    gps_score = specificity_score(gps)
    vision_score = specificity_score(vision)
    distance = distance_between(gps, vision)
    confidence = max(gps.confidence, vision.confidence)

    if distance < AGREEMENT_THRESHOLD_KM:
        if vision_score > gps_score:
            return vision.model_copy(update={
                "latitude": gps.latitude,
                "longitude": gps.longitude,
                "source": LocationSource.LLM_VISUAL,
                "confidence": confidence,
            })
        return gps.model_copy(update={
            "landmark": gps.landmark or vision.landmark,
            "source": LocationSource.EXIF if gps.source == LocationSource.EXIF else LocationSource.GEOCODING,
            "confidence": confidence,
        })

    logger.debug("GPS and visual locations disagree by %.2f km", distance)
    if vision.confidence > LANDMARK_CONFIDENCE and vision.landmark:
        return vision
    if gps_score > vision_score:
        return gps
    if vision_score > gps_score:
        return vision
    if vision.confidence > FALLBACK_VISION_CONFIDENCE:
        return vision
    return gps
