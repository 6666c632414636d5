from tripstory.models.trip import Trip
from tripstory.models.photo import Photo
from tripstory.models.itinerary import DayItinerary

__all__ = ["Trip", "Photo", "DayItinerary"]
