"""Day-level and trip-level travel narratives generated from photo descriptions."""
import logging

from pydantic import ValidationError

from tripstory.schemas.photo import PhotoRecord
from tripstory.schemas.trip import DayItineraryRecord, DayItinerarySummary, Destination, TripOverview
from tripstory.services.llm import LLMClient
from tripstory.utils.exceptions import OracleError

logger = logging.getLogger(__name__)

DAY_SYSTEM_PROMPT = (
    "You are a travel writer who creates engaging narrative summaries of travel "
    "experiences based on photo descriptions."
)

DAY_PROMPT = """\
Based on the following photos from a travel day, create a narrative summary of the day's activities.

Photos:
{photos}

Return a JSON object with the following structure:
{{
  "title": "A catchy title for this day (e.g., 'Exploring Historic Paris')",
  "narrative": "A flowing narrative paragraph (3-5 sentences) describing the day's journey, activities, and highlights. Write in past tense, as if telling a story.",
  "highlights": ["array", "of", "3-5", "key", "highlights", "from", "the", "day"],
  "locations": ["array", "of", "all", "locations", "visited"],
  "activities": ["array", "of", "activities", "done", "during", "the", "day"],
  "startTime": "Start time in format like '07:30 AM'",
  "endTime": "End time in format like '10:00 PM'",
  "totalDistance": {distance:.1f}
}}

Make the narrative engaging and descriptive. Capture the essence of the day's experience.
"""

TRIP_SYSTEM_PROMPT = (
    "You are a travel writer who creates comprehensive overviews of travel "
    "experiences based on day-by-day summaries."
)

TRIP_PROMPT = """\
Based on the following day-by-day summaries from a travel trip, create a comprehensive trip overview.

Day Summaries:
{days}

Return a JSON object with the following structure:
{{
  "title": "A compelling title for the entire trip (e.g., 'A Week in Paris')",
  "summary": "A comprehensive 2-3 paragraph summary of the entire trip. Write in past tense, as if telling a story.",
  "themes": ["3-5", "themes", "that", "characterize", "this", "trip"],
  "topMoments": ["5-7", "most", "memorable", "moments", "from", "the", "trip"],
  "travelStyle": "A brief description of the travel style (e.g., 'Cultural immersion with urban exploration')"
}}

Make the summary engaging and capture the essence of the entire journey.
"""


def _photo_context(index: int, photo: PhotoRecord) -> str:
    time = photo.captured_at.strftime("%I:%M %p").lstrip("0") if photo.captured_at else "Unknown time"
    location = "Unknown location"
    if photo.location and photo.location.city:
        location = photo.location.city
        if photo.location.landmark:
            location += f" ({photo.location.landmark})"

    header = f"Photo {index} ({time}): {location}"
    desc = photo.description
    if desc is None:
        return f"{header}\nNo description available"

    lines = [
        f"Main Subject: {desc.main_subject}",
        f"Setting: {desc.setting}",
        f"Mood: {desc.mood}",
        f"Time of Day: {desc.time_of_day}",
        f"Weather: {desc.weather}",
        f"Activities: {', '.join(desc.activities)}",
    ]
    if desc.notable_details:
        lines.append(f"Notable Details: {', '.join(desc.notable_details)}")
    lines.append(f"Visual Quality: {desc.visual_quality}")
    return header + "\n" + "\n".join(lines)


def _day_context(itinerary: DayItineraryRecord) -> str:
    summary = itinerary.summary
    return (
        f"Day {itinerary.day_number} ({itinerary.date.isoformat()}): {summary.title}\n"
        f"Highlights: {', '.join(summary.highlights)}\n"
        f"Locations: {', '.join(summary.locations)}\n"
        f"Activities: {', '.join(summary.activities)}"
    )


def extract_destinations(itineraries: list[DayItineraryRecord], photos: list[PhotoRecord]) -> list[Destination]:
    """Group the places named in day summaries, resolving them to "City, Country" where photos allow."""
    destinations: dict[str, tuple[set[int], list[str]]] = {}
    located = [p.location for p in photos if p.location and p.location.city]

    for itinerary in itineraries:
        for place in itinerary.summary.locations:
            place = place.strip()
            if not place:
                continue
            match = next((loc for loc in located if loc.city in place or place in loc.city), None)
            name = f"{match.city}, {match.country or 'Unknown'}" if match else place
            days, highlights = destinations.setdefault(name, (set(), []))
            days.add(itinerary.day_number)
            for highlight in itinerary.summary.highlights:
                if highlight not in highlights:
                    highlights.append(highlight)

    return [
        Destination(name=name, days=sorted(days), highlights=highlights)
        for name, (days, highlights) in destinations.items()
    ]


class TripNarrator:
    def __init__(self, llm: LLMClient | None = None):
        self.llm = llm or LLMClient()

    async def summarize_day(self, photos: list[PhotoRecord], total_distance_km: float) -> DayItinerarySummary:
        """Narrative for one day. ``photos`` must already be in chronological order."""
        if not photos:
            raise OracleError("No photos provided for day itinerary")

        context = "\n\n".join(_photo_context(i, p) for i, p in enumerate(photos, start=1))
        parsed = await self.llm.complete_json(
            DAY_SYSTEM_PROMPT, DAY_PROMPT.format(photos=context, distance=total_distance_km)
        )
        parsed["totalDistance"] = round(total_distance_km, 1)
        try:
            summary = DayItinerarySummary.model_validate(parsed)
        except ValidationError as e:
            raise OracleError(f"Invalid day summary: {e.error_count()} field error(s)") from e

        logger.debug("Generated day itinerary summary (title: %s)", summary.title)
        return summary

    async def summarize_trip(
        self, itineraries: list[DayItineraryRecord], photos: list[PhotoRecord]
    ) -> TripOverview:
        if not itineraries:
            raise OracleError("No day itineraries provided for trip overview")

        ordered = sorted(itineraries, key=lambda i: i.day_number)
        parsed = await self.llm.complete_json(
            TRIP_SYSTEM_PROMPT, TRIP_PROMPT.format(days="\n\n".join(_day_context(i) for i in ordered))
        )
        parsed.update({
            "destinations": [d.model_dump(by_alias=True) for d in extract_destinations(ordered, photos)],
            "totalDays": len(ordered),
            "totalPhotos": len(photos),
        })
        try:
            overview = TripOverview.model_validate(parsed)
        except ValidationError as e:
            raise OracleError(f"Invalid trip overview: {e.error_count()} field error(s)") from e

        logger.debug("Generated trip overview (title: %s, %d destinations)", overview.title, len(overview.destinations))
        return overview
