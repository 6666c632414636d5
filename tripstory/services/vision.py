"""Describe travel photos and infer where they were taken, from the pixels alone."""
import logging

from pydantic import ValidationError

from tripstory.config import settings
from tripstory.schemas.photo import Location, LocationSource, PhotoDescription
from tripstory.services.llm import LLMClient
from tripstory.utils.exceptions import OracleError

logger = logging.getLogger(__name__)

DESCRIPTION_PROMPT = """\
Analyze this travel photo and provide a structured description in JSON format.

{context}

Return ONLY a valid JSON object (no markdown, no code blocks, just raw JSON) with the following structure:
{{
  "mainSubject": "Brief description of the main subject (e.g., 'Eiffel Tower at sunset')",
  "setting": "Description of the setting/environment",
  "activities": ["array", "of", "activities", "visible", "in", "photo"],
  "mood": "The mood or atmosphere of the photo",
  "timeOfDay": "Time of day (e.g., 'Early morning', 'Golden hour', 'Night')",
  "weather": "Weather conditions visible",
  "notableDetails": ["array", "of", "notable", "visual", "details"],
  "visualQuality": "Quality assessment: 'excellent', 'good', 'fair', or 'poor'"
}}

Be descriptive and specific. Focus on what makes this photo unique or memorable.
"""

LOCATION_PROMPT = """\
Identify where this travel photo was taken, using only what is visible in it
(landmarks, signage, architecture, landscape, vegetation).

{context}

Return ONLY a valid JSON object with the following structure:
{{
  "latitude": 48.8584,
  "longitude": 2.2945,
  "country": "Country name or null",
  "city": "City name or null",
  "neighborhood": "Neighborhood or district, or null",
  "landmark": "Specific named landmark, or null",
  "fullAddress": "Street address if identifiable, or null",
  "confidence": 0.0
}}

"confidence" is a number between 0 and 1. Use null for anything you cannot tell.
Do not guess a landmark that is not clearly visible.
"""


def build_exif_context(exif_data: dict | None) -> str:
    if not exif_data:
        return "No EXIF metadata available."

    parts: list[str] = []
    camera = f"{exif_data.get('make') or ''} {exif_data.get('model') or ''}".strip()
    if camera:
        parts.append(f"Camera: {camera}")
    if exif_data.get("dateTime"):
        parts.append(f"Date: {exif_data['dateTime']}")
    if exif_data.get("fNumber"):
        parts.append(f"Aperture: f/{exif_data['fNumber']}")
    if exif_data.get("exposureTime"):
        parts.append(f"Shutter: {exif_data['exposureTime']}s")
    if exif_data.get("iso"):
        parts.append(f"ISO: {exif_data['iso']}")

    return "\n".join(parts) if parts else "Limited EXIF metadata available."


class PhotoDescriber:
    def __init__(self, llm: LLMClient | None = None, min_confidence: float | None = None):
        self.llm = llm or LLMClient()
        self.min_confidence = settings.vision_min_confidence if min_confidence is None else min_confidence

    async def describe(self, image: bytes, context: str) -> PhotoDescription:
        """Structured description of a photo. Raises OracleError on unusable output."""
        parsed = await self.llm.complete_vision_json(image, DESCRIPTION_PROMPT.format(context=context))
        try:
            description = PhotoDescription.model_validate(parsed)
        except ValidationError as e:
            raise OracleError(f"Invalid photo description: {e.error_count()} field error(s)") from e
        logger.debug("Generated photo description (subject: %s)", description.main_subject)
        return description

    async def detect_location(self, image: bytes, context: str) -> Location | None:
        """Location inferred from the image, or None when the model is not sure enough."""
        parsed = await self.llm.complete_vision_json(image, LOCATION_PROMPT.format(context=context))
        return self.accept_location(parsed)

    def accept_location(self, parsed: dict) -> Location | None:
        if parsed.get("latitude") is None or parsed.get("longitude") is None:
            logger.debug("Visual location has no coordinates, discarding")
            return None
        try:
            location = Location.model_validate({**parsed, "source": LocationSource.LLM_VISUAL})
        except ValidationError as e:
            raise OracleError(f"Invalid visual location: {e.error_count()} field error(s)") from e

        if location.confidence < self.min_confidence:
            logger.debug("Visual location confidence %.2f below floor, discarding", location.confidence)
            return None
        if not location.city and not location.country:
            logger.debug("Visual location names neither city nor country, discarding")
            return None
        return location
