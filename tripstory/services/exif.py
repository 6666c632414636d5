"""Read capture metadata from uploaded images with Pillow."""
import io
import logging
from datetime import datetime

from PIL import ExifTags, Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# GPS IFD tag ids
_GPS_LATITUDE_REF = 1
_GPS_LATITUDE = 2
_GPS_LONGITUDE_REF = 3
_GPS_LONGITUDE = 4
_GPS_ALTITUDE = 6


def _dms_to_degrees(dms, ref: str | None) -> float | None:
    try:
        degrees, minutes, seconds = (float(v) for v in dms)
    except (TypeError, ValueError, ZeroDivisionError):
        return None
    value = degrees + minutes / 60 + seconds / 3600
    if ref and ref.strip().upper() in ("S", "W"):
        value = -value
    return round(value, 7)


def _parse_datetime(value) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(str(value).strip("\x00 "), _DATE_FORMAT)
    except ValueError:
        return None


def _number(value) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError, ZeroDivisionError):
        return None


def extract_exif(content: bytes) -> dict:
    """Return a JSON-safe dict of EXIF fields; empty when nothing can be read."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            exif = image.getexif()
            width, height = image.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("Could not read EXIF metadata: %s", e)
        return {}

    data: dict = {"imageWidth": width, "imageHeight": height}
    if not exif:
        return data

    details = exif.get_ifd(ExifTags.IFD.Exif)
    gps = exif.get_ifd(ExifTags.IFD.GPSInfo)

    if exif.get(ExifTags.Base.Make):
        data["make"] = str(exif[ExifTags.Base.Make]).strip("\x00 ")
    if exif.get(ExifTags.Base.Model):
        data["model"] = str(exif[ExifTags.Base.Model]).strip("\x00 ")
    if exif.get(ExifTags.Base.Orientation):
        data["orientation"] = int(exif[ExifTags.Base.Orientation])

    captured = _parse_datetime(
        details.get(ExifTags.Base.DateTimeOriginal) or exif.get(ExifTags.Base.DateTime)
    )
    if captured:
        data["dateTime"] = captured.isoformat()

    f_number = _number(details.get(ExifTags.Base.FNumber))
    if f_number:
        data["fNumber"] = f_number
    exposure = details.get(ExifTags.Base.ExposureTime)
    if exposure:
        data["exposureTime"] = str(exposure)
    iso = details.get(ExifTags.Base.ISOSpeedRatings)
    if iso:
        data["iso"] = int(iso[0] if isinstance(iso, tuple) else iso)
    focal = _number(details.get(ExifTags.Base.FocalLength))
    if focal:
        data["focalLength"] = focal
    if details.get(ExifTags.Base.LensModel):
        data["lensModel"] = str(details[ExifTags.Base.LensModel]).strip("\x00 ")

    if gps:
        lat = _dms_to_degrees(gps.get(_GPS_LATITUDE), gps.get(_GPS_LATITUDE_REF))
        lon = _dms_to_degrees(gps.get(_GPS_LONGITUDE), gps.get(_GPS_LONGITUDE_REF))
        if lat is not None and lon is not None and -90 <= lat <= 90 and -180 <= lon <= 180:
            data["latitude"] = lat
            data["longitude"] = lon
        altitude = _number(gps.get(_GPS_ALTITUDE))
        if altitude is not None:
            data["altitude"] = altitude

    return data


def capture_time(exif_data: dict) -> datetime | None:
    value = exif_data.get("dateTime")
    return datetime.fromisoformat(value) if value else None
