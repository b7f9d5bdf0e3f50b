"""
Capture Metadata Extractor
Reads the capture timestamp and raw GPS tags from an image with Pillow.
Missing or unreadable tags degrade to the filesystem timestamp / no GPS.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterable, Optional, Tuple

from PIL import Image
from PIL.ExifTags import GPSTAGS, TAGS

from core.gps_normalizer import normalize
from utils.logger import logDebug
from utils.time_utils import timestamp_to_utc_date, to_utc_date

EXIF_IFD_POINTER = 0x8769
GPS_IFD_POINTER = 0x8825

# (timestamp tag, matching offset tag), most specific first
DATE_TAG_CHAIN: Tuple[Tuple[str, str], ...] = (
    ("DateTimeOriginal", "OffsetTimeOriginal"),
    ("DateTimeDigitized", "OffsetTimeDigitized"),
    ("DateTime", "OffsetTime"),
)

GPS_TAG_NAMES = ("GPSLatitude", "GPSLatitudeRef", "GPSLongitude", "GPSLongitudeRef")


class MetadataReadError(Exception):
    """The image could not be opened or its EXIF block could not be parsed."""


@dataclass(frozen=True)
class RawGps:
    latitude: Any
    latitude_ref: Any
    longitude: Any
    longitude_ref: Any

    def to_decimal(self) -> Tuple[Optional[float], Optional[float]]:
        return (
            normalize(self.latitude, self.latitude_ref),
            normalize(self.longitude, self.longitude_ref),
        )


def _decode(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='ignore').strip('\x00')
    return value


class MetadataExtractor:
    def read_tags(self, image_path: str, tag_names: Iterable[str]) -> Dict[str, Any]:
        """Return the requested EXIF tags that are present, keyed by tag name.

        Looks in the base IFD, the Exif sub-IFD and the GPS sub-IFD.
        """
        wanted = set(tag_names)
        found: Dict[str, Any] = {}
        try:
            with Image.open(image_path) as image:
                exif = image.getexif()
                sections = [
                    (exif, TAGS),
                    (exif.get_ifd(EXIF_IFD_POINTER), TAGS),
                    (exif.get_ifd(GPS_IFD_POINTER), GPSTAGS),
                ]
                for ifd, names in sections:
                    for tag, value in ifd.items():
                        name = names.get(tag, tag)
                        if name in wanted and name not in found:
                            found[name] = _decode(value)
        except Exception as e:
            raise MetadataReadError(f"Could not read EXIF from {image_path}: {e}") from e
        return found

    def filesystem_date(self, image_path: str) -> date:
        """Creation time where the platform records it, else modification time."""
        stat = os.stat(image_path)
        created = getattr(stat, "st_birthtime", None)
        return timestamp_to_utc_date(created if created else stat.st_mtime)

    def extract_capture_date(self, image_path: str) -> date:
        tag_names = [name for pair in DATE_TAG_CHAIN for name in pair]
        try:
            tags = self.read_tags(image_path, tag_names)
        except MetadataReadError as e:
            logDebug(f"{e}; using file timestamp")
            tags = {}

        for date_tag, offset_tag in DATE_TAG_CHAIN:
            if date_tag not in tags:
                continue
            parsed = to_utc_date(tags[date_tag], tags.get(offset_tag))
            if parsed is not None:
                return parsed

        return self.filesystem_date(image_path)

    def extract_gps(self, image_path: str) -> Optional[RawGps]:
        try:
            tags = self.read_tags(image_path, GPS_TAG_NAMES)
        except MetadataReadError as e:
            logDebug(str(e))
            return None
        if 'GPSLatitude' not in tags or 'GPSLongitude' not in tags:
            return None
        return RawGps(
            latitude=tags['GPSLatitude'],
            latitude_ref=tags.get('GPSLatitudeRef'),
            longitude=tags['GPSLongitude'],
            longitude_ref=tags.get('GPSLongitudeRef'),
        )


__all__ = ["MetadataExtractor", "MetadataReadError", "RawGps"]
