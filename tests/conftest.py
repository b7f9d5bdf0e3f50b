from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import piexif
import pytest
from PIL import Image

from utils.config_utils import load_config


class FakeProvider:
    """Stands in for a reverse geocoder; records every call."""

    requires_key = False

    def __init__(self, results: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.results = results if results is not None else [{"city": "Los Angeles", "country": "United States"}]
        self.error = error
        self.calls: List[Tuple[float, float]] = []

    def reverse(self, lat: float, lon: float) -> List[Dict[str, Any]]:
        self.calls.append((lat, lon))
        if self.error is not None:
            raise self.error
        return self.results


def _rational_dms(value: float) -> Tuple[Tuple[int, int], ...]:
    value = abs(value)
    degrees = int(value)
    minutes_float = (value - degrees) * 60
    minutes = int(minutes_float)
    seconds = round((minutes_float - minutes) * 60 * 100)
    return ((degrees, 1), (minutes, 1), (seconds, 100))


def write_photo(
    path: Path,
    size: Tuple[int, int] = (800, 600),
    taken: Optional[str] = None,
    gps: Optional[Tuple[float, float]] = None,
) -> Path:
    """Write a JPEG with optional EXIF capture time ('YYYY:MM:DD HH:MM:SS') and GPS."""
    exif_dict: Dict[str, Any] = {"0th": {}, "Exif": {}, "GPS": {}, "1st": {}, "thumbnail": None}
    if taken:
        exif_dict["Exif"][piexif.ExifIFD.DateTimeOriginal] = taken.encode("ascii")
    if gps:
        lat, lon = gps
        exif_dict["GPS"][piexif.GPSIFD.GPSLatitudeRef] = b"N" if lat >= 0 else b"S"
        exif_dict["GPS"][piexif.GPSIFD.GPSLatitude] = _rational_dms(lat)
        exif_dict["GPS"][piexif.GPSIFD.GPSLongitudeRef] = b"E" if lon >= 0 else b"W"
        exif_dict["GPS"][piexif.GPSIFD.GPSLongitude] = _rational_dms(lon)

    path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.new("RGB", size, (120, 160, 200))
    image.save(path, "JPEG", exif=piexif.dump(exif_dict))
    return path


def make_config(tmp_path: Path, **geocoding: Any) -> Dict[str, Any]:
    config = load_config(environ={}, env_files=())
    config["paths"]["src_root"] = str(tmp_path / "src")
    config["paths"]["out_root"] = str(tmp_path / "out")
    config["paths"]["cache_file"] = str(tmp_path / "out" / "geocode-cache.json")
    config["geocoding"]["delay_ms"] = 0
    config["geocoding"].update(geocoding)
    return config


@pytest.fixture
def config(tmp_path: Path) -> Dict[str, Any]:
    return make_config(tmp_path)


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()
