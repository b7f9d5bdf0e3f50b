"""
GPS Coordinate Normalizer
Converts the coordinate encodings found in EXIF readers and JSON sidecars to
signed decimal degrees.

Every input is first classified into one variant of ``RawCoordinate``; each
variant decodes itself and returns ``None`` when it cannot. ``normalize`` never
raises.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from numbers import Number
from typing import Any, Optional, Sequence, Union

NEGATIVE_REFS = {"S", "W"}

_DELIMITERS = re.compile(r"[\s,;]+")


def _to_float(value: Any) -> Optional[float]:
    """Convert a number, a Pillow IFDRational, a (num, den) pair or a 'num/den' string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (tuple, list)) and len(value) == 2:
        num, den = (_to_float(v) for v in value)
        if num is None or not den:
            return None
        return num / den
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if isinstance(value, str):
        text = value.strip().strip("\x00")
        if "/" in text:
            num_text, _, den_text = text.partition("/")
            return _to_float((num_text, den_text))
        try:
            result = float(text)
        except ValueError:
            return None
        return result if math.isfinite(result) else None
    if isinstance(value, Number):
        try:
            result = float(value)
        except (TypeError, ValueError, ZeroDivisionError):
            return None
        return result if math.isfinite(result) else None
    return None


def _dms_to_decimal(parts: Sequence[Any]) -> Optional[float]:
    if not 1 <= len(parts) <= 3:
        return None
    values = [_to_float(p) for p in parts]
    if any(v is None for v in values):
        return None
    values += [0.0] * (3 - len(values))
    degrees, minutes, seconds = values
    return degrees + minutes / 60.0 + seconds / 3600.0


@dataclass(frozen=True)
class DecimalValue:
    value: Any

    def decode(self) -> Optional[float]:
        return _to_float(self.value)


@dataclass(frozen=True)
class DmsTriple:
    parts: Sequence[Any]

    def decode(self) -> Optional[float]:
        return _dms_to_decimal(self.parts)


@dataclass(frozen=True)
class DelimitedString:
    text: str

    def decode(self) -> Optional[float]:
        pieces = [p for p in _DELIMITERS.split(self.text.strip().strip("\x00")) if p]
        if not pieces:
            return None
        return _dms_to_decimal(pieces)


@dataclass(frozen=True)
class LatLonObject:
    """Already-decoded location (e.g. a geocoder point); returned unchanged."""
    value: Any

    def decode(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Unrecognized:
    value: Any

    def decode(self) -> None:
        return None


RawCoordinate = Union[DecimalValue, DmsTriple, DelimitedString, LatLonObject, Unrecognized]


def _has_lat_lon(value: Any) -> bool:
    if isinstance(value, dict):
        return "latitude" in value and "longitude" in value
    return hasattr(value, "latitude") and hasattr(value, "longitude")


def classify(raw: Any) -> RawCoordinate:
    """Pick the variant that matches the shape of ``raw``."""
    if raw is None or isinstance(raw, bool):
        return Unrecognized(raw)
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    if isinstance(raw, str):
        text = raw.strip().strip("\x00")
        if _DELIMITERS.search(text):
            return DelimitedString(text)
        return DecimalValue(text) if text else Unrecognized(raw)
    if isinstance(raw, Number):
        return DecimalValue(raw)
    if isinstance(raw, (list, tuple)):
        return DmsTriple(tuple(raw))
    if _has_lat_lon(raw):
        return LatLonObject(raw)
    return Unrecognized(raw)


def _is_negative_ref(ref: Any) -> bool:
    if isinstance(ref, bytes):
        ref = ref.decode("ascii", errors="ignore")
    if not isinstance(ref, str):
        return False
    return ref.strip().strip("\x00").upper() in NEGATIVE_REFS


def normalize(raw: Any, ref: Any = None) -> Optional[Any]:
    """Return signed decimal degrees for ``raw`` or None.

    Objects exposing latitude/longitude pass through untouched; every other
    decoded value is negated when ``ref`` is a southern or western indicator.
    """
    coordinate = classify(raw)
    decoded = coordinate.decode()
    if decoded is None or isinstance(coordinate, LatLonObject):
        return decoded
    return -abs(decoded) if _is_negative_ref(ref) else decoded
