"""PhotoRecord: one manifest entry, keyed by the source filename stem."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, Optional

_SEPARATORS = re.compile(r"[-_]")
_DERIVED_SUFFIX = re.compile(r"_(thumb|full)$")


def caption_from_stem(stem: str) -> str:
    return _SEPARATORS.sub(" ", stem)


def stem_from_src(src: Optional[str]) -> Optional[str]:
    """Recover the source stem from a rendition path like 'thumbs/IMG_1_thumb.webp'."""
    if not src or not isinstance(src, str):
        return None
    name = PurePosixPath(src.replace("\\", "/")).stem
    stem = _DERIVED_SUFFIX.sub("", name)
    return stem or None


def stem_of_entry(entry: Dict[str, Any]) -> Optional[str]:
    return stem_from_src(entry.get('thumbSrc')) or stem_from_src(entry.get('fullSrc'))


@dataclass
class PhotoRecord:
    stem: str
    thumb_src: str
    full_src: str
    alt: str
    date: str
    width: int
    height: int
    caption: str
    city: Optional[str] = None
    country: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            'thumbSrc': self.thumb_src,
            'fullSrc': self.full_src,
            'alt': self.alt,
            'date': self.date,
            'width': self.width,
            'height': self.height,
            'caption': self.caption,
            'city': self.city,
            'country': self.country,
        }
