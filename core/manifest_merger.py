"""
Manifest Merger
Builds a fresh PhotoRecord for a scanned photo, reusing sticky fields from
the prior manifest entry:

- caption: prior caption verbatim, else derived from the stem
- city/country/date: reused when the prior entry already has a resolved
  location, unless force_recalc is set
- skip-GPS categories never reach the geocoder; force_recalc does not
  change that
"""
from __future__ import annotations

from numbers import Real
from pathlib import Path
from typing import Any, Dict, Optional

from core.geocode_resolver import UNRESOLVED, GeocodeResolver, Location
from core.metadata_extractor import MetadataExtractor
from core.photo_record import PhotoRecord, caption_from_stem
from core.rendition_generator import Renditions
from utils.logger import logDebug


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value.strip() else None


def _caption(prior_caption: Any, stem: str) -> str:
    # Any stored string is kept, including one deliberately blanked
    return prior_caption if isinstance(prior_caption, str) else caption_from_stem(stem)


class ManifestMerger:
    def __init__(self, config: Dict, extractor: MetadataExtractor, resolver: GeocodeResolver):
        geocoding_cfg = config.get('geocoding', {})
        self.force_recalc = bool(geocoding_cfg.get('force_recalc', False))
        self.skip_gps_categories = set(geocoding_cfg.get('skip_gps_categories', []))
        self.extractor = extractor
        self.resolver = resolver

    def skips_gps(self, category: str) -> bool:
        return category in self.skip_gps_categories

    def locate(self, source_path: Path, category: str) -> Location:
        """Read GPS tags, normalize them and resolve to a location."""
        raw_gps = self.extractor.extract_gps(str(source_path))
        if raw_gps is None:
            return UNRESOLVED
        lat, lon = raw_gps.to_decimal()
        if not isinstance(lat, Real) or not isinstance(lon, Real):
            logDebug(f"Unusable GPS in {source_path.name}: {raw_gps}")
            return UNRESOLVED
        return self.resolver.resolve(float(lat), float(lon), category)

    def merge(
        self,
        stem: str,
        source_path: Path,
        renditions: Renditions,
        prior: Optional[Dict[str, Any]],
        category: str,
    ) -> PhotoRecord:
        prior = prior or {}
        prior_city = _text(prior.get('city'))
        prior_country = _text(prior.get('country'))
        prior_date = _text(prior.get('date'))
        prior_resolved = bool(prior_city and prior_country)

        def capture_date() -> str:
            return self.extractor.extract_capture_date(str(source_path)).isoformat()

        if self.skips_gps(category):
            city, country = prior_city, prior_country
            date = prior_date if (prior_resolved and prior_date) else capture_date()
            logDebug(f"{stem}: GPS skipped for category {category}")
        elif prior_resolved and not self.force_recalc:
            city, country = prior_city, prior_country
            date = prior_date or capture_date()
            logDebug(f"{stem}: reusing location {city}, {country}")
        else:
            date = capture_date()
            location = self.locate(source_path, category)
            if self.force_recalc:
                city, country = location.city, location.country
            else:
                # A lookup that comes back empty must not erase a known value
                city = location.city or prior_city
                country = location.country or prior_country

        return PhotoRecord(
            stem=stem,
            thumb_src=renditions.thumb.path.as_posix(),
            full_src=renditions.full.path.as_posix(),
            alt=caption_from_stem(stem),
            date=date,
            width=renditions.full.width,
            height=renditions.full.height,
            caption=_caption(prior.get('caption'), stem),
            city=city,
            country=country,
        )


__all__ = ["ManifestMerger"]
