"""
Geocode Resolver
Cache-first reverse geocoding of decimal coordinates to city/country.

Coordinates are bucketed on a 4-decimal key (~11 m) so nearby shots share one
lookup. Provider calls go through a single lock and a fixed inter-request
delay, which keeps the request rate bounded even when photos are processed on
several threads. The cache is loaded once when the resolver is built and
written once by ``save_cache()`` at the end of the run.
"""
from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Set

from core.geocode_providers import ReverseGeocoder, create_provider
from utils.logger import logDebug, logError, logInfo, logWarn

# Most specific first; the first non-empty field becomes the city
CITY_FIELDS = ("city", "town", "village", "hamlet", "municipality", "suburb", "locality")


@dataclass(frozen=True)
class Location:
    city: Optional[str] = None
    country: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'city': self.city, 'country': self.country}


UNRESOLVED = Location()


def coarse_key(lat: float, lon: float) -> str:
    # + 0.0 turns -0.0 into 0.0 so "-0.0000" never appears
    return f"{round(lat, 4) + 0.0:.4f},{round(lon, 4) + 0.0:.4f}"


def location_from_address(address: Dict) -> Location:
    city = next((address[f] for f in CITY_FIELDS if address.get(f)), None)
    return Location(city=city, country=address.get('country') or None)


class GeocodeResolver:
    def __init__(
        self,
        config: Dict,
        provider: Optional[ReverseGeocoder] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.geocoding_config = config.get('geocoding', {})
        self.cache_file = Path(config.get('paths', {}).get('cache_file', 'geocode-cache.json'))
        self.delay_seconds = int(self.geocoding_config.get('delay_ms', 1000)) / 1000.0
        self.disabled = bool(self.geocoding_config.get('disabled', False))
        self.skip_categories = set(self.geocoding_config.get('skip_gps_categories', []))
        self.provider = provider if provider is not None else create_provider(self.geocoding_config)
        self._sleep = sleep
        self._clock = clock
        self._lock = threading.Lock()
        self._last_request_time: Optional[float] = None
        # Keys that failed or came back empty this run; not persisted
        self._unresolvable: Set[str] = set()

        self.hits = 0
        self.misses = 0
        self.lookups = 0

        if self.provider is None and not self.disabled:
            logWarn(f"No usable geocoding provider configured "
                    f"({self.geocoding_config.get('provider')}); locations will not be resolved")

        self.cache: Dict[str, Dict[str, Optional[str]]] = self.load_cache()

    # ---------- Cache IO ----------
    def load_cache(self) -> Dict[str, Dict[str, Optional[str]]]:
        """Load the geocode cache; a missing or corrupt file yields an empty cache."""
        if not self.cache_file.exists():
            return {}
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logWarn(f"Could not load geocode cache {self.cache_file}: {e}")
            return {}
        if not isinstance(data, dict):
            logWarn(f"Geocode cache {self.cache_file} is not a JSON object; starting empty")
            return {}
        cache = {}
        for key, value in data.items():
            if isinstance(value, dict):
                cache[key] = {'city': value.get('city'), 'country': value.get('country')}
        logInfo(f"📦 Loaded {len(cache)} cached geocode entries from {self.cache_file}")
        return cache

    def save_cache(self) -> bool:
        """Persist the cache atomically. Failures are logged, never raised."""
        with self._lock:
            snapshot = dict(self.cache)
        tmp_path = self.cache_file.with_suffix('.tmp')
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(snapshot, f, indent=2, ensure_ascii=False)
            tmp_path.replace(self.cache_file)
        except OSError as e:
            logError(f"Could not save geocode cache {self.cache_file}: {e}")
            return False
        logInfo(f"💾 Saved {len(snapshot)} geocode entries to {self.cache_file}")
        return True

    # ---------- Resolution ----------
    def is_enabled_for(self, category: Optional[str]) -> bool:
        if self.disabled or self.provider is None:
            return False
        return category not in self.skip_categories

    def _throttle(self) -> None:
        if self.delay_seconds <= 0 or self._last_request_time is None:
            return
        elapsed = self._clock() - self._last_request_time
        if elapsed < self.delay_seconds:
            self._sleep(self.delay_seconds - elapsed)

    def resolve(self, lat: float, lon: float, category: Optional[str] = None) -> Location:
        """Resolve coordinates to city/country; never raises."""
        key = coarse_key(lat, lon)
        with self._lock:
            cached = self.cache.get(key)
            if cached is not None:
                self.hits += 1
                return Location(cached.get('city'), cached.get('country'))

            self.misses += 1
            if not self.is_enabled_for(category) or key in self._unresolvable:
                return UNRESOLVED

            self._throttle()
            self.lookups += 1
            try:
                results = self.provider.reverse(lat, lon)
            except Exception as e:
                logWarn(f"Geocoding failed ({lat}, {lon}): {e}")
                self._unresolvable.add(key)
                return UNRESOLVED
            finally:
                self._last_request_time = self._clock()

            if not results:
                logDebug(f"No geocoding result for {key}")
                self._unresolvable.add(key)
                return UNRESOLVED

            location = location_from_address(results[0])
            self.cache[key] = location.to_dict()
            logDebug(f"🗺️  {key} → {location.city}, {location.country}")
            return location


__all__ = ["GeocodeResolver", "Location", "UNRESOLVED", "coarse_key", "location_from_address"]
