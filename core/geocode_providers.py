"""
Reverse Geocoding Providers
Thin ``requests`` adapters. Each ``reverse(lat, lon)`` returns the provider's
results best-first as flat address dicts using OSM-style keys
(city, town, village, hamlet, municipality, suburb, locality, state, country).
"""
from __future__ import annotations

from typing import Dict, List, Optional

import requests


class GeocodeProviderError(Exception):
    """Network, HTTP or payload error from a reverse-geocoding provider."""


class ReverseGeocoder:
    name = "base"
    requires_key = False

    def __init__(self, api_key: Optional[str] = None, user_agent: str = "photo-manifest/1.0",
                 timeout: float = 10, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.user_agent = user_agent
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get_json(self, url: str, params: Dict) -> Dict:
        try:
            response = self.session.get(
                url,
                params=params,
                headers={'User-Agent': self.user_agent},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GeocodeProviderError(f"{self.name} request failed: {e}") from e
        if response.status_code != 200:
            raise GeocodeProviderError(f"{self.name} API error: HTTP {response.status_code}")
        try:
            return response.json()
        except ValueError as e:
            raise GeocodeProviderError(f"{self.name} returned invalid JSON: {e}") from e

    def reverse(self, lat: float, lon: float) -> List[Dict]:
        raise NotImplementedError


class NominatimGeocoder(ReverseGeocoder):
    """OpenStreetMap Nominatim"""
    name = "nominatim"
    url = "https://nominatim.openstreetmap.org/reverse"

    def reverse(self, lat: float, lon: float) -> List[Dict]:
        data = self._get_json(self.url, {
            'lat': lat,
            'lon': lon,
            'format': 'jsonv2',
            'zoom': 14,
            'addressdetails': 1,
            'accept-language': 'en',
        })
        if data.get('error'):
            # "Unable to geocode" means open water / nothing nearby
            return []
        address = data.get('address') or {}
        return [address] if address else []


class PhotonGeocoder(ReverseGeocoder):
    """Photon by Komoot, OSM-based, no key"""
    name = "photon"
    url = "https://photon.komoot.io/reverse"

    def reverse(self, lat: float, lon: float) -> List[Dict]:
        data = self._get_json(self.url, {'lat': lat, 'lon': lon, 'limit': 1, 'lang': 'en'})
        results = []
        for feature in data.get('features', []):
            props = feature.get('properties', {})
            results.append({
                'city': props.get('city'),
                'town': props.get('town'),
                'village': props.get('village'),
                'locality': props.get('locality') or props.get('district'),
                'state': props.get('state'),
                'country': props.get('country'),
            })
        return results


class GoogleGeocoder(ReverseGeocoder):
    """Google Maps Geocoding API"""
    name = "google"
    requires_key = True
    url = "https://maps.googleapis.com/maps/api/geocode/json"

    # Google address component type -> OSM-style key
    COMPONENT_KEYS = {
        'locality': 'city',
        'postal_town': 'town',
        'sublocality': 'suburb',
        'administrative_area_level_2': 'municipality',
        'administrative_area_level_1': 'state',
        'country': 'country',
    }

    def reverse(self, lat: float, lon: float) -> List[Dict]:
        data = self._get_json(self.url, {'latlng': f"{lat},{lon}", 'key': self.api_key, 'language': 'en'})
        status = data.get('status')
        if status == 'ZERO_RESULTS':
            return []
        if status != 'OK':
            raise GeocodeProviderError(f"google API status {status}: {data.get('error_message', '')}".strip())
        results = []
        for result in data.get('results', []):
            address = {}
            for comp in result.get('address_components', []):
                for comp_type in comp.get('types', []):
                    key = self.COMPONENT_KEYS.get(comp_type)
                    if key and key not in address:
                        address[key] = comp.get('long_name')
            results.append(address)
        return results


class OpenCageGeocoder(ReverseGeocoder):
    name = "opencage"
    requires_key = True
    url = "https://api.opencagedata.com/geocode/v1/json"

    def reverse(self, lat: float, lon: float) -> List[Dict]:
        data = self._get_json(self.url, {
            'q': f"{lat},{lon}",
            'key': self.api_key,
            'no_annotations': 1,
            'language': 'en',
        })
        return [r.get('components', {}) for r in data.get('results', [])]


class LocationIQGeocoder(ReverseGeocoder):
    """LocationIQ, Nominatim-compatible response"""
    name = "locationiq"
    requires_key = True
    url = "https://us1.locationiq.com/v1/reverse"

    def reverse(self, lat: float, lon: float) -> List[Dict]:
        data = self._get_json(self.url, {
            'lat': lat,
            'lon': lon,
            'key': self.api_key,
            'format': 'json',
            'accept-language': 'en',
        })
        address = data.get('address') or {}
        return [address] if address else []


PROVIDERS = {
    cls.name: cls
    for cls in (NominatimGeocoder, PhotonGeocoder, GoogleGeocoder, OpenCageGeocoder, LocationIQGeocoder)
}

# Common aliases
PROVIDERS['openstreetmap'] = NominatimGeocoder
PROVIDERS['osm'] = NominatimGeocoder


def create_provider(geocoding_config: Dict) -> Optional[ReverseGeocoder]:
    """Build the configured provider, or None when geocoding has no usable provider.

    Raises ValueError for an unknown provider name.
    """
    name = (geocoding_config.get('provider') or 'none').lower()
    if name in ('none', 'off', ''):
        return None
    if name not in PROVIDERS:
        raise ValueError(f"Unknown geocoding provider: {name} (choose from {', '.join(sorted(PROVIDERS))})")
    cls = PROVIDERS[name]
    api_key = geocoding_config.get('api_key')
    if cls.requires_key and not api_key:
        return None
    return cls(
        api_key=api_key,
        user_agent=geocoding_config.get('user_agent', 'photo-manifest/1.0'),
        timeout=float(geocoding_config.get('timeout_seconds', 10)),
    )
