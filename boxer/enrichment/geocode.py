"""
Reverse geocoding through the Google Geocoding API.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from ..config import BoxerConfig
from ..exceptions import GeocodeError, RemoteError, TransientRemoteError
from ..models import GeocodeResult
from ..remote.box import raise_for_status
from ..remote.retry import RetryPolicy


def _component(components: List[Dict[str, Any]], *types: str) -> Optional[str]:
    """long_name of the first component carrying any of the given types, in type order."""
    for wanted in types:
        for comp in components:
            if wanted in (comp.get('types') or []):
                return comp.get('long_name')
    return None


def parse_place(result: Dict[str, Any]) -> GeocodeResult:
    components = result.get('address_components') or []

    venue = None
    route = _component(components, 'route')
    if route:
        number = _component(components, 'street_number')
        venue = f"{number} {route}" if number else route
    else:
        venue = _component(components, 'premise', 'establishment', 'point_of_interest')

    return GeocodeResult(
        formatted_address=result.get('formatted_address'),
        venue=venue,
        neighborhood=_component(components, 'neighborhood', 'sublocality'),
        city=_component(components, 'locality', 'postal_town'),
        region=_component(components, 'administrative_area_level_1', 'sublocality_level_1'),
        country=_component(components, 'country'),
    )


class GeocodingAdapter:
    def __init__(self, cfg: BoxerConfig, session: Optional[requests.Session] = None,
                 retry: Optional[RetryPolicy] = None, sleep: Callable[[float], None] = time.sleep):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.retry = retry or RetryPolicy(cfg.max_retries, cfg.retry_base_delay, cfg.retry_max_delay)
        self.sleep = sleep

    def reverse(self, latitude: float, longitude: float) -> Optional[GeocodeResult]:
        """Place names for a coordinate, or None on any failure."""
        try:
            return self._reverse(latitude, longitude)
        except (GeocodeError, RemoteError, requests.exceptions.RequestException,
                ValueError, TypeError, AttributeError) as e:
            logging.warning(f"Reverse geocoding failed for {latitude},{longitude}: {e}")
            return None
        finally:
            # Courtesy pacing for the geocoding quota
            if self.cfg.geocode_delay:
                self.sleep(self.cfg.geocode_delay)

    def _reverse(self, latitude: float, longitude: float) -> GeocodeResult:
        payload = self.retry.call(self._get, latitude, longitude)
        status = payload.get('status')
        if status != 'OK':
            raise GeocodeError(f"status {status}: {payload.get('error_message', '')}")
        results = payload.get('results') or []
        if not results:
            raise GeocodeError('no results')
        return parse_place(results[0])

    def _get(self, latitude: float, longitude: float) -> Dict[str, Any]:
        try:
            response = self.session.get(
                self.cfg.geocode_endpoint,
                params={'latlng': f"{latitude},{longitude}", 'key': self.cfg.geocode_api_key},
                timeout=self.cfg.request_timeout,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientRemoteError(None, str(e)) from e
        raise_for_status(response)
        return response.json()
