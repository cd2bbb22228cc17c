"""
Mapping-service client (Google Maps Web Services).

The mapping service is an external black box. This module wraps the four calls the
service needs:
- reverse geocoding (address of a point, cached on disk),
- driving directions (turn-by-turn steps),
- distance matrix (distance/duration text),
- nearby place search.

Google expects `"lat,lng"` strings; the conversion happens here only, so callers
always pass `GeoPoint` values and never hand-build coordinate strings.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from georemind.config.settings import Settings
from georemind.core.cache import FileCache
from georemind.core.errors import MapsServiceError
from georemind.core.geo import GeoPoint
from georemind.core.http import get_json
from georemind.domain.models import NavigationStep, NavigationSummary

logger = logging.getLogger(__name__)

_DIV_RE = re.compile(r"<div[^>]*>")
_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")


def latlng(point: GeoPoint) -> str:
    return f"{point.lat},{point.lon}"


def strip_html(instruction: str) -> str:
    """Turn Google's HTML step instructions into plain text."""
    text = _DIV_RE.sub(" ", instruction or "")
    text = _TAG_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


class MapsClient:
    """Thin Google Maps client; every failure surfaces as `MapsServiceError`."""

    def __init__(self, settings: Settings, cache: FileCache):
        self._settings = settings
        self._cache = cache

    def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        cfg = self._settings.maps
        if not cfg.api_key:
            raise MapsServiceError("Maps API key is not configured (GOOGLE_MAPS_API_KEY)")
        url = f"{cfg.base_url.rstrip('/')}/{endpoint}/json"
        logger.info("Maps request %s", endpoint)
        try:
            payload = get_json(
                url,
                params={**params, "key": cfg.api_key},
                timeout_seconds=self._settings.app.http_timeout_seconds,
            )
        except (httpx.HTTPError, ValueError) as e:
            raise MapsServiceError(f"Maps {endpoint} request failed: {e}") from e
        if not isinstance(payload, dict):
            raise MapsServiceError(f"Maps {endpoint} returned a non-object payload")
        status = payload.get("status", "OK")
        if status not in ("OK", "ZERO_RESULTS"):
            detail = payload.get("error_message") or status
            raise MapsServiceError(f"Maps {endpoint} failed: {detail}")
        return payload

    def reverse_geocode(self, point: GeoPoint) -> str:
        """Return the formatted address of `point`."""
        key = f"{point.lat:.5f},{point.lon:.5f}"

        def builder() -> str:
            results = self._get("geocode", {"latlng": latlng(point)}).get("results") or []
            if not results or not results[0].get("formatted_address"):
                raise MapsServiceError(f"No address found for {key}")
            return str(results[0]["formatted_address"])

        return self._cache.get_or_set(
            "geocode",
            key,
            builder,
            ttl_seconds=self._settings.maps.geocode_cache_ttl_seconds,
        )

    def get_directions(self, origin: GeoPoint, destination: GeoPoint) -> dict[str, Any]:
        """Return the first route's first leg plus the route summary."""
        payload = self._get("directions", {"origin": latlng(origin), "destination": latlng(destination)})
        routes = payload.get("routes") or []
        if not routes:
            raise MapsServiceError("No route found")
        route = routes[0]
        legs = route.get("legs") or [{}]
        return {**legs[0], "summary": route.get("summary", "")}

    def get_distance(self, origin: GeoPoint, destination: GeoPoint) -> dict[str, Any]:
        """Return the distance-matrix element for one origin/destination pair."""
        payload = self._get("distancematrix", {"origins": latlng(origin), "destinations": latlng(destination)})
        try:
            return dict(payload["rows"][0]["elements"][0])
        except (KeyError, IndexError, TypeError) as e:
            raise MapsServiceError("Distance matrix returned no elements") from e

    def search_nearby(self, point: GeoPoint, keyword: str, *, radius_m: int | None = None) -> list[dict[str, Any]]:
        params = {
            "location": latlng(point),
            "radius": radius_m if radius_m is not None else self._settings.maps.search_radius_m,
            "keyword": keyword,
        }
        return list(self._get("place/nearbysearch", params).get("results") or [])

    def navigation_summary(self, origin: GeoPoint, destination: GeoPoint) -> NavigationSummary:
        """Address of `origin` plus distance, duration and steps to `destination`."""
        element = self.get_distance(origin, destination)
        directions = self.get_directions(origin, destination)
        address = self.reverse_geocode(origin)

        steps = [
            NavigationStep(
                instruction=strip_html(step.get("html_instructions", "")) or "Continue straight",
                distance=(step.get("distance") or {}).get("text", ""),
            )
            for step in directions.get("steps") or []
        ]
        return NavigationSummary(
            current_address=address,
            distance=(element.get("distance") or {}).get("text") or "Unknown distance",
            duration=(element.get("duration") or {}).get("text") or "Unknown duration",
            steps=steps,
            overview=directions.get("summary", ""),
        )
