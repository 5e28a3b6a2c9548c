import logging
import math

import requests
from django.conf import settings

from .exceptions import UpstreamUnavailable

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371


def format_coordinates(latitude: float, longitude: float) -> str:
    return f"{latitude:.6f}, {longitude:.6f}"


def reverse_geocode(latitude: float, longitude: float) -> str:
    """Look up a human-readable address for a coordinate pair.

    Raises ``UpstreamUnavailable`` when the provider cannot be reached or
    answers with something other than a JSON object.
    """
    try:
        response = requests.get(
            settings.GEOCODING_URL,
            params={
                "latitude": latitude,
                "longitude": longitude,
                "localityLanguage": "en",
            },
            timeout=settings.GEOCODING_TIMEOUT,
        )
        response.raise_for_status()
        data = response.json()
    except (requests.RequestException, ValueError) as error:
        raise UpstreamUnavailable(f"Reverse geocoding failed: {error}") from error
    if not isinstance(data, dict):
        raise UpstreamUnavailable("Reverse geocoding returned an unexpected payload.")

    parts = [
        data.get(key)
        for key in ("locality", "principalSubdivision", "countryName")
        if data.get(key)
    ]
    return ", ".join(parts) or format_coordinates(latitude, longitude)


def resolve_address(latitude: float, longitude: float, resolver=None) -> str:
    resolver = resolver or reverse_geocode
    try:
        address = resolver(latitude, longitude)
    except UpstreamUnavailable as error:
        logger.warning("Falling back to coordinates for (%s, %s): %s", latitude, longitude, error)
        return format_coordinates(latitude, longitude)
    return address or format_coordinates(latitude, longitude)


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c
