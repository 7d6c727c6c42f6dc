"""Geo enrichment from edge-proxy request headers.

The edge (Cloudflare by default) resolves the client IP to a country and
approximate coordinates and forwards them as headers. The values are taken
as opaque attributes; only obviously unusable ones are dropped.
"""

from collections.abc import Mapping

from sitepulse.config import Settings

# Cloudflare placeholders for "unknown" and "Tor exit node"
UNKNOWN_COUNTRIES = {"XX", "T1"}


def _parse_coordinate(raw: str | None, limit: float) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not -limit <= value <= limit:
        return None
    return value


def geo_from_headers(headers: Mapping[str, str], settings: Settings) -> dict:
    """Return ``country``, ``latitude`` and ``longitude`` (each possibly None)."""
    country = (headers.get(settings.geo_country_header) or "").strip().upper()
    if not country or country in UNKNOWN_COUNTRIES or len(country) > 8:
        country = None

    latitude = _parse_coordinate(headers.get(settings.geo_latitude_header), 90.0)
    longitude = _parse_coordinate(headers.get(settings.geo_longitude_header), 180.0)
    # A half-known position is no position
    if latitude is None or longitude is None:
        latitude = longitude = None

    return {"country": country, "latitude": latitude, "longitude": longitude}
