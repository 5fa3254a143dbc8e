"""Geofence checks for visit scans."""

from __future__ import annotations

import asyncio
import math
from typing import Optional, Protocol

from carte.domain.errors import LocationUnavailable
from carte.domain.geo.models import ClubLocation, Coordinates, GeoResult
from carte.settings import settings

EARTH_RADIUS_M = 6_371_000
# Float error allowance so a point computed at exactly the limit stays inside.
BOUNDARY_EPSILON_M = 1e-6


class PositionProvider(Protocol):
    async def get_current_position(self) -> Coordinates:
        """Return the device position or raise LocationUnavailable."""


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return the great-circle distance between two points in meters."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def validate(position: Coordinates, club: Coordinates, max_distance_m: float) -> GeoResult:
    """Decide whether ``position`` lies within ``max_distance_m`` of ``club``.

    The boundary is inclusive and the comparison uses the exact distance; the
    reported distance is rounded to the meter for display.
    """
    distance = haversine(position.latitude, position.longitude, club.latitude, club.longitude)
    return GeoResult(accepted=distance <= max_distance_m + BOUNDARY_EPSILON_M, distance_m=int(round(distance)))


async def locate_and_validate(
    provider: PositionProvider,
    location: ClubLocation,
    *,
    timeout: Optional[float] = None,
) -> GeoResult:
    """Acquire the current position with a bounded wait, then validate it."""
    wait = settings.geolocation_timeout_seconds if timeout is None else timeout
    try:
        position = await asyncio.wait_for(provider.get_current_position(), timeout=wait)
    except asyncio.TimeoutError as exc:
        raise LocationUnavailable("timeout") from exc
    return validate(position, location.point, location.max_distance_m)


class ReportedPositionProvider:
    """Position reported by the client device alongside its scan.

    Clients that failed to acquire a fix send the failure cause instead of
    coordinates (``permission_denied``, ``position_unavailable``, ``timeout``,
    ``unsupported``).
    """

    def __init__(
        self,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        *,
        error: Optional[str] = None,
    ) -> None:
        self._latitude = latitude
        self._longitude = longitude
        self._error = error

    async def get_current_position(self) -> Coordinates:
        if self._error:
            raise LocationUnavailable(self._error)
        if self._latitude is None or self._longitude is None:
            raise LocationUnavailable("position_unavailable")
        return Coordinates(self._latitude, self._longitude)
