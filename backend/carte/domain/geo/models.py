"""Domain models for geofence validation."""

from __future__ import annotations

from dataclasses import dataclass

from carte.domain.errors import LocationUnavailable

LAT_MIN, LAT_MAX = -90.0, 90.0
LON_MIN, LON_MAX = -180.0, 180.0


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (LAT_MIN <= self.latitude <= LAT_MAX) or not (LON_MIN <= self.longitude <= LON_MAX):
            raise LocationUnavailable("invalid_coordinates")


@dataclass(frozen=True)
class ClubLocation:
    latitude: float
    longitude: float
    max_distance_m: int

    @property
    def point(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)


@dataclass(frozen=True)
class GeoResult:
    accepted: bool
    distance_m: int
