import asyncio

import pytest

from carte.domain.errors import LocationUnavailable
from carte.domain.geo.models import ClubLocation, Coordinates
from carte.domain.geo.service import ReportedPositionProvider, haversine, locate_and_validate, validate
from tests.support import CLUB_LAT, CLUB_LON, point_north_of_club

CLUB = Coordinates(CLUB_LAT, CLUB_LON)


def test_haversine_zero_distance():
    assert haversine(CLUB_LAT, CLUB_LON, CLUB_LAT, CLUB_LON) == 0


def test_boundary_distance_is_accepted():
    lat, lon = point_north_of_club(60)
    result = validate(Coordinates(lat, lon), CLUB, 60)
    assert result.accepted
    assert result.distance_m == 60


def test_just_outside_boundary_is_rejected():
    lat, lon = point_north_of_club(61)
    result = validate(Coordinates(lat, lon), CLUB, 60)
    assert not result.accepted
    assert result.distance_m == 61


def test_comparison_uses_unrounded_distance():
    lat, lon = point_north_of_club(60.4)
    result = validate(Coordinates(lat, lon), CLUB, 60)
    assert not result.accepted
    assert result.distance_m == 60


@pytest.mark.parametrize("lat,lon", [(91, 0), (-90.5, 0), (0, 180.1), (0, -181)])
def test_out_of_range_coordinates_are_unavailable(lat, lon):
    with pytest.raises(LocationUnavailable) as exc:
        Coordinates(lat, lon)
    assert exc.value.cause == "invalid_coordinates"


@pytest.mark.asyncio
async def test_provider_error_is_never_a_decision():
    provider = ReportedPositionProvider(error="permission_denied")
    with pytest.raises(LocationUnavailable) as exc:
        await locate_and_validate(provider, ClubLocation(CLUB_LAT, CLUB_LON, 60))
    assert exc.value.cause == "permission_denied"


@pytest.mark.asyncio
async def test_missing_position_is_unavailable():
    with pytest.raises(LocationUnavailable) as exc:
        await locate_and_validate(ReportedPositionProvider(), ClubLocation(CLUB_LAT, CLUB_LON, 60))
    assert exc.value.cause == "position_unavailable"


@pytest.mark.asyncio
async def test_slow_provider_times_out():
    class SlowProvider:
        async def get_current_position(self):
            await asyncio.sleep(10)

    with pytest.raises(LocationUnavailable) as exc:
        await locate_and_validate(SlowProvider(), ClubLocation(CLUB_LAT, CLUB_LON, 60), timeout=0.01)
    assert exc.value.cause == "timeout"


@pytest.mark.asyncio
async def test_locate_and_validate_accepts_inside_radius():
    lat, lon = point_north_of_club(10)
    result = await locate_and_validate(ReportedPositionProvider(lat, lon), ClubLocation(CLUB_LAT, CLUB_LON, 60))
    assert result.accepted
    assert result.distance_m == 10
