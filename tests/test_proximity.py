from __future__ import annotations

import pytest

from glimpse.geo import GeoPoint
from glimpse.models.group import GroupCreateRequest
from glimpse.models.profile import ContextType
from glimpse.services.proximity import ProximityIndex

CITY_HALL = GeoPoint(37.5665, 126.9780)


def _location(name: str, lat: float, lon: float, **kwargs) -> GroupCreateRequest:
    return GroupCreateRequest(name=name, context_type=ContextType.LOCATION, latitude=lat, longitude=lon, **kwargs)


def test_nearby_orders_by_distance_then_id() -> None:
    east = GeoPoint(37.5665, 126.9790)
    west = GeoPoint(37.5665, 126.9770)
    far = GeoPoint(37.6000, 126.9780)
    hits = ProximityIndex.nearby(CITY_HALL, 500, [("z-east", east), ("a-west", west), ("far", far)])

    assert [key for key, _ in hits] == ["a-west", "z-east"]
    assert hits[0][1] == pytest.approx(hits[1][1])


def test_nearby_rejects_negative_radius() -> None:
    with pytest.raises(ValueError):
        ProximityIndex.nearby(CITY_HALL, -1, [])


def test_zero_radius_only_matches_the_same_point() -> None:
    hits = ProximityIndex.nearby(CITY_HALL, 0, [("here", CITY_HALL), ("near", GeoPoint(37.5666, 126.9780))])
    assert hits == [("here", 0.0)]


@pytest.mark.asyncio
async def test_location_groups_lists_open_groups_nearest_first(container, make_account) -> None:
    await make_account("acc-1")
    groups = container.groups
    plaza = await groups.create_group("acc-1", _location("Plaza", 37.5670, 126.9780))
    station = await groups.create_group("acc-1", _location("Station", 37.5550, 126.9707))
    await groups.create_group("acc-1", _location("Busan", 35.1796, 129.0756))
    await groups.create_group("acc-1", GroupCreateRequest(name="Book club", context_type=ContextType.CREATED))

    hits = await container.proximity.location_groups(CITY_HALL, 2000)
    assert [group.group_id for group, _ in hits] == [plaza.group_id, station.group_id]
    assert hits[0][1] < hits[1][1] <= 2000


@pytest.mark.asyncio
async def test_expired_location_group_is_not_listed(container, make_account, clock) -> None:
    await make_account("acc-1")
    short = await container.groups.create_group("acc-1", _location("Pop-up", 37.5670, 126.9780, duration_hours=1))
    lasting = await container.groups.create_group("acc-1", _location("Square", 37.5660, 126.9780))

    listed = [g.group_id for g, _ in await container.proximity.location_groups(CITY_HALL, 1000)]
    assert set(listed) == {short.group_id, lasting.group_id}

    clock.advance(hours=1)
    listed = [g.group_id for g, _ in await container.proximity.location_groups(CITY_HALL, 1000)]
    assert listed == [lasting.group_id]


@pytest.mark.asyncio
async def test_new_location_group_is_visible_immediately(container, make_account) -> None:
    await make_account("acc-1")
    assert await container.proximity.location_groups(CITY_HALL, 1000) == []

    created = await container.groups.create_group("acc-1", _location("Fresh", 37.5666, 126.9781))
    hits = await container.proximity.location_groups(CITY_HALL, 1000)
    assert [g.group_id for g, _ in hits] == [created.group_id]


@pytest.mark.asyncio
async def test_nearby_groups_view_rounds_distance(container, make_account) -> None:
    await make_account("acc-1")
    await container.groups.create_group("acc-1", _location("Plaza", 37.5670, 126.9780))

    views = await container.groups.nearby_groups(CITY_HALL.lat, CITY_HALL.lon, 1000)
    assert len(views) == 1
    assert views[0].distance_meters == round(views[0].distance_meters, 1)
    assert views[0].radius_meters == 1000.0
