from datetime import time

import pytest

from conftest import seed_route
from core.errors import InvalidRouteDefinition
from services.route_store import validate_stops


def test_validate_stops_sorts_by_order():
    stops = validate_stops([
        {"name": "B", "order": 2, "price_from_origin": 500},
        {"name": "A", "order": 0, "price_from_origin": 0},
    ])
    assert [s["name"] for s in stops] == ["A", "B"]


@pytest.mark.parametrize(
    "stops",
    [
        [{"name": "A", "order": 0, "price_from_origin": 0}, {"name": "A", "order": 1, "price_from_origin": 10}],
        [{"name": "A", "order": 1, "price_from_origin": 0}, {"name": "B", "order": 1, "price_from_origin": 10}],
        [{"name": "A", "order": 0, "price_from_origin": 10}, {"name": "B", "order": 1, "price_from_origin": 5}],
    ],
)
def test_validate_stops_rejects_broken_invariants(stops):
    with pytest.raises(InvalidRouteDefinition):
        validate_stops(stops)


@pytest.mark.asyncio
async def test_upsert_replaces_stops_and_updates_bus(container):
    await seed_route(container, capacity=40)
    route = await container.routes.upsert_route(
        route_id="R1",
        origin="Kampala",
        destination="Mbarara",
        price=10000,
        departure_time=time(9, 30),
        bus_plate="UAX-R1",
        bus_capacity=30,
        stops=[
            {"name": "Kampala", "order": 0, "price_from_origin": 0},
            {"name": "Mbarara", "order": 1, "price_from_origin": 10000},
        ],
    )
    assert route.price == 10000
    assert route.bus.capacity == 30
    assert [(s.name, s.order_index) for s in route.stops] == [("Kampala", 0), ("Mbarara", 1)]


@pytest.mark.asyncio
async def test_get_active_route_hides_inactive(container):
    await seed_route(container, route_id="R2", active=False)
    assert await container.routes.get_active_route("R2") is None
    assert (await container.routes.get_route("R2")).active is False


@pytest.mark.asyncio
async def test_upsert_creates_new_route_with_stops(container):
    route = await container.routes.upsert_route(
        route_id="RX",
        origin="Kampala",
        destination="Gulu",
        price=25000,
        departure_time=time(6, 0),
        bus_plate="UBB-001",
        bus_capacity=50,
        stops=[
            {"name": "Gulu", "order": 2, "price_from_origin": 25000},
            {"name": "Kampala", "order": 0, "price_from_origin": 0},
            {"name": "Karuma", "order": 1, "price_from_origin": 18000},
        ],
    )
    assert route.route_id == "RX"
    assert route.active is True
    assert route.bus.plate_number == "UBB-001"
    assert [(s.name, s.price_from_origin) for s in route.stops] == [
        ("Kampala", 0), ("Karuma", 18000), ("Gulu", 25000),
    ]


@pytest.mark.asyncio
async def test_second_route_can_share_a_bus(container):
    await seed_route(container, route_id="R1")
    route = await container.routes.upsert_route(
        route_id="R1-RETURN",
        origin="Mbarara",
        destination="Kampala",
        price=9000,
        departure_time=time(15, 0),
        bus_plate="UAX-R1",
        bus_capacity=40,
    )
    assert route.bus.capacity == 40
    assert route.stops == []
    assert (await container.routes.get_route("R1")).bus.plate_number == "UAX-R1"
