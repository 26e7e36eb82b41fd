"""
Route store with async SQLAlchemy backend.

Purpose:
- Look up routes (with bus capacity and ordered stops) for the booking engine
- Admin upsert of a route definition, validating the stop invariants

Key methods:
- get_route(route_id): route or None, regardless of active flag
- get_active_route(route_id): route or None when missing or inactive
- upsert_route(...): create/update bus + route + stops in one transaction
"""
from datetime import time
from typing import Iterable, List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select

from core.errors import InvalidRouteDefinition
from models.db_models import Bus, Route, RouteStop
import logging

logger = logging.getLogger(__name__)


def validate_stops(stops: Iterable[dict]) -> List[dict]:
    """
    Check stop invariants and return the stops sorted by order.

    - names unique on the route
    - order indices strictly increasing (no duplicates)
    - price_from_origin non-decreasing along order
    """
    ordered = sorted(stops, key=lambda s: s["order"])
    seen_names = set()
    previous = None
    for stop in ordered:
        if stop["name"] in seen_names:
            raise InvalidRouteDefinition(f"Duplicate stop name: {stop['name']}")
        seen_names.add(stop["name"])
        if previous is not None:
            if stop["order"] <= previous["order"]:
                raise InvalidRouteDefinition(f"Stop order {stop['order']} is not strictly increasing")
            if stop["price_from_origin"] < previous["price_from_origin"]:
                raise InvalidRouteDefinition(
                    f"Stop '{stop['name']}' is cheaper from origin than '{previous['name']}'"
                )
        previous = stop
    return ordered


class RouteStore:
    """DB-backed route lookups; opens its own short read sessions."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def get_route(self, route_id: str) -> Optional[Route]:
        async with self.session_maker() as session:
            result = await session.execute(select(Route).where(Route.route_id == route_id))
            return result.unique().scalar_one_or_none()

    async def get_active_route(self, route_id: str) -> Optional[Route]:
        route = await self.get_route(route_id)
        if route is None or not route.active:
            return None
        return route

    async def upsert_route(
        self,
        route_id: str,
        origin: str,
        destination: str,
        price: int,
        departure_time: time,
        bus_plate: str,
        bus_capacity: int,
        stops: Iterable[dict] = (),
        active: bool = True,
        bus_model: Optional[str] = None,
    ) -> Route:
        """
        Create or replace a route definition. Stops are replaced wholesale.

        Raises InvalidRouteDefinition when the stop invariants do not hold.
        """
        ordered = validate_stops(stops)
        async with self.session_maker() as session:
            async with session.begin():
                bus = (await session.execute(
                    select(Bus).where(Bus.plate_number == bus_plate)
                )).scalar_one_or_none()
                if bus is None:
                    bus = Bus(plate_number=bus_plate, capacity=bus_capacity, model=bus_model)
                    session.add(bus)
                else:
                    bus.capacity = bus_capacity
                    if bus_model:
                        bus.model = bus_model

                # bus id is needed for the route row
                await session.flush()

                route = (await session.execute(
                    select(Route).where(Route.route_id == route_id)
                )).unique().scalar_one_or_none()
                new_stops = [
                    RouteStop(name=s["name"], order_index=s["order"], price_from_origin=s["price_from_origin"])
                    for s in ordered
                ]
                if route is None:
                    route = Route(
                        route_id=route_id,
                        origin=origin,
                        destination=destination,
                        price=price,
                        departure_time=departure_time,
                        active=active,
                        bus_id=bus.id,
                        stops=new_stops,
                    )
                    session.add(route)
                else:
                    route.origin = origin
                    route.destination = destination
                    route.price = price
                    route.departure_time = departure_time
                    route.active = active
                    route.bus_id = bus.id
                    # old stops go before the new ones land; (route_pk, order_index) is unique
                    await session.execute(
                        delete(RouteStop).where(RouteStop.route_pk == route.id),
                        execution_options={"synchronize_session": False},
                    )
                    for stop in new_stops:
                        stop.route_pk = route.id
                    session.add_all(new_stops)
            logger.info("Route %s upserted with %d stops (capacity=%d)", route_id, len(ordered), bus_capacity)
        return await self.get_route(route_id)
