from fastapi import APIRouter, Depends

from core.auth import require_roles
from core.container import ServiceContainer, get_container
from core.errors import RouteNotFound
from core.response import ok
from models.schemas import RouteOut, RouteUpsertRequest, StopOut

router = APIRouter()


def _route(route) -> dict:
    out = RouteOut(
        route_id=route.route_id,
        origin=route.origin,
        destination=route.destination,
        price=route.price,
        departure_time=route.departure_time,
        active=route.active,
        capacity=route.bus.capacity,
        stops=[StopOut.model_validate(s) for s in route.stops],
    )
    return out.model_dump(by_alias=True, mode="json")


@router.post("/routes")
async def upsert_route(
    req: RouteUpsertRequest,
    admin: dict = Depends(require_roles("admin")),
    services: ServiceContainer = Depends(get_container),
):
    """
    Admin: create or replace a route definition.

    Request JSON:
    {
      "routeId": "KLA-MBR", "origin": "Kampala", "destination": "Mbarara",
      "price": 9000, "departureTime": "08:00", "busPlate": "UAX 123A",
      "busCapacity": 40,
      "stops": [{"name": "Kampala", "order": 0, "priceFromOrigin": 0}, ...]
    }

    Stops are replaced wholesale; order must be strictly increasing and
    priceFromOrigin non-decreasing.
    """
    route = await services.routes.upsert_route(
        route_id=req.route_id,
        origin=req.origin,
        destination=req.destination,
        price=req.price,
        departure_time=req.departure_time,
        bus_plate=req.bus_plate,
        bus_capacity=req.bus_capacity,
        bus_model=req.bus_model,
        active=req.active,
        stops=[s.model_dump() for s in req.stops],
    )
    return ok(_route(route))


@router.get("/routes/{route_id}")
async def get_route(
    route_id: str,
    admin: dict = Depends(require_roles("admin", "operator")),
    services: ServiceContainer = Depends(get_container),
):
    route = await services.routes.get_route(route_id)
    if route is None:
        raise RouteNotFound(f"Route {route_id} not found")
    return ok(_route(route))
