from contextlib import asynccontextmanager
from sqlalchemy import text
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.requests import Request
from starlette.routing import Route
from db import init_db, transaction
from errors import RideServiceError, Unauthenticated, Unauthorized
from models import Ride, Driver, User
import availability
import lifecycle
import matching
import store
import logging
import math
import os

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

COORDINATE_KEYS = ("pickup_lat", "pickup_lng", "dropoff_lat", "dropoff_lng")


def ensure_db():
    init_db()


@asynccontextmanager
async def lifespan(app):
    ensure_db()
    yield


def caller(request: Request, kind: str = None) -> str:
    """Identity established upstream and forwarded as headers."""
    caller_id = request.headers.get("x-caller-id")
    caller_type = request.headers.get("x-caller-type")
    if not caller_id or caller_type not in ("user", "driver"):
        raise Unauthenticated("Not authorized, no caller identity.")
    if kind and caller_type != kind:
        raise Unauthorized(f"Not authorized as a {kind}.")
    return caller_id


async def read_json(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def ride_json(ride: Ride, driver: Driver = None, passenger: User = None) -> dict:
    out = ride.model_dump(mode="json")
    if passenger is not None:
        out["passenger"] = {"id": passenger.id, "name": passenger.name}
    if driver is not None:
        out["driver"] = {
            "id": driver.id,
            "name": driver.name,
            "vehicle_model": driver.vehicle_model,
            "license_plate": driver.license_plate,
        }
    return out


def driver_json(driver: Driver) -> dict:
    return driver.model_dump(mode="json")


async def request_ride(request: Request):
    user_id = caller(request, "user")
    payload = await read_json(request)
    required = ["pickup_address", "dropoff_address", "ride_type", "estimated_fare", "distance_km", "passengers"]
    for k in required:
        if k not in payload:
            return JSONResponse({"error": f"missing {k}"}, status_code=400)
    for k in ("pickup_address", "dropoff_address", "ride_type"):
        if not isinstance(payload[k], str):
            return JSONResponse({"error": f"{k} must be a string"}, status_code=400)
    service = payload.get("originating_service")
    if service is not None and not isinstance(service, str):
        return JSONResponse({"error": "originating_service must be a string"}, status_code=400)
    try:
        fields = {
            "distance_km": float(payload["distance_km"]),
            "estimated_fare": float(payload["estimated_fare"]),
        }
        fields.update(
            (k, float(payload[k])) for k in COORDINATE_KEYS if payload.get(k) is not None
        )
        passengers = int(payload["passengers"])
    except (TypeError, ValueError, OverflowError):
        return JSONResponse(
            {"error": "distance_km, estimated_fare, passengers and coordinates must be numbers"},
            status_code=400,
        )
    for k, v in fields.items():
        if not math.isfinite(v):
            return JSONResponse({"error": f"{k} must be a finite number"}, status_code=400)
    if service is not None:
        fields["originating_service"] = service
    try:
        ride = lifecycle.request_ride(
            user_id,
            pickup_address=payload["pickup_address"],
            dropoff_address=payload["dropoff_address"],
            ride_type=payload["ride_type"],
            passengers=passengers,
            **fields,
        )
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    return JSONResponse(ride_json(ride), status_code=201)


async def current_user_ride(request: Request):
    ride = lifecycle.current_ride_for_user(caller(request, "user"))
    return JSONResponse(ride_json(ride) if ride else None)


async def pending_rides(request: Request):
    caller(request)
    with transaction() as session:
        rows = store.list_pending(session)
    return JSONResponse([
        {
            "id": r.id,
            "pickup_address": r.pickup_address,
            "dropoff_address": r.dropoff_address,
            "ride_type": r.ride_type,
            "requested_at": r.requested_at.isoformat(),
        }
        for r in rows
    ])


async def poll_offer(request: Request):
    ride = matching.poll_offer(caller(request, "driver"))
    if ride is None:
        return JSONResponse(None)
    return JSONResponse(ride_json(ride, passenger=lifecycle.get_passenger(ride)))


async def accept_ride(request: Request):
    ride = lifecycle.accept_offer(caller(request, "driver"), request.path_params["ride_id"])
    return JSONResponse({"message": "Ride accepted.", "ride": ride_json(ride)})


async def reject_ride(request: Request):
    driver_id = caller(request, "driver")
    payload = await read_json(request)
    auto = bool(payload.get("auto", False))
    lifecycle.reject_offer(driver_id, request.path_params["ride_id"], auto=auto)
    return JSONResponse({"message": "Ride rejected. It will be offered to other drivers.", "auto": auto})


async def arrive(request: Request):
    ride = lifecycle.mark_arrived(caller(request, "driver"), request.path_params["ride_id"])
    return JSONResponse({"message": "Arrival confirmed.", "ride": ride_json(ride)})


async def start(request: Request):
    ride = lifecycle.start_ride(caller(request, "driver"), request.path_params["ride_id"])
    return JSONResponse({"message": "Ride started.", "ride": ride_json(ride)})


async def complete(request: Request):
    ride = lifecycle.complete_ride(caller(request, "driver"), request.path_params["ride_id"])
    return JSONResponse({"message": "Ride completed successfully.", "ride": ride_json(ride)})


async def cancel(request: Request):
    caller_id = caller(request)
    ride_id = request.path_params["ride_id"]
    if request.headers["x-caller-type"] == "driver":
        ride = lifecycle.cancel_by_driver(caller_id, ride_id)
    else:
        ride = lifecycle.cancel_by_user(caller_id, ride_id)
    return JSONResponse({"message": "Ride cancelled.", "ride": ride_json(ride)})


async def ride_status(request: Request):
    ride = lifecycle.get_ride_status(caller(request), request.path_params["ride_id"])
    driver = availability.get_availability(ride.driver_id) if ride.driver_id else None
    return JSONResponse(ride_json(ride, driver, lifecycle.get_passenger(ride)))


async def driver_me(request: Request):
    driver = availability.get_availability(caller(request, "driver"))
    return JSONResponse(driver_json(driver))


async def update_availability(request: Request):
    driver_id = caller(request, "driver")
    payload = await read_json(request)
    try:
        driver = availability.set_availability(driver_id, payload.get("availability"))
    except ValueError:
        return JSONResponse(
            {"error": 'Invalid availability status provided. Must be "Online" or "Offline".'},
            status_code=400,
        )
    return JSONResponse({
        "message": f"Driver availability updated to {driver.availability}.",
        "availability": driver.availability,
        "current_ride_id": driver.current_ride_id,
    })


async def health(request: Request):
    with transaction() as session:
        session.connection().execute(text("SELECT 1"))
    return JSONResponse({"status": "UP"})


async def service_error(request: Request, exc: RideServiceError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


routes = [
    Route("/health", health, methods=["GET"]),
    Route("/rides/request", request_ride, methods=["POST"]),
    Route("/rides/user/current", current_user_ride, methods=["GET"]),
    Route("/rides/pending", pending_rides, methods=["GET"]),
    Route("/rides/driver/new", poll_offer, methods=["GET"]),
    Route("/rides/{ride_id}/accept", accept_ride, methods=["POST"]),
    Route("/rides/{ride_id}/reject", reject_ride, methods=["POST"]),
    Route("/rides/{ride_id}/arrive", arrive, methods=["POST"]),
    Route("/rides/{ride_id}/start", start, methods=["POST"]),
    Route("/rides/{ride_id}/complete", complete, methods=["POST"]),
    Route("/rides/{ride_id}/cancel", cancel, methods=["POST"]),
    Route("/rides/{ride_id}/status", ride_status, methods=["GET"]),
    Route("/drivers/me", driver_me, methods=["GET"]),
    Route("/drivers/me/availability", update_availability, methods=["PUT"]),
]

app = Starlette(
    debug=os.environ.get("DEBUG", "") == "1",
    routes=routes,
    lifespan=lifespan,
    exception_handlers={RideServiceError: service_error},
)
