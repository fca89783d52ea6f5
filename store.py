"""Ride persistence.

All status changes go through ``update_status``, a compare-and-swap issued
as one conditional UPDATE. Whichever caller's UPDATE matches the expected
status first wins; every other caller sees zero affected rows and gets a
Conflict.
"""
from typing import List, Optional
from sqlalchemy import update
from sqlmodel import Session, select
from errors import Conflict, NotFound
from models import Ride, RideStatus, TERMINAL_STATUSES, utcnow
import logging

logger = logging.getLogger(__name__)

_UNCHANGED = object()

ACTIVE_STATUSES = [s.value for s in RideStatus if s not in TERMINAL_STATUSES]


def create_ride(session: Session, user_id: str, pickup_address: str, dropoff_address: str,
                distance_km: float, estimated_fare: float, passengers: int = 1,
                ride_type: str = "standard", **optional) -> Ride:
    ride = Ride(
        user_id=user_id,
        pickup_address=pickup_address,
        dropoff_address=dropoff_address,
        distance_km=distance_km,
        estimated_fare=estimated_fare,
        passengers=passengers,
        ride_type=ride_type,
        status=RideStatus.PENDING_ASSIGNMENT.value,
        **optional,
    )
    session.add(ride)
    session.flush()
    return ride


def get_ride(session: Session, ride_id: str, for_update: bool = False) -> Ride:
    stmt = select(Ride).where(Ride.id == ride_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    ride = session.exec(stmt).first()
    if ride is None:
        raise NotFound("Ride not found.")
    return ride


def list_pending(session: Session, limit: Optional[int] = None) -> List[Ride]:
    stmt = (
        select(Ride)
        .where(Ride.status == RideStatus.PENDING_ASSIGNMENT.value)
        .order_by(Ride.requested_at, Ride.id)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(session.exec(stmt).all())


def update_status(session: Session, ride_id: str, expected, new, driver_id=_UNCHANGED,
                  expected_driver=_UNCHANGED, message: Optional[str] = None, **stamps) -> Ride:
    """Move ``ride_id`` from ``expected`` to ``new`` status, or raise.

    ``expected_driver`` additionally guards on the assigned driver (``None``
    means unassigned). ``driver_id`` reassigns the driver in the same write.
    Extra keyword arguments are written as columns (timestamps).
    """
    expected = RideStatus(expected).value
    new = RideStatus(new).value
    values = {"status": new, "updated_at": utcnow(), **stamps}
    if driver_id is not _UNCHANGED:
        values["driver_id"] = driver_id

    stmt = update(Ride).where(Ride.id == ride_id, Ride.status == expected)
    if expected_driver is not _UNCHANGED:
        stmt = stmt.where(Ride.driver_id == expected_driver)
    result = session.exec(stmt.values(**values).execution_options(synchronize_session=False))

    if result.rowcount != 1:
        current = session.get(Ride, ride_id, populate_existing=True)
        if current is None:
            raise NotFound("Ride not found.")
        logger.debug(
            "cas miss on ride %s: wanted %s/%s, found %s/%s",
            ride_id, expected, expected_driver if expected_driver is not _UNCHANGED else "*",
            current.status, current.driver_id,
        )
        raise Conflict(message or f"Ride is {current.status}, expected {expected}.")
    return get_ride(session, ride_id)


def current_ride_for_user(session: Session, user_id: str) -> Optional[Ride]:
    stmt = (
        select(Ride)
        .where(Ride.user_id == user_id, Ride.status.in_(ACTIVE_STATUSES))
        .order_by(Ride.requested_at.desc())
        .limit(1)
    )
    return session.exec(stmt).first()


def offered_ride_for_driver(session: Session, driver_id: str) -> Optional[Ride]:
    stmt = select(Ride).where(
        Ride.driver_id == driver_id,
        Ride.status == RideStatus.AWAITING_DRIVER_ACCEPTANCE.value,
    )
    return session.exec(stmt).first()
