"""Driver availability: Offline, Online and OnTrip.

Drivers toggle between Online and Offline themselves. OnTrip is entered
and left only as a side effect of accepting and finishing a ride, inside
the same transaction as the ride's own status change.
"""
from typing import Optional
from sqlalchemy import update
from sqlmodel import Session, select
from db import transaction, driver_lock
from errors import Conflict, NotFound
from models import Driver, Availability
import store
import logging

logger = logging.getLogger(__name__)

_UNCHANGED = object()


def find_driver(session: Session, driver_id: str, for_update: bool = False) -> Optional[Driver]:
    stmt = select(Driver).where(Driver.id == driver_id).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    return session.exec(stmt).first()


def load_driver(session: Session, driver_id: str, for_update: bool = False) -> Driver:
    driver = find_driver(session, driver_id, for_update)
    if driver is None:
        raise NotFound("Driver not found.")
    return driver


def _swap(session: Session, driver_id: str, expected: Availability, new: Availability,
          expected_ride=_UNCHANGED, current_ride_id=_UNCHANGED) -> bool:
    stmt = update(Driver).where(Driver.id == driver_id, Driver.availability == expected.value)
    if expected_ride is not _UNCHANGED:
        stmt = stmt.where(Driver.current_ride_id == expected_ride)
    values = {"availability": new.value}
    if current_ride_id is not _UNCHANGED:
        values["current_ride_id"] = current_ride_id
    result = session.exec(stmt.values(**values).execution_options(synchronize_session=False))
    return result.rowcount == 1


def get_availability(driver_id: str) -> Driver:
    with transaction() as session:
        return load_driver(session, driver_id)


def set_availability(driver_id: str, availability) -> Driver:
    """Toggle a driver between Online and Offline.

    Raises ValueError for anything but Online/Offline, and Conflict when the
    driver is on a trip or still has an offer to answer.
    """
    requested = Availability(availability)
    if requested == Availability.ON_TRIP:
        raise ValueError('Availability must be "Online" or "Offline".')

    with driver_lock(driver_id):
        with transaction() as session:
            driver = load_driver(session, driver_id, for_update=True)
            current = Availability(driver.availability)
            if current == Availability.ON_TRIP:
                if requested == Availability.OFFLINE:
                    raise Conflict("Cannot go offline while on a trip.")
                raise Conflict("Driver is on a trip; availability returns to Online on completion.")
            if current == requested:
                return driver
            if requested == Availability.OFFLINE and store.offered_ride_for_driver(session, driver_id):
                raise Conflict("Cannot go offline with a ride offer awaiting your answer.")
            if not _swap(session, driver_id, current, requested):
                raise Conflict("Driver availability changed concurrently, please retry.")
            driver = load_driver(session, driver_id)
    logger.info("driver %s availability %s -> %s", driver_id, current.value, requested.value)
    return driver


def mark_on_trip(session: Session, driver_id: str, ride_id: str):
    if not _swap(session, driver_id, Availability.ONLINE, Availability.ON_TRIP,
                 current_ride_id=ride_id):
        raise Conflict("Driver must be Online to take a ride.")


def release_driver(session: Session, driver_id: str, ride_id: Optional[str]):
    """Return a driver from OnTrip on ``ride_id`` to Online."""
    if not _swap(session, driver_id, Availability.ON_TRIP, Availability.ONLINE,
                 expected_ride=ride_id, current_ride_id=None):
        raise Conflict("Driver is not on this trip.")
