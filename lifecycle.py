"""Ride lifecycle.

PENDING_ASSIGNMENT -> AWAITING_DRIVER_ACCEPTANCE -> ACCEPTED -> ARRIVED
-> ONGOING -> COMPLETED, with the offer sent back to PENDING_ASSIGNMENT on
rejection or timeout, and cancellation from any non-terminal status.

Every transition is a compare-and-swap on (status, assigned driver).
Transitions that also move the driver between Online and OnTrip apply
both writes in one transaction, so either both land or neither does.
"""
from contextlib import nullcontext
from typing import Optional
from db import transaction, driver_lock
from errors import Conflict, Unauthorized, NotFound
from models import Ride, RideStatus, User, TERMINAL_STATUSES, utcnow
import availability
import store
import logging

logger = logging.getLogger(__name__)

NO_LONGER_AVAILABLE = "This ride is no longer available, please check again."

# statuses in which the assigned driver is OnTrip for the ride
ON_TRIP_STATUSES = (RideStatus.ACCEPTED, RideStatus.ARRIVED, RideStatus.ONGOING)
DRIVER_CANCELLABLE = (RideStatus.ACCEPTED, RideStatus.ARRIVED)


def request_ride(user_id: str, pickup_address: str, dropoff_address: str, ride_type: str,
                 distance_km: float, estimated_fare: float, passengers: int = 1, **optional) -> Ride:
    if passengers < 1:
        raise ValueError("passengers must be at least 1")
    if distance_km < 0 or estimated_fare < 0:
        raise ValueError("distance and fare must not be negative")
    with transaction() as session:
        if session.get(User, user_id) is None:
            raise NotFound("User not found.")
        ride = store.create_ride(
            session,
            user_id=user_id,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
            ride_type=ride_type,
            distance_km=distance_km,
            estimated_fare=estimated_fare,
            passengers=passengers,
            **optional,
        )
    logger.info("ride %s requested by user %s (%s)", ride.id, user_id, ride_type)
    return ride


def accept_offer(driver_id: str, ride_id: str) -> Ride:
    with driver_lock(driver_id):
        with transaction() as session:
            ride = store.update_status(
                session, ride_id,
                RideStatus.AWAITING_DRIVER_ACCEPTANCE, RideStatus.ACCEPTED,
                expected_driver=driver_id,
                message=NO_LONGER_AVAILABLE,
                accepted_at=utcnow(),
            )
            availability.mark_on_trip(session, driver_id, ride_id)
    logger.info("driver %s accepted ride %s", driver_id, ride_id)
    return ride


def reject_offer(driver_id: str, ride_id: str, auto: bool = False) -> Ride:
    """Hand an offered ride back to the pending pool.

    ``auto`` marks a client-side timeout; the transition is identical. The
    driver stays Online and may be offered the ride again.
    """
    with transaction() as session:
        ride = store.update_status(
            session, ride_id,
            RideStatus.AWAITING_DRIVER_ACCEPTANCE, RideStatus.PENDING_ASSIGNMENT,
            driver_id=None,
            expected_driver=driver_id,
            message=NO_LONGER_AVAILABLE,
        )
    if auto:
        logger.info("offer of ride %s to driver %s timed out", ride_id, driver_id)
    else:
        logger.info("driver %s rejected ride %s", driver_id, ride_id)
    return ride


def _advance(driver_id: str, ride_id: str, expected: RideStatus, new: RideStatus,
             message: str, **stamps) -> Ride:
    with transaction() as session:
        ride = store.update_status(
            session, ride_id, expected, new,
            expected_driver=driver_id, message=message, **stamps
        )
    logger.info("ride %s %s -> %s (driver %s)", ride_id, expected.value, new.value, driver_id)
    return ride


def mark_arrived(driver_id: str, ride_id: str) -> Ride:
    return _advance(
        driver_id, ride_id, RideStatus.ACCEPTED, RideStatus.ARRIVED,
        "Cannot mark arrival for this ride at its current state.",
        arrived_at=utcnow(),
    )


def start_ride(driver_id: str, ride_id: str) -> Ride:
    return _advance(
        driver_id, ride_id, RideStatus.ARRIVED, RideStatus.ONGOING,
        "Cannot start this ride at its current state. Please mark arrival first.",
        started_at=utcnow(),
    )


def complete_ride(driver_id: str, ride_id: str) -> Ride:
    with driver_lock(driver_id):
        with transaction() as session:
            ride = store.update_status(
                session, ride_id, RideStatus.ONGOING, RideStatus.COMPLETED,
                expected_driver=driver_id,
                message="Ride cannot be completed by you or is not currently ongoing.",
                completed_at=utcnow(),
            )
            availability.release_driver(session, driver_id, ride_id)
    logger.info("driver %s completed ride %s", driver_id, ride_id)
    return ride


def cancel_by_user(user_id: str, ride_id: str) -> Ride:
    with transaction() as session:
        ride = store.get_ride(session, ride_id)
    if ride.user_id != user_id:
        raise Unauthorized("Not authorized to cancel this ride.")
    if ride.status in TERMINAL_STATUSES:
        raise Conflict(f"Cannot cancel, ride is already {ride.status}.")

    on_trip = ride.status in ON_TRIP_STATUSES
    with driver_lock(ride.driver_id) if on_trip else nullcontext():
        with transaction() as session:
            cancelled = store.update_status(
                session, ride_id, ride.status, RideStatus.CANCELLED_BY_USER,
                expected_driver=ride.driver_id,
                message="Ride changed while cancelling, please check again.",
                cancelled_at=utcnow(),
            )
            if on_trip:
                availability.release_driver(session, ride.driver_id, ride_id)
    logger.info("user %s cancelled ride %s (was %s)", user_id, ride_id, ride.status)
    return cancelled


def cancel_by_driver(driver_id: str, ride_id: str) -> Ride:
    """Driver abandons an accepted ride, e.g. passenger no-show at pickup."""
    with driver_lock(driver_id):
        with transaction() as session:
            ride = store.get_ride(session, ride_id)
            if ride.driver_id != driver_id or ride.status not in DRIVER_CANCELLABLE:
                raise Conflict("Ride cannot be cancelled by you at this stage.")
            previous = ride.status
            ride = store.update_status(
                session, ride_id, previous, RideStatus.CANCELLED_BY_DRIVER,
                expected_driver=driver_id,
                message="Ride changed while cancelling, please check again.",
                cancelled_at=utcnow(),
            )
            availability.release_driver(session, driver_id, ride_id)
    logger.info("driver %s cancelled ride %s (was %s)", driver_id, ride_id, previous)
    return ride


def get_ride_status(caller_id: str, ride_id: str) -> Ride:
    with transaction() as session:
        ride = store.get_ride(session, ride_id)
    if caller_id not in (ride.user_id, ride.driver_id):
        raise Unauthorized("Not authorized to view this ride.")
    return ride


def current_ride_for_user(user_id: str) -> Optional[Ride]:
    with transaction() as session:
        return store.current_ride_for_user(session, user_id)


def get_passenger(ride: Ride) -> Optional[User]:
    with transaction() as session:
        return session.get(User, ride.user_id)
