from datetime import datetime, timezone
from db import transaction, get_session
from models import User, Driver, Ride, Availability
import store


def make_user(name="Alice"):
    with transaction() as session:
        u = User(name=name)
        session.add(u)
    return u


def make_driver(name="Dan", availability=Availability.ONLINE):
    with transaction() as session:
        d = Driver(
            name=name,
            vehicle_model="Toyota Premio",
            license_plate="UBA 123X",
            availability=Availability(availability).value,
        )
        session.add(d)
    return d


def make_ride(user_id, requested_at=None, **overrides):
    fields = dict(
        pickup_address="Kampala Road",
        dropoff_address="Entebbe Airport",
        ride_type="standard",
        distance_km=12.0,
        estimated_fare=18000.0,
        passengers=1,
    )
    fields.update(overrides)
    if requested_at is not None:
        fields["requested_at"] = requested_at
    with transaction() as session:
        return store.create_ride(session, user_id, **fields)


def load_ride(ride_id) -> Ride:
    with get_session() as session:
        return session.get(Ride, ride_id)


def load_driver(driver_id) -> Driver:
    with get_session() as session:
        return session.get(Driver, driver_id)


def force_availability(driver_id, availability, current_ride_id=None):
    """Write a driver's availability directly, bypassing the tracker's guards."""
    with transaction() as session:
        d = session.get(Driver, driver_id)
        d.availability = Availability(availability).value
        d.current_ride_id = current_ride_id
        session.add(d)


def at(minute):
    return datetime(2026, 1, 1, 8, minute, tzinfo=timezone.utc)
