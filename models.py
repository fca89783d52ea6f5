from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from enum import Enum
import uuid


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_field(**kwargs):
    # timestamps are always written timezone-aware, in UTC
    return Field(sa_type=DateTime(timezone=True), **kwargs)


class RideStatus(str, Enum):
    PENDING_ASSIGNMENT = "PENDING_ASSIGNMENT"
    AWAITING_DRIVER_ACCEPTANCE = "AWAITING_DRIVER_ACCEPTANCE"  # offered to one driver
    ACCEPTED = "ACCEPTED"  # driver en route to pickup
    ARRIVED = "ARRIVED"  # driver at pickup
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED_BY_USER = "CANCELLED_BY_USER"
    CANCELLED_BY_DRIVER = "CANCELLED_BY_DRIVER"


TERMINAL_STATUSES = (
    RideStatus.COMPLETED,
    RideStatus.CANCELLED_BY_USER,
    RideStatus.CANCELLED_BY_DRIVER,
)


class Availability(str, Enum):
    OFFLINE = "Offline"
    ONLINE = "Online"
    ON_TRIP = "OnTrip"


class User(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str


class Driver(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    vehicle_model: Optional[str] = None
    license_plate: Optional[str] = None
    availability: str = Field(default=Availability.OFFLINE.value, index=True)
    current_ride_id: Optional[str] = None  # set only while OnTrip


class Ride(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", index=True)
    driver_id: Optional[str] = Field(default=None, foreign_key="driver.id", index=True)
    pickup_address: str
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    dropoff_address: str
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    ride_type: str = "standard"
    distance_km: float
    estimated_fare: float
    passengers: int = 1
    originating_service: Optional[str] = None
    status: str = Field(default=RideStatus.PENDING_ASSIGNMENT.value, index=True)
    requested_at: datetime = timestamp_field(default_factory=utcnow, index=True)
    accepted_at: Optional[datetime] = timestamp_field(default=None)
    arrived_at: Optional[datetime] = timestamp_field(default=None)
    started_at: Optional[datetime] = timestamp_field(default=None)
    completed_at: Optional[datetime] = timestamp_field(default=None)
    cancelled_at: Optional[datetime] = timestamp_field(default=None)
    updated_at: datetime = timestamp_field(default_factory=utcnow)
