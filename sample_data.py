from db import init_db, transaction
from models import User, Driver, Availability
from lifecycle import request_ride
import random

ADDRESSES = [
    "Kampala Road", "Nakasero Market", "Makerere University", "Entebbe Airport",
    "Garden City Mall", "Ntinda Trading Centre", "Kololo Airstrip", "Mulago Hospital",
]
RIDE_TYPES = ["standard", "comfort", "xl"]


def seed(n_users=10, n_drivers=5, n_rides=20):
    init_db()
    with transaction() as session:
        users = [User(name=f"user{i}") for i in range(1, n_users + 1)]
        drivers = [
            Driver(
                name=f"driver{i}",
                vehicle_model="Toyota Premio",
                license_plate=f"UBA {100 + i}X",
                availability=Availability.ONLINE.value,
            )
            for i in range(1, n_drivers + 1)
        ]
        session.add_all(users + drivers)
    for i in range(n_rides):
        pickup, dropoff = random.sample(ADDRESSES, 2)
        distance = round(random.uniform(1.0, 25.0), 1)
        request_ride(
            users[i % len(users)].id,
            pickup_address=pickup,
            dropoff_address=dropoff,
            ride_type=random.choice(RIDE_TYPES),
            distance_km=distance,
            estimated_fare=round(3000 + 1200 * distance, -2),
            passengers=random.choice([1, 1, 2, 3]),
        )
    print(f"Seeded {n_users} users, {n_drivers} online drivers, {n_rides} pending rides")
    return users, drivers


if __name__ == "__main__":
    seed()
