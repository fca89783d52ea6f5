"""Concurrency demo: several online drivers poll for the same pending rides at once.
Runs in-process against the ASGI app and doesn't require the server to be started separately.
Every ride should be offered to exactly one driver.
Run: python concurrency_demo.py
"""
import asyncio
from collections import Counter
from main import app
from sample_data import seed
from client import caller_headers
import httpx


async def run():
    _, drivers = seed(n_users=3, n_drivers=8, n_rides=3)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        tasks = [client.get("/rides/driver/new", headers=caller_headers(d.id, "driver")) for d in drivers]
        res = await asyncio.gather(*tasks)
    offers = [r.json() for r in res]
    for d, offer in zip(drivers, offers):
        print(d.name, offer["id"] if offer else None)
    counts = Counter(o["id"] for o in offers if o)
    print("rides offered more than once:", [rid for rid, n in counts.items() if n > 1] or "none")


if __name__ == "__main__":
    asyncio.run(run())
