"""HTTP-side poll loops for drivers and passengers.

The dispatch core never enforces the offer countdown; the driver poller
does, by answering with an automatic reject once it runs out.
"""
from typing import Awaitable, Callable, Optional
from models import RideStatus, TERMINAL_STATUSES
import asyncio
import httpx
import logging
import os

logger = logging.getLogger(__name__)

OFFER_TIMEOUT_SECONDS = float(os.environ.get("OFFER_TIMEOUT_SECONDS", "30"))
POLL_INTERVAL_SECONDS = float(os.environ.get("POLL_INTERVAL_SECONDS", "5"))


def caller_headers(caller_id: str, caller_type: str) -> dict:
    return {"X-Caller-Id": caller_id, "X-Caller-Type": caller_type}


class DriverPoller:
    """Polls for offers on behalf of one driver and settles each one.

    ``decide`` receives the offered ride payload and returns True to accept.
    If it does not answer within ``offer_timeout`` seconds the offer is
    rejected automatically.
    """

    def __init__(self, client: httpx.AsyncClient, driver_id: str,
                 decide: Callable[[dict], Awaitable[bool]],
                 poll_interval: float = POLL_INTERVAL_SECONDS,
                 offer_timeout: float = OFFER_TIMEOUT_SECONDS):
        self.client = client
        self.driver_id = driver_id
        self.decide = decide
        self.poll_interval = poll_interval
        self.offer_timeout = offer_timeout
        self.headers = caller_headers(driver_id, "driver")

    async def poll_once(self) -> Optional[dict]:
        resp = await self.client.get("/rides/driver/new", headers=self.headers)
        resp.raise_for_status()
        offer = resp.json()
        if offer is None:
            return None
        try:
            accept = await asyncio.wait_for(self.decide(offer), timeout=self.offer_timeout)
        except asyncio.TimeoutError:
            logger.info("no answer for ride %s within %ss, rejecting", offer["id"], self.offer_timeout)
            return await self.respond(offer["id"], accept=False, auto=True)
        return await self.respond(offer["id"], accept=bool(accept))

    async def respond(self, ride_id: str, accept: bool, auto: bool = False) -> Optional[dict]:
        if accept:
            resp = await self.client.post(f"/rides/{ride_id}/accept", headers=self.headers)
        else:
            resp = await self.client.post(
                f"/rides/{ride_id}/reject", json={"auto": auto}, headers=self.headers
            )
        if resp.status_code == 409:
            # someone else got there first, or the ride was cancelled
            logger.info("ride %s no longer available to driver %s", ride_id, self.driver_id)
            return None
        resp.raise_for_status()
        return resp.json()

    async def run(self, stop: asyncio.Event) -> Optional[dict]:
        """Poll until an offer is accepted or ``stop`` is set.

        Returns the accepted ride payload, or None when stopped.
        """
        while not stop.is_set():
            try:
                result = await self.poll_once()
            except httpx.HTTPError as exc:
                logger.warning("poll failed for driver %s: %s", self.driver_id, exc)
                result = None
            ride = (result or {}).get("ride")
            if ride and ride["status"] == RideStatus.ACCEPTED:
                return ride
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        return None


class RideTracker:
    """Follows a ride's status from the passenger side."""

    def __init__(self, client: httpx.AsyncClient, user_id: str, ride_id: str):
        self.client = client
        self.ride_id = ride_id
        self.headers = caller_headers(user_id, "user")

    async def refresh(self) -> dict:
        resp = await self.client.get(f"/rides/{self.ride_id}/status", headers=self.headers)
        resp.raise_for_status()
        return resp.json()

    async def follow(self, interval: float = POLL_INTERVAL_SECONDS):
        """Yield the ride each time its status changes, until it is terminal."""
        last = None
        while True:
            ride = await self.refresh()
            if ride["status"] != last:
                last = ride["status"]
                yield ride
            if ride["status"] in TERMINAL_STATUSES:
                return
            await asyncio.sleep(interval)
