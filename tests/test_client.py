"""
Tests for the client-side poll loops, run in-process against the ASGI app.
Covers:
- Driver poller accepts, rejects, and auto-rejects after the countdown
- Poller run() stops once an offer is accepted
- Passenger tracker follows status changes to a terminal status
"""
import asyncio

import pytest
from httpx import AsyncClient, ASGITransport

from client import DriverPoller, RideTracker
from models import RideStatus, Availability
import lifecycle
import matching
from factories import make_user, make_driver, make_ride, load_ride, load_driver


async def _async_client():
    from main import app
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


def always(answer):
    async def decide(ride):
        return answer
    return decide


@pytest.mark.asyncio
async def test_poll_once_without_offer():
    d = make_driver()
    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, always(True))
        assert await poller.poll_once() is None


@pytest.mark.asyncio
async def test_poll_once_accepts():
    u = make_user()
    d = make_driver()
    ride = make_ride(u.id)
    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, always(True))
        result = await poller.poll_once()
    assert result["ride"]["id"] == ride.id
    assert result["ride"]["status"] == RideStatus.ACCEPTED
    assert load_driver(d.id).availability == Availability.ON_TRIP


@pytest.mark.asyncio
async def test_poll_once_rejects():
    u = make_user()
    d = make_driver()
    ride = make_ride(u.id)
    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, always(False))
        result = await poller.poll_once()
    assert result["auto"] is False
    assert load_ride(ride.id).status == RideStatus.PENDING_ASSIGNMENT


@pytest.mark.asyncio
async def test_countdown_expiry_auto_rejects():
    u = make_user()
    d = make_driver()
    ride = make_ride(u.id)

    async def hesitate(offer):
        await asyncio.sleep(5)
        return True

    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, hesitate, offer_timeout=0.05)
        result = await poller.poll_once()
    assert result["auto"] is True
    stored = load_ride(ride.id)
    assert stored.status == RideStatus.PENDING_ASSIGNMENT
    assert stored.driver_id is None
    assert load_driver(d.id).availability == Availability.ONLINE


@pytest.mark.asyncio
async def test_conflicting_response_is_swallowed():
    u = make_user()
    d = make_driver()
    ride = make_ride(u.id)

    async def user_cancels_first(offer):
        lifecycle.cancel_by_user(u.id, offer["id"])
        return True

    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, user_cancels_first)
        assert await poller.poll_once() is None
    assert load_ride(ride.id).status == RideStatus.CANCELLED_BY_USER


@pytest.mark.asyncio
async def test_run_returns_accepted_ride():
    u = make_user()
    d = make_driver()
    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, always(True), poll_interval=0.01)
        task = asyncio.create_task(poller.run(asyncio.Event()))
        await asyncio.sleep(0.05)
        ride = make_ride(u.id)
        accepted = await asyncio.wait_for(task, timeout=5)
    assert accepted["id"] == ride.id


@pytest.mark.asyncio
async def test_run_stops_on_event():
    d = make_driver()
    stop = asyncio.Event()
    async with await _async_client() as client:
        poller = DriverPoller(client, d.id, always(True), poll_interval=0.01)
        task = asyncio.create_task(poller.run(stop))
        await asyncio.sleep(0.03)
        stop.set()
        assert await asyncio.wait_for(task, timeout=5) is None


@pytest.mark.asyncio
async def test_tracker_follows_until_terminal():
    u = make_user()
    d = make_driver()
    ride = make_ride(u.id)
    matching.poll_offer(d.id)
    lifecycle.accept_offer(d.id, ride.id)

    async def finish_trip():
        await asyncio.sleep(0.02)
        lifecycle.mark_arrived(d.id, ride.id)
        await asyncio.sleep(0.02)
        lifecycle.start_ride(d.id, ride.id)
        await asyncio.sleep(0.02)
        lifecycle.complete_ride(d.id, ride.id)

    async with await _async_client() as client:
        tracker = RideTracker(client, u.id, ride.id)
        first = await tracker.refresh()
        assert first["driver"]["id"] == d.id
        driver_task = asyncio.create_task(finish_trip())
        seen = [r["status"] async for r in tracker.follow(interval=0.005)]
        await driver_task
    assert seen[0] == RideStatus.ACCEPTED
    assert seen[-1] == RideStatus.COMPLETED
    # observed statuses are an ordered subsequence of the lifecycle
    order = ["ACCEPTED", "ARRIVED", "ONGOING", "COMPLETED"]
    positions = [order.index(s) for s in seen]
    assert positions == sorted(positions)
