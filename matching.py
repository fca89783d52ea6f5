from typing import Optional
from db import transaction, driver_lock
from errors import Conflict
from models import Ride, RideStatus, Availability
import availability
import store
import logging

logger = logging.getLogger(__name__)


def poll_offer(driver_id: str) -> Optional[Ride]:
    """Offer the oldest pending ride to a polling driver.

    Returns None when the driver is unknown or not Online, or nothing is
    pending; safe to call at any frequency. A driver that already holds an
    offer gets the same ride back. If another driver claims the candidate first the poll
    returns None instead of trying the next ride; the next poll will.
    """
    with driver_lock(driver_id):
        with transaction() as session:
            driver = availability.find_driver(session, driver_id, for_update=True)
            if driver is None or driver.availability != Availability.ONLINE:
                return None

            held = store.offered_ride_for_driver(session, driver_id)
            if held is not None:
                return held

            # first-requested-first-served, no proximity weighting
            pending = store.list_pending(session, limit=1)
            if not pending:
                return None
            candidate = pending[0]
            try:
                ride = store.update_status(
                    session,
                    candidate.id,
                    RideStatus.PENDING_ASSIGNMENT,
                    RideStatus.AWAITING_DRIVER_ACCEPTANCE,
                    driver_id=driver_id,
                    expected_driver=None,
                )
            except Conflict:
                logger.debug("ride %s claimed before driver %s could take it", candidate.id, driver_id)
                return None
    logger.info("offered ride %s to driver %s", ride.id, driver_id)
    return ride
