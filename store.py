"""
Persistence for ride records.

Each user has at most one ride in the ``estimated`` state: creating a new
quote supersedes any earlier one, so ``accept`` always knows which ride it
is confirming.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from models import Ride, RideStatus

logger = logging.getLogger(__name__)

class RideStore:
    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.utcnow):
        self.db = db
        self.clock = clock

    def create(self, user_id: str, **attrs) -> Ride:
        """Persist a freshly quoted ride, superseding the user's pending one."""
        now = self.clock()
        superseded = (
            self.db.query(Ride)
            .filter(Ride.user_id == user_id, Ride.status == RideStatus.ESTIMATED)
            .update({Ride.status: RideStatus.SUPERSEDED, Ride.updated_at: now}, synchronize_session="fetch")
        )
        if superseded:
            logger.info("Superseded %d pending ride(s) for user %s", superseded, user_id)

        ride = Ride(user_id=user_id, now=now, **attrs)
        self.db.add(ride)
        self.db.commit()
        self.db.refresh(ride)
        logger.info("Created %r", ride)
        return ride

    def pending_for_user(self, user_id: str) -> Optional[Ride]:
        return (
            self.db.query(Ride)
            .filter(Ride.user_id == user_id, Ride.status == RideStatus.ESTIMATED)
            .order_by(Ride.updated_at.desc(), Ride.id.desc())
            .first()
        )

    def find_by_request_id(self, request_id: str) -> Optional[Ride]:
        return self.db.query(Ride).filter(Ride.request_id == request_id).first()

    def mark_booked(self, ride: Ride, request_id: Optional[str]) -> Ride:
        ride.request_id = request_id
        return self._transition(ride, RideStatus.BOOKED)

    def mark_failed(self, ride: Ride) -> Ride:
        return self._transition(ride, RideStatus.FAILED)

    def mark_superseded(self, ride: Ride) -> Ride:
        return self._transition(ride, RideStatus.SUPERSEDED)

    def mark_cancelled(self, ride: Ride) -> Ride:
        return self._transition(ride, RideStatus.CANCELLED)

    def _transition(self, ride: Ride, status: RideStatus) -> Ride:
        logger.info("Ride %s: %s -> %s", ride.id, ride.status.value, status.value)
        ride.status = status
        ride.updated_at = self.clock()
        self.db.commit()
        return ride
