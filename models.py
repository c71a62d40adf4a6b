import enum
from datetime import datetime

from sqlalchemy import Column, String, Float, Integer, DateTime, Enum
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class RideStatus(str, enum.Enum):
    ESTIMATED = "estimated"    # quoted, waiting for booking or an accept
    BOOKED = "booked"
    FAILED = "failed"          # provider rejected the booking
    SUPERSEDED = "superseded"  # replaced by a newer quote
    CANCELLED = "cancelled"

class Ride(Base):
    __tablename__ = "rides"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    start_latitude = Column(Float, nullable=False)
    start_longitude = Column(Float, nullable=False)
    end_latitude = Column(Float, nullable=False)
    end_longitude = Column(Float, nullable=False)
    product_id = Column(String)
    surge_multiplier = Column(Float, nullable=False, default=1.0)
    surge_confirmation_id = Column(String, nullable=True)
    request_id = Column(String, nullable=True, index=True)
    status = Column(Enum(RideStatus), nullable=False, default=RideStatus.ESTIMATED)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    def __init__(self, **kwargs):
        kwargs.setdefault("surge_multiplier", 1.0)
        kwargs.setdefault("status", RideStatus.ESTIMATED)
        now = kwargs.pop("now", None) or datetime.utcnow()
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("updated_at", now)
        super().__init__(**kwargs)
        if self.surge_multiplier > 1.0 and not self.surge_confirmation_id:
            raise ValueError("A surge priced ride needs a surge confirmation id")

    @property
    def origin(self):
        return (self.start_latitude, self.start_longitude)

    @property
    def destination(self):
        return (self.end_latitude, self.end_longitude)

    def __repr__(self):
        return f"<Ride id={self.id} user={self.user_id} status={self.status.value} surge={self.surge_multiplier}>"
