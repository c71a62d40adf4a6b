from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from commands import CommandInterpreter
from geocoding import Geocoder
from models import Base
from providers import RideProvider
from schemas import (Coordinates, Product, ProductList, RideEstimate, RideRequestResult,
                     TimeEstimates)
from store import RideStore

MARKET_ST = Coordinates(lat=37.7937, lng=-122.3950)
MISSION_ST = Coordinates(lat=37.7931, lng=-122.3947)

class FakeClock:
    def __init__(self, now=datetime(2024, 1, 1, 12, 0, 0)):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)

class FakeGeocoder(Geocoder):
    def __init__(self, places=None):
        self.places = places or {}
        self.searches = []

    def search(self, address):
        self.searches.append(address)
        return self.places.get(address)

class FakeProvider(RideProvider):
    name = "fake"

    def __init__(self):
        self.products = [Product(product_id="uberx", display_name="uberX",
                                 description="The low-cost Uber", capacity=4)]
        self.times = TimeEstimates(times=[{"estimate": 120}, {"estimate": 410}])
        self.estimate = RideEstimate(price={"surge_multiplier": 1.0, "low_estimate": 8,
                                            "high_estimate": 11}, pickup_estimate=3, eta=125)
        self.booking = RideRequestResult(request_id="req-1", status="processing", eta=125)
        self.booking_error = None
        self.estimate_error = None
        self.time_error = None
        self.details = RideRequestResult(request_id="req-1", status="accepted")
        self.ride_requests = []
        self.estimates_requested = []
        self.cancelled = []

    def get_time_estimates(self, lat, lng):
        if self.time_error:
            raise self.time_error
        return self.times

    def get_ride_estimate(self, start, end, product_id):
        if self.estimate_error:
            raise self.estimate_error
        self.estimates_requested.append((start, end, product_id))
        return self.estimate

    def request_ride(self, start, end, product_id, surge_confirmation_id=None):
        self.ride_requests.append((start, end, product_id, surge_confirmation_id))
        if self.booking_error:
            raise self.booking_error
        return self.booking

    def get_products(self, lat, lng):
        return ProductList(products=self.products)

    def get_ride_details(self, request_id):
        return self.details

    def cancel_ride(self, request_id):
        self.cancelled.append(request_id)
        return True

@pytest.fixture
def db():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def store(db, clock):
    return RideStore(db, clock=clock)

@pytest.fixture
def geocoder():
    return FakeGeocoder({
        "1 market st": MARKET_ST,
        "1 mission st": MISSION_ST,
    })

@pytest.fixture
def provider():
    return FakeProvider()

@pytest.fixture
def interpreter(provider, geocoder, store, clock):
    return CommandInterpreter(user_id="U123", provider=provider, geocoder=geocoder,
                              store=store, clock=clock)

@pytest.fixture
def surge(provider):
    def set_surge(multiplier, confirmation_id="surge-abc"):
        provider.estimate = RideEstimate(
            price={"surge_multiplier": multiplier, "surge_confirmation_id": confirmation_id,
                   "low_estimate": 15, "high_estimate": 20},
            pickup_estimate=4, eta=300)
    return set_surge
