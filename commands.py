"""
Text command interpreter.

Turns lines such as ``ride 1 Market St to 1 Mission St`` into calls against
the ride provider and geocoder and answers with plain text. Every failure is
reported as text; nothing raised by the external clients reaches the caller.

Booking under surge pricing takes two invocations: ``ride`` quotes and stores
an ``estimated`` ride, ``accept`` books it. A quote older than the
confirmation window is re-estimated instead of booked.
"""

import logging
import re
import threading
import weakref
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from config import SURGE_CONFIRMATION_WINDOW
from exceptions import ProviderError, ProviderServerError
from geocoding import Geocoder
from providers import RideProvider
from schemas import Coordinates, Product, ProviderErrorDetail
from store import RideStore

logger = logging.getLogger(__name__)

VALID_COMMANDS = ("ride", "products", "get_eta", "help", "accept")

RIDE_REQUEST_FORMAT_ERROR = (
    "To request a ride please use the format */uber ride [origin] to [destination]*.\n"
    "For best results, specify a city or zip code.\n"
    "Ex: */uber ride 1061 Market Street San Francisco to 405 Howard St*"
)

PRODUCTS_REQUEST_FORMAT_ERROR = (
    "To see a list of products please use the format */uber products [address]*.\n"
    "For best results, specify a city or zip code.\n"
    "Ex: */uber products 1061 Market Street San Francisco"
)

UNKNOWN_COMMAND_ERROR = "Sorry, we didn't quite catch that command.  Try */uber help* for a list."

HELP_TEXT = (
    "Try these commands:\n"
    "- ride [origin address] to [destination address]\n"
    "- accept [surge multiplier]\n"
    "- products [address]\n"
    "- get_eta [address]\n"
    "- help"
)

LOCATION_NOT_FOUND_ERROR = "Please enter a valid address. Be as specific as possible (e.g. include city)."
NO_PRODUCTS_AVAILABLE = "No products available for that location."
NO_DRIVERS_AVAILABLE = "Sorry, there are no drivers available near that location."
GENERIC_ERROR = "Sorry, something went wrong on our part"
RIDE_REQUEST_FAILED = "Sorry but something went wrong. We were unable to request a ride."
UNKNOWN_RIDE_ERROR = "Sorry, we're not sure which ride you want to confirm. Please try requesting another."
MISSING_REQUEST_ID_ERROR = "Please include the id of the ride request."
NO_PRICE_AVAILABLE = "No price estimate is available for that trip."

LatLng = Tuple[float, float]

# ride and accept read-modify-write the user's pending ride; an entry
# goes away once no request holds its lock
_user_locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
_user_locks_guard = threading.Lock()

def _lock_for(user_id: str) -> threading.Lock:
    with _user_locks_guard:
        lock = _user_locks.get(user_id)
        if lock is None:
            lock = _user_locks[user_id] = threading.Lock()
        return lock

class CommandError(Exception):
    """Stops a handler early; the message is the reply."""
    pass

class CommandInterpreter:
    def __init__(
        self,
        user_id: str,
        provider: RideProvider,
        geocoder: Geocoder,
        store: RideStore,
        clock: Callable[[], datetime] = datetime.utcnow,
        confirmation_window: timedelta = SURGE_CONFIRMATION_WINDOW,
    ):
        self.user_id = user_id
        self.provider = provider
        self.geocoder = geocoder
        self.store = store
        self.clock = clock
        self.confirmation_window = confirmation_window
        self._handlers = {
            "ride": self.ride,
            "products": self.products,
            "get_eta": self.get_eta,
            "help": self.help,
            "accept": self.accept,
            "fares": self.fares,
            "status": self.status,
            "cancel": self.cancel,
        }

    def run(self, user_input: Optional[str]) -> str:
        """Parse one line of user input and answer it."""
        if not user_input or not user_input.strip():
            return UNKNOWN_COMMAND_ERROR
        parts = user_input.strip().split(None, 1)
        command_name = parts[0].lower()
        argument = parts[1].lower() if len(parts) > 1 else None

        if command_name not in VALID_COMMANDS:
            return UNKNOWN_COMMAND_ERROR
        return self.call(command_name, argument)

    def call(self, operation: str, argument: Optional[str] = None) -> str:
        """Invoke a handler by name, turning client failures into replies."""
        handler = self._handlers[operation]
        logger.info("User %s: %s %r", self.user_id, operation, argument)
        try:
            if operation in ("ride", "accept"):
                with _lock_for(self.user_id):
                    return handler(argument)
            return handler(argument)
        except CommandError as e:
            return str(e)
        except ProviderError:
            logger.exception("%s failed for user %s", operation, self.user_id)
            return GENERIC_ERROR

    # Command handlers

    def help(self, _argument: Optional[str] = None) -> str:
        return HELP_TEXT

    def products(self, address: Optional[str] = None) -> str:
        if not address or not address.strip():
            return PRODUCTS_REQUEST_FORMAT_ERROR
        location = self._geocode(address)
        products = self.provider.get_products(location.lat, location.lng).products
        return format_products_response(products)

    def get_eta(self, address: Optional[str] = None) -> str:
        if not address or not address.strip():
            return LOCATION_NOT_FOUND_ERROR
        location = self._geocode(address)
        try:
            times = self.provider.get_time_estimates(location.lat, location.lng).times
        except ProviderServerError:
            logger.warning("Time estimates unavailable for %s", location)
            return GENERIC_ERROR
        if not times:
            return NO_DRIVERS_AVAILABLE

        seconds = [t.estimate for t in times]
        min_minutes = min(seconds) // 60
        max_minutes = max(seconds) // 60
        if max_minutes == min_minutes:
            max_minutes += 1
        return f"Your ride will take between {min_minutes} to {max_minutes} minutes"

    def ride(self, text: Optional[str] = None) -> str:
        origin, destination = self._resolve_trip(text)
        return self._ride_between((origin.lat, origin.lng), (destination.lat, destination.lng))

    def accept(self, stated_multiplier: Optional[str] = None) -> str:
        ride = self.store.pending_for_user(self.user_id)
        if ride is None:
            return UNKNOWN_RIDE_ERROR

        multiplier = ride.surge_multiplier
        # Higher surges must be confirmed by typing the multiplier
        if multiplier >= 2.0 and not multiplier_matches(stated_multiplier, multiplier):
            return f"That didn't work. Please reply '/uber accept {format_multiplier(multiplier)}' to confirm the ride."

        if self.clock() - ride.updated_at > self.confirmation_window:
            logger.info("Surge quote for ride %s expired, re-estimating", ride.id)
            self.store.mark_superseded(ride)
            return self._ride_between(ride.origin, ride.destination)

        try:
            result = self.provider.request_ride(
                ride.origin, ride.destination, ride.product_id,
                surge_confirmation_id=ride.surge_confirmation_id,
            )
        except ProviderError:
            logger.exception("Booking ride %s failed", ride.id)
            return RIDE_REQUEST_FAILED

        if result.errors:
            self.store.mark_failed(ride)
            return RIDE_REQUEST_FAILED
        self.store.mark_booked(ride, result.request_id)
        return format_ride_confirmation(result.eta)

    def fares(self, text: Optional[str] = None) -> str:
        """Quote a trip without booking it or storing a ride."""
        origin, destination = self._resolve_trip(text)
        product_id = self._default_product_id(origin.lat, origin.lng)
        estimate = self.provider.get_ride_estimate(
            (origin.lat, origin.lng), (destination.lat, destination.lng), product_id)

        price = estimate.price
        lines = []
        if estimate.surge_multiplier > 1.0:
            lines.append(f"{format_multiplier(estimate.surge_multiplier)}x surge is in effect.")
        if price is None or price.low_estimate is None or price.high_estimate is None:
            lines.append(NO_PRICE_AVAILABLE)
        else:
            lines.append(f"Current price estimate is {price.low_estimate} - {price.high_estimate}.")
        lines.append(f"A car would be available in approximately {estimate.pickup_estimate} minutes.")
        return "\n".join(lines)

    def status(self, request_id: Optional[str] = None) -> str:
        if not request_id:
            return MISSING_REQUEST_ID_ERROR
        details = self.provider.get_ride_details(request_id)
        return f"Your ride is currently {details.status or 'unknown'}."

    def cancel(self, request_id: Optional[str] = None) -> str:
        if not request_id:
            return MISSING_REQUEST_ID_ERROR
        self.provider.cancel_ride(request_id)
        ride = self.store.find_by_request_id(request_id)
        if ride is not None:
            self.store.mark_cancelled(ride)
        return "Ride cancelled."

    # Helpers

    def _ride_between(self, origin: LatLng, destination: LatLng) -> str:
        product_id = self._default_product_id(*origin)
        estimate = self.provider.get_ride_estimate(origin, destination, product_id)
        surge_multiplier = estimate.surge_multiplier
        surge_confirmation_id = estimate.surge_confirmation_id
        if surge_multiplier > 1.0 and not surge_confirmation_id:
            logger.error("Estimate has %sx surge but no confirmation id", surge_multiplier)
            return GENERIC_ERROR

        ride = self.store.create(
            self.user_id,
            start_latitude=origin[0],
            start_longitude=origin[1],
            end_latitude=destination[0],
            end_longitude=destination[1],
            product_id=product_id,
            surge_multiplier=surge_multiplier,
            surge_confirmation_id=surge_confirmation_id,
        )

        if surge_multiplier > 2.0:
            return (f"{format_multiplier(surge_multiplier)}x surge is in effect. "
                    f"Reply '/uber accept {format_multiplier(surge_multiplier)}' to confirm the ride.")
        if surge_multiplier > 1.0:
            return (f"{format_multiplier(surge_multiplier)}x surge is in effect. "
                    "Reply '/uber accept' to confirm the ride.")

        try:
            result = self.provider.request_ride(origin, destination, product_id)
        except ProviderError:
            self.store.mark_failed(ride)
            raise
        if result.errors:
            self.store.mark_failed(ride)
            return format_response_errors(result.errors)
        self.store.mark_booked(ride, result.request_id)
        return format_ride_confirmation(result.eta)

    def _resolve_trip(self, text: Optional[str]) -> Tuple[Coordinates, Coordinates]:
        if not text or " to " not in text:
            raise CommandError(RIDE_REQUEST_FORMAT_ERROR)
        origin_name, destination_name = (part.strip() for part in re.split(r"\s+to\s+", text, maxsplit=1))
        if not origin_name or not destination_name:
            raise CommandError(RIDE_REQUEST_FORMAT_ERROR)
        return self._geocode(origin_name), self._geocode(destination_name)

    def _geocode(self, address: str) -> Coordinates:
        location = self.geocoder.search(address)
        if location is None:
            raise CommandError(LOCATION_NOT_FOUND_ERROR)
        return location

    def _default_product_id(self, lat: float, lng: float) -> str:
        product_id = self.provider.get_default_product_id(lat, lng)
        if product_id is None:
            raise CommandError(NO_PRODUCTS_AVAILABLE)
        return product_id

def format_multiplier(multiplier: float) -> str:
    return str(float(multiplier))

def multiplier_matches(stated: Optional[str], multiplier: float) -> bool:
    if not stated or "." not in stated:
        return False
    try:
        return float(stated) == multiplier
    except ValueError:
        return False

def format_ride_confirmation(eta_seconds: Optional[int]) -> str:
    eta = int(eta_seconds or 0) // 60
    if eta == 0:
        estimate_msg = "very soon"
    elif eta == 1:
        estimate_msg = "in 1 minute"
    else:
        estimate_msg = f"in {eta} minutes"
    return f"Thanks! A driver will be on their way soon. We expect them to arrive {estimate_msg}."

def format_response_errors(errors: List[ProviderErrorDetail]) -> str:
    lines = ["The following errors occurred:"]
    lines.extend(f"- *{error.title}*" for error in errors)
    return "\n".join(lines)

def format_products_response(products: Optional[List[Product]]) -> str:
    if not products:
        return NO_PRODUCTS_AVAILABLE
    lines = ["The following products are available:"]
    for product in products:
        lines.append(f"- {product.display_name or ''}: {product.description or ''} (Capacity: {product.capacity})")
    return "\n".join(lines)
