import logging
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from config import HTTP_TIMEOUT_SECONDS
from exceptions import ProviderError, ProviderServerError
from schemas import ProductList, RideEstimate, RideRequestResult, TimeEstimates

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]
ModelT = TypeVar("ModelT", bound=BaseModel)

class RideProvider:
    name: str

    def get_time_estimates(self, lat: float, lng: float) -> TimeEstimates:
        raise NotImplementedError

    def get_ride_estimate(self, start: LatLng, end: LatLng, product_id: str) -> RideEstimate:
        raise NotImplementedError

    def request_ride(self, start: LatLng, end: LatLng, product_id: str,
                     surge_confirmation_id: Optional[str] = None) -> RideRequestResult:
        raise NotImplementedError

    def get_products(self, lat: float, lng: float) -> ProductList:
        raise NotImplementedError

    def get_ride_details(self, request_id: str) -> RideRequestResult:
        raise NotImplementedError

    def cancel_ride(self, request_id: str) -> bool:
        raise NotImplementedError

    def get_default_product_id(self, lat: float, lng: float) -> Optional[str]:
        products = self.get_products(lat, lng).products or []
        return products[0].product_id if products else None

class UberProvider(RideProvider):
    name = "uber"

    def __init__(self, base_url: str, bearer_token: str,
                 session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/")
        self.bearer_token = bearer_token
        self.session = session or requests.Session()
        self.timeout = timeout

    def get_time_estimates(self, lat: float, lng: float) -> TimeEstimates:
        body = self._call("GET", "/v1/estimates/time",
                          params={"start_latitude": lat, "start_longitude": lng})
        return _parse(TimeEstimates, body)

    def get_ride_estimate(self, start: LatLng, end: LatLng, product_id: str) -> RideEstimate:
        body = self._call("POST", "/v1/requests/estimate", json=_trip_body(start, end, product_id))
        return _parse(RideEstimate, body)

    def request_ride(self, start: LatLng, end: LatLng, product_id: str,
                     surge_confirmation_id: Optional[str] = None) -> RideRequestResult:
        payload = _trip_body(start, end, product_id)
        if surge_confirmation_id:
            payload["surge_confirmation_id"] = surge_confirmation_id
        # A rejected booking comes back as a 4xx with an "errors" list
        body = self._call("POST", "/v1/requests", json=payload, allow_client_errors=True)
        return _parse(RideRequestResult, body)

    def get_products(self, lat: float, lng: float) -> ProductList:
        body = self._call("GET", "/v1/products", params={"latitude": lat, "longitude": lng})
        return _parse(ProductList, body)

    def get_ride_details(self, request_id: str) -> RideRequestResult:
        body = self._call("GET", f"/v1/requests/{request_id}")
        return _parse(RideRequestResult, body)

    def cancel_ride(self, request_id: str) -> bool:
        self._call("DELETE", f"/v1/requests/{request_id}")
        return True

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.bearer_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _call(self, method: str, path: str, allow_client_errors: bool = False, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, headers=self._headers(),
                                            timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            raise ProviderServerError(response.status_code, f"{method} {path} returned {response.status_code}")

        try:
            body = response.json() if response.content else {}
        except ValueError as e:
            raise ProviderError(f"{method} {path} returned invalid JSON") from e
        if not isinstance(body, dict):
            raise ProviderError(f"{method} {path} returned an unexpected payload")

        if response.status_code >= 400:
            if allow_client_errors and body.get("errors"):
                logger.info("%s %s rejected: %s", method, path, body["errors"])
                return body
            raise ProviderError(f"{method} {path} returned {response.status_code}")
        return body

def _trip_body(start: LatLng, end: LatLng, product_id: str) -> Dict[str, Any]:
    return {
        "start_latitude": start[0],
        "start_longitude": start[1],
        "end_latitude": end[0],
        "end_longitude": end[1],
        "product_id": product_id,
    }

def _parse(model: Type[ModelT], body: Dict[str, Any]) -> ModelT:
    try:
        return model(**body)
    except ValidationError as e:
        raise ProviderError(f"Malformed {model.__name__} payload: {e}") from e
