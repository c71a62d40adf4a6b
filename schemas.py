from typing import List, Optional
from pydantic import BaseModel, Field

class CommandRequest(BaseModel):
    text: str = ""
    user_id: str
    access_token: str

class CommandResponse(BaseModel):
    text: str

class Coordinates(BaseModel):
    lat: float
    lng: float

    def __str__(self) -> str:
        return f"{self.lat}, {self.lng}"

# Ride provider payloads. Unknown keys are ignored.

class Product(BaseModel):
    product_id: Optional[str] = None
    display_name: Optional[str] = ""
    description: Optional[str] = ""
    capacity: Optional[int] = None

class ProductList(BaseModel):
    products: Optional[List[Product]] = None

class TimeEstimate(BaseModel):
    product_id: Optional[str] = None
    estimate: int = Field(..., description="Seconds until pickup")

class TimeEstimates(BaseModel):
    times: Optional[List[TimeEstimate]] = None

class Price(BaseModel):
    surge_multiplier: Optional[float] = 1.0
    surge_confirmation_id: Optional[str] = None
    low_estimate: Optional[float] = None
    high_estimate: Optional[float] = None

class RideEstimate(BaseModel):
    price: Optional[Price] = None
    pickup_estimate: Optional[int] = None
    eta: Optional[int] = None

    @property
    def surge_multiplier(self) -> float:
        if self.price is None or self.price.surge_multiplier is None:
            return 1.0
        return float(self.price.surge_multiplier)

    @property
    def surge_confirmation_id(self) -> Optional[str]:
        return self.price.surge_confirmation_id if self.price else None

class ProviderErrorDetail(BaseModel):
    title: Optional[str] = ""
    code: Optional[str] = None
    status: Optional[int] = None

class RideRequestResult(BaseModel):
    request_id: Optional[str] = None
    status: Optional[str] = None
    eta: Optional[int] = None
    errors: Optional[List[ProviderErrorDetail]] = None
