from datetime import datetime
from decimal import Decimal
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from gig_service.models import GigStatus, OfferAction, PaymentStatus, Role


class OfferResult(BaseModel):
    success: bool
    status_code: int
    error: Optional[str] = None
    code: Optional[str] = None
    message: Optional[str] = None


class OfferActionRequest(BaseModel):
    user_uid: str = Field(..., min_length=1, description="External (auth provider) id of the acting user")


class OfferStatusUpdateRequest(OfferActionRequest):
    role: Role
    action: OfferAction


class Coordinates(BaseModel):
    kind: Literal["coordinates"] = "coordinates"
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    @property
    def snippet(self) -> str:
        return f"{self.lat:.5f}, {self.lng:.5f}"


class FormattedAddress(BaseModel):
    kind: Literal["address"] = "address"
    formatted_address: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    @property
    def snippet(self) -> str:
        if self.formatted_address:
            return self.formatted_address
        if self.street_address:
            return self.street_address
        if self.city and self.country:
            return f"{self.city}, {self.country}"
        return "Location not specified"


class Unstructured(BaseModel):
    kind: Literal["unstructured"] = "unstructured"
    text: str

    @property
    def snippet(self) -> str:
        return self.text or "Location not specified"


Location = Union[Coordinates, FormattedAddress, Unstructured]

_ADDRESS_KEYS = ("formatted_address", "street_address", "city", "state", "postal_code", "country")


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_location(raw: Any) -> Optional[Location]:
    """Normalise a stored location blob into one of the known shapes.

    Accepts ``{"lat", "lng"|"lon"}`` dicts, address dicts, ``"lat,lng"``
    strings and free text. Returns ``None`` for empty input.
    """
    if raw is None or raw == "" or raw == {}:
        return None
    if isinstance(raw, dict):
        lat = _as_float(raw.get("lat", raw.get("latitude")))
        lng = _as_float(raw.get("lng", raw.get("lon", raw.get("longitude"))))
        if lat is not None and lng is not None and -90 <= lat <= 90 and -180 <= lng <= 180:
            return Coordinates(lat=lat, lng=lng)
        if any(raw.get(key) for key in _ADDRESS_KEYS):
            return FormattedAddress(**{key: raw[key] for key in _ADDRESS_KEYS if raw.get(key)})
        return None
    if isinstance(raw, str):
        parts = [p.strip() for p in raw.split(",")]
        if len(parts) == 2:
            lat, lng = _as_float(parts[0]), _as_float(parts[1])
            if lat is not None and lng is not None and -90 <= lat <= 90 and -180 <= lng <= 180:
                return Coordinates(lat=lat, lng=lng)
        return Unstructured(text=raw.strip())
    return None


class GigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    buyer_user_id: str
    worker_user_id: Optional[str]
    title: str
    start_time: datetime
    end_time: datetime
    expires_at: Optional[datetime]
    agreed_rate: Decimal
    total_agreed_price: Optional[Decimal]
    tip_amount: Optional[Decimal]
    status: GigStatus
    display_status: str
    location: Optional[Location] = None


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    gig_id: str
    stripe_payment_intent_id: Optional[str]
    payer_user_id: str
    receiver_user_id: Optional[str]
    amount_gross: Decimal
    able_fee_amount: Decimal
    amount_net_to_worker: Decimal
    status: PaymentStatus


class WorkerOffer(BaseModel):
    id: str
    role: str
    location_snippet: str
    start_time: datetime
    end_time: datetime
    hourly_rate: float
    estimated_hours: float
    total_pay: float
    expires_at: Optional[datetime]
    status: GigStatus
    gig_description: Optional[str] = None
    notes_for_worker: Optional[str] = None


class WorkerOffersResponse(BaseModel):
    offers: List[WorkerOffer]
    accepted_gigs: List[WorkerOffer] = Field(default_factory=list)


class HoldRequest(BaseModel):
    payer_user_id: str
    receiver_user_id: Optional[str] = None
    amount: int = Field(..., gt=0, description="Amount to hold, in minor currency units")
    customer_id: str = Field(..., min_length=1)
    payment_method_id: Optional[str] = None
    destination_account_id: Optional[str] = None
    currency: Optional[str] = None
