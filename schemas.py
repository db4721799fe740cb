"""
Database Schemas for the Pin Pack Marketplace

Each row model maps to a MongoDB collection named in ``COLLECTIONS``
(e.g., PinPack -> "pin_packs"). Rows are built through these models before
insertion and their JSON schema is served by GET /schema.

Pack creation bodies are deliberately lenient (``Any`` throughout): the
pipeline coerces bad values to defaults instead of rejecting the request.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List, Literal, Dict, Any
from datetime import datetime, timezone

from database import DOWNLOAD_EVENTS, ORDER_ITEMS, ORDERS, PACK_PINS, PACKS, PINS


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PinPack(BaseModel):
    title: str = Field("", description="Pack title")
    description: str = Field("", description="Pack description")
    city: str = Field("", description="City the pack covers")
    country: str = Field("", description="Country the pack covers")
    price: float = Field(0, ge=0, description="Price in USD")
    creator_id: str = Field(..., min_length=1, description="Creator email, used as the owner key")
    pin_count: int = Field(0, ge=0, description="Denormalized number of linked pins")
    categories: List[str] = Field(default_factory=list, max_length=3, description="Up to three categories")
    maps_list_reference: Optional[str] = Field(None, description="Source Google Maps list, if imported")
    status: str = Field("pending", description="Publication status (pending, active, ...)")
    download_count: int = Field(0, ge=0, description="Completed purchases of this pack")
    created_at: datetime = Field(default_factory=utcnow)


class Pin(BaseModel):
    title: str = Field("Imported Place", description="Place name")
    description: str = Field("Amazing place to visit", description="Place description")
    google_maps_url: str = Field("", description="Google Maps link for the place")
    category: str = Field("other", description="Place category")
    latitude: float = Field(0, description="Latitude in degrees")
    longitude: float = Field(0, description="Longitude in degrees")
    place_id: Optional[str] = Field(None, description="Google Places id")
    photos: List[str] = Field(default_factory=list, description="Photo URLs, in display order")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PinPackPin(BaseModel):
    pin_pack_id: str = Field(..., description="Reference to pin_packs.id")
    pin_id: str = Field(..., description="Reference to pins.id")
    created_at: datetime = Field(default_factory=utcnow)


class Order(BaseModel):
    status: Literal["pending", "completed"] = Field("pending", description="Order status")
    total_amount: float = Field(..., gt=0, description="Cart total in USD")
    processing_fee: float = Field(0.99, ge=0, description="Payment processing fee")
    currency: str = Field("USD", description="ISO currency code")
    user_email: Optional[str] = Field(None, description="Signed-in buyer email")
    user_location: Optional[str] = Field(None, description="Buyer location hint")
    user_ip: Optional[str] = Field(None, description="Buyer IP address")
    paypal_order_id: Optional[str] = Field(None, description="PayPal order id")
    paypal_payer_id: Optional[str] = Field(None, description="PayPal payer id")
    paypal_payment_id: Optional[str] = Field(None, description="PayPal capture id")
    customer_email: Optional[str] = Field(None, description="Email reported by PayPal")
    customer_name: Optional[str] = Field(None, description="Name reported by PayPal")
    completed_at: Optional[datetime] = Field(None, description="When payment was confirmed")
    created_at: datetime = Field(default_factory=utcnow)


class OrderItem(BaseModel):
    order_id: str = Field(..., description="Reference to orders.id")
    pin_pack_id: str = Field(..., description="Reference to pin_packs.id")
    price: float = Field(0, ge=0, description="Price paid for this pack")


class DownloadEvent(BaseModel):
    pin_pack_id: str = Field(..., description="Reference to pin_packs.id")
    order_id: Optional[str] = Field(None, description="Order that caused the download")
    download_type: Literal["purchase"] = Field("purchase", description="Provenance tag")
    created_at: datetime = Field(default_factory=utcnow)


COLLECTIONS: Dict[type, str] = {
    PinPack: PACKS,
    Pin: PINS,
    PinPackPin: PACK_PINS,
    Order: ORDERS,
    OrderItem: ORDER_ITEMS,
    DownloadEvent: DOWNLOAD_EVENTS,
}


# ---------- Request bodies ----------

class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PinIn(_Lenient):
    title: Any = None
    description: Any = None
    google_maps_url: Any = None
    category: Any = None
    latitude: Any = None
    longitude: Any = None
    place_id: Any = None
    photos: Any = None


class CreatePackRequest(_Lenient):
    email: Any = None
    title: Any = None
    description: Any = None
    city: Any = None
    country: Any = None
    price: Any = None
    # Anything but a list counts as "no pins"; non-object entries take every default.
    pins: Any = None
    pin_count: Any = None
    categories: Any = None
    maps_list_reference: Any = None
    status: Any = None

    def pin_list(self) -> Optional[List[PinIn]]:
        if not isinstance(self.pins, list):
            return None
        return [PinIn.model_validate(p) if isinstance(p, dict) else PinIn() for p in self.pins]


class CompleteOrderRequest(_Lenient):
    orderId: Optional[str] = None
    paypalOrderId: Optional[str] = None
    paypalPayerId: Optional[str] = None
    paypalPaymentId: Optional[str] = None
    customerEmail: Optional[str] = None
    customerName: Optional[str] = None
    paymentDetails: Optional[Dict[str, Any]] = None


class CartItem(_Lenient):
    id: str
    price: float = Field(0, ge=0)
    title: Optional[str] = None


class CreateOrderRequest(_Lenient):
    cartItems: Optional[List[CartItem]] = None
    totalAmount: Optional[float] = None
    processingFee: Optional[float] = Field(None, ge=0)
    userLocation: Optional[str] = None
    userIp: Optional[str] = None
    userEmail: Optional[EmailStr] = None


class PurchasesRequest(_Lenient):
    email: Optional[str] = None


# ---------- Responses ----------

class PackCreated(BaseModel):
    id: str


class SchemaResponse(BaseModel):
    name: str
    collection: str
    schema_: Dict[str, Any] = Field(..., alias="schema")

    model_config = ConfigDict(populate_by_name=True)
