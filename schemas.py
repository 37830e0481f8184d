"""
Database and request schemas for the marketplace.

Each record model maps to a MongoDB collection named after the lowercase of
the entity (Product -> "product", Bargain -> "bargain", Order -> "order").
Documents keep the camelCase field names the storefront clients already use.
"""
from __future__ import annotations

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    VENDOR = "vendor"


class BargainStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"


class BargainDecision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    AWAITING_BARGAIN_APPROVAL = "awaiting_bargain_approval"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    COD = "cod"
    ESEWA = "esewa"
    KHALTI = "khalti"
    IMEPAY = "imepay"


class NotificationType(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"
    DELIVERY = "delivery"
    BARGAIN = "bargain"
    SYSTEM = "system"
    OTHER = "other"


# --- Catalog ---

class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field("", description="Product description")
    price: float = Field(..., gt=0, description="Original price, reference point for bargains")
    category: str = Field(..., min_length=1, description="Category name")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    stock: int = Field(0, ge=0, description="Units in stock")


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1)
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)


# --- Negotiation ---

class BargainItem(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)
    price: Optional[float] = Field(None, description="Line price at the time of the proposal")


class SingleProduct(BaseModel):
    kind: Literal["product"] = "product"
    productId: str


class WholeOrder(BaseModel):
    kind: Literal["order"] = "order"
    items: List[BargainItem]


BargainScope = Annotated[Union[SingleProduct, WholeOrder], Field(discriminator="kind")]


class BargainCreate(BaseModel):
    productId: str = Field(..., description="Product the buyer wants a custom price for")
    proposedPrice: float = Field(..., description="Buyer's offer, below the product price")


class BargainStatusUpdate(BaseModel):
    status: BargainStatus
    adminResponse: Optional[str] = Field(None, description="Admin rationale shown to the buyer")


class VendorResponse(BaseModel):
    message: Optional[str] = Field(None, description="Vendor rationale shown to the buyer")


class CounterOfferCreate(BaseModel):
    counterOffer: float = Field(..., description="Vendor's counter price")
    message: Optional[str] = None


class VendorBargainUpdate(BaseModel):
    status: BargainStatus
    counterOffer: Optional[float] = Field(None, description="Required when status is countered")
    message: Optional[str] = None


# --- Cart ---

class CartItemAdd(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., description="New quantity, zero or less removes the line")


# --- Orders ---

class OrderItemCreate(BaseModel):
    product: str = Field(..., description="Product id")
    quantity: int = Field(1, description="Units ordered")
    bargainId: Optional[str] = Field(None, description="Accepted bargain fixing this line's price")


class Address(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zipCode: str = ""
    country: Optional[str] = None


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(default_factory=list)
    proposedPrice: Optional[float] = Field(None, description="Whole-order price proposal")
    shippingAddress: Optional[Address] = None
    address: Optional[Address] = None
    paymentMethod: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    fullName: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    statusMessage: Optional[str] = Field(None, description="Custom text for the buyer notification")


class PaymentStatusUpdate(BaseModel):
    paymentStatus: PaymentStatus


class PaymentMethodUpdate(BaseModel):
    paymentMethod: Optional[PaymentMethod] = None
