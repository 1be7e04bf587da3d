from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator

from bikerhub.database import utcnow
from bikerhub.errors import OrderStateError

# Each class => one collection, lowercased name

Role = Literal["user", "admin", "moderator"]
AccountStatus = Literal["active", "inactive"]

Category = Literal[
    "mountain", "road", "electric", "bmx", "hybrid", "cruiser", "folding", "kids", "accessories", "parts"
]
Condition = Literal["new", "like-new", "excellent", "good", "fair", "poor"]
Availability = Literal["in-stock", "out-of-stock", "pre-order", "discontinued"]
ProductStatus = Literal["active", "inactive", "draft", "archived"]

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded"]
ShippingMethod = Literal["standard", "express", "overnight", "pickup"]
PaymentMethod = Literal["credit_card", "debit_card", "paypal", "stripe", "bank_transfer", "cash"]
PaymentStatus = Literal["pending", "completed", "failed", "refunded"]
RefundStatus = Literal["pending", "approved", "rejected", "processed"]

CATEGORIES = get_args(Category)
ORDER_STATUSES = get_args(OrderStatus)
CANCELLABLE_STATUSES = ("pending", "confirmed", "processing")
# Final states: no transition leaves them.
TERMINAL_STATUSES = ("cancelled", "refunded")


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class Document(BaseModel):
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_mongo(self) -> dict[str, Any]:
        return self.model_dump(exclude={"id"})


# ---------------------------------------------------------------- users


class User(Document):
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = ""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    role: Role = "user"
    status: AccountStatus = "active"
    is_verified: bool = False
    department: Optional[str] = None
    last_login: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()

    @computed_field
    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or self.username

    @computed_field
    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def public(self) -> dict[str, Any]:
        return self.model_dump(exclude={"password"})


# ---------------------------------------------------------------- products


class ProductImage(BaseModel):
    url: str
    alt: Optional[str] = None
    is_primary: bool = False
    order: int = 0


class Stock(BaseModel):
    quantity: int = Field(default=0, ge=0)
    low_stock_threshold: int = 5
    track_inventory: bool = True


class Dimensions(BaseModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class DeliveryWindow(BaseModel):
    min: Optional[int] = None
    max: Optional[int] = None


class ProductShipping(BaseModel):
    weight: Optional[float] = None
    dimensions: Optional[Dimensions] = None
    free_shipping: bool = False
    shipping_cost: float = Field(default=0, ge=0)
    estimated_delivery: Optional[DeliveryWindow] = None


class Ratings(BaseModel):
    average: float = Field(default=0, ge=0, le=5)
    count: int = 0


class Seo(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: list[str] = []
    slug: Optional[str] = None


class Location(BaseModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class Product(Document):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    short_description: Optional[str] = Field(default=None, max_length=200)
    price: float = Field(ge=0)
    original_price: Optional[float] = Field(default=None, ge=0)
    sale_price: Optional[float] = Field(default=None, ge=0)
    cost_price: Optional[float] = Field(default=None, ge=0)
    category: Category
    subcategory: Optional[str] = None
    brand: str = Field(min_length=1)
    model: Optional[str] = None
    year: Optional[int] = Field(default=None, ge=1900)
    condition: Condition = "new"
    size: Optional[str] = None
    frame_size: Optional[str] = None
    wheel_size: Optional[str] = None
    color: Optional[str] = None
    colors: list[str] = []
    material: Optional[str] = None
    weight: Optional[float] = Field(default=None, ge=0)
    dimensions: Optional[Dimensions] = None
    features: list[str] = []
    specifications: dict[str, str] = {}
    images: list[ProductImage] = []
    stock: Stock = Field(default_factory=Stock)
    availability: Availability = "in-stock"
    shipping: ProductShipping = Field(default_factory=ProductShipping)
    ratings: Ratings = Field(default_factory=Ratings)
    tags: list[str] = []
    seo: Seo = Field(default_factory=Seo)
    status: ProductStatus = "active"
    seller: Optional[str] = None
    location: Optional[Location] = None
    warranty: Optional[str] = None
    return_policy: Optional[str] = None
    is_featured: bool = False
    is_trending: bool = False
    is_best_seller: bool = False
    view_count: int = 0
    favorite_count: int = 0
    sold_count: int = 0

    @field_validator("year")
    @classmethod
    def year_not_in_future(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v > utcnow().year + 1:
            raise ValueError("Year cannot be in the future")
        return v

    @computed_field
    @property
    def is_on_sale(self) -> bool:
        return bool(self.sale_price) and self.sale_price < self.price

    @computed_field
    @property
    def discount_percentage(self) -> int:
        if self.sale_price and self.price:
            return round((self.price - self.sale_price) / self.price * 100)
        return 0

    @computed_field
    @property
    def current_price(self) -> float:
        return self.sale_price or self.price

    @computed_field
    @property
    def is_low_stock(self) -> bool:
        return self.stock.quantity <= self.stock.low_stock_threshold

    @computed_field
    @property
    def is_out_of_stock(self) -> bool:
        return self.stock.quantity == 0

    @computed_field
    @property
    def primary_image(self) -> Optional[str]:
        for image in self.images:
            if image.is_primary:
                return image.url
        return self.images[0].url if self.images else None

    def prepare_for_save(self) -> "Product":
        if not self.seo.slug:
            self.seo.slug = slugify(self.name)
        if self.stock.quantity == 0:
            self.availability = "out-of-stock"
        elif self.availability == "out-of-stock":
            self.availability = "in-stock"
        return self

    def update_stock(self, quantity: int, operation: str = "decrease") -> "Product":
        if operation == "decrease":
            self.stock.quantity = max(0, self.stock.quantity - quantity)
        elif operation == "increase":
            self.stock.quantity += quantity
        return self.prepare_for_save()


# ---------------------------------------------------------------- orders


class OrderItem(BaseModel):
    product: str
    name: Optional[str] = None
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    total: float = Field(ge=0)
    seller: Optional[str] = None


class StatusEntry(BaseModel):
    status: OrderStatus
    timestamp: datetime
    note: str = ""
    updated_by: Optional[str] = None


class OrderShipping(BaseModel):
    cost: float = Field(default=0, ge=0)
    method: ShippingMethod = "standard"
    estimated_delivery: Optional[datetime] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


class Discount(BaseModel):
    amount: float = Field(default=0, ge=0)
    code: Optional[str] = None
    type: Literal["percentage", "fixed"] = "fixed"


class Payment(BaseModel):
    method: PaymentMethod
    status: PaymentStatus = "pending"
    transaction_id: Optional[str] = None
    gateway: Optional[str] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    refund_amount: float = 0


class StreetAddress(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip_code: str = Field(min_length=1)
    country: str = Field(min_length=1)


class ContactAddress(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    company: Optional[str] = None
    address: StreetAddress


class OrderNotes(BaseModel):
    customer: Optional[str] = None
    internal: Optional[str] = None


class Cancellation(BaseModel):
    reason: Optional[str] = None
    requested_by: Optional[str] = None
    requested_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    refund_amount: Optional[float] = None


class Refund(BaseModel):
    reason: Optional[str] = None
    amount: Optional[float] = None
    requested_by: Optional[str] = None
    requested_at: Optional[datetime] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    status: RefundStatus = "pending"


class Order(Document):
    order_number: Optional[str] = None
    customer: str
    items: list[OrderItem] = Field(min_length=1)
    status: OrderStatus = "pending"
    status_history: list[StatusEntry] = []
    subtotal: float = Field(default=0, ge=0)
    tax: float = Field(default=0, ge=0)
    shipping: OrderShipping = Field(default_factory=OrderShipping)
    discount: Discount = Field(default_factory=Discount)
    total: float = Field(default=0, ge=0)
    payment: Payment
    billing_address: ContactAddress
    shipping_address: ContactAddress
    notes: OrderNotes = Field(default_factory=OrderNotes)
    estimated_delivery: Optional[datetime] = None
    actual_delivery: Optional[datetime] = None
    cancellation: Optional[Cancellation] = None
    refund: Optional[Refund] = None
    is_gift: bool = False
    gift_message: Optional[str] = None
    tags: list[str] = []
    metadata: dict[str, str] = {}

    @computed_field
    @property
    def order_summary(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "status": self.status,
            "total": self.total,
            "item_count": len(self.items),
            "created_at": self.created_at,
        }

    @computed_field
    @property
    def is_delivered(self) -> bool:
        return self.status == "delivered"

    @computed_field
    @property
    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    @computed_field
    @property
    def is_refunded(self) -> bool:
        return self.status == "refunded"

    @computed_field
    @property
    def can_cancel(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    @computed_field
    @property
    def can_refund(self) -> bool:
        return self.status == "delivered" and not self.is_refunded

    def recalculate_totals(self) -> "Order":
        self.subtotal = round(sum(item.total for item in self.items), 2)
        total = self.subtotal + self.tax + self.shipping.cost - self.discount.amount
        self.total = round(max(total, 0.0), 2)
        return self

    def update_status(self, new_status: str, note: str = "", updated_by: Optional[str] = None) -> "Order":
        if self.status in TERMINAL_STATUSES:
            raise OrderStateError(f"Order is {self.status} and its status can no longer change")
        self.status = new_status
        if new_status == "delivered":
            self.actual_delivery = utcnow()
        self.status_history.append(
            StatusEntry(
                status=new_status,
                timestamp=utcnow(),
                note=note or f"Status changed to {new_status}",
                updated_by=updated_by,
            )
        )
        return self

    def cancel(self, reason: str, requested_by: Optional[str]) -> "Order":
        if not self.can_cancel:
            raise OrderStateError("Order cannot be cancelled in its current status")
        self.cancellation = Cancellation(reason=reason, requested_by=requested_by, requested_at=utcnow())
        return self.update_status("cancelled", f"Order cancelled: {reason}", requested_by)

    def process_refund(self, amount: float, reason: str, processed_by: Optional[str]) -> "Order":
        if not self.can_refund:
            raise OrderStateError("Order cannot be refunded in its current status")
        if amount > self.total:
            raise OrderStateError("Refund amount cannot exceed the order total")
        now = utcnow()
        self.refund = Refund(
            reason=reason,
            amount=amount,
            requested_by=self.customer,
            requested_at=now,
            processed_by=processed_by,
            processed_at=now,
            status="processed",
        )
        self.payment.status = "refunded"
        self.payment.refunded_at = now
        self.payment.refund_amount = amount
        return self.update_status("refunded", f"Refund processed: {reason}", processed_by)


# ---------------------------------------------------------------- payments / uploads


class PaymentRecord(Document):
    transaction_id: str
    amount: float = Field(ge=0)
    currency: str
    payment_method: str
    status: PaymentStatus = "completed"
    order_id: Optional[str] = None
    user: Optional[str] = None


class UploadRecord(Document):
    filename: str
    original_name: str
    url: str
    size: int
    mime_type: str
    owner: str
