"""Pydantic schemas for request/response validation."""
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

PaymentMethod = Literal["credit_card", "debit_card", "paypal", "cash_on_delivery"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
Role = Literal["user", "admin"]


class Envelope(BaseModel):
    """Common response wrapper."""
    success: bool = True
    message: Optional[str] = None


class PageEnvelope(Envelope):
    count: int
    total: int
    total_pages: int
    current_page: int


class PartialUpdate(BaseModel):
    """
    Base for PATCH-style updates.

    Omitted fields are left untouched. Fields listed in ``not_null`` back
    NOT NULL columns, so an explicit null for them is rejected here rather
    than at commit time.
    """
    not_null: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        nulled = [
            field for field in self.not_null
            if field in self.model_fields_set and getattr(self, field) is None
        ]
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


# --- Users and authentication ---

class RegisterRequest(BaseModel):
    """Schema for registering an account."""
    name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = None


class LoginRequest(BaseModel):
    """Schema for login request."""
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(PartialUpdate):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "password")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=6, max_length=128)


class UserUpdate(PartialUpdate):
    """Admin update of an account."""
    not_null: ClassVar[Tuple[str, ...]] = ("name", "email", "role", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    phone: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = None
    is_active: Optional[bool] = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str


class UserResponse(UserSummary):
    """Account as shown to its owner and to admins. Never includes the password hash."""
    role: str
    phone: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_at: datetime


class AuthResponse(Envelope):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class UserEnvelope(Envelope):
    user: UserResponse


class UsersPage(PageEnvelope):
    users: List[UserResponse]


class UserStats(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    admin_users: int
    regular_users: int
    recent_registrations: int


class UserStatsEnvelope(Envelope):
    stats: UserStats


# --- Catalog ---

class CategorySummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class CategoryCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = None


class CategoryUpdate(PartialUpdate):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CategoryResponse(CategorySummary):
    description: Optional[str] = None
    is_active: bool
    created_at: datetime


class CategoryWithCount(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    product_count: int


class CategoryEnvelope(Envelope):
    category: CategoryResponse


class CategoriesEnvelope(Envelope):
    categories: List[CategoryWithCount]


class CategoriesPage(PageEnvelope):
    categories: List[CategoryResponse]


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(min_length=2, max_length=255)
    description: str = Field(min_length=1)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    stock: int = Field(default=0, ge=0)
    category_id: int
    brand: Optional[str] = Field(default=None, max_length=100)
    images: List[str] = Field(default_factory=list)
    specifications: Dict[str, Any] = Field(default_factory=dict)


class ProductUpdate(PartialUpdate):
    not_null: ClassVar[Tuple[str, ...]] = ("name", "description", "price", "stock", "category_id", "is_active")

    name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    description: Optional[str] = Field(default=None, min_length=1)
    price: Optional[Decimal] = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[int] = None
    brand: Optional[str] = Field(default=None, max_length=100)
    images: Optional[List[str]] = None
    specifications: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price: Decimal
    images: Optional[List[str]] = None


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    price: Decimal
    stock: int
    brand: Optional[str] = None
    images: Optional[List[str]] = None
    specifications: Optional[Dict[str, Any]] = None
    is_active: bool
    category: CategorySummary


class ProductEnvelope(Envelope):
    product: ProductResponse


class ProductsPage(PageEnvelope):
    products: List[ProductResponse]


# --- Orders ---

class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class PlaceOrderRequest(BaseModel):
    """Schema for placing an order."""
    items: List[OrderItemRequest] = Field(min_length=1)
    shipping_address: str = Field(min_length=1)
    payment_method: PaymentMethod
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    delivery_date: Optional[datetime] = None


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    price: Decimal
    subtotal: Decimal
    product: ProductSummary


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    total_amount: Decimal
    status: str
    payment_status: str
    shipping_address: str
    payment_method: str
    notes: Optional[str] = None
    order_date: datetime
    delivery_date: Optional[datetime] = None
    created_at: datetime
    user: UserSummary
    items: List[OrderItemResponse]


class OrderEnvelope(Envelope):
    order: OrderResponse


class OrdersPage(PageEnvelope):
    orders: List[OrderResponse]


# --- Reports ---

class ReportEnvelope(Envelope):
    data: List[Dict[str, Any]]


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: datetime
