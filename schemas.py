"""
Database Schemas for the Afrizone store

MongoDB collections are defined below using Pydantic models. Each class name is
converted to lowercase for the collection name (User -> "user").

We will use these collections:
- user: customers and administrators, with their favorites
- product: catalog entries with embedded ratings
- order: customer orders with embedded line items
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["customer", "admin"]
Category = Literal["food", "beverage", "textile", "beauty", "art"]
PaymentMethod = Literal["mobile_money", "credit_card", "on_delivery"]
PaymentStatus = Literal["pending", "completed", "failed"]
OrderStatus = Literal["processing", "shipped", "delivered", "cancelled"]


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    postalCode: Optional[str] = None


class User(BaseModel):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    email: EmailStr
    password_hash: str = Field(..., description="BCrypt hash of password")
    role: Role = Field("customer")
    phone: Optional[str] = None
    address: Address = Field(default_factory=Address)
    favorites: List[str] = Field(default_factory=list, description="Product ids")


class Origin(BaseModel):
    country: str = Field(..., min_length=1)
    region: Optional[str] = None


class Rating(BaseModel):
    user: str = Field(..., description="Reference to user _id")
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    createdAt: Optional[datetime] = None


class Product(BaseModel):
    name: str = Field(..., min_length=1)
    description: str
    price: float = Field(..., ge=0)
    category: Category
    origin: Origin
    images: List[str] = Field(default_factory=list, description="Image URLs")
    stock: int = Field(..., ge=0)
    seller: Optional[str] = Field(None, description="Reference to user _id")
    ratings: List[Rating] = Field(default_factory=list)
    averageRating: float = Field(0, ge=0, le=5)


class OrderItem(BaseModel):
    product: str = Field(..., description="Reference to product _id")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at purchase time")


class Order(BaseModel):
    user: str = Field(..., description="Reference to user _id")
    items: List[OrderItem]
    shippingAddress: Address = Field(default_factory=Address)
    paymentMethod: PaymentMethod
    paymentStatus: PaymentStatus = Field("pending")
    totalPrice: float = Field(..., ge=0)
    status: OrderStatus = Field("processing")
    paidAt: Optional[datetime] = None
    deliveredAt: Optional[datetime] = None


def average_rating(ratings: List[dict]) -> float:
    """Mean of the ratings' values, 0 when there are none."""
    if not ratings:
        return 0
    return sum(r["rating"] for r in ratings) / len(ratings)
