"""
Database Schemas

Pydantic models for the storefront collections. Each record model has an
insert model (the fields a client sends) and, where partial updates exist,
an update model with every field optional.

Model name is converted to lowercase for the collection name:
- Product -> "product" collection
- Order -> "order" collection
- BlogPost -> "blogpost" collection
- CartItem -> "cartitem" collection
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

# money is stored as strings with at most 2 decimal places
MAX_DECIMAL_PLACES = 2
MAX_PRICE_DIGITS = 12
MAX_QUANTITY = 10_000
# room for a full cart of top-priced items plus tax
MAX_TOTAL_DIGITS = 18


def check_decimal_string(value: Optional[str], max_digits: int = MAX_PRICE_DIGITS) -> Optional[str]:
    if value is None:
        return value
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise ValueError(f"not a decimal amount: {value!r}")
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"amount must be a non-negative number: {value!r}")
    if amount.as_tuple().exponent < -MAX_DECIMAL_PLACES:
        raise ValueError(f"amount has more than {MAX_DECIMAL_PLACES} decimal places: {value!r}")
    if amount >= Decimal(10) ** max_digits:
        raise ValueError(f"amount has more than {max_digits} integer digits: {value!r}")
    return value


def reject_null(value):
    if value is None:
        raise ValueError("field cannot be null")
    return value


# -----------------
# Products
# -----------------

class ProductCreate(BaseModel):
    name: str = Field(..., description="Product name")
    description: str = Field(..., description="Marketing description")
    price: str = Field(..., description="Unit price as a decimal string, e.g. '125.00'")
    image: str = Field(..., description="Primary image URL")
    category: str = Field(..., description="Fragrance family, e.g. 'Floral'")
    in_stock: bool = Field(True, description="Stock availability")
    rating: str = Field("0", description="Average rating as a decimal string")
    review_count: int = Field(0, ge=0, description="Number of reviews")
    tags: List[str] = Field(default_factory=list, description="Ordered display tags")
    ingredients: Optional[str] = Field(None, description="Notes / ingredient list")

    @field_validator("price", "rating")
    @classmethod
    def check_amounts(cls, value):
        return check_decimal_string(value)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    in_stock: Optional[bool] = None
    rating: Optional[str] = None
    review_count: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    ingredients: Optional[str] = None

    @field_validator("price", "rating")
    @classmethod
    def check_amounts(cls, value):
        return check_decimal_string(value)

    @field_validator("name", "description", "price", "image", "category", "in_stock", "rating", "review_count", "tags")
    @classmethod
    def check_not_null(cls, value):
        return reject_null(value)


class Product(ProductCreate):
    """
    Products collection schema
    Collection name: "product"
    """
    id: str
    created_at: datetime


# ------------
# Orders
# ------------

class ShippingAddress(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str
    country: str


class OrderItem(BaseModel):
    """Snapshot of a product taken when the order was placed."""
    product_id: str
    name: str
    price: str = Field(..., description="Unit price at time of order as a decimal string")
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)
    image: str = ""

    @field_validator("price")
    @classmethod
    def check_price(cls, value):
        return check_decimal_string(value)


class OrderCreate(BaseModel):
    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    shipping_address: ShippingAddress
    items: List[OrderItem]
    total_amount: str = Field(..., description="Order total as a decimal string")
    status: OrderStatus = "pending"

    @field_validator("total_amount")
    @classmethod
    def check_total(cls, value):
        return check_decimal_string(value, MAX_TOTAL_DIGITS)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class Order(OrderCreate):
    """
    Orders collection schema
    Collection name: "order"
    """
    id: str
    created_at: datetime
    updated_at: datetime


# ------------
# Blog
# ------------

class BlogPostCreate(BaseModel):
    title: str
    slug: str = Field(..., min_length=1, description="URL-friendly unique identifier")
    excerpt: str
    content: str
    image: str
    category: str
    author: str
    published: bool = False


class BlogPostUpdate(BaseModel):
    title: Optional[str] = None
    slug: Optional[str] = Field(None, min_length=1)
    excerpt: Optional[str] = None
    content: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    author: Optional[str] = None
    published: Optional[bool] = None

    @field_validator("*")
    @classmethod
    def check_not_null(cls, value):
        return reject_null(value)


class BlogPost(BlogPostCreate):
    """
    Blog posts collection schema
    Collection name: "blogpost"
    """
    id: str
    created_at: datetime
    updated_at: datetime


# ------------
# Cart
# ------------

class CartItemCreate(BaseModel):
    session_id: str = Field(..., min_length=1, description="Anonymous cart/session identifier")
    product_id: str = Field(..., description="Referenced product id")
    quantity: int = Field(1, ge=1, le=MAX_QUANTITY, description="Quantity of the product")


class CartQuantityUpdate(BaseModel):
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)


class CartItem(BaseModel):
    """
    Cart items collection schema
    Collection name: "cartitem"
    """
    id: str
    session_id: str
    product_id: str
    quantity: int
    created_at: datetime
