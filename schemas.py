"""
Request Schemas

Pydantic models validating the bodies the API accepts. Stored documents
are plain dicts (see database.py); these models only describe input.

Collections:
- Customer -> "customer"
- Product  -> "product"
- Order    -> "order" (items embedded)
"""

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError

CustomerStatus = Literal["ACTIVE", "INACTIVE"]
OrderStatus = Literal["PENDING", "COMPLETED", "CANCELLED"]
# PENDING is the initial state, the other two are terminal
TerminalStatus = Literal["COMPLETED", "CANCELLED"]

# Bounds keep every order total within Decimal/Decimal128 precision and
# every unit count within int64.
MAX_PRICE_DIGITS = 14
MAX_UNITS = 1_000_000_000
MAX_ORDER_ITEMS = 100


# Customer schema
class Customer(BaseModel):
    name: str = Field(..., min_length=1, description="Client name")
    email: EmailStr = Field(..., description="Unique email address")
    phone: Optional[str] = None
    address: Optional[str] = None
    status: CustomerStatus = Field("ACTIVE", description="ACTIVE|INACTIVE")


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    status: Optional[CustomerStatus] = None


# Product schema
class Product(BaseModel):
    sku: str = Field(..., min_length=1, description="Display code, e.g. LOAN-001")
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, max_digits=MAX_PRICE_DIGITS, decimal_places=2,
                           description="Rate, fee or limit depending on category")
    stock: int = Field(0, ge=0, le=MAX_UNITS, description="Units available")


class ProductUpdate(BaseModel):
    sku: Optional[str] = Field(None, min_length=1)
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=MAX_PRICE_DIGITS, decimal_places=2)
    stock: Optional[int] = Field(None, ge=0, le=MAX_UNITS)


# Order item schema
class OrderItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1, le=MAX_UNITS, description="Quantity must be at least 1")


# Order schema
class Order(BaseModel):
    customer_id: str
    items: List[OrderItem] = Field(..., min_length=1, max_length=MAX_ORDER_ITEMS,
                                   description="Order must have at least one item")


class OrderStatusUpdate(BaseModel):
    status: TerminalStatus


def error_list(errors) -> List[dict]:
    """Flatten pydantic error dicts into {"field", "message"} pairs."""
    result = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        result.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return result


def validate(model, data):
    """Validate data against model, raising the app's ValidationError."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=error_list(exc.errors()))
