from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# stock and quantities are INTEGER columns
MAX_QUANTITY = 2**31 - 1


class CategoryOut(BaseModel):
    id: int
    category_name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    category_name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None


class VendorSummary(BaseModel):
    vendor_name: str
    region: Optional[str] = None
    is_verified: bool

    model_config = ConfigDict(from_attributes=True)


class ProductOut(BaseModel):
    id: int
    product_name: str
    description: Optional[str] = None
    price: Decimal
    stock_quantity: int
    is_active: bool
    category_id: Optional[int] = None
    vendor_id: int
    category: Optional[CategoryOut] = None
    vendor: Optional[VendorSummary] = None

    model_config = ConfigDict(from_attributes=True)


class StockChangeRequest(BaseModel):
    quantity_change: int = Field(
        ...,
        alias="quantityChange",
        strict=True,
        ge=-MAX_QUANTITY,
        le=MAX_QUANTITY,
        description="Positive to add units, negative to take them out",
    )

    model_config = ConfigDict(populate_by_name=True)


class StockChangeOut(BaseModel):
    product_id: int
    previous_stock: int
    new_stock: int
    change: int


class CartItemAdd(BaseModel):
    product_id: int = Field(..., gt=0)
    quantity: int = Field(1, gt=0, le=MAX_QUANTITY)


class CartItemUpdate(BaseModel):
    delta: int = Field(..., ge=-MAX_QUANTITY, le=MAX_QUANTITY, description="Signed change to the line quantity")


class CartItemOut(BaseModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    stock_remaining: int


class CartOut(BaseModel):
    id: str
    status: str
    expires_at: datetime
    items: List[CartItemOut]
    subtotal: Decimal
    shipping: Decimal
    total: Decimal
    total_items: int


class CartClearOut(BaseModel):
    cart: CartOut
    restored: Dict[int, int]
    failed: Dict[int, int]


class OrderItemOut(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    unit_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    cart_id: str
    status: str
    subtotal: Decimal
    shipping: Decimal
    total_amount: Decimal
    items: List[OrderItemOut]

    model_config = ConfigDict(from_attributes=True)


class VendorOut(BaseModel):
    id: int
    vendor_name: str
    email: str
    phone_number: Optional[str] = None
    region: Optional[str] = None
    is_active: bool
    is_verified: bool
    rating: float
    user_type: str = "vendor"

    model_config = ConfigDict(from_attributes=True)


class VendorLoginRequest(BaseModel):
    identifier: Optional[str] = Field(None, description="E-mail or phone number")
    password: Optional[str] = None


class VendorLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    vendor: VendorOut


class VendorStats(BaseModel):
    vendor_id: int
    total_products: int
    active_products: int
    total_stock_units: int
    reserved_units: int
    average_rating: float
