from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from typing import Optional, Literal, Any

# Products

class ProductCreate(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    slug: str = Field(min_length=3, max_length=120)
    description: Optional[str] = None
    category: str
    price: float = Field(ge=0)
    stock_quantity: int = Field(default=0, ge=0)
    volume_ml: float = Field(default=100, gt=0)
    is_active: bool = True
    contraindications: list[str] = []

class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=120)
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    volume_ml: Optional[float] = Field(default=None, gt=0)
    is_active: Optional[bool] = None
    contraindications: Optional[list[str]] = None

class ProductRead(BaseModel):
    id: int
    slug: str
    name: str
    description: Optional[str] = None
    category: str
    price: float
    stock_quantity: int
    volume_ml: float
    is_active: bool
    contraindications: Optional[list[str]] = None
    class Config:
        from_attributes = True

# Reviews

class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    title: str = Field(min_length=5, max_length=100)
    comment: str = Field(min_length=10, max_length=1000)

    @field_validator("title", "comment", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    title: Optional[str] = Field(default=None, min_length=5, max_length=100)
    comment: Optional[str] = Field(default=None, min_length=10, max_length=1000)

    @field_validator("title", "comment", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

class ReviewRead(BaseModel):
    id: int
    product_id: int
    user_id: str
    rating: int
    title: str
    comment: str
    verified_purchase: bool
    helpful_count: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class ReviewVoteCreate(BaseModel):
    is_helpful: bool

class ReviewVoteRead(BaseModel):
    id: int
    review_id: int
    user_id: str
    is_helpful: bool
    class Config:
        from_attributes = True

class ReviewStats(BaseModel):
    average_rating: float
    total_count: int

# Orders

class ShippingAddress(BaseModel):
    full_name: str = Field(min_length=1, max_length=100)
    address_line1: str = Field(min_length=1, max_length=200)
    address_line2: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=50)
    zip_code: str = Field(min_length=1, max_length=20)
    country: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=1, max_length=20)

class ProductLine(BaseModel):
    type: Literal["product"] = "product"
    product_id: int
    quantity: int = Field(gt=0)
    # Client-side price is advisory only
    price: float = Field(gt=0)

class CompoundLine(BaseModel):
    type: Literal["compound"]
    compound_id: int
    quantity: int = Field(gt=0)
    price: float = Field(gt=0)

class OrderCreate(BaseModel):
    items: list[ProductLine | CompoundLine] = Field(min_length=1, max_length=50)
    shipping_address: ShippingAddress
    # Client totals, recalculated server side
    subtotal: float = Field(ge=0)
    shipping_cost: float = Field(ge=0)
    tax: float = Field(ge=0)
    total_amount: float = Field(gt=0)

class OrderStatusUpdate(BaseModel):
    status: Literal["pending", "processing", "shipped", "delivered", "cancelled"]

class OrderItemRead(BaseModel):
    id: int
    type: str
    product_id: Optional[int] = None
    compound_id: Optional[int] = None
    quantity: int
    price: float
    product_snapshot: Optional[dict[str, Any]] = None
    compound_snapshot: Optional[dict[str, Any]] = None
    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    id: int
    order_number: str
    user_id: str
    status: str
    subtotal: float
    shipping: float
    tax: float
    total: float
    shipping_address: dict[str, Any]
    created_at: datetime
    items: list[OrderItemRead]
    class Config:
        from_attributes = True

# Compounds

class FormulaHerb(BaseModel):
    product_id: int
    percentage: float

class SafetyContext(BaseModel):
    pregnancy_status: Optional[Literal["not_pregnant", "pregnant", "nursing", "unsure"]] = None
    medications: list[str] = []
    allergies: list[str] = []

class CompoundCreate(BaseModel):
    name: Optional[str] = None
    # Validated in the service so the formula rules produce readable messages
    formula: list[dict[str, Any]]
    tier: Literal[1, 2, 3]
    type: Optional[str] = None
    bottle_volume_ml: float = Field(default=100, gt=0)
    source_assessment_id: Optional[int] = None
    source_booking_id: Optional[int] = None
    notes: Optional[str] = None
    context: Optional[SafetyContext] = None

class CompoundRead(BaseModel):
    id: int
    owner_user_id: str
    created_by: str
    name: str
    tier: int
    type: str
    formula: list[dict[str, Any]]
    price: Optional[float] = None
    bottle_volume_ml: float
    status: str
    notes: Optional[str] = None
    source_assessment_id: Optional[int] = None
    source_booking_id: Optional[int] = None
    created_at: datetime
    class Config:
        from_attributes = True

class PriceBreakdown(BaseModel):
    price: float
    base_cost: float
    margin_applied: float
    tier: int
    min_price_per_100ml: float
    max_price_per_100ml: float
    bottle_volume_ml: float

class SafetyIssue(BaseModel):
    severity: Literal["info", "warning", "error"]
    code: str
    message: str
    herb_id: Optional[int] = None
    herb_name: Optional[str] = None

class CompoundQuote(BaseModel):
    price_breakdown: PriceBreakdown
    safety_issues: list[SafetyIssue]
    safety_severity: Literal["info", "warning", "error"]
    compound: Optional[CompoundRead] = None

class BatchCreate(BaseModel):
    compound_id: int
    batch_code: str = Field(min_length=1, max_length=50)
    total_volume_ml: float = Field(gt=0)
    expiry_date: Optional[date] = None
    notes: Optional[str] = None
    status: Literal["active", "dispensed", "discarded"] = "active"

class BatchRead(BaseModel):
    id: int
    compound_id: int
    batch_code: str
    total_volume_ml: float
    status: str
    prepared_at: datetime
    expiry_date: Optional[date] = None
    notes: Optional[str] = None
    prepared_by: Optional[str] = None
    class Config:
        from_attributes = True

class DispensationCreate(BaseModel):
    batch_id: int
    user_id: str
    volume_ml: float = Field(gt=0)
    order_id: Optional[int] = None

class DispensationRead(BaseModel):
    id: int
    batch_id: int
    order_id: Optional[int] = None
    user_id: str
    volume_ml: float
    dispensed_at: datetime
    class Config:
        from_attributes = True

class DispensationResult(BaseModel):
    dispensation: DispensationRead
    remaining_volume_ml: float
