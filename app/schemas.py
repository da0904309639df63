from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar
from datetime import datetime
from decimal import Decimal

T = TypeVar("T")

# Range of a PostgreSQL INTEGER column
INT4_MIN = -2**31
INT4_MAX = 2**31 - 1

Int4 = Annotated[int, Field(ge=INT4_MIN, le=INT4_MAX)]


# Envelopes
class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    limit: int
    has_next: bool
    has_prev: bool


class DataResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: T


class PageResponse(BaseModel, Generic[T]):
    success: bool = True
    data: List[T]
    pagination: Pagination


class CountedResponse(BaseModel, Generic[T]):
    success: bool = True
    data: List[T]
    count: int


# Product Schemas
class ProductBase(BaseModel):
    stock_code: str = Field(..., min_length=1, max_length=20, description="Business key (unique)")
    description: str = Field(..., min_length=1, description="Product description")
    category_id: Optional[Int4] = None
    unit_price: Optional[Decimal] = Field(None, gt=0, description="Positive unit price")
    supplier_info: Optional[str] = None
    weight: Optional[Decimal] = None
    dimensions: Optional[str] = Field(None, max_length=100)


class ProductCreate(ProductBase):
    stock_quantity: Int4 = 0
    reorder_level: Int4 = 10
    is_active: bool = True


class ProductReplace(ProductBase):
    """PUT body: every mutable column is written, absent ones as NULL."""

    stock_quantity: Optional[Int4] = None
    reorder_level: Optional[Int4] = None
    is_active: Optional[bool] = None


class ProductUpdate(BaseModel):
    """PATCH body: only supplied fields are written."""

    stock_code: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = Field(None, min_length=1)
    category_id: Optional[Int4] = None
    unit_price: Optional[Decimal] = Field(None, gt=0)
    stock_quantity: Optional[Int4] = None
    reorder_level: Optional[Int4] = None
    supplier_info: Optional[str] = None
    is_active: Optional[bool] = None
    weight: Optional[Decimal] = None
    dimensions: Optional[str] = Field(None, max_length=100)


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    stock_code: str
    description: str
    category_id: Optional[int] = None
    unit_price: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    reorder_level: Optional[int] = None
    supplier_info: Optional[str] = None
    is_active: Optional[bool] = None
    weight: Optional[Decimal] = None
    dimensions: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductAnalytics(BaseModel):
    order_count: int = 0
    total_sold: Optional[int] = None
    avg_selling_price: Optional[Decimal] = None
    first_sold: Optional[datetime] = None
    last_sold: Optional[datetime] = None


class ProductDetail(ProductResponse):
    analytics: Optional[ProductAnalytics] = None


class ProductSummary(BaseModel):
    total_products: int
    active_products: int
    inactive_products: int
    avg_product_price: Optional[Decimal] = None
    total_stock_quantity: Optional[int] = None
    low_stock_products: int
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    avg_stock_quantity: Optional[Decimal] = None


class LowStockProduct(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: int
    stock_code: str
    description: str
    stock_quantity: int
    reorder_level: int
    unit_price: Optional[Decimal] = None


# Retail Schemas
class RetailBase(BaseModel):
    invoice_no: str = Field(..., min_length=1, max_length=20)
    stock_code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    quantity: Int4
    invoice_date: datetime
    unit_price: Decimal
    customer_id: Optional[Int4] = None
    country: Optional[str] = Field(None, max_length=60)


class RetailCreate(RetailBase):
    pass


class RetailResponse(RetailBase):
    model_config = ConfigDict(from_attributes=True)

    id: int


class MonthlySales(BaseModel):
    year: int
    month: int
    total_sales: Decimal


# Inventory Schemas
class InventoryItem(BaseModel):
    stock_code: str
    product_name: Optional[str] = None
    current_stock: int
    available_stock: int
    reorder_level: int
    status: str


class InventoryStatusSummary(BaseModel):
    total_items: int
    out_of_stock: int
    low_stock: int
    in_stock: int


class InventoryStatusResponse(BaseModel):
    success: bool = True
    data: List[InventoryItem]
    summary: InventoryStatusSummary


class InventoryAdjustment(BaseModel):
    stock_code: str = Field(..., min_length=1, max_length=20)
    adjustment: Int4
    reason: str = "Manual adjustment"


class LowStockAlert(BaseModel):
    stock_code: str
    product_name: Optional[str] = None
    current_stock: int
    reorder_level: int
    alert_time: Optional[datetime] = None


class TriggerTestRequest(BaseModel):
    stock_code: str = Field(..., min_length=1, max_length=20)
    quantity: int = Field(..., ge=INT4_MIN, le=INT4_MAX, description="Quantity of the synthetic order line")
    test_mode: bool = True


class StockSnapshot(BaseModel):
    current_stock: int
    available_stock: int


class InventoryChanges(BaseModel):
    before: StockSnapshot
    after: StockSnapshot
    change: int


class TriggerTestResult(BaseModel):
    test_mode: bool
    order_created: RetailResponse
    inventory_changes: InventoryChanges
    low_stock_alert: Optional[LowStockAlert] = None
    trigger_success: bool = True


class SalesAnalytics(BaseModel):
    period_days: int
    analytics: Dict[str, List[Dict[str, Any]]]
    generated_at: datetime


# Task Progress Schemas
class TaskProgressResponse(BaseModel):
    task_id: str
    status: str  # processing, completed, failed, cancelled
    progress: float = Field(0.0, ge=0.0, le=100.0, description="Progress percentage")
    total_rows: Optional[int] = None
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    errors: List[str] = []
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


# CSV Upload Response
class UploadResponse(BaseModel):
    success: bool = True
    task_id: str
    message: str
    filename: str
