# inventory_service/schemas.py

"""
Pydantic schemas for the Inventory Service API.
These define the records returned by both stores, the request bodies,
and the paginated response envelopes.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field

T = TypeVar("T")


class OrderStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    cancelled = "cancelled"


class StockStatus(str, Enum):
    out_of_stock = "OUT_OF_STOCK"
    low = "LOW"
    medium = "MEDIUM"


# Column limits: quantities are INTEGER, money is NUMERIC(10, 2).
MAX_QUANTITY = 2_147_483_647
MAX_AMOUNT = 99_999_999.99
MAX_ID = 2_147_483_647


# -----------------------------
# Products
# -----------------------------


# Schema for creating a new product.
# `stock` is placed in `branch` when greater than zero.
class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Name of the product.")
    description: str = Field("", max_length=2000, description="Detailed description of the product.")
    price: float = Field(
        ..., gt=0, le=MAX_AMOUNT, description="Sale price. Must be greater than 0."
    )
    cost: float = Field(0, ge=0, le=MAX_AMOUNT, description="Purchase cost. Must be non-negative.")
    category: str = Field("", max_length=100, description="Product category.")
    sku: Optional[str] = Field(None, max_length=50, description="Article number.")
    stock: int = Field(
        0, ge=0, le=MAX_QUANTITY, description="Initial stock quantity. Must be non-negative."
    )
    branch: str = Field("PRINCIPAL", min_length=1, description="Branch receiving the initial stock.")


# All fields are Optional, allowing partial updates (PATCH-like behavior for PUT).
class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="New name of the product.")
    description: Optional[str] = Field(None, max_length=2000, description="New description.")
    price: Optional[float] = Field(None, gt=0, le=MAX_AMOUNT, description="New sale price.")
    cost: Optional[float] = Field(None, ge=0, le=MAX_AMOUNT, description="New purchase cost.")
    category: Optional[str] = Field(None, max_length=100, description="New category.")
    sku: Optional[str] = Field(None, max_length=50, description="New article number.")
    active: Optional[bool] = Field(None, description="Whether the product is active.")


class ProductStatusUpdate(BaseModel):
    active: bool = Field(..., description="New active flag.")


class BranchStockUpdate(BaseModel):
    branch: str = Field(..., min_length=1, description="Branch name.")
    quantity: int = Field(..., ge=0, le=MAX_QUANTITY, description="New quantity held at the branch.")


class ProductOut(BaseModel):
    """A product as returned by either store."""

    id: int
    sku: Optional[str] = None
    name: str
    description: str = ""
    category: str = ""
    price: float
    cost: float = 0
    active: bool = True
    stock_by_branch: Dict[str, int] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def stock(self) -> int:
        return sum(self.stock_by_branch.values())

    @computed_field
    @property
    def stock_detail(self) -> str:
        if not self.stock_by_branch:
            return "No stock"
        return ", ".join(
            f"{branch}: {quantity}"
            for branch, quantity in sorted(self.stock_by_branch.items())
        )


# -----------------------------
# Orders
# -----------------------------


class OrderItemCreate(BaseModel):
    product_id: int = Field(..., ge=1, le=MAX_ID, description="Product being ordered.")
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY, description="Units ordered.")
    unit_price: Optional[float] = Field(
        None, gt=0, le=MAX_AMOUNT, description="Unit price; defaults to the current product price."
    )


class OrderCreate(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=255)
    address: str = Field("", max_length=2000)
    status: OrderStatus = OrderStatus.pending
    items: List[OrderItemCreate] = Field(..., min_length=1)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemOut(BaseModel):
    product_id: int
    name: str
    quantity: int
    unit_price: float
    subtotal: float


class OrderOut(BaseModel):
    """An order with its line items embedded; `items` is never null."""

    id: int
    customer_name: str
    address: str = ""
    total: float
    status: OrderStatus
    items: List[OrderItemOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# -----------------------------
# Branches, reports and stats
# -----------------------------


class BranchOut(BaseModel):
    id: int
    name: str
    code: Optional[str] = None
    active: bool = True
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class LowStockEntry(BaseModel):
    product_id: int
    product_name: str
    branch: str
    quantity: int
    stock_status: StockStatus


class ProductStats(BaseModel):
    total_products: int = 0
    active_products: int = 0
    inactive_products: int = 0
    categories_count: int = 0
    total_stock: int = 0
    inventory_value: float = 0
    active_inventory_value: float = 0


class OrderStats(BaseModel):
    total_orders: int = 0
    total_sales: float = 0
    completed_orders: int = 0
    pending_orders: int = 0


class StatsOut(BaseModel):
    products: ProductStats
    orders: OrderStats


# -----------------------------
# Auth
# -----------------------------


class LoginRequest(BaseModel):
    username: str
    password: str


class UserOut(BaseModel):
    id: int
    username: str
    role: str


class LoginResponse(BaseModel):
    success: bool = True
    user: UserOut


# -----------------------------
# Pagination
# -----------------------------


class Page(BaseModel, Generic[T]):
    """
    One page of records plus the filtered total.

    total_pages = ceil(total_count / page_size); has_next_page <=> page < total_pages.
    """

    items: List[T]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size)

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def pagination(self) -> "PaginationMeta":
        return PaginationMeta(
            current_page=self.page,
            total_pages=self.total_pages,
            per_page=self.page_size,
            total_items=self.total_count,
            has_next_page=self.has_next_page,
            has_prev_page=self.has_prev_page,
            next_page=self.page + 1 if self.has_next_page else None,
            prev_page=self.page - 1 if self.has_prev_page else None,
        )


class PaginationMeta(BaseModel):
    current_page: int
    total_pages: int
    per_page: int
    total_items: int
    has_next_page: bool
    has_prev_page: bool
    next_page: Optional[int] = None
    prev_page: Optional[int] = None


class ProductListResponse(BaseModel):
    products: List[ProductOut]
    pagination: PaginationMeta
    filters: Dict[str, str]


class OrderListResponse(BaseModel):
    orders: List[OrderOut]
    pagination: PaginationMeta
    filters: Dict[str, str]


class LowStockReportResponse(BaseModel):
    low_stock_products: List[LowStockEntry]
    pagination: PaginationMeta
    filters: Dict[str, str]
