# inventory_service/stores/base.py

"""
Backend-agnostic contract shared by the relational and in-memory stores.

Both implementations return records and pages of identical shape, so callers
cannot tell which one answered.
"""

from __future__ import annotations

from typing import List, Protocol

from ..query import QueryDescriptor
from ..schemas import (
    BranchOut,
    LowStockEntry,
    OrderCreate,
    OrderOut,
    OrderStatus,
    Page,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    StatsOut,
    StockStatus,
)


class Store(Protocol):
    # Products

    def list_products(self, query: QueryDescriptor) -> Page[ProductOut]:
        """Filter, sort and paginate products."""
        ...

    def get_product(self, product_id: int) -> ProductOut:
        """Get one product; raises NotFoundError."""
        ...

    def create_product(self, data: ProductCreate) -> ProductOut:
        """Create a product, placing its initial stock in `data.branch`."""
        ...

    def update_product(self, product_id: int, data: ProductUpdate) -> ProductOut:
        """Apply the fields that were set; raises NotFoundError."""
        ...

    def set_product_status(self, product_id: int, active: bool) -> ProductOut:
        """Activate or deactivate a product; raises NotFoundError."""
        ...

    def set_branch_stock(self, product_id: int, branch: str, quantity: int) -> ProductOut:
        """Set the quantity held at one branch; raises NotFoundError or InvalidReferenceError."""
        ...

    def delete_product(self, product_id: int) -> None:
        """Delete a product; raises NotFoundError or RecordInUseError."""
        ...

    # Orders

    def list_orders(self, query: QueryDescriptor) -> Page[OrderOut]:
        """Filter, sort and paginate orders."""
        ...

    def get_order(self, order_id: int) -> OrderOut:
        ...

    def create_order(self, data: OrderCreate) -> OrderOut:
        """Create an order; line items must reference existing products."""
        ...

    def update_order_status(self, order_id: int, status: OrderStatus) -> OrderOut:
        ...

    def delete_order(self, order_id: int) -> None:
        ...

    # Reports, branches and stats

    def list_low_stock(self, query: QueryDescriptor) -> Page[LowStockEntry]:
        """Active product/branch pairs at or below the low-stock threshold."""
        ...

    def list_branches(self) -> List[BranchOut]:
        """Active branches ordered by name."""
        ...

    def get_stats(self) -> StatsOut:
        ...


def build_page(items: list, total_count: int, query: QueryDescriptor) -> Page:
    return Page(items=items, total_count=total_count, page=query.page, page_size=query.limit)


def stock_status(quantity: int) -> StockStatus:
    if quantity <= 0:
        return StockStatus.out_of_stock
    if quantity <= 5:
        return StockStatus.low
    return StockStatus.medium
