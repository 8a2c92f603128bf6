# inventory_service/stores/memory.py

"""
In-memory store used when the relational backend is unavailable.

Records live in insertion-ordered lists and are reset to the seed set on every
process start. Filtering, sorting and pagination follow the relational store's
semantics exactly: same case-insensitive matching, same AND composition, ties
ordered by id.
"""

import itertools
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from ..errors import (
    InvalidReferenceError,
    NotFoundError,
    RecordInUseError,
    ValueOutOfRangeError,
)
from ..query import QueryDescriptor
from ..schemas import (
    MAX_AMOUNT,
    BranchOut,
    LowStockEntry,
    OrderCreate,
    OrderItemOut,
    OrderOut,
    OrderStats,
    OrderStatus,
    Page,
    ProductCreate,
    ProductOut,
    ProductStats,
    ProductUpdate,
    StatsOut,
)
from ..seed import DEFAULT_SEED, SeedData
from .base import build_page, stock_status


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sort_value(value):
    if isinstance(value, str):
        return value.lower()
    return value


def _contains(term: str, *values: Optional[str]) -> bool:
    term = term.lower()
    return any(term in (value or "").lower() for value in values)


def _sort_and_slice(
    records: List, query: QueryDescriptor, key: Callable
) -> Page:
    # Records are kept in id order and sorted() is stable, even with reverse=True,
    # so equal sort values stay in ascending id order.
    ordered = sorted(records, key=lambda r: _sort_value(key(r)), reverse=query.descending)
    start = query.offset
    return build_page(ordered[start:start + query.limit], len(ordered), query)


class MemoryStore:
    """Process-local Store implementation over plain lists."""

    def __init__(self, seed: SeedData = DEFAULT_SEED, low_stock_threshold: int = 10):
        self.seed = seed
        self.low_stock_threshold = low_stock_threshold
        self._lock = threading.RLock()
        self.reset()

    def reset(self, seed: Optional[SeedData] = None) -> None:
        """Drop every record and reload the seed set."""
        with self._lock:
            if seed is not None:
                self.seed = seed
            now = _utcnow()
            self._branch_ids = itertools.count(1)
            self._product_ids = itertools.count(1)
            self._order_ids = itertools.count(1)

            self._branches: List[BranchOut] = [
                BranchOut(
                    id=next(self._branch_ids),
                    name=branch.name,
                    code=branch.code,
                    active=branch.active,
                    created_at=now,
                )
                for branch in self.seed.branches
            ]

            self._products: List[ProductOut] = [
                ProductOut(
                    id=next(self._product_ids),
                    sku=product.sku or None,
                    name=product.name,
                    description=product.description,
                    category=product.category,
                    price=product.price,
                    cost=product.cost,
                    active=product.active,
                    stock_by_branch=dict(sorted(product.stock.items())),
                    created_at=now,
                    updated_at=now,
                )
                for product in self.seed.products
            ]

            self._orders: List[OrderOut] = []
            by_name = {product.name: product for product in self._products}
            for order in self.seed.orders:
                items = [
                    self._line_item(by_name[name], quantity, None)
                    for name, quantity in order.items
                ]
                self._orders.append(
                    OrderOut(
                        id=next(self._order_ids),
                        customer_name=order.customer_name,
                        address=order.address,
                        total=round(sum(item.subtotal for item in items), 2),
                        status=OrderStatus(order.status),
                        items=items,
                        created_at=now,
                        updated_at=now,
                    )
                )

    # ---------- helpers ----------

    def _find_product(self, product_id: int) -> ProductOut:
        for product in self._products:
            if product.id == product_id:
                return product
        raise NotFoundError("product", product_id)

    def _find_order(self, order_id: int) -> OrderOut:
        for order in self._orders:
            if order.id == order_id:
                return order
        raise NotFoundError("order", order_id)

    def _branch_names(self) -> Iterable[str]:
        return {branch.name for branch in self._branches}

    def _require_branch(self, name: str) -> None:
        if name not in self._branch_names():
            raise InvalidReferenceError(f"Unknown branch '{name}'")

    @staticmethod
    def _line_item(product: ProductOut, quantity: int, unit_price: Optional[float]) -> OrderItemOut:
        price = product.price if unit_price is None else unit_price
        return OrderItemOut(
            product_id=product.id,
            name=product.name,
            quantity=quantity,
            unit_price=price,
            subtotal=round(price * quantity, 2),
        )

    def _replace_product(self, updated: ProductOut) -> None:
        # Updated records keep their position in the sequence.
        for index, product in enumerate(self._products):
            if product.id == updated.id:
                self._products[index] = updated
                return

    def _replace_order(self, updated: OrderOut) -> None:
        for index, order in enumerate(self._orders):
            if order.id == updated.id:
                self._orders[index] = updated
                return

    def _rename_line_items(self, product_id: int, name: str) -> None:
        # Line items always carry the product's current name.
        for index, order in enumerate(self._orders):
            if any(item.product_id == product_id for item in order.items):
                items = [
                    item.model_copy(update={"name": name}) if item.product_id == product_id else item
                    for item in order.items
                ]
                self._orders[index] = order.model_copy(update={"items": items})

    # ---------- products ----------

    def _product_matches(self, product: ProductOut, query: QueryDescriptor) -> bool:
        if query.search and not _contains(
            query.search, product.name, product.description, product.category
        ):
            return False
        if query.category and product.category != query.category:
            return False
        if query.status == "active" and not product.active:
            return False
        if query.status == "inactive" and product.active:
            return False
        return True

    def list_products(self, query: QueryDescriptor) -> Page[ProductOut]:
        with self._lock:
            matched = [
                product.model_copy(deep=True)
                for product in self._products
                if self._product_matches(product, query)
            ]
        return _sort_and_slice(matched, query, lambda p: getattr(p, query.sort_by))

    def get_product(self, product_id: int) -> ProductOut:
        with self._lock:
            return self._find_product(product_id).model_copy(deep=True)

    def create_product(self, data: ProductCreate) -> ProductOut:
        with self._lock:
            stock_by_branch = {}
            if data.stock > 0:
                self._require_branch(data.branch)
                stock_by_branch[data.branch] = data.stock
            now = _utcnow()
            product = ProductOut(
                id=next(self._product_ids),
                sku=data.sku,
                name=data.name,
                description=data.description,
                category=data.category,
                price=data.price,
                cost=data.cost,
                active=True,
                stock_by_branch=stock_by_branch,
                created_at=now,
                updated_at=now,
            )
            self._products.append(product)
            return product.model_copy(deep=True)

    def update_product(self, product_id: int, data: ProductUpdate) -> ProductOut:
        with self._lock:
            product = self._find_product(product_id)
            changes = {
                field: value
                for field, value in data.model_dump(exclude_unset=True).items()
                if value is not None
            }
            changes["updated_at"] = _utcnow()
            updated = product.model_copy(update=changes, deep=True)
            self._replace_product(updated)
            if "name" in changes:
                self._rename_line_items(product_id, updated.name)
            return updated.model_copy(deep=True)

    def set_product_status(self, product_id: int, active: bool) -> ProductOut:
        return self.update_product(product_id, ProductUpdate(active=active))

    def set_branch_stock(self, product_id: int, branch: str, quantity: int) -> ProductOut:
        with self._lock:
            product = self._find_product(product_id)
            self._require_branch(branch)
            stock_by_branch = dict(product.stock_by_branch)
            stock_by_branch[branch] = quantity
            updated = product.model_copy(
                update={
                    "stock_by_branch": dict(sorted(stock_by_branch.items())),
                    "updated_at": _utcnow(),
                },
                deep=True,
            )
            self._replace_product(updated)
            return updated.model_copy(deep=True)

    def delete_product(self, product_id: int) -> None:
        with self._lock:
            product = self._find_product(product_id)
            if any(
                item.product_id == product_id
                for order in self._orders
                for item in order.items
            ):
                raise RecordInUseError(f"Product {product_id} is referenced by orders")
            self._products.remove(product)

    # ---------- orders ----------

    def _order_matches(self, order: OrderOut, query: QueryDescriptor) -> bool:
        if query.search and not _contains(query.search, order.customer_name, order.address):
            return False
        if query.customer and not _contains(query.customer, order.customer_name):
            return False
        if query.status and order.status.value != query.status:
            return False
        return True

    def list_orders(self, query: QueryDescriptor) -> Page[OrderOut]:
        with self._lock:
            matched = [
                order.model_copy(deep=True)
                for order in self._orders
                if self._order_matches(order, query)
            ]

        def key(order: OrderOut):
            value = getattr(order, query.sort_by)
            return value.value if isinstance(value, OrderStatus) else value

        return _sort_and_slice(matched, query, key)

    def get_order(self, order_id: int) -> OrderOut:
        with self._lock:
            return self._find_order(order_id).model_copy(deep=True)

    def create_order(self, data: OrderCreate) -> OrderOut:
        with self._lock:
            items = []
            for item in data.items:
                try:
                    product = self._find_product(item.product_id)
                except NotFoundError:
                    raise InvalidReferenceError(f"Unknown product {item.product_id}") from None
                items.append(self._line_item(product, item.quantity, item.unit_price))
            total = round(sum(item.subtotal for item in items), 2)
            if total > MAX_AMOUNT:
                raise ValueOutOfRangeError(f"Order total exceeds {MAX_AMOUNT:,.2f}")
            now = _utcnow()
            order = OrderOut(
                id=next(self._order_ids),
                customer_name=data.customer_name,
                address=data.address,
                total=total,
                status=data.status,
                items=items,
                created_at=now,
                updated_at=now,
            )
            self._orders.append(order)
            return order.model_copy(deep=True)

    def update_order_status(self, order_id: int, status: OrderStatus) -> OrderOut:
        with self._lock:
            order = self._find_order(order_id)
            updated = order.model_copy(
                update={"status": OrderStatus(status), "updated_at": _utcnow()}, deep=True
            )
            self._replace_order(updated)
            return updated.model_copy(deep=True)

    def delete_order(self, order_id: int) -> None:
        with self._lock:
            self._orders.remove(self._find_order(order_id))

    # ---------- reports, branches, stats ----------

    def list_low_stock(self, query: QueryDescriptor) -> Page[LowStockEntry]:
        with self._lock:
            branches = sorted(
                (b for b in self._branches if b.active), key=lambda b: b.name
            )
            entries = []
            for product in self._products:
                if not product.active:
                    continue
                for branch in branches:
                    if query.branch and branch.name != query.branch:
                        continue
                    quantity = product.stock_by_branch.get(branch.name, 0)
                    if quantity > self.low_stock_threshold:
                        continue
                    entries.append(
                        LowStockEntry(
                            product_id=product.id,
                            product_name=product.name,
                            branch=branch.name,
                            quantity=quantity,
                            stock_status=stock_status(quantity),
                        )
                    )
        return _sort_and_slice(entries, query, lambda e: getattr(e, query.sort_by))

    def list_branches(self) -> List[BranchOut]:
        with self._lock:
            return [
                branch.model_copy()
                for branch in sorted(self._branches, key=lambda b: b.name)
                if branch.active
            ]

    def get_stats(self) -> StatsOut:
        with self._lock:
            products = list(self._products)
            orders = list(self._orders)
        active = [p for p in products if p.active]
        product_stats = ProductStats(
            total_products=len(products),
            active_products=len(active),
            inactive_products=len(products) - len(active),
            categories_count=len({p.category for p in products if p.category}),
            total_stock=sum(p.stock for p in products),
            inventory_value=round(sum(p.price * p.stock for p in products), 2),
            active_inventory_value=round(sum(p.price * p.stock for p in active), 2),
        )
        order_stats = OrderStats(
            total_orders=len(orders),
            total_sales=round(sum(o.total for o in orders), 2),
            completed_orders=sum(1 for o in orders if o.status == OrderStatus.completed),
            pending_orders=sum(1 for o in orders if o.status == OrderStatus.pending),
        )
        return StatsOut(products=product_stats, orders=order_stats)
