# inventory_service/stores/relational.py

"""
Relational Store implementation over the SQLAlchemy session.

The count query and the data query of every listing share one filter predicate,
so `total_count` always describes the filtered set. They are separate round-trips
with no transaction spanning both, so concurrent writes can make the two disagree.
"""

import functools
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy import and_, case, func, or_, select, text, true
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..availability import AvailabilityProber
from ..errors import (
    BackendUnavailableError,
    InvalidReferenceError,
    NotFoundError,
    RecordInUseError,
    ValueOutOfRangeError,
)
from ..models import Branch, Inventory, Order, OrderItem, Product
from ..query import QueryDescriptor
from ..schemas import (
    MAX_AMOUNT,
    MAX_ID,
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
from .base import build_page, stock_status

logger = logging.getLogger(__name__)


def _backend_call(method):
    """Roll back and re-raise any SQLAlchemy failure as BackendUnavailableError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            try:
                self.session.rollback()
            except SQLAlchemyError as rollback_error:
                logger.warning(f"Rollback after failed {method.__name__} also failed: {rollback_error}")
            raise BackendUnavailableError(f"{method.__name__} failed: {e}") from e

    return wrapper


def _like_pattern(term: str) -> str:
    # Wildcards typed by the user match literally.
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _icontains(column, term: str):
    return func.lower(column).like(_like_pattern(term), escape="\\")


def _ordering(column, query: QueryDescriptor):
    return column.desc() if query.descending else column.asc()


def _stock_total():
    return (
        select(func.coalesce(func.sum(Inventory.quantity), 0))
        .where(Inventory.product_id == Product.id)
        .correlate(Product)
        .scalar_subquery()
    )


def _product_out(product: Product) -> ProductOut:
    rows = sorted(product.inventory, key=lambda row: row.branch.name)
    return ProductOut(
        id=product.id,
        sku=product.sku,
        name=product.name,
        description=product.description or "",
        category=product.category or "",
        price=float(product.price or 0),
        cost=float(product.cost or 0),
        active=bool(product.active),
        stock_by_branch={row.branch.name: row.quantity for row in rows},
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


def _order_out(order: Order) -> OrderOut:
    return OrderOut(
        id=order.id,
        customer_name=order.customer_name,
        address=order.address or "",
        total=float(order.total or 0),
        status=OrderStatus(order.status),
        items=[
            OrderItemOut(
                product_id=item.product_id,
                name=item.product.name if item.product is not None else "",
                quantity=item.quantity,
                unit_price=float(item.unit_price),
                subtotal=float(item.subtotal),
            )
            for item in order.items
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


class RelationalStore:
    """Store implementation backed by the request's database session."""

    def __init__(
        self,
        session: Session,
        prober: AvailabilityProber,
        low_stock_threshold: int = 10,
    ):
        self.session = session
        self.prober = prober
        self.low_stock_threshold = low_stock_threshold

    # ---------- products ----------

    def _product_query(self):
        return self.session.query(Product).options(
            selectinload(Product.inventory).joinedload(Inventory.branch)
        )

    @staticmethod
    def _product_criteria(query: QueryDescriptor) -> list:
        criteria = []
        if query.search:
            criteria.append(
                or_(
                    _icontains(Product.name, query.search),
                    _icontains(Product.description, query.search),
                    _icontains(Product.category, query.search),
                )
            )
        if query.category:
            criteria.append(Product.category == query.category)
        if query.status == "active":
            criteria.append(Product.active.is_(True))
        elif query.status == "inactive":
            criteria.append(Product.active.is_(False))
        return criteria

    @_backend_call
    def list_products(self, query: QueryDescriptor) -> Page[ProductOut]:
        criteria = self._product_criteria(query)
        total = self.session.query(func.count(Product.id)).filter(*criteria).scalar()

        sort_columns = {
            "name": func.lower(Product.name),
            "price": Product.price,
            "category": func.lower(Product.category),
            "created_at": Product.created_at,
            "stock": _stock_total(),
            "id": Product.id,
        }
        products = (
            self._product_query()
            .filter(*criteria)
            .order_by(_ordering(sort_columns[query.sort_by], query), Product.id.asc())
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        return build_page([_product_out(p) for p in products], int(total or 0), query)

    def _load_product(self, product_id: int) -> Product:
        if not 1 <= product_id <= MAX_ID:
            raise NotFoundError("product", product_id)
        product = self._product_query().filter(Product.id == product_id).first()
        if product is None:
            raise NotFoundError("product", product_id)
        return product

    def _branch_by_name(self, name: str) -> Branch:
        branch = self.session.query(Branch).filter(Branch.name == name).first()
        if branch is None:
            raise InvalidReferenceError(f"Unknown branch '{name}'")
        return branch

    def _write_stock(self, product_id: int, branch_id: int, quantity: int) -> None:
        if self.prober.has_routine("update_inventory"):
            try:
                with self.session.begin_nested():
                    self.session.execute(
                        text("SELECT update_inventory(:product_id, :branch_id, :quantity)"),
                        {"product_id": product_id, "branch_id": branch_id, "quantity": quantity},
                    )
                return
            except SQLAlchemyError as e:
                logger.warning(f"update_inventory() failed, falling back to upsert: {e}")
                self.prober.disable_routine("update_inventory")

        row = (
            self.session.query(Inventory)
            .filter(Inventory.product_id == product_id, Inventory.branch_id == branch_id)
            .first()
        )
        if row is None:
            self.session.add(
                Inventory(
                    product_id=product_id,
                    branch_id=branch_id,
                    quantity=quantity,
                    previous_quantity=0,
                )
            )
        else:
            row.previous_quantity = row.quantity
            row.quantity = quantity

    @_backend_call
    def get_product(self, product_id: int) -> ProductOut:
        return _product_out(self._load_product(product_id))

    @_backend_call
    def create_product(self, data: ProductCreate) -> ProductOut:
        branch = self._branch_by_name(data.branch) if data.stock > 0 else None
        product = Product(
            sku=data.sku,
            name=data.name,
            description=data.description,
            category=data.category,
            price=data.price,
            cost=data.cost,
            active=True,
        )
        self.session.add(product)
        self.session.flush()
        if branch is not None:
            self._write_stock(product.id, branch.id, data.stock)
        self.session.commit()
        logger.info(f"Product '{product.name}' (ID: {product.id}) created.")
        return _product_out(self._load_product(product.id))

    @_backend_call
    def update_product(self, product_id: int, data: ProductUpdate) -> ProductOut:
        product = self._load_product(product_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(product, field, value)
        self.session.commit()
        return _product_out(self._load_product(product_id))

    def set_product_status(self, product_id: int, active: bool) -> ProductOut:
        return self.update_product(product_id, ProductUpdate(active=active))

    @_backend_call
    def set_branch_stock(self, product_id: int, branch: str, quantity: int) -> ProductOut:
        self._load_product(product_id)
        target = self._branch_by_name(branch)
        self._write_stock(product_id, target.id, quantity)
        self.session.commit()
        return _product_out(self._load_product(product_id))

    @_backend_call
    def delete_product(self, product_id: int) -> None:
        product = self._load_product(product_id)
        in_use = (
            self.session.query(OrderItem.id)
            .filter(OrderItem.product_id == product_id)
            .first()
        )
        if in_use is not None:
            raise RecordInUseError(f"Product {product_id} is referenced by orders")
        self.session.delete(product)
        self.session.commit()

    # ---------- orders ----------

    def _order_query(self):
        return self.session.query(Order).options(
            selectinload(Order.items).joinedload(OrderItem.product)
        )

    @staticmethod
    def _order_criteria(query: QueryDescriptor) -> list:
        criteria = []
        if query.search:
            criteria.append(
                or_(
                    _icontains(Order.customer_name, query.search),
                    _icontains(Order.address, query.search),
                )
            )
        if query.customer:
            criteria.append(_icontains(Order.customer_name, query.customer))
        if query.status:
            criteria.append(Order.status == query.status)
        return criteria

    @_backend_call
    def list_orders(self, query: QueryDescriptor) -> Page[OrderOut]:
        criteria = self._order_criteria(query)
        total = self.session.query(func.count(Order.id)).filter(*criteria).scalar()

        sort_columns = {
            "created_at": Order.created_at,
            "total": Order.total,
            "customer_name": func.lower(Order.customer_name),
            "status": Order.status,
            "id": Order.id,
        }
        orders = (
            self._order_query()
            .filter(*criteria)
            .order_by(_ordering(sort_columns[query.sort_by], query), Order.id.asc())
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        return build_page([_order_out(o) for o in orders], int(total or 0), query)

    def _load_order(self, order_id: int) -> Order:
        if not 1 <= order_id <= MAX_ID:
            raise NotFoundError("order", order_id)
        order = self._order_query().filter(Order.id == order_id).first()
        if order is None:
            raise NotFoundError("order", order_id)
        return order

    @_backend_call
    def get_order(self, order_id: int) -> OrderOut:
        return _order_out(self._load_order(order_id))

    @_backend_call
    def create_order(self, data: OrderCreate) -> OrderOut:
        product_ids = {item.product_id for item in data.items}
        products: Dict[int, Product] = {
            p.id: p
            for p in self.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        missing = sorted(product_ids - set(products))
        if missing:
            raise InvalidReferenceError(f"Unknown product {missing[0]}")

        order = Order(
            customer_name=data.customer_name,
            address=data.address,
            status=data.status.value,
        )
        total = 0.0
        for item in data.items:
            product = products[item.product_id]
            unit_price = float(product.price) if item.unit_price is None else item.unit_price
            subtotal = round(unit_price * item.quantity, 2)
            total += subtotal
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    subtotal=subtotal,
                )
            )
        order.total = round(total, 2)
        if order.total > MAX_AMOUNT:
            raise ValueOutOfRangeError(f"Order total exceeds {MAX_AMOUNT:,.2f}")
        self.session.add(order)
        self.session.commit()
        logger.info(f"Order {order.id} for '{order.customer_name}' created.")
        return _order_out(self._load_order(order.id))

    @_backend_call
    def update_order_status(self, order_id: int, status: OrderStatus) -> OrderOut:
        order = self._load_order(order_id)
        order.status = OrderStatus(status).value
        self.session.commit()
        return _order_out(self._load_order(order_id))

    @_backend_call
    def delete_order(self, order_id: int) -> None:
        self.session.delete(self._load_order(order_id))
        self.session.commit()

    # ---------- reports, branches, stats ----------

    @_backend_call
    def list_low_stock(self, query: QueryDescriptor) -> Page[LowStockEntry]:
        quantity = func.coalesce(Inventory.quantity, 0)
        base = (
            self.session.query(
                Product.id.label("product_id"),
                Product.name.label("product_name"),
                Branch.name.label("branch"),
                quantity.label("quantity"),
            )
            .select_from(Product)
            .join(Branch, true())
            .outerjoin(
                Inventory,
                and_(Inventory.product_id == Product.id, Inventory.branch_id == Branch.id),
            )
            .filter(
                Product.active.is_(True),
                Branch.active.is_(True),
                quantity <= self.low_stock_threshold,
            )
        )
        if query.branch:
            base = base.filter(Branch.name == query.branch)

        total = base.count()

        sort_columns = {
            "quantity": quantity,
            "product_name": func.lower(Product.name),
            "branch": func.lower(Branch.name),
        }
        rows = (
            base.order_by(
                _ordering(sort_columns[query.sort_by], query),
                Product.id.asc(),
                Branch.name.asc(),
            )
            .offset(query.offset)
            .limit(query.limit)
            .all()
        )
        entries = [
            LowStockEntry(
                product_id=row.product_id,
                product_name=row.product_name,
                branch=row.branch,
                quantity=int(row.quantity),
                stock_status=stock_status(int(row.quantity)),
            )
            for row in rows
        ]
        return build_page(entries, total, query)

    @_backend_call
    def list_branches(self) -> List[BranchOut]:
        branches = (
            self.session.query(Branch)
            .filter(Branch.active.is_(True))
            .order_by(Branch.name.asc())
            .all()
        )
        return [BranchOut.model_validate(branch) for branch in branches]

    def _routine_product_stats(self) -> Optional[ProductStats]:
        if not self.prober.has_routine("get_inventory_stats"):
            return None
        try:
            with self.session.begin_nested():
                raw = self.session.execute(
                    text("SELECT get_inventory_stats() AS stats")
                ).scalar()
            if isinstance(raw, str):
                return ProductStats.model_validate_json(raw)
            return ProductStats.model_validate(raw)
        except (SQLAlchemyError, ValidationError) as e:
            logger.warning(f"get_inventory_stats() failed, using generic stats query: {e}")
            self.prober.disable_routine("get_inventory_stats")
            return None

    def _generic_product_stats(self) -> ProductStats:
        total, active, categories = self.session.query(
            func.count(Product.id),
            func.count(case((Product.active.is_(True), 1))),
            func.count(func.distinct(func.nullif(Product.category, ""))),
        ).one()
        total_stock, inventory_value, active_value = (
            self.session.query(
                func.coalesce(func.sum(Inventory.quantity), 0),
                func.coalesce(func.sum(Inventory.quantity * Product.price), 0),
                func.coalesce(
                    func.sum(case((Product.active.is_(True), Inventory.quantity * Product.price))),
                    0,
                ),
            )
            .select_from(Inventory)
            .join(Product, Product.id == Inventory.product_id)
            .one()
        )
        return ProductStats(
            total_products=total,
            active_products=active,
            inactive_products=total - active,
            categories_count=categories,
            total_stock=int(total_stock),
            inventory_value=round(float(inventory_value), 2),
            active_inventory_value=round(float(active_value), 2),
        )

    @_backend_call
    def get_stats(self) -> StatsOut:
        product_stats = self._routine_product_stats()
        if product_stats is None:
            product_stats = self._generic_product_stats()
        total, sales, completed, pending = self.session.query(
            func.count(Order.id),
            func.coalesce(func.sum(Order.total), 0),
            func.count(case((Order.status == OrderStatus.completed.value, 1))),
            func.count(case((Order.status == OrderStatus.pending.value, 1))),
        ).one()
        order_stats = OrderStats(
            total_orders=total,
            total_sales=round(float(sales), 2),
            completed_orders=completed,
            pending_orders=pending,
        )
        return StatsOut(products=product_stats, orders=order_stats)
