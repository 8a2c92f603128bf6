# inventory_service/main.py

"""
FastAPI Inventory Service API.
Manages products with per-branch stock, orders with line items, low-stock reports
and aggregate statistics. Listings are paginated, filterable and sortable, and are
served from PostgreSQL or, when the database is unreachable, from an in-memory store.
"""
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import __version__, config
from .auth import authenticate
from .availability import AvailabilityProber
from .bootstrap import bootstrap_database
from .db import SessionLocal, engine, get_db
from .errors import (
    BackendUnavailableError,
    InvalidReferenceError,
    NotFoundError,
    RecordInUseError,
    ValueOutOfRangeError,
)
from .query import LOW_STOCK, ORDERS, PRODUCTS, normalize_query
from .router import StoreRouter
from .schemas import (
    BranchOut,
    BranchStockUpdate,
    LoginRequest,
    LoginResponse,
    LowStockReportResponse,
    OrderCreate,
    OrderListResponse,
    OrderOut,
    OrderStatusUpdate,
    ProductCreate,
    ProductListResponse,
    ProductOut,
    ProductStatusUpdate,
    ProductUpdate,
    StatsOut,
)
from .stores import MemoryStore

# -----------------------------
# Configure Logging
# -----------------------------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

# Suppress noisy logs from third-party libraries for cleaner output
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("uvicorn.error").setLevel(logging.INFO)


# -----------------------------
# Store wiring
# -----------------------------
prober = AvailabilityProber(
    engine,
    reprobe_interval=config.REPROBE_INTERVAL_SECONDS,
    max_reprobe_interval=config.REPROBE_MAX_INTERVAL_SECONDS,
)
memory_store = MemoryStore(low_stock_threshold=config.LOW_STOCK_THRESHOLD)
store_router = StoreRouter(
    prober,
    memory_store,
    fallback_enabled=config.ENABLE_MEMORY_FALLBACK,
    low_stock_threshold=config.LOW_STOCK_THRESHOLD,
)


def get_store_router() -> StoreRouter:
    """Dependency returning the process-wide store router."""
    return store_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create tables and seed an empty database, then probe the backend.
    An unreachable database is not fatal; requests are served from memory until a re-probe succeeds.
    """
    try:
        bootstrap_database(
            engine,
            SessionLocal,
            load_records=config.SEED_DATABASE,
            retries=config.DB_CONNECT_RETRIES,
            retry_delay=config.DB_RETRY_DELAY_SECONDS,
        )
    except SQLAlchemyError as e:
        logger.error(f"Database bootstrap failed: {e}", exc_info=True)

    prober.probe()
    logger.info(f"Inventory Service started, serving from the {store_router.active_backend()} store.")
    yield
    engine.dispose()


# -----------------------------
# FastAPI App Initialization
# -----------------------------
app = FastAPI(
    title="Inventory Service API",
    description="Products, branch stock, orders and reports with a resilient paginated query engine",
    version=__version__,
    lifespan=lifespan,
)

# Enable CORS (for frontend dev/testing)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Use specific origins in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _backend_error(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# --- Root Endpoint ---
@app.get("/", status_code=status.HTTP_200_OK, summary="Root endpoint")
def read_root(router: StoreRouter = Depends(get_store_router)):
    """
    Returns a welcome message and the store currently serving requests.
    """
    return {
        "message": "Welcome to the Inventory Service!",
        "version": __version__,
        "backend": router.active_backend(),
    }


# --- Health Check Endpoint ---
@app.get("/api/health", status_code=status.HTTP_200_OK, summary="Health check endpoint")
def health_check(router: StoreRouter = Depends(get_store_router)):
    """
    Re-probes the database and reports availability, optional routines and the active store.
    The service itself stays healthy in memory mode, so this always returns 200.
    """
    available = router.prober.probe()
    return {
        "status": "ok",
        "service": "inventory-service",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "connected" if available else "unavailable",
        "backend": router.active_backend(),
        "availability": router.prober.status(),
    }


# --- Authentication ---
@app.post("/api/auth/login", response_model=LoginResponse, summary="Log in")
def login(credentials: LoginRequest):
    """
    Validates a username/password pair against the configured credentials.
    Raises a 401 HTTP exception on a mismatch.
    """
    logger.info(f"Login attempt for user '{credentials.username}'")
    user = authenticate(credentials.username, credentials.password)
    if user is None:
        logger.warning(f"Login failed for user '{credentials.username}'")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return LoginResponse(user=user)


# -----------------------------
# Product Endpoints
# -----------------------------


@app.get(
    "/api/products",
    response_model=ProductListResponse,
    summary="List products with pagination, filters and sorting",
)
def list_products(
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
    search: Optional[str] = Query(None, description="Case-insensitive match on name, description or category."),
    status_filter: Optional[str] = Query(None, alias="status", description="'active' or 'inactive'."),
    category: Optional[str] = Query(None, description="Exact category."),
    page: Optional[str] = Query(None, description="Page number, starting at 1."),
    limit: Optional[str] = Query(None, description="Page size, 1 to 100."),
    sort_by: Optional[str] = Query(None, description="name, price, category, created_at, stock or id."),
    sort_order: Optional[str] = Query(None, description="ASC or DESC."),
):
    """
    Retrieves one page of products.

    - Paging and sorting parameters are never rejected: invalid values fall back to defaults.
    - `filters` in the response echoes the normalized inputs that were applied.
    """
    query = normalize_query(
        {
            "search": search,
            "status": status_filter,
            "category": category,
            "page": page,
            "limit": limit,
            "sort_by": sort_by,
            "sort_order": sort_order,
        },
        PRODUCTS,
    )
    logger.info(f"Listing products: {query.filters_echo()} page={query.page} limit={query.limit}")
    try:
        result = router.run(db, lambda store: store.list_products(query))
    except BackendUnavailableError:
        raise _backend_error("Error retrieving products")
    logger.info(
        f"Returning {len(result.items)} of {result.total_count} products "
        f"(page {result.page}/{result.total_pages})."
    )
    return ProductListResponse(
        products=result.items,
        pagination=result.pagination(),
        filters=query.filters_echo(),
    )


@app.get("/api/products/{product_id}", response_model=ProductOut, summary="Retrieve a product by ID")
def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Retrieves a single product with its per-branch stock.
    Raises a 404 HTTP exception if the product does not exist.
    """
    try:
        return router.run(db, lambda store: store.get_product(product_id))
    except NotFoundError:
        logger.warning(f"Product with ID: {product_id} not found.")
        raise HTTPException(status_code=404, detail="Product not found")
    except BackendUnavailableError:
        raise _backend_error("Error retrieving product")


@app.post(
    "/api/products",
    response_model=ProductOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new product",
)
def create_product(
    product: ProductCreate,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Creates a product. A positive `stock` is placed in `branch` (PRINCIPAL by default).
    Raises a 400 HTTP exception for an unknown branch.
    """
    logger.info(f"Creating product: {product.name}")
    try:
        return router.run(db, lambda store: store.create_product(product))
    except InvalidReferenceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BackendUnavailableError:
        raise _backend_error("Could not create product.")


@app.put("/api/products/{product_id}", response_model=ProductOut, summary="Update an existing product")
def update_product(
    product_id: int,
    updated: ProductUpdate,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Updates only the fields that were provided.
    Raises a 404 HTTP exception if the product does not exist.
    """
    logger.info(
        f"Updating product with ID: {product_id} with data: {updated.model_dump(exclude_unset=True)}"
    )
    try:
        return router.run(db, lambda store: store.update_product(product_id, updated))
    except NotFoundError:
        logger.warning(f"Product with ID: {product_id} not found for update.")
        raise HTTPException(status_code=404, detail="Product not found")
    except BackendUnavailableError:
        raise _backend_error("Could not update product.")


@app.patch(
    "/api/products/{product_id}/status",
    response_model=ProductOut,
    summary="Activate or deactivate a product",
)
def set_product_status(
    product_id: int,
    body: ProductStatusUpdate,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    logger.info(f"Setting product {product_id} active={body.active}")
    try:
        return router.run(db, lambda store: store.set_product_status(product_id, body.active))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Product not found")
    except BackendUnavailableError:
        raise _backend_error("Could not update product status.")


@app.put(
    "/api/products/{product_id}/stock",
    response_model=ProductOut,
    summary="Set the quantity of a product held at a branch",
)
def set_branch_stock(
    product_id: int,
    body: BranchStockUpdate,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Sets (not adds to) the stock of one branch; the previous quantity is kept as history.
    Raises 404 for an unknown product and 400 for an unknown branch.
    """
    logger.info(f"Setting stock of product {product_id} at '{body.branch}' to {body.quantity}")
    try:
        return router.run(
            db, lambda store: store.set_branch_stock(product_id, body.branch, body.quantity)
        )
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Product not found")
    except InvalidReferenceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BackendUnavailableError:
        raise _backend_error("Could not update stock.")


@app.delete(
    "/api/products/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a product by ID",
)
def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Deletes a product and its stock rows.
    Raises 404 if it does not exist and 409 while orders still reference it.
    """
    logger.info(f"Attempting to delete product with ID: {product_id}")
    try:
        router.run(db, lambda store: store.delete_product(product_id))
    except NotFoundError:
        logger.warning(f"Product with ID: {product_id} not found for deletion.")
        raise HTTPException(status_code=404, detail="Product not found")
    except RecordInUseError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Product is referenced by existing orders",
        )
    except BackendUnavailableError:
        raise _backend_error("An error occurred while deleting the product.")
    logger.info(f"Product (ID: {product_id}) deleted successfully.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -----------------------------
# Order Endpoints
# -----------------------------


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    summary="List orders with pagination, filters and sorting",
)
def list_orders(
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
    search: Optional[str] = Query(None, description="Case-insensitive match on customer name or address."),
    status_filter: Optional[str] = Query(
        None, alias="status", description="pending, processing, completed or cancelled."
    ),
    customer: Optional[str] = Query(None, description="Case-insensitive match on customer name."),
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, description="created_at, total, customer_name, status or id."),
    sort_order: Optional[str] = Query(None, description="ASC or DESC (default DESC)."),
):
    """
    Retrieves one page of orders with their line items, newest first by default.
    """
    query = normalize_query(
        {
            "search": search,
            "status": status_filter,
            "customer": customer,
            "page": page,
            "limit": limit,
            "sort_by": sort_by,
            "sort_order": sort_order,
        },
        ORDERS,
    )
    logger.info(f"Listing orders: {query.filters_echo()} page={query.page} limit={query.limit}")
    try:
        result = router.run(db, lambda store: store.list_orders(query))
    except BackendUnavailableError:
        raise _backend_error("Error retrieving orders")
    return OrderListResponse(
        orders=result.items,
        pagination=result.pagination(),
        filters=query.filters_echo(),
    )


@app.get("/api/orders/{order_id}", response_model=OrderOut, summary="Retrieve an order by ID")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    try:
        return router.run(db, lambda store: store.get_order(order_id))
    except NotFoundError:
        logger.warning(f"Order with ID: {order_id} not found.")
        raise HTTPException(status_code=404, detail="Order not found")
    except BackendUnavailableError:
        raise _backend_error("Error retrieving order")


@app.post(
    "/api/orders",
    response_model=OrderOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
)
def create_order(
    order: OrderCreate,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Creates an order; the total is computed from the line items.
    Items without a unit price use the product's current price.
    Raises a 400 HTTP exception when an item references an unknown product
    or the total does not fit the stored amount.
    """
    logger.info(f"Creating order for '{order.customer_name}' with {len(order.items)} items")
    try:
        return router.run(db, lambda store: store.create_order(order))
    except (InvalidReferenceError, ValueOutOfRangeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except BackendUnavailableError:
        raise _backend_error("Could not create order.")


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderOut,
    summary="Change the status of an order",
)
def update_order_status(
    order_id: int,
    body: OrderStatusUpdate,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    logger.info(f"Setting order {order_id} status to {body.status.value}")
    try:
        return router.run(db, lambda store: store.update_order_status(order_id, body.status))
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    except BackendUnavailableError:
        raise _backend_error("Could not update order status.")


@app.delete(
    "/api/orders/{order_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an order by ID",
)
def delete_order(
    order_id: int,
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    logger.info(f"Attempting to delete order with ID: {order_id}")
    try:
        router.run(db, lambda store: store.delete_order(order_id))
    except NotFoundError:
        logger.warning(f"Order with ID: {order_id} not found for deletion.")
        raise HTTPException(status_code=404, detail="Order not found")
    except BackendUnavailableError:
        raise _backend_error("An error occurred while deleting the order.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -----------------------------
# Reports, Branches and Stats
# -----------------------------


@app.get(
    "/api/reports/low-stock",
    response_model=LowStockReportResponse,
    summary="Paginated report of branch stock at or below the low-stock threshold",
)
def low_stock_report(
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
    branch: Optional[str] = Query(None, description="Exact branch name."),
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None, description="Page size, 1 to 100 (default 20)."),
    sort_by: Optional[str] = Query(None, description="quantity, product_name or branch."),
    sort_order: Optional[str] = Query(None),
):
    """
    Lists every active product/branch pair whose quantity is at or below the
    threshold, including pairs with no stock row at all.
    """
    query = normalize_query(
        {
            "branch": branch,
            "page": page,
            "limit": limit,
            "sort_by": sort_by,
            "sort_order": sort_order,
        },
        LOW_STOCK,
    )
    try:
        result = router.run(db, lambda store: store.list_low_stock(query))
    except BackendUnavailableError:
        raise _backend_error("Error retrieving low stock report")
    return LowStockReportResponse(
        low_stock_products=result.items,
        pagination=result.pagination(),
        filters=query.filters_echo(),
    )


@app.get("/api/branches", response_model=List[BranchOut], summary="List active branches")
def list_branches(
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    try:
        return router.run(db, lambda store: store.list_branches())
    except BackendUnavailableError:
        raise _backend_error("Error retrieving branches")


@app.get("/api/stats", response_model=StatsOut, summary="Aggregate product and order statistics")
def get_stats(
    db: Session = Depends(get_db),
    router: StoreRouter = Depends(get_store_router),
):
    """
    Product counts, stock and inventory value, plus order counts and sales.
    Uses the database's stats routine when it exists.
    """
    try:
        stats = router.run(db, lambda store: store.get_stats())
    except BackendUnavailableError:
        raise _backend_error("Error retrieving statistics")
    logger.info(f"Stats calculated: {stats.model_dump()}")
    return stats
