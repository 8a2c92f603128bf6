# inventory_service/query.py

"""
Query normalization for listing endpoints.

Every listing request passes through `normalize_query`, which turns untrusted
query parameters into a `QueryDescriptor`. Normalization never fails: bad paging
or sorting input is clamped or replaced by the listing's defaults.
"""

import math
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

MAX_PAGE_SIZE = 100
# Keeps (page - 1) * limit far inside the database's OFFSET range.
MAX_PAGE = 1_000_000

ASC = "ASC"
DESC = "DESC"


class Listing(BaseModel):
    """Per-listing rules: sortable fields, defaults and the filters echoed back."""

    name: str
    sort_fields: Tuple[str, ...]
    default_sort: str
    default_order: str = ASC
    default_limit: int = 10
    echoed_filters: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)


PRODUCTS = Listing(
    name="products",
    sort_fields=("name", "price", "category", "created_at", "stock", "id"),
    default_sort="name",
    default_order=ASC,
    default_limit=10,
    echoed_filters=("search", "status", "category"),
)

ORDERS = Listing(
    name="orders",
    sort_fields=("created_at", "total", "customer_name", "status", "id"),
    default_sort="created_at",
    default_order=DESC,
    default_limit=10,
    echoed_filters=("search", "status", "customer"),
)

LOW_STOCK = Listing(
    name="low_stock",
    sort_fields=("quantity", "product_name", "branch"),
    default_sort="quantity",
    default_order=ASC,
    default_limit=20,
    echoed_filters=("branch",),
)


class QueryDescriptor(BaseModel):
    """The normalized, safe shape of a listing request. Empty filters are not applied."""

    search: str = ""
    category: str = ""
    status: str = ""
    customer: str = ""
    branch: str = ""
    page: int = 1
    limit: int = 10
    sort_by: str
    sort_order: str = ASC
    echoed_filters: Tuple[str, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def descending(self) -> bool:
        return self.sort_order == DESC

    def filters_echo(self) -> Dict[str, str]:
        """The normalized inputs echoed back in the response envelope."""
        echo = {key: getattr(self, key) for key in self.echoed_filters}
        echo["sort_by"] = self.sort_by
        echo["sort_order"] = self.sort_order
        return echo


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def normalize_query(params: Mapping[str, Any], listing: Listing) -> QueryDescriptor:
    """
    Build a QueryDescriptor from raw query parameters.

    - page: integer, anything unparsable or below 1 becomes 1, above MAX_PAGE is clamped.
    - limit: integer, above MAX_PAGE_SIZE is clamped, below 1 or unparsable uses the listing default.
    - sort_by: must be in the listing allow-list, otherwise the listing default.
    - sort_order: case-insensitive ASC/DESC, otherwise the listing default.
    - text filters pass through verbatim.
    """
    page = _parse_int(params.get("page"))
    if page is None or page < 1:
        page = 1
    elif page > MAX_PAGE:
        page = MAX_PAGE

    limit = _parse_int(params.get("limit"))
    if limit is None or limit < 1:
        limit = listing.default_limit
    elif limit > MAX_PAGE_SIZE:
        limit = MAX_PAGE_SIZE

    sort_by = _as_text(params.get("sort_by"))
    if sort_by not in listing.sort_fields:
        sort_by = listing.default_sort

    sort_order = _as_text(params.get("sort_order")).strip().upper()
    if sort_order not in (ASC, DESC):
        sort_order = listing.default_order

    return QueryDescriptor(
        search=_as_text(params.get("search")),
        category=_as_text(params.get("category")),
        status=_as_text(params.get("status")),
        customer=_as_text(params.get("customer")),
        branch=_as_text(params.get("branch")),
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
        echoed_filters=listing.echoed_filters,
    )
