# tests/test_stores.py

"""
Store contract tests. Every test runs against both the relational store
(SQLAlchemy over SQLite) and the in-memory store, which must agree.
"""

import pytest

from inventory_service.errors import (
    InvalidReferenceError,
    NotFoundError,
    RecordInUseError,
    ValueOutOfRangeError,
)
from inventory_service.main import prober
from inventory_service.query import LOW_STOCK, MAX_PAGE, ORDERS, PRODUCTS, normalize_query
from inventory_service.schemas import (
    OrderCreate,
    OrderItemCreate,
    OrderStatus,
    ProductCreate,
    ProductUpdate,
    StockStatus,
)
from inventory_service.seed import EMPTY_SEED
from inventory_service.stores import RelationalStore


def products(store, **params):
    return store.list_products(normalize_query(params, PRODUCTS))


def names(page):
    return [p.name for p in page.items]


# --- Listing scenarios ---


def test_search_matches_single_product(store):
    page = products(store, search="mouse", page=1, limit=10)
    assert names(page) == ["Mouse Inalámbrico"]
    assert page.total_count == 1
    assert page.total_pages == 1


def test_search_is_case_insensitive_across_name_description_and_category(store):
    assert names(products(store, search="LAPTOP")) == ["Laptop Dell Inspiron"]
    assert names(products(store, search="switches")) == ["Teclado Mecánico"]
    assert names(products(store, search="accesorios")) == ["Mouse Inalámbrico", "Teclado Mecánico"]


def test_search_wildcards_match_literally(store):
    assert products(store, search="%").total_count == 0
    assert products(store, search="_").total_count == 0


def test_status_filter(store):
    inactive = products(store, status="inactive", page=1, limit=10)
    assert names(inactive) == ["Teclado Mecánico"]
    active = products(store, status="active")
    assert names(active) == ["Laptop Dell Inspiron", "Mouse Inalámbrico"]
    # Any other status value applies no filter
    assert products(store, status="archived").total_count == 3


def test_filters_combine_with_and(store):
    page = products(store, search="a", category="Accesorios", status="active")
    assert names(page) == ["Mouse Inalámbrico"]
    assert products(store, category="Nope").total_count == 0


def test_stock_is_sum_of_branch_rows(store):
    by_name = {p.name: p for p in products(store).items}
    laptop = by_name["Laptop Dell Inspiron"]
    assert laptop.stock == 8
    assert laptop.stock_by_branch == {"PRINCIPAL": 5, "SUCURSAL HIGUEY": 3}
    assert laptop.stock_detail == "PRINCIPAL: 5, SUCURSAL HIGUEY: 3"
    assert by_name["Mouse Inalámbrico"].stock == 30
    assert by_name["Teclado Mecánico"].stock == 15


def test_product_without_stock_rows(store):
    created = store.create_product(ProductCreate(name="Cable HDMI", price=300))
    assert created.stock == 0
    assert created.stock_by_branch == {}
    assert created.stock_detail == "No stock"


@pytest.mark.parametrize(
    "sort_by, sort_order, expected",
    [
        ("name", "ASC", ["Laptop Dell Inspiron", "Mouse Inalámbrico", "Teclado Mecánico"]),
        ("price", "DESC", ["Laptop Dell Inspiron", "Teclado Mecánico", "Mouse Inalámbrico"]),
        ("stock", "ASC", ["Laptop Dell Inspiron", "Teclado Mecánico", "Mouse Inalámbrico"]),
        ("stock", "DESC", ["Mouse Inalámbrico", "Teclado Mecánico", "Laptop Dell Inspiron"]),
        # equal categories keep ascending id order in both directions
        ("category", "DESC", ["Laptop Dell Inspiron", "Mouse Inalámbrico", "Teclado Mecánico"]),
        ("id", "DESC", ["Teclado Mecánico", "Mouse Inalámbrico", "Laptop Dell Inspiron"]),
    ],
)
def test_sorting(store, sort_by, sort_order, expected):
    assert names(products(store, sort_by=sort_by, sort_order=sort_order)) == expected


def test_string_sort_ignores_case(store):
    store.create_product(ProductCreate(name="adaptador USB", price=150))
    assert names(products(store))[0] == "adaptador USB"


def test_pagination_middle_page(store, load_bulk_products):
    load_bulk_products(25)
    page = products(store, page=2, limit=10)
    meta = page.pagination()
    assert len(page.items) == 10
    assert names(page)[0] == "Product 11"
    assert meta.has_prev_page is True
    assert meta.has_next_page is True
    assert meta.next_page == 3
    assert meta.prev_page == 1


def test_pagination_last_page(store, load_bulk_products):
    load_bulk_products(25)
    page = products(store, page=3, limit=10)
    assert names(page) == [f"Product {i}" for i in range(21, 26)]
    assert page.has_next_page is False
    assert page.total_count == 25


def test_page_past_the_end_is_empty(store):
    page = products(store, page=5, limit=10)
    assert page.items == []
    assert page.total_count == 3
    assert page.total_pages == 1


@pytest.mark.parametrize("raw", ["1e30", str(2**62)])
def test_huge_page_is_empty(store, raw):
    for listing in (PRODUCTS, ORDERS, LOW_STOCK):
        query = normalize_query({"page": raw, "limit": "100"}, listing)
        if listing is PRODUCTS:
            page = store.list_products(query)
        elif listing is ORDERS:
            page = store.list_orders(query)
        else:
            page = store.list_low_stock(query)
        assert page.items == []
        assert page.page == MAX_PAGE
        assert page.total_count > 0
        assert page.has_next_page is False


def test_empty_filter_result(store):
    page = products(store, search="does-not-exist")
    meta = page.pagination()
    assert page.items == []
    assert meta.total_pages == 0
    assert meta.has_next_page is False
    assert meta.has_prev_page is False


def test_empty_catalogue(store, load_seed):
    load_seed(EMPTY_SEED)
    page = products(store)
    assert page.items == []
    assert page.total_count == 0
    assert page.total_pages == 0
    assert store.list_low_stock(normalize_query({}, LOW_STOCK)).total_count == 0
    assert store.get_stats().products.total_products == 0


def test_repeated_query_is_identical(store, load_bulk_products):
    load_bulk_products(12)
    first = products(store, sort_by="category", page=2, limit=5)
    second = products(store, sort_by="category", page=2, limit=5)
    assert [p.id for p in first.items] == [p.id for p in second.items]
    assert first.pagination() == second.pagination()


# --- Product mutations ---


def test_created_product_round_trip(store):
    created = store.create_product(
        ProductCreate(
            name="Monitor Samsung 27",
            description="Pantalla curva",
            price=18500.5,
            cost=15000,
            category="Monitores",
            sku="MON-001",
            stock=4,
            branch="SUCURSAL HIGUEY",
        )
    )
    page = products(store, search="monitor samsung", page=1)
    assert page.total_count == 1
    found = page.items[0]
    assert found.id == created.id
    assert found.name == "Monitor Samsung 27"
    assert found.description == "Pantalla curva"
    assert found.price == 18500.5
    assert found.cost == 15000
    assert found.category == "Monitores"
    assert found.sku == "MON-001"
    assert found.active is True
    assert found.stock_by_branch == {"SUCURSAL HIGUEY": 4}


def test_created_ids_are_unique(store):
    first = store.create_product(ProductCreate(name="A", price=1))
    second = store.create_product(ProductCreate(name="B", price=1))
    existing = {p.id for p in products(store, limit=100).items}
    assert first.id != second.id
    assert len(existing) == 5


def test_create_with_unknown_branch_is_rejected(store):
    with pytest.raises(InvalidReferenceError):
        store.create_product(ProductCreate(name="X", price=1, stock=3, branch="NOWHERE"))
    assert products(store).total_count == 3


def test_update_keeps_position_and_unset_fields(store):
    before = [p.id for p in products(store, sort_by="id").items]
    mouse = products(store, search="mouse").items[0]
    updated = store.update_product(mouse.id, ProductUpdate(price=900))
    assert updated.price == 900
    assert updated.name == "Mouse Inalámbrico"
    assert updated.stock == 30
    assert [p.id for p in products(store, sort_by="id").items] == before


def test_update_missing_product(store):
    with pytest.raises(NotFoundError):
        store.update_product(9999, ProductUpdate(name="Ghost"))


def test_set_product_status(store):
    mouse = products(store, search="mouse").items[0]
    assert store.set_product_status(mouse.id, False).active is False
    assert names(products(store, status="inactive")) == ["Mouse Inalámbrico", "Teclado Mecánico"]
    with pytest.raises(NotFoundError):
        store.set_product_status(9999, True)


def test_set_branch_stock(store):
    mouse = products(store, search="mouse").items[0]
    updated = store.set_branch_stock(mouse.id, "SUCURSAL HIGUEY", 7)
    assert updated.stock_by_branch == {"PRINCIPAL": 30, "SUCURSAL HIGUEY": 7}
    assert updated.stock == 37

    updated = store.set_branch_stock(mouse.id, "PRINCIPAL", 0)
    assert updated.stock == 7
    assert updated.stock_by_branch["PRINCIPAL"] == 0


def test_set_branch_stock_errors(store):
    with pytest.raises(NotFoundError):
        store.set_branch_stock(9999, "PRINCIPAL", 1)
    mouse = products(store, search="mouse").items[0]
    with pytest.raises(InvalidReferenceError):
        store.set_branch_stock(mouse.id, "NOWHERE", 1)


def test_delete_product(store):
    created = store.create_product(ProductCreate(name="Temporal", price=1, stock=2))
    store.delete_product(created.id)
    with pytest.raises(NotFoundError):
        store.get_product(created.id)
    with pytest.raises(NotFoundError):
        store.delete_product(created.id)


def test_delete_product_referenced_by_orders(store):
    mouse = products(store, search="mouse").items[0]
    with pytest.raises(RecordInUseError):
        store.delete_product(mouse.id)
    assert store.get_product(mouse.id).name == "Mouse Inalámbrico"


# --- Orders ---


def orders(store, **params):
    return store.list_orders(normalize_query(params, ORDERS))


def test_orders_default_to_newest_first_with_items(store):
    page = orders(store)
    assert page.total_count == 2
    # Seed orders share a timestamp, so ids break the tie
    first = page.items[0]
    assert first.customer_name == "Juan Pérez"
    assert first.total == 46700.0
    assert [(i.name, i.quantity, i.unit_price) for i in first.items] == [
        ("Laptop Dell Inspiron", 1, 45000.0),
        ("Mouse Inalámbrico", 2, 850.0),
    ]


def test_order_filters(store):
    assert [o.customer_name for o in orders(store, status="pending").items] == ["María Rodríguez"]
    assert orders(store, status="shipped").total_count == 0
    assert [o.customer_name for o in orders(store, customer="JUAN").items] == ["Juan Pérez"]
    assert [o.customer_name for o in orders(store, search="higüey").items] == ["María Rodríguez"]


def test_order_sorting(store):
    by_total = orders(store, sort_by="total", sort_order="ASC")
    assert [o.total for o in by_total.items] == [850.0, 46700.0]
    by_name = orders(store, sort_by="customer_name", sort_order="DESC")
    assert [o.customer_name for o in by_name.items] == ["María Rodríguez", "Juan Pérez"]


def test_create_order(store):
    laptop = products(store, search="laptop").items[0]
    mouse = products(store, search="mouse").items[0]
    created = store.create_order(
        OrderCreate(
            customer_name="Pedro Gómez",
            address="Calle 5",
            items=[
                OrderItemCreate(product_id=laptop.id, quantity=2),
                OrderItemCreate(product_id=mouse.id, quantity=3, unit_price=800),
            ],
        )
    )
    assert created.status == OrderStatus.pending
    assert created.total == 92400.0
    assert [i.subtotal for i in created.items] == [90000.0, 2400.0]

    page = orders(store, customer="pedro")
    assert page.total_count == 1
    assert page.items[0].id == created.id
    assert page.items[0].items == created.items


def test_create_order_with_unknown_product(store):
    with pytest.raises(InvalidReferenceError):
        store.create_order(
            OrderCreate(customer_name="X", items=[OrderItemCreate(product_id=9999, quantity=1)])
        )
    assert orders(store).total_count == 2


def test_order_total_must_fit_stored_amount(store):
    laptop = products(store, search="laptop").items[0]
    with pytest.raises(ValueOutOfRangeError):
        store.create_order(
            OrderCreate(
                customer_name="Mayorista",
                items=[OrderItemCreate(product_id=laptop.id, quantity=3000)],
            )
        )
    assert orders(store).total_count == 2


def test_line_items_follow_product_rename(store):
    mouse = products(store, search="mouse").items[0]
    store.update_product(mouse.id, ProductUpdate(name="Mouse Gamer"))
    names_by_order = {
        o.customer_name: [i.name for i in o.items] for o in orders(store).items
    }
    assert names_by_order == {
        "Juan Pérez": ["Laptop Dell Inspiron", "Mouse Gamer"],
        "María Rodríguez": ["Mouse Gamer"],
    }


def test_ids_beyond_integer_range_are_not_found(store):
    huge = 2**63
    with pytest.raises(NotFoundError):
        store.get_product(huge)
    with pytest.raises(NotFoundError):
        store.set_branch_stock(huge, "PRINCIPAL", 1)
    with pytest.raises(NotFoundError):
        store.delete_product(huge)
    with pytest.raises(NotFoundError):
        store.get_order(huge)
    with pytest.raises(NotFoundError):
        store.delete_order(huge)


def test_update_order_status(store):
    pending = orders(store, status="pending").items[0]
    updated = store.update_order_status(pending.id, OrderStatus.processing)
    assert updated.status == OrderStatus.processing
    assert orders(store, status="pending").total_count == 0
    with pytest.raises(NotFoundError):
        store.update_order_status(9999, OrderStatus.cancelled)


def test_delete_order(store):
    first = orders(store).items[0]
    store.delete_order(first.id)
    assert orders(store).total_count == 1
    with pytest.raises(NotFoundError):
        store.get_order(first.id)


# --- Low stock, branches, stats ---


def test_low_stock_report(store):
    page = store.list_low_stock(normalize_query({}, LOW_STOCK))
    rows = [(e.product_name, e.branch, e.quantity, e.stock_status) for e in page.items]
    # The inactive keyboard is excluded; the mouse has no row at SUCURSAL HIGUEY
    assert rows == [
        ("Mouse Inalámbrico", "SUCURSAL HIGUEY", 0, StockStatus.out_of_stock),
        ("Laptop Dell Inspiron", "SUCURSAL HIGUEY", 3, StockStatus.low),
        ("Laptop Dell Inspiron", "PRINCIPAL", 5, StockStatus.low),
    ]
    assert page.total_count == 3
    assert page.page_size == 20


def test_low_stock_branch_filter_and_sort(store):
    query = normalize_query(
        {"branch": "SUCURSAL HIGUEY", "sort_by": "product_name", "sort_order": "DESC"}, LOW_STOCK
    )
    page = store.list_low_stock(query)
    assert [e.product_name for e in page.items] == ["Mouse Inalámbrico", "Laptop Dell Inspiron"]


def test_low_stock_medium_band(store):
    mouse = products(store, search="mouse").items[0]
    store.set_branch_stock(mouse.id, "PRINCIPAL", 9)
    query = normalize_query({"branch": "PRINCIPAL"}, LOW_STOCK)
    entries = {e.product_name: e for e in store.list_low_stock(query).items}
    assert entries["Mouse Inalámbrico"].stock_status == StockStatus.medium


def test_list_branches(store):
    branches = store.list_branches()
    assert [b.name for b in branches] == ["PRINCIPAL", "SUCURSAL HIGUEY"]
    assert branches[0].code == "PRIN"


def test_stats(store):
    stats = store.get_stats()
    assert stats.products.total_products == 3
    assert stats.products.active_products == 2
    assert stats.products.inactive_products == 1
    assert stats.products.categories_count == 2
    assert stats.products.total_stock == 53
    assert stats.products.inventory_value == 45000 * 8 + 850 * 30 + 3200 * 15
    assert stats.products.active_inventory_value == 45000 * 8 + 850 * 30
    assert stats.orders.total_orders == 2
    assert stats.orders.total_sales == 47550.0
    assert stats.orders.completed_orders == 1
    assert stats.orders.pending_orders == 1


# --- Relational store: optional database routines ---


def test_failing_stats_routine_falls_back_to_generic_query(db_session, monkeypatch):
    # SQLite has no such function, so calling it fails like a broken routine would
    monkeypatch.setitem(prober._routines, "get_inventory_stats", True)
    store = RelationalStore(db_session, prober)

    stats = store.get_stats()
    assert stats.products.total_products == 3
    assert stats.products.total_stock == 53
    assert prober.has_routine("get_inventory_stats") is False


def test_failing_stock_routine_falls_back_to_upsert(db_session, monkeypatch):
    monkeypatch.setitem(prober._routines, "update_inventory", True)
    store = RelationalStore(db_session, prober)
    laptop = products(store, search="laptop").items[0]

    updated = store.set_branch_stock(laptop.id, "PRINCIPAL", 12)
    assert updated.stock_by_branch == {"PRINCIPAL": 12, "SUCURSAL HIGUEY": 3}
    assert prober.has_routine("update_inventory") is False
