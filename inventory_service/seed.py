# inventory_service/seed.py

"""
Seed data shared by the in-memory store and the database bootstrap.
The in-memory store is reset to this set on every process start.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class SeedBranch:
    name: str
    code: str
    active: bool = True


@dataclass(frozen=True)
class SeedProduct:
    name: str
    price: float
    category: str = ""
    description: str = ""
    cost: float = 0
    sku: str = ""
    active: bool = True
    stock: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class SeedOrder:
    customer_name: str
    address: str
    status: str
    # (product name, quantity); unit price is the product's price
    items: Tuple[Tuple[str, int], ...]


@dataclass(frozen=True)
class SeedData:
    branches: List[SeedBranch]
    products: List[SeedProduct]
    orders: List[SeedOrder] = field(default_factory=list)


DEFAULT_SEED = SeedData(
    branches=[
        SeedBranch(name="PRINCIPAL", code="PRIN"),
        SeedBranch(name="SUCURSAL HIGUEY", code="HIG"),
    ],
    products=[
        SeedProduct(
            name="Laptop Dell Inspiron",
            description="Laptop 15 pulgadas, 16GB RAM",
            category="Electrónicos",
            price=45000.0,
            cost=38000.0,
            sku="ELEC-001",
            stock={"PRINCIPAL": 5, "SUCURSAL HIGUEY": 3},
        ),
        SeedProduct(
            name="Mouse Inalámbrico",
            description="Mouse óptico 2.4GHz",
            category="Accesorios",
            price=850.0,
            cost=500.0,
            sku="ACC-001",
            stock={"PRINCIPAL": 30},
        ),
        SeedProduct(
            name="Teclado Mecánico",
            description="Teclado RGB switches azules",
            category="Accesorios",
            price=3200.0,
            cost=2100.0,
            sku="ACC-002",
            active=False,
            stock={"PRINCIPAL": 10, "SUCURSAL HIGUEY": 5},
        ),
    ],
    orders=[
        SeedOrder(
            customer_name="Juan Pérez",
            address="Calle Duarte 12, Santo Domingo",
            status="completed",
            items=(("Laptop Dell Inspiron", 1), ("Mouse Inalámbrico", 2)),
        ),
        SeedOrder(
            customer_name="María Rodríguez",
            address="Av. Libertad 45, Higüey",
            status="pending",
            items=(("Mouse Inalámbrico", 1),),
        ),
    ],
)

EMPTY_SEED = SeedData(branches=list(DEFAULT_SEED.branches), products=[], orders=[])
