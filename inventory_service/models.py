# inventory_service/models.py

"""
SQLAlchemy database models for the Inventory Service.
These classes define the structure of tables in the database.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .db import Base


class Product(Base):
    """
    SQLAlchemy model for the 'products' table.
    Stock is not stored here; it is the sum of the product's inventory rows.
    """

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    sku = Column(String(50), nullable=True)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False, default="", index=True)
    # asdecimal=False: prices come back as floats, the same as the in-memory store.
    cost = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    inventory = relationship(
        "Inventory", back_populates="product", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', active={self.active})>"


class Branch(Base):
    """SQLAlchemy model for the 'branches' table (stores holding stock)."""

    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    code = Column(String(20), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Branch(id={self.id}, name='{self.name}')>"


class Inventory(Base):
    """
    SQLAlchemy model for the 'inventories' table.
    One row per (product, branch); `previous_quantity` keeps the value before the last update.
    """

    __tablename__ = "inventories"
    __table_args__ = (UniqueConstraint("product_id", "branch_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    branch_id = Column(
        Integer, ForeignKey("branches.id", ondelete="CASCADE"), nullable=False
    )
    quantity = Column(Integer, nullable=False, default=0)
    previous_quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    product = relationship("Product", back_populates="inventory")
    branch = relationship("Branch")

    def __repr__(self):
        return (
            f"<Inventory(product_id={self.product_id}, branch_id={self.branch_id}, "
            f"quantity={self.quantity})>"
        )


class Order(Base):
    """SQLAlchemy model for the 'orders' table."""

    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    customer_name = Column(String(255), nullable=False)
    address = Column(Text, nullable=False, default="")
    total = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    # One of: pending, processing, completed, cancelled
    status = Column(String(20), nullable=False, default="pending", index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def __repr__(self):
        return f"<Order(id={self.id}, customer='{self.customer_name}', status='{self.status}')>"


class OrderItem(Base):
    """SQLAlchemy model for the 'order_items' table (order line items)."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    subtotal = Column(Numeric(10, 2, asdecimal=False), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")
