# inventory_service/bootstrap.py

"""
Persistence bootstrap: creates the tables and loads the seed set into an empty database.
"""

import logging
import time
from datetime import datetime, timezone

from sqlalchemy.exc import OperationalError

from . import models
from .db import Base
from .seed import DEFAULT_SEED, SeedData

logger = logging.getLogger(__name__)


def seed_database(session, seed: SeedData = DEFAULT_SEED, load_records: bool = True) -> None:
    """
    Ensure the seed branches exist and, when the product table is empty, insert
    the seed products and orders. Commits on success.
    """
    branches = {b.name: b for b in session.query(models.Branch).all()}
    for seed_branch in seed.branches:
        if seed_branch.name not in branches:
            branch = models.Branch(
                name=seed_branch.name, code=seed_branch.code, active=seed_branch.active
            )
            session.add(branch)
            branches[branch.name] = branch
    session.flush()

    if load_records and session.query(models.Product.id).first() is None:
        # Seed records share one timestamp; ties on created_at fall back to id order.
        now = datetime.now(timezone.utc)
        products = {}
        for seed_product in seed.products:
            product = models.Product(
                sku=seed_product.sku or None,
                name=seed_product.name,
                description=seed_product.description,
                category=seed_product.category,
                price=seed_product.price,
                cost=seed_product.cost,
                active=seed_product.active,
                created_at=now,
                updated_at=now,
            )
            for branch_name, quantity in seed_product.stock.items():
                product.inventory.append(
                    models.Inventory(branch=branches[branch_name], quantity=quantity)
                )
            session.add(product)
            products[product.name] = product

        for seed_order in seed.orders:
            order = models.Order(
                customer_name=seed_order.customer_name,
                address=seed_order.address,
                status=seed_order.status,
                created_at=now,
                updated_at=now,
            )
            total = 0.0
            for product_name, quantity in seed_order.items:
                product = products[product_name]
                subtotal = round(product.price * quantity, 2)
                total += subtotal
                order.items.append(
                    models.OrderItem(
                        product=product,
                        quantity=quantity,
                        unit_price=product.price,
                        subtotal=subtotal,
                    )
                )
            order.total = round(total, 2)
            session.add(order)
        logger.info(
            f"Seeded {len(seed.products)} products and {len(seed.orders)} orders."
        )

    session.commit()


def bootstrap_database(
    engine,
    session_factory,
    seed: SeedData = DEFAULT_SEED,
    load_records: bool = True,
    retries: int = 1,
    retry_delay: float = 0,
) -> bool:
    """
    Create tables (if they do not exist) and seed them.
    Retries on OperationalError; returns False when the database stays unreachable.
    """
    for attempt in range(1, retries + 1):
        try:
            logger.info(
                f"Attempting to connect to the database and create tables (attempt {attempt}/{retries})..."
            )
            Base.metadata.create_all(bind=engine)
            session = session_factory()
            try:
                seed_database(session, seed, load_records)
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            logger.info("Database tables verified and seed data ensured.")
            return True
        except OperationalError as e:
            logger.warning(f"Failed to connect to the database: {e}")
            if attempt < retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
    logger.error(
        f"Database unreachable after {retries} attempts; serving from the in-memory store."
    )
    return False
