#!/usr/bin/env python
"""
Demo Catalog and Order Ledger Seeder

Creates the tables if needed and inserts a reproducible catalog and order
history with a long-tailed popularity distribution, so best-seller ranks are
meaningful.

Usage:
    python scripts/seed_sales.py --products 500 --orders 20000
"""

import argparse
import asyncio
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List

import numpy as np
import structlog
from faker import Faker
from sqlalchemy import insert

from bestsellers.config.logging import configure_logging
from bestsellers.database.connection import close_database, get_session_factory, init_database
from bestsellers.database.models import (
    Base,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    ProductStatus,
    product_categories,
)
from bestsellers.ranking.windows import utcnow

logger = structlog.get_logger(__name__)

CATEGORIES = ["Electronics", "Clothing", "Home & Garden", "Sports", "Beauty", "Books"]
ORDER_STATUSES = [s for s in OrderStatus]
# mostly delivered, the rest exercise the status filter
ORDER_STATUS_WEIGHTS = [0.04, 0.04, 0.04, 0.08, 0.70, 0.06, 0.04]
CHUNK_SIZE = 1000


def generate_catalog(rng: np.random.Generator, fake: Faker, n_products: int, n_vendors: int) -> Dict[str, List[Dict[str, Any]]]:
    categories = [{"id": i + 1, "name": name} for i, name in enumerate(CATEGORIES)]

    prices = np.round(rng.lognormal(mean=3.5, sigma=0.8, size=n_products), 2)
    vendors = rng.integers(1, n_vendors + 1, size=n_products)
    listing_statuses = [ProductStatus.PUBLISHED, ProductStatus.DRAFT, ProductStatus.ARCHIVED]
    statuses = rng.choice(len(listing_statuses), size=n_products, p=[0.9, 0.05, 0.05])

    products = [
        {
            "id": i + 1,
            "sku": f"SKU-{i + 1:08d}",
            "name": f"{fake.word().title()} {fake.word().title()} {i + 1}",
            "vendor_id": int(vendors[i]),
            "price": Decimal(str(prices[i])),
            "status": listing_statuses[statuses[i]],
            "is_deleted": False,
            "is_best_seller": False,
        }
        for i in range(n_products)
    ]

    memberships = []
    for product in products:
        for category_id in rng.choice(len(categories), size=rng.integers(1, 3), replace=False):
            memberships.append({"product_id": product["id"], "category_id": int(category_id) + 1})

    return {"categories": categories, "products": products, "memberships": memberships}


def generate_ledger(
    rng: np.random.Generator,
    products: List[Dict[str, Any]],
    n_orders: int,
    n_buyers: int,
    days: int,
) -> Dict[str, List[Dict[str, Any]]]:
    now = utcnow()

    # Zipf-like popularity so a few products dominate
    weights = 1.0 / np.arange(1, len(products) + 1) ** 1.1
    weights = weights / weights.sum()
    popularity = rng.permutation(len(products))

    ages = rng.uniform(0, days * 86400, size=n_orders)
    buyers = rng.integers(1, n_buyers + 1, size=n_orders)
    statuses = rng.choice(len(ORDER_STATUSES), size=n_orders, p=ORDER_STATUS_WEIGHTS)

    orders = []
    items = []
    for i in range(n_orders):
        orders.append({
            "id": i + 1,
            "order_number": f"ORD-{i + 1:010d}",
            "buyer_id": int(buyers[i]),
            "status": ORDER_STATUSES[statuses[i]],
            "created_at": now - timedelta(seconds=float(ages[i])),
        })

        n_items = int(rng.integers(1, 4))
        picks = rng.choice(len(products), size=n_items, replace=False, p=weights)
        for pick in picks:
            product = products[int(popularity[pick])]
            items.append({
                "order_id": i + 1,
                "product_id": product["id"],
                "quantity": int(rng.integers(1, 5)),
                "unit_price": product["price"],
            })

    return {"orders": orders, "items": items}


async def insert_rows(session, target, rows: List[Dict[str, Any]]) -> None:
    for start in range(0, len(rows), CHUNK_SIZE):
        await session.execute(insert(target), rows[start:start + CHUNK_SIZE])


async def seed(args: argparse.Namespace) -> None:
    engine = await init_database()
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        rng = np.random.default_rng(args.seed)
        fake = Faker()
        Faker.seed(args.seed)

        catalog = generate_catalog(rng, fake, args.products, args.vendors)
        ledger = generate_ledger(rng, catalog["products"], args.orders, args.buyers, args.days)

        async with get_session_factory()() as session:
            await insert_rows(session, Category, catalog["categories"])
            await insert_rows(session, Product, catalog["products"])
            await insert_rows(session, product_categories, catalog["memberships"])
            await insert_rows(session, Order, ledger["orders"])
            await insert_rows(session, OrderItem, ledger["items"])
            await session.commit()

        logger.info(
            "Demo data seeded",
            products=len(catalog["products"]),
            orders=len(ledger["orders"]),
            order_items=len(ledger["items"]),
        )
    finally:
        await close_database()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a demo catalog and order ledger")
    parser.add_argument("--products", type=int, default=500)
    parser.add_argument("--vendors", type=int, default=25)
    parser.add_argument("--orders", type=int, default=20000)
    parser.add_argument("--buyers", type=int, default=5000)
    parser.add_argument("--days", type=int, default=730, help="Spread orders over this many past days")
    parser.add_argument("--seed", type=int, default=42)

    args = parser.parse_args()
    configure_logging()
    asyncio.run(seed(args))


if __name__ == "__main__":
    main()
