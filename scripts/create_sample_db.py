"""
Create a small sample analytics database from data/schema.sql.

Usage:
    python scripts/create_sample_db.py [database_path]
"""

import random
import sqlite3
import sys
from datetime import date, timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
SCHEMA_PATH = ROOT / "data" / "schema.sql"
DEFAULT_DB_PATH = ROOT / "data" / "analytics.db"

CATEGORIES = ["Bikes", "Components", "Clothing", "Accessories"]

PRODUCTS = [
    ("Road-150 Red", 1, 3578.27),
    ("Mountain-200 Black", 1, 2294.99),
    ("Touring-1000 Blue", 1, 2384.07),
    ("HL Road Frame", 2, 1431.50),
    ("ML Crankset", 2, 256.49),
    ("Long-Sleeve Logo Jersey", 3, 49.99),
    ("Classic Vest", 3, 63.50),
    ("Sport-100 Helmet", 4, 34.99),
    ("Water Bottle", 4, 4.99),
    ("Patch Kit", 4, 2.29),
]

CUSTOMERS = [
    ("Metro Cycle Shop", "West"),
    ("Trailblazing Sports", "West"),
    ("Eastside Riders", "East"),
    ("Harbor Bikes", "East"),
    ("Central Wheels", "Central"),
    ("Prairie Outfitters", "Central"),
    ("Southern Spokes", "South"),
]


def build(db_path: Path, orders: int = 300, seed: int = 7) -> None:
    rng = random.Random(seed)
    if db_path.exists():
        db_path.unlink()

    connection = sqlite3.connect(db_path)
    try:
        connection.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))
        connection.executemany(
            "INSERT INTO product_category (category_id, name) VALUES (?, ?)",
            list(enumerate(CATEGORIES, start=1)),
        )
        connection.executemany(
            "INSERT INTO product (name, category_id, list_price) VALUES (?, ?, ?)", PRODUCTS
        )
        connection.executemany(
            "INSERT INTO customer (company_name, region) VALUES (?, ?)", CUSTOMERS
        )

        start = date(2024, 1, 1)
        for order_id in range(1, orders + 1):
            customer_id = rng.randint(1, len(CUSTOMERS))
            order_date = start + timedelta(days=rng.randint(0, 364))
            lines = []
            for _ in range(rng.randint(1, 4)):
                product_id = rng.randint(1, len(PRODUCTS))
                lines.append((order_id, product_id, rng.randint(1, 5), PRODUCTS[product_id - 1][2]))
            total = round(sum(quantity * price for _, _, quantity, price in lines), 2)

            connection.execute(
                "INSERT INTO sales_order (order_id, customer_id, order_date, total_due) VALUES (?, ?, ?, ?)",
                (order_id, customer_id, order_date.isoformat(), total),
            )
            connection.executemany(
                "INSERT INTO sales_order_line (order_id, product_id, quantity, unit_price) VALUES (?, ?, ?, ?)",
                lines,
            )
        connection.commit()
    finally:
        connection.close()


def main():
    db_path = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_DB_PATH
    print(f"📦 Creating sample database at {db_path}")
    build(db_path)
    print("✅ Done. Point DATABASE_PATH at this file and start the service:")
    print("   uvicorn data_analyst.main:app --reload --port 8000")


if __name__ == "__main__":
    main()
