"""
Sample Dataset Generator
Writes a year of synthetic marketplace exports (orders, inventory, purchases)
as CSV files, shaped like the order-API and sheet-import feeds.
"""

from datetime import datetime
from pathlib import Path

from commerce_metrics.config import configure_logging
from commerce_metrics.data import SalesDataGenerator, rows_to_frame

OUTPUT_DIR = Path(__file__).parent.parent / "data" / "generated"
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

START = datetime(2024, 1, 1)
END = datetime(2024, 12, 31, 23, 59, 59)


def main(n_orders: int = 20000, n_purchases: int = 600, seed: int = 42):
    configure_logging()

    print("=" * 50)
    print("🚀 Sample Dataset Generator")
    print("=" * 50)

    generator = SalesDataGenerator(seed=seed)

    print(f"📊 Generating {n_orders:,} orders...")
    orders = rows_to_frame(generator.transactions(n_orders, START, END))
    orders.write_csv(OUTPUT_DIR / "orders.csv")
    print(f"   ✅ orders.csv: {orders.height:,} rows")

    print(f"📊 Generating inventory for {len(generator.catalog)} products...")
    inventory = rows_to_frame(generator.inventory(as_of=END))
    inventory.write_csv(OUTPUT_DIR / "inventory.csv")
    print(f"   ✅ inventory.csv: {inventory.height:,} rows")

    print(f"📊 Generating {n_purchases:,} purchases...")
    purchases = rows_to_frame(generator.purchases(n_purchases, START, END))
    purchases.write_csv(OUTPUT_DIR / "purchases.csv")
    print(f"   ✅ purchases.csv: {purchases.height:,} rows")

    print("=" * 50)
    print(f"✅ Done! Files saved to: {OUTPUT_DIR}")


if __name__ == "__main__":
    main()
