"""
Synthetic Data Generator

Generates realistic marketplace data for testing and development, shaped
the way the order-API and sheet-import collaborators deliver it (camelCase
keys, a share of rows with a zero total that must be rebuilt).

Includes:
- Product catalog with marketplace item ids
- Transactions with realistic status and fulfillment mix
- Inventory snapshot rows
- Purchase-ledger rows
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import numpy as np
import polars as pl
from faker import Faker

_ID_ALPHABET = list("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")

ORDER_STATUSES = [
    ("Shipped", 0.86),
    ("Pending", 0.06),
    ("Cancelled", 0.05),
    ("Returned", 0.03),
]

FULFILLMENT_CHANNELS = [
    ("AFN", 0.65),
    ("MFN", 0.35),
]

SOURCE_SYSTEMS = ["order_api", "sheet_import"]


@dataclass(frozen=True)
class CatalogProduct:
    product_key: str
    unit_price: float
    unit_cost: float
    fee_rate: float


class SalesDataGenerator:
    """
    Reproducible generator for transactions, inventory and purchases.

    Example:
        generator = SalesDataGenerator(seed=42)
        rows = generator.transactions(500, start, end)
    """

    def __init__(self, seed: int = 42, n_products: int = 25):
        self._rng = np.random.default_rng(seed)
        self._fake = Faker()
        self._fake.seed_instance(seed)
        self.catalog = [self._product() for _ in range(n_products)]

    def _item_id(self) -> str:
        return "B0" + "".join(self._rng.choice(_ID_ALPHABET, size=8))

    def _product(self) -> CatalogProduct:
        unit_price = round(float(self._rng.uniform(800, 12000)), 0)
        return CatalogProduct(
            product_key=self._item_id(),
            unit_price=unit_price,
            unit_cost=round(unit_price * float(self._rng.uniform(0.3, 0.6)), 0),
            fee_rate=float(self._rng.choice([0.08, 0.10, 0.15])),
        )

    def _weighted(self, options) -> str:
        values = [o[0] for o in options]
        weights = [o[1] for o in options]
        return str(self._rng.choice(values, p=weights))

    def transactions(
        self,
        n: int,
        start: datetime,
        end: datetime,
        zero_total_share: float = 0.1,
    ) -> List[Dict[str, Any]]:
        """n raw transaction rows between start and end"""
        span_seconds = max(int((end - start).total_seconds()), 1)
        rows = []

        for index in range(n):
            product = self.catalog[int(self._rng.integers(len(self.catalog)))]
            status = self._weighted(ORDER_STATUSES)
            quantity = 0 if status == "Cancelled" else int(self._rng.choice([1, 1, 1, 2, 3]))
            total = product.unit_price * quantity
            fees = round(total * product.fee_rate, 0)
            cost = product.unit_cost * quantity
            other_cost = float(self._rng.choice([0, 0, 150, 300])) if quantity else 0.0
            occurred_at = start + timedelta(seconds=int(self._rng.integers(span_seconds)))

            # Some sources report no total; normalization rebuilds it
            reported_total = 0.0 if self._rng.random() < zero_total_share else total

            rows.append({
                "orderId": f"{self._rng.integers(100, 999)}-{self._rng.integers(10**6, 10**7)}-{index:05d}",
                "occurredAt": occurred_at.strftime("%Y-%m-%d %H:%M:%S"),
                "productKey": product.product_key,
                "quantity": quantity,
                "unitPrice": product.unit_price,
                "totalAmount": reported_total,
                "cost": cost,
                "fees": fees,
                "otherCost": other_cost,
                "grossProfit": 0.0 if reported_total == 0 else total - cost - fees - other_cost,
                "status": status,
                "fulfillment": self._weighted(FULFILLMENT_CHANNELS),
                "sourceSystem": str(self._rng.choice(SOURCE_SYSTEMS)),
            })

        return rows

    def inventory(self, as_of: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """One inventory row per catalog product"""
        as_of = as_of or datetime.now()
        rows = []
        for product in self.catalog:
            on_hand = int(self._rng.integers(0, 120))
            days_in_stock = int(self._rng.integers(0, 180))
            rows.append({
                "unifiedSku": product.product_key,
                "quantityOnHand": on_hand,
                "unitCost": product.unit_cost,
                "totalValue": on_hand * product.unit_cost,
                "lastSoldAt": (as_of - timedelta(days=int(self._rng.integers(0, 90)))).isoformat(),
                "daysInStock": days_in_stock,
                "reorderPoint": int(self._rng.integers(3, 15)),
            })
        return rows

    def purchases(self, n: int, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """n raw purchase-ledger rows"""
        span_days = max((end - start).days, 1)
        rows = []
        for _ in range(n):
            product = self.catalog[int(self._rng.integers(len(self.catalog)))]
            quantity = int(self._rng.integers(5, 60))
            rows.append({
                "unifiedSku": product.product_key,
                "purchasedAt": (start + timedelta(days=int(self._rng.integers(span_days)))).date().isoformat(),
                "quantity": quantity,
                "unitCost": product.unit_cost,
                "totalCost": quantity * product.unit_cost,
                "supplier": self._fake.company(),
            })
        return rows


def rows_to_frame(rows: List[Dict[str, Any]]) -> pl.DataFrame:
    """Raw rows as a Polars DataFrame, e.g. to write an import fixture"""
    return pl.DataFrame(rows)
