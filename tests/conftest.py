"""
Test Suite Configuration
"""
import pytest
from datetime import date, datetime, timedelta
from typing import List

from commerce_metrics.analytics.periods import month_window
from commerce_metrics.config import ConfigTargets, Settings
from commerce_metrics.database.connection import build_engine, build_session_factory
from commerce_metrics.database.history_store import InMemoryHistoryStore, SQLHistoryStore
from commerce_metrics.database.models import Base
from commerce_metrics.records import (
    InventorySnapshotRecord,
    PeriodSnapshot,
    PurchaseRecord,
    RoiBasis,
    TransactionRecord,
    TransactionStatus,
)

REFERENCE_NOW = datetime(2025, 1, 31, 12, 0, 0)


class FixedClock:
    """Deterministic clock for History Store tests; advances one minute per call"""

    def __init__(self, start: datetime = datetime(2025, 2, 1, 9, 0, 0)):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing")


@pytest.fixture
def targets() -> ConfigTargets:
    """Documented default targets"""
    return ConfigTargets()


@pytest.fixture
def reference_now() -> datetime:
    return REFERENCE_NOW


@pytest.fixture
def january_window():
    return month_window("2025-01")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def sql_engine():
    """In-memory SQLite engine with the History Store schema"""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    yield engine

    engine.dispose()


@pytest.fixture
def sql_store(sql_engine, clock) -> SQLHistoryStore:
    return SQLHistoryStore(build_session_factory(sql_engine), clock=clock)


@pytest.fixture
def memory_store(clock) -> InMemoryHistoryStore:
    return InMemoryHistoryStore(clock=clock)


@pytest.fixture(params=["memory", "sql"])
def history_store(request, memory_store, sql_store):
    """Both History Store backends, for behaviour they must share"""
    return memory_store if request.param == "memory" else sql_store


@pytest.fixture
def sample_raw_rows() -> List[dict]:
    """Raw January order rows as the order API delivers them"""
    return [
        {
            "orderId": "503-0000001",
            "occurredAt": "2025-01-05 10:00:00",
            "productKey": "B0ABCDEF01",
            "quantity": 2,
            "unitPrice": "$500",
            "totalAmount": "$1,000",
            "cost": 400,
            "fees": 150,
            "otherCost": 50,
            "grossProfit": 400,
            "status": "Shipped",
            "fulfillment": "AFN",
        },
        {
            "orderId": "503-0000002",
            "occurredAt": "2025/01/12 14:30",
            "productKey": "B0ABCDEF02",
            "quantity": 1,
            "unitPrice": 2000,
            "totalAmount": 2000,
            "cost": 1000,
            "fees": 300,
            "otherCost": 0,
            "status": "delivered",
            "fulfillment": "MFN",
        },
        {
            "orderId": "503-0000003",
            "occurredAt": "2025-01-20T09:15:00",
            "productKey": "B0ABCDEF01",
            "quantity": 4,
            "unitPrice": 500,
            "totalAmount": 0,
            "cost": 800,
            "fees": 300,
            "otherCost": 100,
            "grossProfit": 0,
        },
    ]


def make_transaction(
    order_id: str = "503-0000001",
    occurred_at: datetime = datetime(2025, 1, 10, 12, 0, 0),
    product_key: str = "B0ABCDEF01",
    quantity: int = 1,
    total_amount: float = 1000.0,
    cost: float = 500.0,
    fees: float = 100.0,
    other_cost: float = 0.0,
    status: TransactionStatus = TransactionStatus.SHIPPED,
) -> TransactionRecord:
    return TransactionRecord(
        order_id=order_id,
        occurred_at=occurred_at,
        product_key=product_key,
        unified_sku=product_key.upper(),
        quantity=quantity,
        unit_price=total_amount / quantity if quantity else 0.0,
        total_amount=total_amount,
        cost=cost,
        fees=fees,
        other_cost=other_cost,
        gross_profit=total_amount - cost - fees - other_cost,
        status=status,
    )


def make_snapshot(period_key: str = "2025-01", **metrics) -> PeriodSnapshot:
    values = dict(
        revenue=100000.0,
        gross_profit=30000.0,
        profit_margin_pct=30.0,
        roi_pct=40.0,
        units_sold=120,
        order_count=100,
        distinct_products=12,
        average_order_value=1000.0,
        inventory_value=500000.0,
        inventory_turnover=0.2,
        turnover_days=155.0,
        stagnant_inventory_rate=10.0,
        profit_goal_achievement_pct=90.0,
        roi_basis=RoiBasis.PURCHASES,
        computed_at=datetime(2025, 1, 31, 12, 0, 0),
    )
    values.update(metrics)
    return PeriodSnapshot(period_key=period_key, **values)


@pytest.fixture
def sample_records() -> List[TransactionRecord]:
    """Normalized January transactions plus one from December"""
    return [
        make_transaction("o-1", datetime(2025, 1, 3, 9, 0), "B0ABCDEF01", 1, 1000.0, 400.0, 100.0, 0.0),
        make_transaction("o-2", datetime(2025, 1, 15, 18, 0), "B0ABCDEF02", 2, 3000.0, 1500.0, 300.0, 200.0),
        make_transaction("o-3", datetime(2025, 1, 31, 23, 59, 59), "B0ABCDEF01", 1, 1000.0, 400.0, 100.0, 0.0),
        make_transaction("o-4", datetime(2024, 12, 31, 23, 0), "B0ABCDEF03", 1, 9999.0, 1.0, 1.0, 0.0),
    ]


@pytest.fixture
def sample_inventory() -> List[InventorySnapshotRecord]:
    return [
        InventorySnapshotRecord("B0ABCDEF01", 40, 400.0, 16000.0, datetime(2025, 1, 31), days_in_stock=20),
        InventorySnapshotRecord("B0ABCDEF02", 3, 750.0, 2250.0, datetime(2025, 1, 15), days_in_stock=90),
        InventorySnapshotRecord("B0ABCDEF03", 10, 180.0, 1800.0, None, days_in_stock=61),
        InventorySnapshotRecord("B0ABCDEF04", 5, 390.0, 1950.0, datetime(2024, 11, 2), days_in_stock=60),
    ]


@pytest.fixture
def sample_purchases() -> List[PurchaseRecord]:
    return [
        PurchaseRecord("B0ABCDEF01", date(2025, 1, 2), 10, 400.0, 4000.0, "Acme Trading"),
        PurchaseRecord("B0ABCDEF02", date(2025, 1, 31), 1, 1000.0, 1000.0, "Acme Trading"),
        PurchaseRecord("B0ABCDEF03", date(2024, 12, 30), 50, 180.0, 9000.0, "Northwind"),
    ]


@pytest.fixture
def transaction_factory():
    return make_transaction


@pytest.fixture
def snapshot_factory():
    return make_snapshot
