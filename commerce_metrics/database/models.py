"""
Database Models - Period History

One table, period_snapshots, holding one row per calendar month
(period_key "YYYY-MM" is the primary key). Rows are written only through
the History Store's upsert: every metric column is overwritten on re-save,
created_at is set once on insert, version counts writes and is managed by
the mapper as an optimistic lock.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class PeriodSnapshotRow(Base):
    """
    Monthly Metrics History Table

    turnover_days is NULL when turnover is zero (unbounded days).
    """
    __tablename__ = "period_snapshots"

    period_key: Mapped[str] = mapped_column(String(7), primary_key=True)  # YYYY-MM

    # Sales
    revenue: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    gross_profit: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    profit_margin_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    roi_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    roi_basis: Mapped[str] = mapped_column(String(20), nullable=False, default="none")
    units_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    distinct_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_order_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Inventory
    inventory_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    inventory_turnover: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    turnover_days: Mapped[Optional[float]] = mapped_column(Float)
    stagnant_inventory_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Goals
    profit_goal_achievement_pct: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Audit
    computed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("ix_period_snapshots_updated", "updated_at"),
    )

    # UPDATEs carry "WHERE version = <loaded>"; a concurrent write raises StaleDataError
    __mapper_args__ = {"version_id_col": version}
