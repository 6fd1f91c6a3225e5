"""
Sales Breakdowns

Polars tables derived from normalized transactions for dashboard
collaborators: per-month trend and per-product performance ranking.
"""

from typing import Sequence

import polars as pl

from commerce_metrics.analytics.periods import period_key_of
from commerce_metrics.records import TransactionRecord

TRANSACTION_SCHEMA = {
    "order_id": pl.Utf8,
    "period_key": pl.Utf8,
    "product_key": pl.Utf8,
    "quantity": pl.Int64,
    "total_amount": pl.Float64,
    "gross_profit": pl.Float64,
    "cost": pl.Float64,
}


def records_to_frame(records: Sequence[TransactionRecord]) -> pl.DataFrame:
    """Flatten transactions into a typed frame (empty frames keep the schema)"""
    rows = [
        {
            "order_id": r.order_id,
            "period_key": period_key_of(r.occurred_at),
            "product_key": r.product_key,
            "quantity": r.quantity,
            "total_amount": float(r.total_amount),
            "gross_profit": float(r.gross_profit),
            "cost": float(r.cost),
        }
        for r in records
    ]
    return pl.DataFrame(rows, schema=TRANSACTION_SCHEMA)


def _margin_expr() -> pl.Expr:
    return (
        pl.when(pl.col("revenue") != 0)
        .then(pl.col("gross_profit") * 100.0 / pl.col("revenue"))
        .otherwise(0.0)
        .alias("profit_margin_pct")
    )


def monthly_breakdown(records: Sequence[TransactionRecord]) -> pl.DataFrame:
    """Revenue, profit, units and order count per period key, oldest first"""
    df = records_to_frame(records)
    return (
        df.group_by("period_key")
        .agg([
            pl.col("total_amount").sum().alias("revenue"),
            pl.col("gross_profit").sum().alias("gross_profit"),
            pl.col("quantity").sum().alias("units_sold"),
            pl.col("order_id").count().alias("order_count"),
            pl.col("product_key").n_unique().alias("distinct_products"),
        ])
        .with_columns(_margin_expr())
        .sort("period_key")
    )


def product_performance(records: Sequence[TransactionRecord], limit: int = 10) -> pl.DataFrame:
    """
    Top products by gross profit.

    Ties are broken by product key so the ranking is deterministic.
    """
    df = records_to_frame(records)
    return (
        df.group_by("product_key")
        .agg([
            pl.col("total_amount").sum().alias("revenue"),
            pl.col("gross_profit").sum().alias("gross_profit"),
            pl.col("quantity").sum().alias("units_sold"),
            pl.col("order_id").n_unique().alias("order_count"),
        ])
        .with_columns(_margin_expr())
        .sort(["gross_profit", "product_key"], descending=[True, False])
        .head(limit)
    )
