"""
Record Normalization Module

Turns loosely shaped rows from collaborators (order API payloads, imported
sheets, DataFrames) into typed records.

Handles:
- Defensive numeric parsing (currency symbols, separators, garbage -> 0)
- Timestamp parsing across the common export formats
- Status / fulfillment alias mapping
- Reconstruction of a zero total from unit price x quantity
- Re-derivation of gross profit when it is unset or the total was rebuilt
- Validation: invalid rows raise RecordValidationError (single record) or
  are collected as ValidationIssue entries (batches)

normalize() is pure and deterministic, and normalize(normalize(r)) == normalize(r).
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Optional, TypeVar, Union

import polars as pl
import structlog

from commerce_metrics.analytics.periods import as_naive
from commerce_metrics.config import get_settings
from commerce_metrics.errors import RecordValidationError
from commerce_metrics.quality.validators import (
    ValidationIssue,
    create_inventory_validator,
    create_purchase_validator,
    create_transaction_validator,
    issue_from_failures,
)
from commerce_metrics.records import (
    FulfillmentChannel,
    InventorySnapshotRecord,
    PurchaseRecord,
    TransactionRecord,
    TransactionStatus,
)

logger = structlog.get_logger(__name__)
settings = get_settings()

RecordT = TypeVar("RecordT")
RawRecord = Union[Mapping[str, Any], TransactionRecord, InventorySnapshotRecord, PurchaseRecord]

_STRIP_PATTERN = re.compile(f"[{re.escape(settings.normalization.currency_symbols)},\\s]")

TIMESTAMP_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%Y%m%d",
]

_STATUS_ALIASES = {
    "shipped": TransactionStatus.SHIPPED,
    "delivered": TransactionStatus.SHIPPED,
    "completed": TransactionStatus.SHIPPED,
    "pending": TransactionStatus.PENDING,
    "unshipped": TransactionStatus.PENDING,
    "processing": TransactionStatus.PENDING,
    "cancelled": TransactionStatus.CANCELLED,
    "canceled": TransactionStatus.CANCELLED,
    "returned": TransactionStatus.RETURNED,
    "refunded": TransactionStatus.RETURNED,
}

_FULFILLMENT_ALIASES = {
    "selffulfilled": FulfillmentChannel.SELF_FULFILLED,
    "self": FulfillmentChannel.SELF_FULFILLED,
    "merchant": FulfillmentChannel.SELF_FULFILLED,
    "mfn": FulfillmentChannel.SELF_FULFILLED,
    "fbm": FulfillmentChannel.SELF_FULFILLED,
    "platformfulfilled": FulfillmentChannel.PLATFORM_FULFILLED,
    "platform": FulfillmentChannel.PLATFORM_FULFILLED,
    "afn": FulfillmentChannel.PLATFORM_FULFILLED,
    "fba": FulfillmentChannel.PLATFORM_FULFILLED,
    "amazon": FulfillmentChannel.PLATFORM_FULFILLED,
}

# DataFrame columns that may arrive as formatted money strings
AMOUNT_COLUMNS = [
    "unit_price", "unitPrice", "total_amount", "totalAmount", "cost",
    "fees", "other_cost", "otherCost", "gross_profit", "grossProfit",
]


# =============================================================================
# FIELD PARSERS
# =============================================================================

def parse_number(value: Any) -> float:
    """Parse a money/number field; absent or unparseable values become 0.0"""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        text = _STRIP_PATTERN.sub("", str(value))
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def parse_int(value: Any) -> int:
    return int(round(parse_number(value)))


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp; None when absent or unrecognised"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    text = str(value).strip()
    if not text:
        return None
    try:
        return as_naive(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_date(value: Any) -> Optional[date]:
    moment = parse_timestamp(value)
    return moment.date() if moment else None


def _alias_key(value: Any) -> str:
    if isinstance(value, Enum):
        value = value.value
    return re.sub(r"[\s_-]", "", str(value)).lower()


def parse_status(value: Any) -> Optional[TransactionStatus]:
    """Missing status means Shipped; unknown text yields None (a validation failure)"""
    if value is None or (isinstance(value, str) and not value.strip()):
        return TransactionStatus.SHIPPED
    return _STATUS_ALIASES.get(_alias_key(value))


def parse_fulfillment(value: Any) -> FulfillmentChannel:
    if value is None:
        return FulfillmentChannel.SELF_FULFILLED
    return _FULFILLMENT_ALIASES.get(_alias_key(value), FulfillmentChannel.SELF_FULFILLED)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    """First present key; collaborators send both snake_case and camelCase"""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _as_mapping(raw: RawRecord) -> Mapping[str, Any]:
    if isinstance(raw, (TransactionRecord, InventorySnapshotRecord, PurchaseRecord)):
        return raw.to_dict()
    return raw


def _raise_if_invalid(validator, parsed: Mapping[str, Any]) -> None:
    failures = validator.check(parsed)
    if failures:
        issue = issue_from_failures(0, failures)
        raise RecordValidationError(issue.fields, issue.reasons)


_transaction_validator = create_transaction_validator()
_inventory_validator = create_inventory_validator()
_purchase_validator = create_purchase_validator()


# =============================================================================
# RECORD NORMALIZERS
# =============================================================================

def normalize(raw: RawRecord) -> TransactionRecord:
    """
    Normalize one transaction row.

    Rules, in order:
    1. Parse every numeric field defensively (garbage -> 0).
    2. total_amount == 0 with unit_price > 0 and quantity > 0 is rebuilt
       as unit_price * quantity.
    3. gross_profit is re-derived as total - cost - fees - other_cost when it
       is zero (treated as unset) or when the total was rebuilt in step 2,
       provided there is a positive total to derive from.
    4. Validation failures raise RecordValidationError.
    """
    raw = _as_mapping(raw)
    raw_status = _pick(raw, "status", "orderStatus", "order_status")
    product_key = _text(_pick(raw, "product_key", "productKey", "asin", "item_id"))

    parsed: Dict[str, Any] = {
        "order_id": _text(_pick(raw, "order_id", "orderId")),
        "occurred_at": parse_timestamp(_pick(raw, "occurred_at", "occurredAt", "order_date", "orderDate")),
        "product_key": product_key,
        "unified_sku": _text(_pick(raw, "unified_sku", "unifiedSku")) or product_key.upper(),
        "quantity": parse_int(_pick(raw, "quantity", "qty")),
        "unit_price": parse_number(_pick(raw, "unit_price", "unitPrice")),
        "total_amount": parse_number(_pick(raw, "total_amount", "totalAmount")),
        "cost": parse_number(_pick(raw, "cost")),
        "fees": parse_number(_pick(raw, "fees")),
        "other_cost": parse_number(_pick(raw, "other_cost", "otherCost")),
        "gross_profit": parse_number(_pick(raw, "gross_profit", "grossProfit")),
        "status": parse_status(raw_status),
        "_raw_status": raw_status,
        "fulfillment": parse_fulfillment(_pick(raw, "fulfillment", "fulfillmentChannel", "fulfillment_channel")),
        "source_system": _text(_pick(raw, "source_system", "sourceSystem")),
    }
    _raise_if_invalid(_transaction_validator, parsed)

    total_amount = parsed["total_amount"]
    reconstructed = False
    if total_amount == 0 and parsed["unit_price"] > 0 and parsed["quantity"] > 0:
        total_amount = parsed["unit_price"] * parsed["quantity"]
        reconstructed = True

    gross_profit = parsed["gross_profit"]
    if gross_profit == 0 or reconstructed:
        gross_profit = total_amount - parsed["cost"] - parsed["fees"] - parsed["other_cost"]

    return TransactionRecord(
        order_id=parsed["order_id"],
        occurred_at=parsed["occurred_at"],
        product_key=parsed["product_key"],
        unified_sku=parsed["unified_sku"],
        quantity=parsed["quantity"],
        unit_price=parsed["unit_price"],
        total_amount=total_amount,
        cost=parsed["cost"],
        fees=parsed["fees"],
        other_cost=parsed["other_cost"],
        gross_profit=gross_profit,
        status=parsed["status"],
        fulfillment=parsed["fulfillment"],
        source_system=parsed["source_system"],
    )


def normalize_inventory(raw: RawRecord) -> InventorySnapshotRecord:
    """Normalize one inventory row; total_value is rebuilt when zero"""
    raw = _as_mapping(raw)
    parsed = {
        "unified_sku": _text(_pick(raw, "unified_sku", "unifiedSku", "sku")),
        "quantity_on_hand": parse_int(_pick(raw, "quantity_on_hand", "quantityOnHand", "quantity")),
        "unit_cost": parse_number(_pick(raw, "unit_cost", "unitCost")),
        "total_value": parse_number(_pick(raw, "total_value", "totalValue")),
        "last_sold_at": parse_timestamp(_pick(raw, "last_sold_at", "lastSoldAt")),
        "days_in_stock": parse_int(_pick(raw, "days_in_stock", "daysInStock")),
        "reorder_point": parse_int(_pick(raw, "reorder_point", "reorderPoint")),
    }
    _raise_if_invalid(_inventory_validator, parsed)

    if parsed["total_value"] == 0:
        parsed["total_value"] = parsed["quantity_on_hand"] * parsed["unit_cost"]

    return InventorySnapshotRecord(**parsed)


def normalize_purchase(raw: RawRecord) -> PurchaseRecord:
    """Normalize one purchase-ledger row; total_cost is rebuilt when zero"""
    raw = _as_mapping(raw)
    parsed = {
        "unified_sku": _text(_pick(raw, "unified_sku", "unifiedSku", "sku")),
        "purchased_at": parse_date(_pick(raw, "purchased_at", "purchasedAt", "purchase_date")),
        "quantity": parse_int(_pick(raw, "quantity", "qty")),
        "unit_cost": parse_number(_pick(raw, "unit_cost", "unitCost")),
        "total_cost": parse_number(_pick(raw, "total_cost", "totalCost")),
        "supplier": _text(_pick(raw, "supplier")),
    }
    _raise_if_invalid(_purchase_validator, parsed)

    if parsed["total_cost"] == 0:
        parsed["total_cost"] = parsed["quantity"] * parsed["unit_cost"]

    return PurchaseRecord(**parsed)


# =============================================================================
# BATCHES
# =============================================================================

@dataclass
class NormalizationResult(Generic[RecordT]):
    """Accepted records plus one issue per rejected input row"""
    records: List[RecordT] = field(default_factory=list)
    issues: List[ValidationIssue] = field(default_factory=list)
    total_rows: int = 0

    @property
    def accepted_count(self) -> int:
        return len(self.records)

    @property
    def rejected_count(self) -> int:
        return len(self.issues)

    @property
    def all_rejected(self) -> bool:
        """True when rows were supplied but none survived"""
        return self.total_rows > 0 and not self.records


def normalize_batch(
    rows: Iterable[RawRecord],
    normalizer: Callable[[RawRecord], RecordT] = normalize,
) -> NormalizationResult[RecordT]:
    """
    Normalize a batch, excluding invalid rows instead of failing the batch.

    Issues carry the index of the row in the input sequence.
    """
    result: NormalizationResult = NormalizationResult()

    for index, row in enumerate(rows):
        result.total_rows += 1
        try:
            result.records.append(normalizer(row))
        except RecordValidationError as e:
            result.issues.append(ValidationIssue(record_index=index, fields=e.fields, reasons=e.reasons))
            logger.warning(
                "Record rejected",
                record_index=index,
                fields=list(e.fields),
                reasons=list(e.reasons),
            )

    logger.info(
        "Batch normalized",
        normalizer=getattr(normalizer, "__name__", str(normalizer)),
        total=result.total_rows,
        accepted=result.accepted_count,
        rejected=result.rejected_count,
    )
    return result


def normalize_frame(
    df: pl.DataFrame,
    normalizer: Callable[[RawRecord], RecordT] = normalize,
) -> NormalizationResult[RecordT]:
    """
    Normalize rows held in a Polars DataFrame (e.g. an imported sheet).

    String columns are trimmed and money columns stripped of currency
    formatting before the row-level rules run.
    """
    string_cols = [col for col, dtype in zip(df.columns, df.dtypes) if dtype == pl.Utf8]
    if string_cols:
        df = df.with_columns([pl.col(col).str.strip_chars().alias(col) for col in string_cols])

    money_cols = [col for col in AMOUNT_COLUMNS if col in string_cols]
    if money_cols:
        df = df.with_columns([
            pl.col(col)
            .str.replace_all(_STRIP_PATTERN.pattern, "")
            .cast(pl.Float64, strict=False)
            .alias(col)
            for col in money_cols
        ])

    return normalize_batch(df.to_dicts(), normalizer)
