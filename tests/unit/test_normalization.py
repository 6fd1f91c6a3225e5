"""
Unit Tests - Record Normalization
"""
import pytest
import polars as pl
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from commerce_metrics.errors import RecordValidationError
from commerce_metrics.records import FulfillmentChannel, TransactionStatus
from commerce_metrics.transformation.normalizers import (
    normalize,
    normalize_batch,
    normalize_frame,
    normalize_inventory,
    normalize_purchase,
    parse_fulfillment,
    parse_number,
    parse_status,
    parse_timestamp,
)


class TestFieldParsers:
    """Tests for defensive field parsing"""

    @pytest.mark.parametrize("raw,expected", [
        ("¥1,200", 1200.0),
        ("$1,000.50", 1000.5),
        (" 1 234 ", 1234.0),
        (Decimal("3.5"), 3.5),
        (42, 42.0),
        ("abc", 0.0),
        ("", 0.0),
        (None, 0.0),
        (True, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
    ])
    def test_parse_number(self, raw, expected):
        """Test money parsing turns garbage into zero"""
        assert parse_number(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("2025-01-05 10:00:00", datetime(2025, 1, 5, 10, 0, 0)),
        ("2025/01/12 14:30", datetime(2025, 1, 12, 14, 30)),
        ("2025-01-20T09:15:00", datetime(2025, 1, 20, 9, 15)),
        ("01/31/2025", datetime(2025, 1, 31)),
        ("2025-01-05", datetime(2025, 1, 5)),
        (date(2025, 1, 5), datetime(2025, 1, 5)),
    ])
    def test_parse_timestamp_formats(self, raw, expected):
        """Test the common export timestamp formats"""
        assert parse_timestamp(raw) == expected

    def test_parse_timestamp_drops_timezone(self):
        """Test aware timestamps keep wall-clock time"""
        aware = datetime(2025, 1, 5, 10, 0, tzinfo=timezone(timedelta(hours=9)))

        assert parse_timestamp(aware) == datetime(2025, 1, 5, 10, 0)

    def test_parse_timestamp_garbage(self):
        """Test unrecognised timestamps yield None"""
        assert parse_timestamp("not a date") is None
        assert parse_timestamp("  ") is None
        assert parse_timestamp(None) is None

    def test_status_aliases(self):
        """Test status mapping is case-insensitive with aliases"""
        assert parse_status("SHIPPED") == TransactionStatus.SHIPPED
        assert parse_status("Canceled") == TransactionStatus.CANCELLED
        assert parse_status("refunded") == TransactionStatus.RETURNED
        assert parse_status(None) == TransactionStatus.SHIPPED
        assert parse_status("teleported") is None

    def test_fulfillment_aliases(self):
        """Test marketplace fulfillment codes"""
        assert parse_fulfillment("AFN") == FulfillmentChannel.PLATFORM_FULFILLED
        assert parse_fulfillment("fba") == FulfillmentChannel.PLATFORM_FULFILLED
        assert parse_fulfillment("MFN") == FulfillmentChannel.SELF_FULFILLED
        assert parse_fulfillment(None) == FulfillmentChannel.SELF_FULFILLED
        assert parse_fulfillment("drone") == FulfillmentChannel.SELF_FULFILLED


class TestNormalize:
    """Tests for single transaction normalization"""

    def test_formatted_amounts(self, sample_raw_rows):
        """Test currency-formatted fields are parsed"""
        record = normalize(sample_raw_rows[0])

        assert record.unit_price == 500.0
        assert record.total_amount == 1000.0
        assert record.gross_profit == 400.0
        assert record.fulfillment == FulfillmentChannel.PLATFORM_FULFILLED
        assert record.unified_sku == "B0ABCDEF01"

    def test_total_reconstruction(self, sample_raw_rows):
        """Test a zero total is rebuilt from unit price and quantity"""
        record = normalize(sample_raw_rows[2])

        assert record.total_amount == 2000.0
        assert record.gross_profit == 2000.0 - 800.0 - 300.0 - 100.0

    def test_missing_gross_profit_is_derived(self, sample_raw_rows):
        """Test an absent gross profit is derived from the total"""
        record = normalize(sample_raw_rows[1])

        assert record.gross_profit == 700.0
        assert record.status == TransactionStatus.SHIPPED

    def test_missing_status_defaults_to_shipped(self, sample_raw_rows):
        """Test missing status"""
        assert normalize(sample_raw_rows[2]).status == TransactionStatus.SHIPPED

    def test_reconstruction_rederives_supplied_profit(self):
        """Test a rebuilt total also rebuilds gross profit"""
        record = normalize({
            "orderId": "o-1", "occurredAt": "2025-01-05", "productKey": "B0ABCDEF01",
            "quantity": 3, "unitPrice": 100, "totalAmount": 0, "cost": 120, "grossProfit": 55,
        })

        assert record.total_amount == 300.0
        assert record.gross_profit == 180.0

    def test_garbage_optional_fields_become_zero(self):
        """Test non-numeric optional fields do not reject the record"""
        record = normalize({
            "orderId": "o-1", "occurredAt": "2025-01-05", "productKey": "B0ABCDEF01",
            "quantity": 1, "unitPrice": 100, "totalAmount": 100, "fees": "n/a", "otherCost": None,
        })

        assert record.fees == 0.0
        assert record.other_cost == 0.0
        assert record.gross_profit == 100.0

    def test_explicit_unified_sku_is_kept(self):
        """Test a supplied unified SKU overrides the default"""
        record = normalize({
            "orderId": "o-1", "occurredAt": "2025-01-05", "productKey": "b0abcdef01",
            "unifiedSku": "SKU-RED-01", "quantity": 1, "unitPrice": 100,
        })

        assert record.unified_sku == "SKU-RED-01"

    def test_idempotent(self, sample_raw_rows):
        """Test normalizing a normalized record changes nothing"""
        for row in sample_raw_rows:
            once = normalize(row)
            assert normalize(once) == once

    def test_idempotent_when_derived_profit_is_zero(self):
        """Test idempotence holds for break-even records"""
        once = normalize({
            "orderId": "o-1", "occurredAt": "2025-01-05", "productKey": "B0ABCDEF01",
            "quantity": 2, "unitPrice": 50, "totalAmount": 0, "cost": 100,
        })

        assert once.gross_profit == 0.0
        assert normalize(once) == once

    def test_loss_on_returned_order_with_cost(self):
        """Test a zero-total row still books its costs as a loss"""
        once = normalize({
            "orderId": "o-1", "occurredAt": "2025-01-05", "productKey": "B0ABCDEF01",
            "quantity": 0, "totalAmount": 0, "grossProfit": 0,
            "cost": 500, "fees": 30, "otherCost": 20, "status": "Returned",
        })

        assert once.total_amount == 0.0
        assert once.gross_profit == -550.0
        assert normalize(once) == once

    def test_deterministic(self, sample_raw_rows):
        """Test same input gives same output"""
        assert normalize(sample_raw_rows[0]) == normalize(dict(sample_raw_rows[0]))


class TestNormalizeValidation:
    """Tests for record-level validation failures"""

    def _row(self, **overrides):
        row = {
            "orderId": "o-1",
            "occurredAt": "2025-01-05 10:00:00",
            "productKey": "B0ABCDEF01",
            "quantity": 1,
            "unitPrice": 100,
            "totalAmount": 100,
        }
        row.update(overrides)
        return row

    def test_missing_order_id(self):
        """Test missing order id is a validation error"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(orderId=None))

        assert "order_id" in exc_info.value.fields

    def test_missing_product_key(self):
        """Test missing product key is a validation error"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(productKey="  "))

        assert exc_info.value.fields == ("product_key",)

    def test_malformed_product_key(self):
        """Test malformed item ids are rejected"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(productKey="bad key!"))

        assert "product_key" in exc_info.value.fields
        assert "malformed" in exc_info.value.reasons[0]

    def test_negative_quantity(self):
        """Test negative quantity is rejected"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(quantity=-1))

        assert exc_info.value.fields == ("quantity",)

    def test_zero_quantity_on_shipped(self):
        """Test zero quantity needs a cancel or return status"""
        with pytest.raises(RecordValidationError):
            normalize(self._row(quantity=0, status="Shipped"))

    @pytest.mark.parametrize("status", ["Cancelled", "Returned", "canceled"])
    def test_zero_quantity_on_cancel_or_return(self, status):
        """Test zero quantity is valid for cancelled and returned records"""
        record = normalize(self._row(quantity=0, totalAmount=0, status=status))

        assert record.quantity == 0
        assert record.total_amount == 0.0
        assert record.gross_profit == 0.0

    def test_unknown_status(self):
        """Test unrecognised status is rejected with the raw value"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(status="teleported"))

        assert "status" in exc_info.value.fields
        assert any("teleported" in reason for reason in exc_info.value.reasons)

    def test_unparseable_timestamp(self):
        """Test an unparseable order date is rejected"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(occurredAt="yesterday"))

        assert "occurred_at" in exc_info.value.fields

    def test_all_problems_reported(self):
        """Test every failing field is reported, not just the first"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize(self._row(orderId="", quantity=-2, cost=-5))

        assert set(exc_info.value.fields) == {"order_id", "quantity", "cost"}
        assert len(exc_info.value.reasons) == 3


class TestNormalizeBatch:
    """Tests for batch normalization"""

    def test_invalid_rows_are_excluded(self, sample_raw_rows):
        """Test a bad row is reported and the rest survive"""
        rows = sample_raw_rows + [{"orderId": "", "productKey": "B0ABCDEF01", "occurredAt": "2025-01-01"}]

        result = normalize_batch(rows)

        assert result.total_rows == 4
        assert result.accepted_count == 3
        assert result.rejected_count == 1
        assert result.issues[0].record_index == 3
        assert "order_id" in result.issues[0].fields
        assert not result.all_rejected

    def test_all_rejected(self):
        """Test a batch where nothing survives"""
        result = normalize_batch([{"quantity": -1}, {}])

        assert result.all_rejected
        assert result.records == []
        assert [issue.record_index for issue in result.issues] == [0, 1]

    def test_empty_batch_is_not_all_rejected(self):
        """Test no rows is zero activity, not rejection"""
        result = normalize_batch([])

        assert result.total_rows == 0
        assert not result.all_rejected

    def test_issue_serialization(self):
        """Test issues convert to plain dicts"""
        result = normalize_batch([{"orderId": "o-1", "occurredAt": "2025-01-01"}])

        payload = result.issues[0].to_dict()
        assert payload["record_index"] == 0
        assert payload["fields"] == ["product_key", "quantity"]


class TestNormalizeFrame:
    """Tests for DataFrame normalization"""

    def test_sheet_import(self):
        """Test formatted sheet columns are cleaned with polars"""
        df = pl.DataFrame({
            "orderId": ["a-1", "a-2"],
            "occurredAt": ["2025-01-05 10:00:00", "2025-01-06 11:00:00"],
            "productKey": [" B0ABCDEF01 ", "B0ABCDEF02"],
            "quantity": [1, 2],
            "unitPrice": ["¥1,200", "¥300"],
            "totalAmount": ["¥1,200", ""],
            "cost": [500.0, 100.0],
        })

        result = normalize_frame(df)

        assert result.rejected_count == 0
        first, second = result.records
        assert first.product_key == "B0ABCDEF01"
        assert first.total_amount == 1200.0
        assert first.gross_profit == 700.0
        assert second.total_amount == 600.0


class TestNormalizeInventoryAndPurchases:
    """Tests for inventory and purchase-ledger normalization"""

    def test_inventory_total_value_rebuilt(self):
        """Test a zero total value is rebuilt"""
        item = normalize_inventory({
            "unifiedSku": "B0ABCDEF01", "quantityOnHand": "12", "unitCost": "$250", "daysInStock": 30,
        })

        assert item.total_value == 3000.0
        assert item.days_in_stock == 30
        assert item.last_sold_at is None

    def test_inventory_requires_sku(self):
        """Test inventory rows need a SKU"""
        with pytest.raises(RecordValidationError):
            normalize_inventory({"quantityOnHand": 1})

    def test_purchase_total_cost_rebuilt(self):
        """Test a zero purchase total is rebuilt"""
        purchase = normalize_purchase({
            "unifiedSku": "B0ABCDEF01", "purchasedAt": "2025/01/02", "quantity": 10, "unitCost": 400,
        })

        assert purchase.purchased_at == date(2025, 1, 2)
        assert purchase.total_cost == 4000.0

    def test_purchase_requires_positive_quantity(self):
        """Test purchase rows need a quantity"""
        with pytest.raises(RecordValidationError) as exc_info:
            normalize_purchase({"unifiedSku": "B0ABCDEF01", "purchasedAt": "2025-01-02", "quantity": 0})

        assert exc_info.value.fields == ("quantity",)

    def test_typed_records_pass_through(self, sample_inventory):
        """Test already-typed records normalize to themselves"""
        for item in sample_inventory:
            assert normalize_inventory(item) == item
