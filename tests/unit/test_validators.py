"""
Unit Tests - Record Validation
"""
import pytest
from datetime import datetime

from commerce_metrics.quality.validators import (
    RecordValidator,
    ValidationFailure,
    create_inventory_validator,
    create_purchase_validator,
    create_transaction_validator,
    issue_from_failures,
)
from commerce_metrics.records import TransactionStatus


def _parsed(**overrides):
    record = {
        "order_id": "o-1",
        "occurred_at": datetime(2025, 1, 5, 10, 0),
        "product_key": "B0ABCDEF01",
        "quantity": 1,
        "unit_price": 100.0,
        "cost": 50.0,
        "fees": 10.0,
        "other_cost": 0.0,
        "status": TransactionStatus.SHIPPED,
    }
    record.update(overrides)
    return record


class TestRecordValidator:
    """Tests for RecordValidator"""

    def test_chaining(self):
        """Test add_* methods return the validator"""
        validator = (
            RecordValidator()
            .add_required_check("order_id")
            .add_non_negative_check("quantity")
            .add_positive_check("unit_price")
        )

        assert len(validator) == 3

    def test_required_check(self):
        """Test blank strings count as missing"""
        validator = RecordValidator().add_required_check("order_id")

        assert validator.check({"order_id": "o-1"}) == []
        failures = validator.check({"order_id": "   "})
        assert failures == [ValidationFailure("required_order_id", "order_id", "order_id is required")]

    def test_non_negative_check(self):
        """Test negative numbers fail and absent values are skipped"""
        validator = RecordValidator().add_non_negative_check("quantity")

        assert validator.check({"quantity": 0}) == []
        assert validator.check({}) == []
        assert len(validator.check({"quantity": -1})) == 1

    def test_positive_check(self):
        """Test zero fails a positive check"""
        validator = RecordValidator().add_positive_check("quantity")

        assert len(validator.check({"quantity": 0})) == 1
        assert validator.check({"quantity": 3}) == []

    def test_pattern_check(self):
        """Test regex check"""
        validator = RecordValidator().add_pattern_check("product_key", r"^B0[A-Z0-9]{8}$")

        assert validator.check({"product_key": "B0ABCDEF01"}) == []
        assert len(validator.check({"product_key": "X"})) == 1
        assert validator.check({"product_key": ""}) == []

    def test_enum_check_reports_raw_value(self):
        """Test enum failures quote the original text"""
        validator = RecordValidator().add_enum_check("status", list(TransactionStatus))

        failures = validator.check({"status": None, "_raw_status": "Lost"})

        assert failures[0].field == "status"
        assert "'Lost'" in failures[0].reason

    def test_custom_check(self):
        """Test custom predicate"""
        validator = RecordValidator().add_custom_check(
            name="fees_below_total",
            column="fees",
            check_func=lambda r: r["fees"] <= r["total"],
            message_on_fail="fees {fees} exceed total {total}",
        )

        failures = validator.check({"fees": 150, "total": 100})

        assert failures[0].check == "fees_below_total"
        assert failures[0].reason == "fees 150 exceed total 100"

    def test_validate_reports_indexes(self):
        """Test batch validation keeps row positions"""
        validator = RecordValidator().add_required_check("order_id")

        issues = validator.validate([{"order_id": "a"}, {"order_id": None}, {"order_id": "c"}, {}])

        assert [issue.record_index for issue in issues] == [1, 3]

    def test_issue_deduplicates_fields(self):
        """Test one field with two failures is listed once"""
        failures = [
            ValidationFailure("a", "quantity", "first"),
            ValidationFailure("b", "quantity", "second"),
            ValidationFailure("c", "cost", "third"),
        ]

        issue = issue_from_failures(7, failures)

        assert issue.record_index == 7
        assert issue.fields == ("quantity", "cost")
        assert issue.reasons == ("first", "second", "third")


class TestPrebuiltValidators:
    """Tests for the pre-built validators"""

    def test_valid_transaction(self):
        """Test a clean transaction passes"""
        assert create_transaction_validator().check(_parsed()) == []

    @pytest.mark.parametrize("status", [TransactionStatus.CANCELLED, TransactionStatus.RETURNED])
    def test_zero_quantity_allowed_for_cancel_and_return(self, status):
        """Test zero-quantity exemption"""
        assert create_transaction_validator().check(_parsed(quantity=0, status=status)) == []

    @pytest.mark.parametrize("status", [TransactionStatus.SHIPPED, TransactionStatus.PENDING])
    def test_zero_quantity_rejected_otherwise(self, status):
        """Test zero quantity on live orders"""
        failures = create_transaction_validator().check(_parsed(quantity=0, status=status))

        assert [f.check for f in failures] == ["zero_quantity_status"]

    def test_custom_product_key_pattern(self):
        """Test the product key pattern can be overridden"""
        validator = create_transaction_validator(product_key_pattern=r"^B0[A-Z0-9]{8}$")

        assert validator.check(_parsed(product_key="B0ABCDEF01")) == []
        assert validator.check(_parsed(product_key="SKU-1"))[0].field == "product_key"

    def test_inventory_validator(self):
        """Test inventory rows"""
        validator = create_inventory_validator()

        assert validator.check({"unified_sku": "A", "quantity_on_hand": 0, "unit_cost": 1.0}) == []
        assert len(validator.check({"unified_sku": "A", "quantity_on_hand": -3})) == 1

    def test_purchase_validator(self):
        """Test purchase rows"""
        validator = create_purchase_validator()

        failures = validator.check({"unified_sku": "", "purchased_at": None, "quantity": 1})

        assert {f.field for f in failures} == {"unified_sku", "purchased_at"}
