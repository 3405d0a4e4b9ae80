"""Tests for input guards."""
import pytest
from bson import ObjectId

from utils.errors import ValidationError
from utils.guards import assert_non_negative_amount, parse_object_id


class TestAmountGuard:
    def test_accepts_zero_and_numeric_strings(self):
        assert assert_non_negative_amount(0) == 0.0
        assert assert_non_negative_amount("12.5") == 12.5

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "inf", "nan"])
    def test_rejects_non_finite(self, value):
        with pytest.raises(ValidationError):
            assert_non_negative_amount(value)

    def test_rejects_negative(self):
        with pytest.raises(ValidationError):
            assert_non_negative_amount(-0.01)

    def test_rejects_missing(self):
        with pytest.raises(ValidationError):
            assert_non_negative_amount(None)


class TestObjectIdGuard:
    def test_passes_object_id_through(self):
        oid = ObjectId()
        assert parse_object_id(oid) is oid

    def test_invalid(self):
        with pytest.raises(ValidationError):
            parse_object_id("nope", "order_id")
