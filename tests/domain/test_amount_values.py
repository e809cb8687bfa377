"""Tests for command-boundary value parsing (``treasury_kernel.domain.values``)."""

from decimal import Decimal

import pytest

from treasury_kernel.domain.requisition import RequisitionState
from treasury_kernel.domain.values import parse_amount, parse_enum, require_text
from treasury_kernel.exceptions import ValidationError


class TestParseAmount:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("4500", Decimal("4500.00")),
            (" 12.5 ", Decimal("12.50")),
            (30000, Decimal("30000.00")),
            (Decimal("0.01"), Decimal("0.01")),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_amount(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        [None, "0", "-1", "abc", "NaN", "Infinity", "1.005", 10.5, True, "1" + "0" * 29],
    )
    def test_invalid(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_amount(raw, "approved_amount")
        assert exc_info.value.field == "approved_amount"


class TestRequireText:
    def test_strips(self):
        assert require_text("  projector  ", "justification") == "projector"

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_blank(self, raw):
        with pytest.raises(ValidationError):
            require_text(raw, "justification")


class TestParseEnum:
    @pytest.mark.parametrize(
        "raw",
        [RequisitionState.APPROVED, "approved", "APPROVED", " Approved "],
    )
    def test_accepts_value_or_name(self, raw):
        assert parse_enum(RequisitionState, raw, "state") is RequisitionState.APPROVED

    @pytest.mark.parametrize("raw", ["bogus", "", None, 3])
    def test_unknown(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            parse_enum(RequisitionState, raw, "state")
        assert exc_info.value.field == "state"
