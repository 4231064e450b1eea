"""Tests for amount and percentage parsing."""

import pytest
from decimal import Decimal

from cambio.utils import parse_amount, parse_percentage


@pytest.mark.parametrize(
    "text,expected",
    [
        ("123.45", Decimal("123.45")),
        ("$123.45", Decimal("123.45")),
        ("1,234.56", Decimal("1234.56")),
        ("USD 500", Decimal("500")),
        ("€ 20", Decimal("20")),
        ("0", Decimal("0")),
    ],
)
def test_parse_amount(text, expected):
    """Test the accepted amount formats."""
    assert parse_amount(text) == expected


def test_negative_amount_is_rejected():
    """Test that direction must come from the movement type."""
    with pytest.raises(ValueError, match="cannot be negative"):
        parse_amount("-10")


@pytest.mark.parametrize("text", ["", "   ", "ten", "nan", "Infinity"])
def test_invalid_amount(text):
    """Test that unparseable amounts raise ValueError."""
    with pytest.raises(ValueError):
        parse_amount(text)


def test_parse_percentage():
    """Test percentages with and without the percent sign."""
    assert parse_percentage("40") == Decimal("40")
    assert parse_percentage("33.5%") == Decimal("33.5")


@pytest.mark.parametrize("text", ["101", "-1", "half"])
def test_invalid_percentage(text):
    """Test percentages outside 0..100 or unparseable."""
    with pytest.raises(ValueError):
        parse_percentage(text)
