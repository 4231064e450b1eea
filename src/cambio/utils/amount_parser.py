"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
import re


def parse_amount(amount_str: str) -> Decimal:
    """Parse an amount string into a non-negative Decimal.

    Handles various formats:
    - "123.45"
    - "$123.45"
    - "1,234.56"
    - "USD 500"

    Direction is carried by the movement type, so negative amounts are rejected.

    Args:
        amount_str: Amount string

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed or is negative
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    cleaned = re.sub(r"[$€£¥]", "", amount_str.strip())
    cleaned = re.sub(r"^[A-Za-z]{3}\s+", "", cleaned)
    cleaned = cleaned.replace(",", "").strip()

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative: '{amount_str}'. Use the movement type for direction")
    return amount


def parse_percentage(value: str) -> Decimal:
    """Parse "40" or "40%" into a Decimal percentage between 0 and 100.

    Raises:
        ValueError: If the value cannot be parsed or lies outside 0..100
    """
    cleaned = value.strip().rstrip("%").strip()
    try:
        percentage = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Could not parse percentage '{value}'")
    if not percentage.is_finite() or not 0 <= percentage <= 100:
        raise ValueError(f"Percentage must be between 0 and 100, got '{value}'")
    return percentage
