"""Utility functions for cambio."""

from cambio.utils.date_parser import parse_date
from cambio.utils.amount_parser import parse_amount, parse_percentage
from cambio.utils.resolver import resolve_asset, resolve_client

__all__ = ["parse_date", "parse_amount", "parse_percentage", "resolve_asset", "resolve_client"]
