"""Utility functions for carebill."""

from carebill.utils.date_parser import parse_date, get_date_range, minutes_between
from carebill.utils.amount_parser import parse_amount
from carebill.utils.cache import TTLCache

__all__ = ["parse_date", "get_date_range", "minutes_between", "parse_amount", "TTLCache"]
