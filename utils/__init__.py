"""Shared utilities for the enforcement dashboard."""

# String and numeric coercion
from utils.strings import (
    safe_int,
    safe_decimal,
    parse_date,
    normalize_whitespace,
)

# Output formatting
from utils.formatting import (
    quantize_money,
    format_currency,
    format_percent,
    format_count,
    format_date,
)

# Caching
from utils.cache import TTLCache

# Query building
from utils.query import build_where_clause, build_order_clause

# Configuration
from utils.config import Config, RiskPolicy, AppConfig

__all__ = [
    # Strings
    "safe_int",
    "safe_decimal",
    "parse_date",
    "normalize_whitespace",
    # Formatting
    "quantize_money",
    "format_currency",
    "format_percent",
    "format_count",
    "format_date",
    # Cache
    "TTLCache",
    # Query
    "build_where_clause",
    "build_order_clause",
    # Config
    "Config",
    "RiskPolicy",
    "AppConfig",
]
