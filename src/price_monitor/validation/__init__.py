"""Normalization helpers and pre-execution guardrails."""

from .guardrails import ClarificationResult, ValidationResult, format_validation_errors, needs_clarification, validate_task
from .normalizers import (
    ParsedPrice,
    build_search_query,
    extract_site_name,
    find_price_in_text,
    normalize_brand,
    normalize_color,
    normalize_currency,
    normalize_gender,
    normalize_size,
    parse_price,
)

__all__ = [
    "ClarificationResult",
    "ParsedPrice",
    "ValidationResult",
    "build_search_query",
    "extract_site_name",
    "find_price_in_text",
    "format_validation_errors",
    "needs_clarification",
    "normalize_brand",
    "normalize_color",
    "normalize_currency",
    "normalize_gender",
    "normalize_size",
    "parse_price",
    "validate_task",
]
