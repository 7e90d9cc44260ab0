"""Validation and authorization guards package."""

from familybudget.validation.guards import (
    DEFAULT_CATEGORY_COLOR,
    ensure_category_type_matches,
    ensure_currency_matches,
    ensure_no_category_cycle,
    ensure_no_currency_drift,
    ensure_not_archived,
    ensure_ordered_window,
    ensure_parent_category_valid,
    ensure_postable_account,
    ensure_same_family,
    ensure_supported_currency,
    normalize_account_type,
    normalize_category_type,
    normalize_currency,
    normalize_hex_color,
    parse_optional_timestamp,
    parse_timestamp,
    resolve_currency,
)

__all__ = [
    "DEFAULT_CATEGORY_COLOR",
    "ensure_category_type_matches",
    "ensure_currency_matches",
    "ensure_no_category_cycle",
    "ensure_no_currency_drift",
    "ensure_not_archived",
    "ensure_ordered_window",
    "ensure_parent_category_valid",
    "ensure_postable_account",
    "ensure_same_family",
    "ensure_supported_currency",
    "normalize_account_type",
    "normalize_category_type",
    "normalize_currency",
    "normalize_hex_color",
    "parse_optional_timestamp",
    "parse_timestamp",
    "resolve_currency",
]
