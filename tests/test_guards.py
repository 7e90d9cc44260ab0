"""Tests for validation guards."""

import pytest
from datetime import datetime, timezone

from familybudget.errors import (
    AccountArchivedError,
    AccountNotFoundError,
    CategoryArchivedError,
    CategoryCycleError,
    CategoryTypeMismatchError,
    CurrencyDriftError,
    CurrencyMismatchError,
    InvalidInputError,
    NotFoundError,
    ParentCategoryArchivedError,
    ParentCategoryNotFoundError,
    UnsupportedCurrencyError,
)
from familybudget.models.ledger import Account, AccountType, Category, CategoryType
from familybudget.validation import (
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
    normalize_hex_color,
    parse_optional_timestamp,
    parse_timestamp,
    resolve_currency,
)


def account(**overrides) -> Account:
    data = dict(family_id="family-1", name="Wallet", currency="RUB")
    data.update(overrides)
    return Account(**data)


def category(id: str, parent_id=None, **overrides) -> Category:
    data = dict(id=id, family_id="family-1", name=id, type=CategoryType.EXPENSE, parent_id=parent_id)
    data.update(overrides)
    return Category(**data)


class TestFamilyGuards:

    def test_other_family_looks_missing(self):
        """A foreign entity is reported exactly like an absent one."""
        with pytest.raises(AccountNotFoundError):
            ensure_same_family(account(family_id="family-2"), "family-1", AccountNotFoundError)
        with pytest.raises(AccountNotFoundError):
            ensure_same_family(None, "family-1", AccountNotFoundError)

    def test_default_error_is_generic_not_found(self):
        with pytest.raises(NotFoundError):
            ensure_same_family(None, "family-1")

    def test_returns_entity(self):
        acc = account()
        assert ensure_same_family(acc, "family-1") is acc

    def test_archived_account_and_category(self):
        with pytest.raises(AccountArchivedError):
            ensure_not_archived(account(is_archived=True))
        with pytest.raises(CategoryArchivedError):
            ensure_not_archived(category("food", is_archived=True))

    def test_postable_account(self):
        with pytest.raises(AccountNotFoundError):
            ensure_postable_account(account(family_id="family-2", is_archived=True), "family-1")
        with pytest.raises(AccountArchivedError):
            ensure_postable_account(account(is_archived=True), "family-1")


class TestCurrencyGuards:

    def test_match_ignores_case_and_whitespace(self):
        ensure_currency_matches(" rub ", "RUB")

    def test_mismatch(self):
        with pytest.raises(CurrencyMismatchError):
            ensure_currency_matches("USD", "RUB")

    def test_drift(self):
        with pytest.raises(CurrencyDriftError):
            ensure_no_currency_drift("RUB", "USD")

    def test_resolve_defaults_to_account(self):
        assert resolve_currency(None, account()) == "RUB"
        assert resolve_currency("", account()) == "RUB"
        assert resolve_currency("rub", account()) == "RUB"
        with pytest.raises(CurrencyMismatchError):
            resolve_currency("EUR", account())

    def test_supported_currency(self):
        assert ensure_supported_currency("usd", ["RUB", "USD"]) == "USD"
        with pytest.raises(UnsupportedCurrencyError):
            ensure_supported_currency("JPY", ["RUB", "USD"])
        with pytest.raises(UnsupportedCurrencyError):
            ensure_supported_currency("", ["RUB"])


class TestCategoryGuards:

    def test_type_must_match_operation(self):
        ensure_category_type_matches(category("food"), "expense")
        with pytest.raises(CategoryTypeMismatchError):
            ensure_category_type_matches(category("food"), "income")

    def test_transfer_category_never_matches(self):
        with pytest.raises(CategoryTypeMismatchError):
            ensure_category_type_matches(category("move", type=CategoryType.TRANSFER), "expense")

    def test_parent_checks(self):
        with pytest.raises(ParentCategoryNotFoundError):
            ensure_parent_category_valid(None, "family-1")
        with pytest.raises(ParentCategoryNotFoundError):
            ensure_parent_category_valid(category("p", family_id="family-2"), "family-1")
        with pytest.raises(ParentCategoryArchivedError):
            ensure_parent_category_valid(category("p", is_archived=True), "family-1")

    def test_cycle_through_descendant(self):
        """a <- b <- c: making c the parent of a closes a loop."""
        tree = [category("a"), category("b", parent_id="a"), category("c", parent_id="b")]
        with pytest.raises(CategoryCycleError):
            ensure_no_category_cycle("a", "c", tree)

    def test_self_parent(self):
        with pytest.raises(CategoryCycleError):
            ensure_no_category_cycle("a", "a", [category("a")])

    def test_sibling_parent_allowed(self):
        tree = [category("a"), category("b", parent_id="a"), category("c", parent_id="a")]
        ensure_no_category_cycle("c", "b", tree)

    def test_existing_loop_does_not_hang(self):
        tree = [category("x", parent_id="y"), category("y", parent_id="x"), category("a")]
        with pytest.raises(CategoryCycleError):
            ensure_no_category_cycle("a", "x", tree)

    def test_category_type_normalization(self):
        assert normalize_category_type(" Income ") == CategoryType.INCOME
        with pytest.raises(InvalidInputError):
            normalize_category_type("savings")

    @pytest.mark.parametrize("raw, expected", [
        ("", "#0ea5e9"),
        (None, "#0ea5e9"),
        ("ABC", "#aabbcc"),
        ("#F97316", "#f97316"),
        ("22c55e", "#22c55e"),
    ])
    def test_hex_color(self, raw, expected):
        assert normalize_hex_color(raw) == expected

    def test_bad_hex_color(self):
        with pytest.raises(InvalidInputError):
            normalize_hex_color("#12345g")


class TestMiscGuards:

    def test_unknown_account_type_is_cash(self):
        assert normalize_account_type("crypto") == AccountType.CASH
        assert normalize_account_type(" Card ") == AccountType.CARD

    def test_parse_timestamp_with_z(self):
        assert parse_timestamp("2024-03-10T12:00:00Z") == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    def test_parse_timestamp_with_offset(self):
        assert parse_timestamp("2024-03-10T15:00:00+03:00") == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["", "yesterday", "2024-03-10T12:00:00", datetime(2024, 3, 10)])
    def test_parse_timestamp_rejects(self, value):
        with pytest.raises(InvalidInputError):
            parse_timestamp(value, "occurred_at")

    def test_optional_timestamp(self):
        assert parse_optional_timestamp(None) is None
        assert parse_optional_timestamp("  ") is None

    def test_window_order(self):
        early = datetime(2024, 1, 1, tzinfo=timezone.utc)
        late = datetime(2024, 2, 1, tzinfo=timezone.utc)
        ensure_ordered_window(early, late)
        ensure_ordered_window(None, late)
        with pytest.raises(InvalidInputError):
            ensure_ordered_window(late, early)
