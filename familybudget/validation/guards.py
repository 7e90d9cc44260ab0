"""
Validation / Authorization Guards

DESIGN DECISION: Every guard is a plain function that either returns
normally (sometimes with a normalized value) or raises a specific error
from familybudget.errors. Guards never read storage; the caller fetches
the entities and hands them in.

Guards run in two places:
1. In the flows, before any mutation is attempted
2. Inside the storage unit of work, where the account is re-checked
   under isolation (a concurrent archive toggle must still win)

IMPORTANT: Guards NEVER silently fix issues that change meaning.
Normalization is limited to case and whitespace.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional, Union

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
from familybudget.models.ledger import (
    Account,
    AccountType,
    Category,
    CategoryType,
    TransactionType,
)

DEFAULT_CATEGORY_COLOR = "#0ea5e9"


# =============================================================================
# FAMILY / ARCHIVED
# =============================================================================

def ensure_same_family(
    entity,
    family_id: str,
    not_found: type[NotFoundError] = NotFoundError,
):
    """
    Reject a missing or cross-tenant entity.

    Both cases raise the same error so a caller cannot tell whether an
    id exists in another family.
    """
    if entity is None or entity.family_id != family_id:
        raise not_found()
    return entity


def ensure_not_archived(entity: Union[Account, Category]) -> None:
    """Reject posting against an archived account or category."""
    if not entity.is_archived:
        return
    if isinstance(entity, Account):
        raise AccountArchivedError()
    raise CategoryArchivedError()


def ensure_postable_account(account: Optional[Account], family_id: str) -> Account:
    """Account exists in the family and accepts new transactions."""
    ensure_same_family(account, family_id, AccountNotFoundError)
    ensure_not_archived(account)
    return account


# =============================================================================
# CURRENCY
# =============================================================================

def normalize_currency(code: Optional[str]) -> str:
    """Trim and upper-case a currency code. Empty stays empty."""
    return (code or "").strip().upper()


def ensure_currency_matches(transaction_currency: str, account_currency: str) -> None:
    """Exact equality after normalization."""
    if normalize_currency(transaction_currency) != normalize_currency(account_currency):
        raise CurrencyMismatchError(
            f"currency must match account currency "
            f"({normalize_currency(transaction_currency)} != {normalize_currency(account_currency)})"
        )


def ensure_no_currency_drift(plan_currency: str, account_currency: str) -> None:
    """A plan's frozen currency must still be the account's currency."""
    if normalize_currency(plan_currency) != normalize_currency(account_currency):
        raise CurrencyDriftError(
            f"account currency changed from {normalize_currency(plan_currency)} "
            f"to {normalize_currency(account_currency)}"
        )


def resolve_currency(requested: Optional[str], account: Account) -> str:
    """Default to the account currency, otherwise require an exact match."""
    currency = normalize_currency(requested) or account.currency
    ensure_currency_matches(currency, account.currency)
    return currency


def ensure_supported_currency(code: str, supported: Iterable[str]) -> str:
    currency = normalize_currency(code)
    if len(currency) != 3 or currency not in set(supported):
        raise UnsupportedCurrencyError(f"currency {currency or '(empty)'} is not supported")
    return currency


# =============================================================================
# CATEGORIES
# =============================================================================

def ensure_category_type_matches(
    category: Category,
    operation_type: Union[TransactionType, str],
) -> None:
    expected = TransactionType(operation_type).value
    if category.type.value != expected:
        raise CategoryTypeMismatchError(
            f"category type {category.type.value} does not match {expected}"
        )


def ensure_parent_category_valid(parent: Optional[Category], family_id: str) -> Category:
    """Parent exists, belongs to the family and is not archived."""
    if parent is None or parent.family_id != family_id:
        raise ParentCategoryNotFoundError()
    if parent.is_archived:
        raise ParentCategoryArchivedError()
    return parent


def ensure_no_category_cycle(
    category_id: str,
    parent_id: Optional[str],
    categories: Iterable[Category],
) -> None:
    """
    Walk the whole ancestor chain of the proposed parent.

    Rejects self-parenting and any chain that leads back to the category.
    A chain that is already cyclic elsewhere is rejected as well rather
    than walked forever.
    """
    if parent_id is None:
        return
    by_id = {c.id: c for c in categories}
    seen = set()
    current = parent_id
    while current is not None:
        if current == category_id:
            raise CategoryCycleError(
                f"category {category_id} cannot be nested under its own descendant"
            )
        if current in seen:
            raise CategoryCycleError(f"category chain through {current} is cyclic")
        seen.add(current)
        node = by_id.get(current)
        current = node.parent_id if node else None


def normalize_category_type(value: str) -> CategoryType:
    try:
        return CategoryType((value or "").strip().lower())
    except ValueError:
        raise InvalidInputError("type must be income, expense or transfer")


def normalize_hex_color(color: Optional[str]) -> str:
    """
    Normalize a hex color.

    Empty -> default color, missing '#' added, '#abc' expanded to
    '#aabbcc', lower-cased.
    """
    normalized = (color or "").strip()
    if normalized == "":
        return DEFAULT_CATEGORY_COLOR
    if not normalized.startswith("#"):
        normalized = "#" + normalized
    if len(normalized) == 4:
        r, g, b = normalized[1], normalized[2], normalized[3]
        normalized = "#" + r + r + g + g + b + b
    normalized = normalized.lower()
    if len(normalized) != 7 or any(c not in "0123456789abcdef" for c in normalized[1:]):
        raise InvalidInputError(f"color {color!r} is not a hex color")
    return normalized


# =============================================================================
# ACCOUNTS
# =============================================================================

def normalize_account_type(value: Optional[str]) -> AccountType:
    """Unknown account types fall back to cash."""
    try:
        return AccountType((value or "").strip().lower())
    except ValueError:
        return AccountType.CASH


# =============================================================================
# TIMESTAMPS
# =============================================================================

def parse_timestamp(value: Union[datetime, str, None], field: str = "timestamp") -> datetime:
    """
    Parse an aware datetime or an RFC 3339 string into UTC.

    Raises:
        InvalidInputError: for empty, naive or malformed values
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = (value or "").strip()
        if text == "":
            raise InvalidInputError(f"{field} is required")
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise InvalidInputError(f"{field} must be RFC3339")
    if parsed.tzinfo is None or parsed.utcoffset() is None:
        raise InvalidInputError(f"{field} must include a timezone offset")
    return parsed.astimezone(timezone.utc)


def parse_optional_timestamp(
    value: Union[datetime, str, None],
    field: str = "timestamp",
) -> Optional[datetime]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return parse_timestamp(value, field)


def ensure_ordered_window(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and start > end:
        raise InvalidInputError("start_date must be before end_date")
