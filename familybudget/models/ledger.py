"""
Core Ledger Models for Family Budget

These models define the strict schemas for every record the ledger keeps.
They are designed to:
1. Enforce type safety at runtime
2. Keep money in integer minor units (no floats anywhere)
3. Keep every instant timezone-aware and in UTC
4. Be serializable for storage and logging

DESIGN DECISION: Ids are UUID strings generated by the writer, never by
storage auto-increment. A retried write always gets a fresh id.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utcnow() -> datetime:
    """Current instant, timezone-aware, in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a fresh opaque entity id."""
    return str(uuid4())


def _to_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc)


# Any aware instant is accepted; naive ones are rejected rather than guessed.
UtcDatetime = Annotated[AwareDatetime, AfterValidator(_to_utc)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    CASH = "cash"
    CARD = "card"
    BANK = "bank"
    DEPOSIT = "deposit"
    WALLET = "wallet"


class CategoryType(str, Enum):
    """Category types. Transfers can be categorized but not posted."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class TransactionType(str, Enum):
    """
    Direction of a transaction.

    The amount is always positive; the sign of the balance delta
    comes from the type.
    """
    INCOME = "income"
    EXPENSE = "expense"


class Recurrence(str, Enum):
    """Recurrence rule of a planned operation."""
    NONE = "none"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class MemberRole(str, Enum):
    """Role of a family member."""
    OWNER = "owner"
    MEMBER = "member"


# =============================================================================
# IDENTITY
# =============================================================================

class Identity(BaseModel):
    """
    An already-resolved caller.

    The core trusts this triple; resolving it is the transport layer's job.
    It is passed explicitly through every flow, never stored globally.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    family_id: str = Field(..., min_length=1)
    role: MemberRole = MemberRole.MEMBER


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A family account holding money in one currency.

    CRITICAL: balance_minor is only ever changed by the storage layer's
    atomic posting. Editing an account never touches the balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    family_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType = AccountType.CASH
    currency: str = Field(..., min_length=3, max_length=3)
    balance_minor: int = Field(default=0, strict=True)
    is_shared: bool = True
    is_archived: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class Category(BaseModel):
    """
    Income/expense category, optionally nested under a parent.

    Archiving a category blocks new transactions and plans against it
    but leaves existing transactions untouched.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    family_id: str = Field(..., min_length=1)
    parent_id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    type: CategoryType
    color: str = Field(default="#0ea5e9", pattern=r"^#[0-9a-f]{6}$")
    description: str = Field(default="", max_length=1000)
    is_system: bool = False
    is_archived: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)


class Transaction(BaseModel):
    """
    A single posted ledger entry.

    Transactions are immutable: there is no update or delete. Each one is
    created together with exactly one balance delta on its account.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    family_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1, description="Author of the entry")
    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    amount_minor: int = Field(..., gt=0, strict=True)
    currency: str = Field(..., min_length=3, max_length=3)
    comment: str = Field(default="", max_length=1000)
    occurred_at: UtcDatetime
    created_at: UtcDatetime = Field(default_factory=utcnow)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def signed_amount(self) -> int:
        """Balance delta this transaction applies to its account."""
        if self.type == TransactionType.INCOME:
            return self.amount_minor
        return -self.amount_minor


class PlannedOperation(BaseModel):
    """
    Template for a future or recurring transaction.

    Lifecycle:
    - recurrence NONE: pending until completed once, then terminal
    - any other recurrence: every completion posts one transaction and
      moves due_at forward; the plan never becomes terminal

    The currency is frozen at creation. If the account's currency changes
    later, completion is refused.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=new_id)
    family_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1, description="Creator of the plan")
    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    title: str = Field(..., min_length=1, max_length=200)
    amount_minor: int = Field(..., gt=0, strict=True)
    currency: str = Field(..., min_length=3, max_length=3)
    comment: str = Field(default="", max_length=1000)
    due_at: UtcDatetime
    recurrence: Recurrence = Recurrence.NONE
    is_completed: bool = False
    last_completed_at: Optional[UtcDatetime] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)
    updated_at: UtcDatetime = Field(default_factory=utcnow)

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def is_recurring(self) -> bool:
        return self.recurrence != Recurrence.NONE

    @property
    def is_terminal(self) -> bool:
        """A one-off plan that has already been completed."""
        return self.is_completed and not self.is_recurring
