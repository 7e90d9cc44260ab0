"""
Request Models

Structured inputs for the ledger flows. They check shape only; the
cross-entity rules (same family, archived, currency) are enforced by the
guards and the storage layer.

Timestamps arrive either as aware datetimes or as RFC 3339 strings and are
parsed by the flows, so a malformed value surfaces as InvalidInputError.
"""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from familybudget.models.ledger import TransactionType

Timestamp = Union[datetime, str]


class TransactionRequest(BaseModel):
    """Create a transaction on behalf of the acting user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    amount_minor: int = Field(..., gt=0, strict=True)
    currency: Optional[str] = Field(
        default=None,
        description="Defaults to the account currency when omitted"
    )
    comment: str = Field(default="", max_length=1000)
    occurred_at: Timestamp


class TransactionFilters(BaseModel):
    """Optional filters for listing a family's transactions."""
    model_config = ConfigDict(str_strip_whitespace=True)

    start: Optional[Timestamp] = None
    end: Optional[Timestamp] = None
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    limit: int = Field(default=500, ge=1, le=5000)


class PlannedOperationRequest(BaseModel):
    """Create a planned (optionally recurring) operation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    type: TransactionType
    title: str = Field(..., min_length=1, max_length=200)
    amount_minor: int = Field(..., gt=0, strict=True)
    currency: Optional[str] = None
    comment: str = Field(default="", max_length=1000)
    due_at: Timestamp
    recurrence: Optional[str] = Field(
        default=None,
        description="weekly, monthly, yearly, none or empty"
    )


class AccountRequest(BaseModel):
    """Create or edit an account. The balance is never editable."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    type: str = Field(default="cash")
    currency: Optional[str] = None
    initial_balance_minor: int = Field(default=0, strict=True)
    shared: Optional[bool] = None


class CategoryRequest(BaseModel):
    """Create or edit a category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    type: str
    color: str = ""
    description: str = Field(default="", max_length=1000)
    parent_id: Optional[str] = None
